"""Core configuration, storage plumbing and error types."""

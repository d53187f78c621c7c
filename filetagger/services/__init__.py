"""Services for reconciliation, verification and tag/file operations."""

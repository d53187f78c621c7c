"""File Tagger: reconciliation of tag metadata between a central store and per-directory satellite stores."""

__version__ = "0.1.0"

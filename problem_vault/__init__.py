"""Signal collection and problem vault deduplication service."""

__version__ = "0.1.0"

"""gRPC middleware building blocks: contexts, metadata, status, validation, metrics and backoff."""

__version__ = "2.1.0"
"""Message batch processing."""

from .engine import BATCH_EXPIRY, BatchItem, BatchJob, BatchRepository, parse_batch_requests

__all__ = [
    "BATCH_EXPIRY",
    "BatchItem",
    "BatchJob",
    "BatchRepository",
    "parse_batch_requests",
]

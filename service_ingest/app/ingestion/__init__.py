"""Idempotent ingestion of content submissions."""

from .coordinator import IngestionCoordinator
from .models import (
    CreateIngestRequest,
    IngestionRequest,
    IngestionResult,
    IngestOutcome,
    NewPostRecord,
    PostStatus,
)

__all__ = [
    "CreateIngestRequest",
    "IngestionCoordinator",
    "IngestionRequest",
    "IngestionResult",
    "IngestOutcome",
    "NewPostRecord",
    "PostStatus",
]

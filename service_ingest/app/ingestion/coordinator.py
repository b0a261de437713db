"""
Idempotent check-then-insert for content submissions.
"""

from typing import Optional

from shared.errors import DuplicateRecordError, PersistenceFailure, StoreError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..persistence.base import PostStore
from ..validation.token_validator import AuthenticatedPrincipal
from .models import IngestionRequest, IngestionResult, IngestOutcome, NewPostRecord


class IngestionCoordinator:
    """Records each submission at most once per ``source_id``.

    The lookup and the insert are two separate store round trips with no
    in-process lock between them. A concurrent duplicate that commits first
    makes our insert fail on the store's unique constraint; that surfaces as
    PersistenceFailure, and a retry of the whole call takes the lookup path
    and returns the winner's record.
    """

    def __init__(self, store: PostStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("ingest.coordinator")

    async def ingest(self, request: IngestionRequest, principal: AuthenticatedPrincipal) -> IngestionResult:
        """Return the existing record for ``request.source_id`` or create one."""
        self.logger.debug("Ingesting post", source_id=request.source_id, user_id=principal.subject)

        try:
            existing_id = await self.store.find_by_source_id(request.source_id)
        except StoreError as e:
            self.logger.error("Idempotency check failed", source_id=request.source_id, error=e.message)
            raise self._failure("Failed to check for existing post", "lookup", request) from e

        if existing_id is not None:
            self.logger.info("Post already exists", source_id=request.source_id, post_id=existing_id)
            return self._result(IngestOutcome.ALREADY_EXISTS, existing_id)

        record = NewPostRecord.from_request(request, principal.subject)

        try:
            inserted_id = await self.store.insert(record)
        except DuplicateRecordError as e:
            self.logger.warning("Lost insert race for source id", source_id=request.source_id)
            raise self._failure("Failed to save post", "insert", request, conflict=True) from e
        except StoreError as e:
            self.logger.error("Insert failed", source_id=request.source_id, error=e.message)
            raise self._failure("Failed to save post", "insert", request) from e

        if not inserted_id:
            self.logger.error("Insert returned no data", source_id=request.source_id)
            raise self._failure("Failed to save post", "insert", request)

        self.logger.info("Post created successfully", post_id=inserted_id, source_id=request.source_id)
        return self._result(IngestOutcome.CREATED, inserted_id)

    def _result(self, outcome: IngestOutcome, record_id: str) -> IngestionResult:
        if self.metrics is not None:
            self.metrics.record_ingest(outcome.value)
        return IngestionResult(outcome=outcome, record_id=record_id)

    def _failure(self, message: str, stage: str, request: IngestionRequest, conflict: bool = False) -> PersistenceFailure:
        if self.metrics is not None:
            self.metrics.record_ingest("persistence_failure")
        details = {"stage": stage, "source_id": request.source_id}
        if conflict:
            details["conflict"] = True
        return PersistenceFailure(message, details=details)

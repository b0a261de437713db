"""
Backing store contract for posts.
"""

from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from ..ingestion.models import NewPostRecord


class PostStore(Protocol):
    """Narrow view of the ``posts`` table used by ingestion.

    Precondition: the store enforces uniqueness of ``source_id`` and rejects
    a second insert for the same value with ``DuplicateRecordError``.
    Every backend failure surfaces as ``StoreError``.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def find_by_source_id(self, source_id: str) -> Optional[str]:
        """Return the id of the post with this source id, if any."""
        ...

    async def insert(self, record: "NewPostRecord") -> str:
        """Insert the record and return its generated id."""
        ...

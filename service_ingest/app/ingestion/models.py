"""
Ingestion models: the inbound body, the coordinator's input and output, and
the row written to the ``posts`` table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError


_HTTP_URL = TypeAdapter(HttpUrl)


def _check_url(value: str) -> str:
    try:
        _HTTP_URL.validate_python(value)
    except PydanticValidationError as exc:
        raise ValueError("must be a valid http(s) URL") from exc
    return value


class CreateIngestRequest(BaseModel):
    """Body of ``POST /ingest``. Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    source_id: str = Field(min_length=1)
    original_url: str
    raw_text: str = Field(min_length=1)
    raw_images: Optional[List[str]] = None

    @field_validator("source_id", "raw_text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("original_url")
    @classmethod
    def _original_url(cls, value: str) -> str:
        return _check_url(value)

    @field_validator("raw_images")
    @classmethod
    def _raw_images(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return [_check_url(url) for url in value]

    def to_ingestion_request(self) -> "IngestionRequest":
        return IngestionRequest(
            source_id=self.source_id,
            original_url=self.original_url,
            raw_text=self.raw_text,
            raw_images=tuple(self.raw_images or ()),
        )


class PostStatus(str, Enum):
    """Lifecycle status of a stored post."""
    PENDING = "PENDING"


class IngestOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class IngestionRequest:
    """One logical submission, keyed by ``source_id``."""

    source_id: str
    original_url: str
    raw_text: str
    raw_images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IngestionResult:
    outcome: IngestOutcome
    record_id: str

    @property
    def message(self) -> str:
        if self.outcome is IngestOutcome.CREATED:
            return "Ingestion accepted"
        return "Already exists"

    def to_response(self) -> Dict[str, str]:
        return {"message": self.message, "postId": self.record_id}


@dataclass(frozen=True)
class NewPostRecord:
    """Row inserted into ``posts``."""

    source_id: str
    raw_text: str
    user_id: str
    status: PostStatus = PostStatus.PENDING
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: IngestionRequest, user_id: str) -> "NewPostRecord":
        return cls(
            source_id=request.source_id,
            raw_text=request.raw_text,
            user_id=user_id,
            status=PostStatus.PENDING,
            meta={
                "original_url": request.original_url,
                "raw_images": list(request.raw_images),
            },
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "raw_text": self.raw_text,
            "user_id": self.user_id,
            "status": self.status.value,
            "meta": self.meta,
        }

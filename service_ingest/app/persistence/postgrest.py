"""
PostgREST (Supabase REST) persistence for posts.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import DuplicateRecordError, StoreError
from shared.logging import get_logger
from ..ingestion.models import NewPostRecord


UNIQUE_VIOLATION = "23505"


class PostgrestPostStore:
    """Reads and writes ``posts`` through a PostgREST endpoint."""

    table = "posts"

    def __init__(
        self,
        rest_url: str,
        service_role_key: str,
        http_timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rest_url = rest_url.rstrip("/")
        self.logger = get_logger("ingest.persistence.postgrest")
        self._service_role_key = service_role_key
        self._http_timeout = http_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Create the HTTP client on first use and reuse it afterwards."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.rest_url,
                timeout=self._http_timeout,
                transport=self._transport,
                headers={
                    "apikey": self._service_role_key,
                    "Authorization": f"Bearer {self._service_role_key}",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def start(self):
        self._get_client()
        self.logger.info("PostgREST persistence started", rest_url=self.rest_url)

    async def stop(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self.logger.info("PostgREST persistence stopped")

    async def find_by_source_id(self, source_id: str) -> Optional[str]:
        """Return the id of the post with this source id, if any."""
        response = await self._request(
            "GET",
            params={"select": "id", "source_id": f"eq.{source_id}", "limit": "1"},
        )
        rows = self._rows(response)
        if not rows:
            return None
        record_id = self._row_id(rows[0])
        if record_id is None:
            raise StoreError("Lookup returned a row without id", details={"source_id": source_id})
        return record_id

    async def insert(self, record: NewPostRecord) -> str:
        """Insert the record and return its generated id."""
        response = await self._request(
            "POST",
            params={"select": "id"},
            json=record.to_row(),
            headers={"Prefer": "return=representation"},
            source_id=record.source_id,
        )
        rows = self._rows(response)
        record_id = self._row_id(rows[0]) if rows else None
        if record_id is None:
            raise StoreError("Insert returned no data", details={"source_id": record.source_id})
        return record_id

    async def _request(self, method: str, *, source_id: Optional[str] = None, **kwargs) -> httpx.Response:
        try:
            response = await self._get_client().request(method, f"/{self.table}", **kwargs)
        except httpx.HTTPError as e:
            self.logger.error("PostgREST request failed", method=method, error=str(e))
            raise StoreError("Store unreachable", details={"error": str(e)}) from e

        # 409 also covers foreign-key violations; only 23505 is a lost race
        if response.status_code == 409 and source_id is not None:
            body = self._error_body(response)
            if body.get("code") == UNIQUE_VIOLATION:
                raise DuplicateRecordError(source_id, details=body)

        if response.is_error:
            body = self._error_body(response)
            self.logger.error(
                "PostgREST request rejected",
                method=method,
                status_code=response.status_code,
                error=body.get("message")
            )
            raise StoreError(
                f"Store returned {response.status_code}",
                details={"status_code": response.status_code, **body}
            )

        return response

    def _rows(self, response: httpx.Response) -> list:
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError("Store returned invalid JSON") from e
        if not isinstance(rows, list):
            raise StoreError("Store returned unexpected payload")
        return rows

    @staticmethod
    def _row_id(row: Any) -> Optional[str]:
        if isinstance(row, dict) and row.get("id"):
            return str(row["id"])
        return None

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text}
        if not isinstance(body, dict):
            return {"message": str(body)}
        return {key: body.get(key) for key in ("code", "message", "details", "hint") if key in body}

"""
Post stores.

Both backends enforce a unique ``source_id`` and translate their own failures
into ``StoreError`` / ``DuplicateRecordError``.
"""

from shared.config import BaseConfig
from .base import PostStore
from .postgres import PostgreSQLPostStore
from .postgrest import PostgrestPostStore


def build_post_store(config: BaseConfig) -> PostStore:
    """Build the store selected by ``store_backend``."""
    if config.store_backend == "postgres":
        return PostgreSQLPostStore(config.postgres_dsn)
    if config.store_backend == "postgrest":
        return PostgrestPostStore(
            config.postgrest_url,
            config.supabase_service_role_key,
            http_timeout=config.http_timeout,
        )
    raise ValueError(f"Unknown store backend: {config.store_backend}")


__all__ = ["PostStore", "PostgreSQLPostStore", "PostgrestPostStore", "build_post_store"]

"""Adapters for integrating perftrend with key-value stores."""

from sqlalchemy.ext.asyncio import create_async_engine

from ..config import Settings
from ..ports import KeyValueBackend
from .redis_backend import RedisKeyValueBackend
from .sqlalchemy_backend import SQLAlchemyKeyValueBackend

__all__ = ["RedisKeyValueBackend", "SQLAlchemyKeyValueBackend", "create_backend"]


def create_backend(settings: Settings) -> KeyValueBackend:
    """Build the backend selected by ``settings.kv_backend``."""
    if settings.kv_backend == "sql":
        return SQLAlchemyKeyValueBackend(create_async_engine(settings.database_url))
    return RedisKeyValueBackend(url=settings.redis_url)

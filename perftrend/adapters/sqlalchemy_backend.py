"""SQLAlchemy key-value adapter for perftrend."""

import re
import time
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..errors import BackendError

DEFAULT_TABLE = "perftrend_kv"

# Stays below SQLite's default bound-parameter limit.
_MULTI_GET_CHUNK = 500

_ANY_SEQUENCE = object()
_ANY_CHAR = object()


class SQLAlchemyKeyValueBackend:
    """Emulates a key-value store with expiry on a single relational table."""

    def __init__(
        self,
        engine: AsyncEngine,
        table: str = DEFAULT_TABLE,
        clock: Callable[[], float] = time.time,
    ):
        self.engine = engine
        self.table = table
        self.clock = clock
        self._schema_ready = False

    async def create_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.table} (
                            item_key VARCHAR(512) PRIMARY KEY,
                            item_value TEXT NOT NULL,
                            expires_at DOUBLE PRECISION
                        )
                        """
                    )
                )
        except SQLAlchemyError as exc:
            raise BackendError("create_schema", str(exc)) from exc
        self._schema_ready = True

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        await self._ensure_schema()
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text(
                        f"""
                        INSERT INTO {self.table} (item_key, item_value, expires_at)
                        VALUES (:key, :value, :expires_at)
                        ON CONFLICT (item_key) DO UPDATE
                        SET item_value = excluded.item_value, expires_at = excluded.expires_at
                        """
                    ),
                    {"key": key, "value": value, "expires_at": self.clock() + ttl_seconds},
                )
        except SQLAlchemyError as exc:
            raise BackendError("set", str(exc)) from exc
        return True

    async def get(self, key: str) -> Optional[str]:
        await self._ensure_schema()
        try:
            async with self.engine.connect() as conn:
                row = (
                    await conn.execute(
                        text(
                            f"""
                            SELECT item_value FROM {self.table}
                            WHERE item_key = :key
                              AND (expires_at IS NULL OR expires_at > :now)
                            """
                        ),
                        {"key": key, "now": self.clock()},
                    )
                ).first()
        except SQLAlchemyError as exc:
            raise BackendError("get", str(exc)) from exc
        return row.item_value if row else None

    async def list_keys(self, pattern: str) -> list[str]:
        await self._ensure_schema()
        tokens = _tokenize_glob(pattern)
        try:
            async with self.engine.connect() as conn:
                rows = (
                    await conn.execute(
                        text(
                            f"""
                            SELECT item_key FROM {self.table}
                            WHERE item_key LIKE :pattern ESCAPE '\\'
                              AND (expires_at IS NULL OR expires_at > :now)
                            ORDER BY item_key
                            """
                        ),
                        {"pattern": _like_pattern(tokens), "now": self.clock()},
                    )
                ).fetchall()
        except SQLAlchemyError as exc:
            raise BackendError("list_keys", str(exc)) from exc

        # LIKE is case-insensitive on some databases; re-check with glob semantics.
        matcher = _regex_pattern(tokens)
        return [row.item_key for row in rows if matcher.fullmatch(row.item_key)]

    async def multi_get(self, keys: Sequence[str]) -> list[Optional[str]]:
        if not keys:
            return []
        await self._ensure_schema()

        statement = text(
            f"""
            SELECT item_key, item_value FROM {self.table}
            WHERE item_key IN :keys
              AND (expires_at IS NULL OR expires_at > :now)
            """
        ).bindparams(bindparam("keys", expanding=True))

        found: Dict[str, str] = {}
        unique_keys = list(dict.fromkeys(keys))
        try:
            async with self.engine.connect() as conn:
                for offset in range(0, len(unique_keys), _MULTI_GET_CHUNK):
                    chunk = unique_keys[offset:offset + _MULTI_GET_CHUNK]
                    rows = (await conn.execute(statement, {"keys": chunk, "now": self.clock()})).fetchall()
                    found.update((row.item_key, row.item_value) for row in rows)
        except SQLAlchemyError as exc:
            raise BackendError("multi_get", str(exc)) from exc
        return [found.get(key) for key in keys]

    async def close(self) -> None:
        await self.engine.dispose()

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await self.create_schema()


def _tokenize_glob(pattern: str) -> List[object]:
    """Split a glob into literal characters and wildcard markers.

    Supports ``*``, ``?`` and backslash escapes. Character classes are matched
    literally.
    """
    tokens: List[object] = []
    escaped = False
    for char in pattern:
        if escaped:
            tokens.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "*":
            tokens.append(_ANY_SEQUENCE)
        elif char == "?":
            tokens.append(_ANY_CHAR)
        else:
            tokens.append(char)
    if escaped:
        tokens.append("\\")
    return tokens


def _like_pattern(tokens: List[object]) -> str:
    parts = []
    for token in tokens:
        if token is _ANY_SEQUENCE:
            parts.append("%")
        elif token is _ANY_CHAR:
            parts.append("_")
        elif token in ("%", "_", "\\"):
            parts.append("\\" + token)
        else:
            parts.append(token)
    return "".join(parts)


def _regex_pattern(tokens: List[object]) -> "re.Pattern[str]":
    parts = []
    for token in tokens:
        if token is _ANY_SEQUENCE:
            parts.append(".*")
        elif token is _ANY_CHAR:
            parts.append(".")
        else:
            parts.append(re.escape(token))
    return re.compile("".join(parts), re.DOTALL)

"""
PostgreSQL Key Store: Keychain records in two tables of an asyncpg pool.

Each commit unit runs in its own transaction: both halves of a key pair
are written, renamed or deleted together, or not at all. Name collisions
are caught by the primary keys and surface as ``KeyExistsError``.

Security Note:
    The ``pem`` column holds password protected containers only.
    Never log its contents.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from ..exceptions import KeyExistsError
from .models import EncryptedKey, KeyInfo
from .store import ChangeSet

logger = logging.getLogger("navigator.keychain")

# PostgreSQL SQLSTATE for unique_violation
_UNIQUE_VIOLATION = "23505"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_CREATE_SCHEMA = """
CREATE SCHEMA IF NOT EXISTS keychain;
CREATE TABLE IF NOT EXISTS keychain.keys (
    name TEXT PRIMARY KEY,
    id BYTEA NOT NULL
);
CREATE TABLE IF NOT EXISTS keychain.encrypted_keys (
    name TEXT PRIMARY KEY,
    pem TEXT NOT NULL
);
"""

_SELECT_KEY = """
SELECT name, id FROM keychain.keys WHERE name = $1
"""

_SELECT_ALL_KEYS = """
SELECT name, id FROM keychain.keys ORDER BY name
"""

_SELECT_ENCRYPTED_KEY = """
SELECT name, pem FROM keychain.encrypted_keys WHERE name = $1
"""

_SELECT_FIRST_ENCRYPTED_KEY = """
SELECT name, pem FROM keychain.encrypted_keys LIMIT 1
"""

_SELECT_ALL_ENCRYPTED_KEYS = """
SELECT name, pem FROM keychain.encrypted_keys ORDER BY name
"""

_INSERT_KEY = """
INSERT INTO keychain.keys (name, id) VALUES ($1, $2)
"""

_INSERT_ENCRYPTED_KEY = """
INSERT INTO keychain.encrypted_keys (name, pem) VALUES ($1, $2)
"""

_UPDATE_ENCRYPTED_KEY = """
UPDATE keychain.encrypted_keys SET pem = $2 WHERE name = $1
"""

_DELETE_KEY = """
DELETE FROM keychain.keys WHERE name = $1
"""

_DELETE_ENCRYPTED_KEY = """
DELETE FROM keychain.encrypted_keys WHERE name = $1
"""


def _key_from_row(row: Any) -> KeyInfo:
    return KeyInfo(name=row["name"], id=bytes(row["id"]))


def _encrypted_from_row(row: Any) -> EncryptedKey:
    return EncryptedKey(name=row["name"], pem=row["pem"])


class PostgresKeyStore:
    """Key store backed by an asyncpg-compatible connection pool."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def create_schema(self) -> None:
        """Create the keychain schema and tables if missing."""
        async with self._db.acquire() as conn:
            await conn.execute(_CREATE_SCHEMA)
        logger.info("Keychain schema ready")

    async def get_key(self, name: str) -> Optional[KeyInfo]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_KEY, name)
        return _key_from_row(row) if row is not None else None

    async def get_encrypted_key(self, name: str) -> Optional[EncryptedKey]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_ENCRYPTED_KEY, name)
        return _encrypted_from_row(row) if row is not None else None

    async def first_encrypted_key(self) -> Optional[EncryptedKey]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_FIRST_ENCRYPTED_KEY)
        return _encrypted_from_row(row) if row is not None else None

    async def list_keys(self) -> list[KeyInfo]:
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_ALL_KEYS)
        return [_key_from_row(row) for row in rows]

    async def list_encrypted_keys(self) -> list[EncryptedKey]:
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_ALL_ENCRYPTED_KEYS)
        return [_encrypted_from_row(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ChangeSet]:
        changes = ChangeSet()
        yield changes
        if changes:
            await self._commit(changes)

    async def _execute(self, conn: Any, operation: str, record: Any) -> None:
        if operation == "add_key":
            await conn.execute(_INSERT_KEY, record.name, record.id)
        elif operation == "add_encrypted_key":
            await conn.execute(_INSERT_ENCRYPTED_KEY, record.name, record.pem)
        elif operation == "update_encrypted_key":
            await conn.execute(_UPDATE_ENCRYPTED_KEY, record.name, record.pem)
        elif operation == "remove_key":
            await conn.execute(_DELETE_KEY, record)
        elif operation == "remove_encrypted_key":
            await conn.execute(_DELETE_ENCRYPTED_KEY, record)
        else:
            raise ValueError(f"Unknown store operation: {operation}")

    async def _commit(self, changes: ChangeSet) -> None:
        async with self._db.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                for operation, record in changes.operations:
                    try:
                        await self._execute(conn, operation, record)
                    except Exception as err:
                        if getattr(err, "sqlstate", None) == _UNIQUE_VIOLATION:
                            raise KeyExistsError(record.name) from err
                        raise
                await tx.commit()
            except BaseException:
                await tx.rollback()
                raise
        logger.debug("Committed %d keychain change(s)", len(changes))

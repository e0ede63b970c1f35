"""
Key Store: Persistence contract for the two keychain record sets.

The keychain keeps :class:`KeyInfo` and :class:`EncryptedKey` records keyed
by name. Writes that touch both sets go through a commit unit::

    async with store.transaction() as unit:
        unit.add_key(info)
        unit.add_encrypted_key(key)

Changes are only staged inside the ``async with`` block. They are applied,
all together, when the block exits normally; an exception or a
cancellation inside the block discards them. A name collision fails the
whole commit with ``KeyExistsError``.

Backends:
- :class:`MemoryKeyStore`: process memory, for tests and ephemeral nodes.
- :class:`FileKeyStore`: one JSON document, replaced atomically per commit.
- ``PostgresKeyStore`` (see ``pg_store``): asyncpg-compatible pool.
"""
import os
import base64
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol, Union

import orjson

from ..exceptions import DataFormatError, KeyExistsError
from .models import EncryptedKey, KeyInfo

logger = logging.getLogger("navigator.keychain")


@dataclass
class ChangeSet:
    """Staged writes of one commit unit, in call order."""

    operations: list[tuple[str, Union[KeyInfo, EncryptedKey, str]]] = field(
        default_factory=list
    )

    def add_key(self, info: KeyInfo) -> None:
        self.operations.append(("add_key", info))

    def add_encrypted_key(self, key: EncryptedKey) -> None:
        self.operations.append(("add_encrypted_key", key))

    def update_encrypted_key(self, key: EncryptedKey) -> None:
        self.operations.append(("update_encrypted_key", key))

    def remove_key(self, name: str) -> None:
        self.operations.append(("remove_key", name))

    def remove_encrypted_key(self, name: str) -> None:
        self.operations.append(("remove_encrypted_key", name))

    def __len__(self) -> int:
        return len(self.operations)


class KeyStore(Protocol):
    """Async store for the keychain records.

    Any class with matching methods satisfies the protocol.
    """

    async def get_key(self, name: str) -> Optional[KeyInfo]:
        """Return the KeyInfo named ``name``, or None."""
        ...

    async def get_encrypted_key(self, name: str) -> Optional[EncryptedKey]:
        """Return the EncryptedKey named ``name``, or None."""
        ...

    async def first_encrypted_key(self) -> Optional[EncryptedKey]:
        """Return any one EncryptedKey, or None when the store is empty."""
        ...

    async def list_keys(self) -> list[KeyInfo]:
        ...

    async def list_encrypted_keys(self) -> list[EncryptedKey]:
        ...

    def transaction(self) -> AsyncContextManager[ChangeSet]:
        """Async context manager yielding a :class:`ChangeSet` to commit."""
        ...


class MemoryKeyStore:
    """Key store held in process memory."""

    def __init__(self) -> None:
        self._keys: dict[str, KeyInfo] = {}
        self._encrypted: dict[str, EncryptedKey] = {}
        self._lock = asyncio.Lock()

    async def get_key(self, name: str) -> Optional[KeyInfo]:
        return self._keys.get(name)

    async def get_encrypted_key(self, name: str) -> Optional[EncryptedKey]:
        return self._encrypted.get(name)

    async def first_encrypted_key(self) -> Optional[EncryptedKey]:
        return next(iter(self._encrypted.values()), None)

    async def list_keys(self) -> list[KeyInfo]:
        return list(self._keys.values())

    async def list_encrypted_keys(self) -> list[EncryptedKey]:
        return list(self._encrypted.values())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ChangeSet]:
        changes = ChangeSet()
        yield changes
        if changes:
            await self._commit(changes)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _apply(
        self,
        changes: ChangeSet,
        keys: dict[str, KeyInfo],
        encrypted: dict[str, EncryptedKey],
    ) -> None:
        """Apply staged operations to the given tables, in order.

        Raises:
            KeyExistsError: If an insert collides with an existing name.
            KeyError: If an update targets a missing name.
        """
        for operation, record in changes.operations:
            if operation == "add_key":
                if record.name in keys:
                    raise KeyExistsError(record.name)
                keys[record.name] = record
            elif operation == "add_encrypted_key":
                if record.name in encrypted:
                    raise KeyExistsError(record.name)
                encrypted[record.name] = record
            elif operation == "update_encrypted_key":
                if record.name not in encrypted:
                    raise KeyError(record.name)
                encrypted[record.name] = record
            elif operation == "remove_key":
                keys.pop(record, None)
            elif operation == "remove_encrypted_key":
                encrypted.pop(record, None)
            else:
                raise ValueError(f"Unknown store operation: {operation}")

    async def _commit(self, changes: ChangeSet) -> None:
        # once a commit starts it runs to completion, even if the caller
        # is cancelled meanwhile, so memory and disk never diverge
        await asyncio.shield(self._commit_locked(changes))

    async def _commit_locked(self, changes: ChangeSet) -> None:
        async with self._lock:
            keys = dict(self._keys)
            encrypted = dict(self._encrypted)
            self._apply(changes, keys, encrypted)
            await self._persist(keys, encrypted)
            self._keys = keys
            self._encrypted = encrypted

    async def _persist(
        self,
        keys: dict[str, KeyInfo],
        encrypted: dict[str, EncryptedKey],
    ) -> None:
        """Write the new tables to durable storage. No-op in memory."""


class FileKeyStore(MemoryKeyStore):
    """Key store persisted to a single JSON document.

    Document layout::

        {
          "keys": [{"name": "self", "id": "<base64 multihash>"}],
          "encrypted_keys": [{"name": "self", "pem": "-----BEGIN ..."}]
        }

    Every commit writes a temporary file next to the document and renames
    it over the old document, so readers never see half a commit.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._keys, self._encrypted = self._load(self.path.read_bytes())
            logger.debug(
                "Loaded %d key(s) from %s", len(self._keys), self.path,
            )

    @staticmethod
    def _load(raw: bytes) -> tuple[dict[str, KeyInfo], dict[str, EncryptedKey]]:
        try:
            document = orjson.loads(raw)
            keys = {
                row["name"]: KeyInfo(name=row["name"], id=base64.b64decode(row["id"]))
                for row in document.get("keys", [])
            }
            encrypted = {
                row["name"]: EncryptedKey(name=row["name"], pem=row["pem"])
                for row in document.get("encrypted_keys", [])
            }
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as err:
            raise DataFormatError(f"Corrupt key store document: {err}") from err
        return keys, encrypted

    @staticmethod
    def _dump(
        keys: dict[str, KeyInfo],
        encrypted: dict[str, EncryptedKey],
    ) -> bytes:
        document = {
            "keys": [
                {"name": info.name, "id": base64.b64encode(info.id).decode("ascii")}
                for info in keys.values()
            ],
            "encrypted_keys": [
                {"name": key.name, "pem": key.pem} for key in encrypted.values()
            ],
        }
        return orjson.dumps(document, option=orjson.OPT_INDENT_2)

    def _write(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)

    async def _persist(
        self,
        keys: dict[str, KeyInfo],
        encrypted: dict[str, EncryptedKey],
    ) -> None:
        await asyncio.to_thread(self._write, self._dump(keys, encrypted))

"""Keychain records.

A key is stored as two records sharing the same ``name``: the public
:class:`KeyInfo` and the secret-bearing :class:`EncryptedKey`.
"""
from __future__ import annotations

from dataclasses import dataclass

from .identity import Base58


@dataclass(frozen=True, slots=True)
class KeyInfo:
    """Public, non-secret metadata of a key.

    Attributes:
        name: Local name of the key, unique in the keychain.
        id: Key ID, the sha2-256 multihash of the public key.
    """

    name: str
    id: bytes

    @property
    def id_base58(self) -> str:
        """The key ID in its usual text form (``Qm...``)."""
        return Base58.encode(self.id)

    def renamed(self, name: str) -> KeyInfo:
        return KeyInfo(name=name, id=self.id)

    def __repr__(self) -> str:
        return f"KeyInfo(name={self.name!r}, id={self.id_base58})"


@dataclass(frozen=True, slots=True)
class EncryptedKey:
    """A password protected private key.

    Attributes:
        name: Local name of the key.
        pem: Password protected PKCS #8 structure in the PEM format.
    """

    name: str
    pem: str

    def renamed(self, name: str) -> EncryptedKey:
        return EncryptedKey(name=name, pem=self.pem)

    def __repr__(self) -> str:
        # never show the container
        return f"EncryptedKey(name={self.name!r})"

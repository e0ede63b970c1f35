"""Keychain Vault: Passphrase-protected identity key pairs.

Security Note (Threat Model):
    Private keys are stored as PKCS #8 containers encrypted with the DEK,
    a key derived from the user's pass phrase. The DEK is held in process
    memory while the keychain is unlocked; a memory dump of the process
    during that time exposes it, and with it every stored key.
    Call ``KeyChain.lock()`` as soon as the keys are no longer needed to
    shorten that window.
"""

from .keychain import KeyChain
from .config import KeyChainOptions, DekOptions
from .models import KeyInfo, EncryptedKey
from .keytypes import KeyType
from .store import KeyStore, MemoryKeyStore, FileKeyStore
from .pg_store import PostgresKeyStore
from .identity import compute_key_id, encode_public_key
from .passphrase import PasswordSource

__all__ = [
    "KeyChain",
    "KeyChainOptions",
    "DekOptions",
    "KeyInfo",
    "EncryptedKey",
    "KeyType",
    "KeyStore",
    "MemoryKeyStore",
    "FileKeyStore",
    "PostgresKeyStore",
    "compute_key_id",
    "encode_public_key",
    "PasswordSource",
]

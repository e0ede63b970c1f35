"""
Keychain Re-keying: Re-encrypt every stored key under a new DEK.

Used when the pass phrase changes. All containers are decrypted with the
old DEK and re-encrypted with the new one inside a single commit unit: if
any container fails to decrypt, nothing is written and the keychain stays
readable with the old pass phrase.

Security Note:
    Private keys exist in memory only while their container is re-wrapped.
    Never log key material or passwords.
"""
import asyncio
import logging

from .codec import unwrap_private_key, wrap_private_key
from .models import EncryptedKey
from .passphrase import PasswordSource
from .store import KeyStore

logger = logging.getLogger("navigator.keychain")


def _rewrap(pem: str, old_password: PasswordSource, new_password: PasswordSource) -> str:
    private_key = unwrap_private_key(pem, old_password)
    return wrap_private_key(private_key, new_password)


async def rewrap_keys(
    store: KeyStore,
    old_password: PasswordSource,
    new_password: PasswordSource,
) -> dict:
    """Re-encrypt all stored containers from one password to another.

    Args:
        store: Key store holding the containers.
        old_password: Password the containers are encrypted with now.
        new_password: Password to encrypt them with.

    Returns:
        Stats dict with keys: total, rewrapped.

    Raises:
        AuthenticationError: If a container does not decrypt with
            ``old_password``; the store is left untouched.
    """
    keys = await store.list_encrypted_keys()
    stats = {"total": len(keys), "rewrapped": 0}

    logger.info("Re-encrypting %d stored key(s)", len(keys))

    async with store.transaction() as unit:
        for key in keys:
            pem = await asyncio.to_thread(_rewrap, key.pem, old_password, new_password)
            unit.update_encrypted_key(EncryptedKey(name=key.name, pem=pem))
            stats["rewrapped"] += 1

    logger.info("Re-encryption complete: %s", stats)
    return stats

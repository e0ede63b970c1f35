"""
KeyChain: Passphrase-protected store of identity key pairs.

Provides the public API of the keychain:
- ``set_passphrase(passphrase)``: derive the DEK and unlock the keychain
- ``create(name, key_type, size)``: generate and store a new key pair
- ``import_key(name, pem, password)`` / ``export(name, password)``
- ``get_public_key(name)``: base64 public key wire encoding
- ``find_key_by_name(name)`` / ``list()``: public metadata only
- ``remove(name)`` / ``rename(old_name, new_name)``
- ``change_passphrase(new_passphrase)`` / ``lock()``

Every private key is stored as a PKCS #8 container encrypted with the DEK.
Its public metadata (name and key ID) is stored next to it; both records
are always written, renamed and removed in one commit unit.

Security Note:
    The DEK lives only in process memory, between a successful
    ``set_passphrase`` and ``lock()``. Never log pass phrases, passwords,
    DEKs or containers; only key names, key types and key IDs.
"""
import asyncio
import logging
from contextlib import nullcontext
from typing import Optional

from ..exceptions import (
    AuthenticationError,
    ConsistencyError,
    KeyChainError,
    PrerequisiteError,
)
from .codec import Password, key_pair_from_private, unwrap_private_key, wrap_private_key
from .config import KeyChainOptions
from .identity import compute_key_id, encode_public_key
from .keytypes import PrivateKey, algorithm_by_name
from .models import EncryptedKey, KeyInfo
from .passphrase import DekSession, PasswordSource, Secret, derive_dek
from .rekey import rewrap_keys
from .store import KeyStore

logger = logging.getLogger("navigator.keychain")


class KeyChain:
    """A secure key chain.

    State machine: locked (initial) → ``set_passphrase`` → unlocked →
    ``lock()`` → locked. Operations that need the DEK raise
    ``PrerequisiteError`` while locked; metadata queries always work.

    Can be used as an async context manager; the DEK is cleared on exit.
    """

    def __init__(
        self,
        store: KeyStore,
        options: Optional[KeyChainOptions] = None,
    ):
        self.store = store
        self.options = options or KeyChainOptions()
        self._session: Optional[DekSession] = None
        # single writer for the DEK session
        self._dek_lock = asyncio.Lock()

    def __repr__(self) -> str:
        state = "unlocked" if self.is_unlocked else "locked"
        return f"<KeyChain {state} store={type(self.store).__name__}>"

    async def __aenter__(self) -> "KeyChain":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.lock()

    # ------------------------------------------------------------------
    # DEK session
    # ------------------------------------------------------------------

    @property
    def is_unlocked(self) -> bool:
        return self._session is not None and self._session.active

    def _require_unlocked(self) -> None:
        if not self.is_unlocked:
            raise PrerequisiteError(
                "The key chain is locked; set the pass phrase first"
            )

    def _dek_password(self) -> PasswordSource:
        self._require_unlocked()
        return self._session.password()

    async def _verify_dek(self, session: DekSession) -> None:
        """Check a candidate DEK by decrypting one stored key, if any.

        With an empty store there is nothing to check against and any
        pass phrase is accepted.
        """
        key = await self.store.first_encrypted_key()
        if key is None:
            logger.debug("No stored keys, pass phrase accepted unverified")
            return
        with session.password() as password:
            try:
                await asyncio.to_thread(unwrap_private_key, key.pem, password)
            except KeyChainError as err:
                raise AuthenticationError("The pass phrase is wrong.") from err

    async def set_passphrase(self, passphrase: Secret) -> None:
        """Set the pass phrase of the key chain.

        The pass phrase is used to derive the DEK, which encrypts the stored
        keys. Neither is stored.

        A wrong pass phrase leaves the current session, if any, in place.

        Args:
            passphrase: The pass phrase.

        Raises:
            AuthenticationError: If the pass phrase does not decrypt the
                stored keys.
        """
        async with self._dek_lock:
            dek = await asyncio.to_thread(derive_dek, passphrase, self.options.dek)
            candidate = DekSession(dek)
            try:
                await self._verify_dek(candidate)
            except BaseException:
                candidate.clear()
                raise
            previous, self._session = self._session, candidate
            if previous is not None:
                previous.clear()
        logger.info("Pass phrase is okay")

    async def change_passphrase(self, new_passphrase: Secret) -> dict:
        """Re-encrypt every stored key under the DEK of a new pass phrase.

        Args:
            new_passphrase: The new pass phrase.

        Returns:
            Stats dict with keys: total, rewrapped.

        Raises:
            PrerequisiteError: If the keychain is locked.
        """
        async with self._dek_lock:
            self._require_unlocked()
            dek = await asyncio.to_thread(derive_dek, new_passphrase, self.options.dek)
            candidate = DekSession(dek)
            try:
                with self._session.password() as old, candidate.password() as new:
                    stats = await rewrap_keys(self.store, old, new)
            except BaseException:
                candidate.clear()
                raise
            previous, self._session = self._session, candidate
            previous.clear()
        logger.info("Pass phrase changed")
        return stats

    async def lock(self) -> None:
        """Forget the DEK. Operations that need it fail until unlocked again."""
        async with self._dek_lock:
            if self._session is not None:
                self._session.clear()
                self._session = None
                logger.info("Key chain locked")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _read_stored(
        self, name: str
    ) -> tuple[Optional[EncryptedKey], Optional[PasswordSource]]:
        """Read a container together with the DEK it is encrypted under.

        Both are taken under the DEK lock, so a concurrent pass phrase
        change cannot pair a re-wrapped container with the previous DEK.
        """
        async with self._dek_lock:
            self._require_unlocked()
            key = await self.store.get_encrypted_key(name)
            if key is None:
                return None, None
            return key, self._session.password()

    async def _load_private_key(self, name: str) -> Optional[PrivateKey]:
        key, source = await self._read_stored(name)
        if key is None:
            return None
        with source as password:
            return await asyncio.to_thread(unwrap_private_key, key.pem, password)

    async def _add_private_key(self, name: str, private_key: PrivateKey) -> KeyInfo:
        _, public_key = key_pair_from_private(private_key)
        info = KeyInfo(name=name, id=compute_key_id(public_key))

        async with self._dek_lock:
            with self._dek_password() as password:
                pem = await asyncio.to_thread(wrap_private_key, private_key, password)
            async with self.store.transaction() as unit:
                unit.add_key(info)
                unit.add_encrypted_key(EncryptedKey(name=name, pem=pem))

        logger.debug("Added key '%s' with ID %s", name, info.id_base58)
        return info

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(
        self,
        name: str,
        key_type: Optional[str] = None,
        size: int = 0,
    ) -> KeyInfo:
        """Generate a key pair and store it under ``name``.

        Args:
            name: Local name of the key.
            key_type: ``rsa`` or ``secp256k1``; blank means the configured
                default.
            size: RSA modulus size in bits; below 1 means the configured
                default. Ignored for secp256k1.

        Returns:
            The stored key's metadata.

        Raises:
            InvalidKeyTypeError: If ``key_type`` is not recognized.
            PrerequisiteError: If the keychain is locked.
            KeyExistsError: If ``name`` is taken.
        """
        if not key_type or not key_type.strip():
            key_type = self.options.default_key_type
        if size is None or size < 1:
            size = self.options.default_key_size
        algorithm = algorithm_by_name(key_type.strip())
        # no point generating a key that cannot be stored
        self._require_unlocked()

        logger.debug("Creating %s key named '%s'", algorithm.name, name)
        private_key = await asyncio.to_thread(algorithm.generate, size)
        logger.debug("Created key")

        return await self._add_private_key(name, private_key)

    async def import_key(
        self,
        name: str,
        pem: str,
        password: Optional[Password] = None,
    ) -> KeyInfo:
        """Import a private key from a PEM container.

        Args:
            name: Local name for the key.
            pem: PEM text, usually an ``ENCRYPTED PRIVATE KEY``.
            password: Password of the container; None for unencrypted PEM.

        Returns:
            The stored key's metadata.

        Raises:
            AuthenticationError: If the password is wrong.
            DataFormatError: If the text holds no private key.
            UnsupportedKeyTypeError: If the key algorithm is not supported.
            PrerequisiteError: If the keychain is locked.
        """
        self._require_unlocked()
        if password is None or isinstance(password, PasswordSource):
            source = nullcontext(password)
        else:
            source = PasswordSource(password)
        with source as secret:
            private_key = await asyncio.to_thread(unwrap_private_key, pem, secret)
        return await self._add_private_key(name, private_key)

    async def export(self, name: str, password: Password) -> Optional[str]:
        """Export a key as a PEM container protected by ``password``.

        Storage is not modified.

        Returns:
            PEM text, or None if no key is named ``name``.

        Raises:
            PrerequisiteError: If the keychain is locked.
        """
        private_key = await self._load_private_key(name)
        if private_key is None:
            return None
        if isinstance(password, PasswordSource):
            return await asyncio.to_thread(wrap_private_key, private_key, password)
        with PasswordSource(password) as source:
            return await asyncio.to_thread(wrap_private_key, private_key, source)

    async def get_public_key(self, name: str) -> Optional[str]:
        """Get the encoded public key of a key.

        The encoding is the base64 of the protobuf ``{Type, Data}`` message,
        where Data is the DER SubjectPublicKeyInfo.

        Returns:
            Base64 text, or None if no key is named ``name``.

        Raises:
            PrerequisiteError: If the keychain is locked.
        """
        private_key = await self._load_private_key(name)
        if private_key is None:
            return None
        _, public_key = key_pair_from_private(private_key)
        return encode_public_key(public_key)

    async def find_key_by_name(self, name: str) -> Optional[KeyInfo]:
        """Find a key by its name; None if it is not defined."""
        return await self.store.get_key(name)

    async def list(self) -> list[KeyInfo]:
        """List the metadata of all keys."""
        return await self.store.list_keys()

    async def remove(self, name: str) -> Optional[KeyInfo]:
        """Remove a key.

        Both records are deleted together. If only one of them exists the
        orphan is deleted as well.

        Returns:
            The removed key's metadata, or None if no KeyInfo is named ``name``.
        """
        info = await self.store.get_key(name)
        encrypted = await self.store.get_encrypted_key(name)
        if info is None and encrypted is None:
            return None
        if info is None or encrypted is None:
            logger.warning(
                "Key '%s' is missing its %s record; removing the orphan",
                name, "metadata" if info is None else "encrypted key",
            )
        async with self.store.transaction() as unit:
            unit.remove_key(name)
            unit.remove_encrypted_key(name)
        logger.debug("Removed key '%s'", name)
        return info

    async def rename(self, old_name: str, new_name: str) -> Optional[KeyInfo]:
        """Rename a key, keeping its ID and container.

        Returns:
            The renamed key's metadata, or None if ``old_name`` is unknown.

        Raises:
            KeyExistsError: If ``new_name`` is taken.
            ConsistencyError: If ``old_name`` has no encrypted key.
        """
        info = await self.store.get_key(old_name)
        if info is None:
            return None
        encrypted = await self.store.get_encrypted_key(old_name)
        if encrypted is None:
            raise ConsistencyError(
                f"Key '{old_name}' has no encrypted private key"
            )
        renamed = info.renamed(new_name)
        async with self.store.transaction() as unit:
            unit.remove_key(old_name)
            unit.remove_encrypted_key(old_name)
            unit.add_key(renamed)
            unit.add_encrypted_key(encrypted.renamed(new_name))
        logger.debug("Renamed key '%s' to '%s'", old_name, new_name)
        return renamed

"""
Passphrase Vault: DEK derivation and the in-memory DEK session.

The passphrase is stretched with PBKDF2-HMAC into the DEK (derived
encryption key). The DEK is then used as the password of every stored
PKCS #8 container, so it is kept as unpadded base64 text.

Security Note:
    Neither the passphrase nor the DEK is ever persisted or logged.
    Python cannot guarantee that no copy of a secret survives in memory;
    buffers owned here are zeroed when released, which is the best the
    runtime allows.
"""
import base64
import logging
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import PrerequisiteError
from .config import DekOptions

logger = logging.getLogger("navigator.keychain")

Secret = Union[str, bytes, bytearray]

_PRF_DIGESTS = {
    "sha2-256": hashes.SHA256,
    "sha2-512": hashes.SHA512,
}


def _to_bytes(secret: Secret) -> bytes:
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return bytes(secret)


def derive_dek(passphrase: Secret, options: DekOptions) -> bytes:
    """Derive the DEK from a passphrase using PBKDF2-HMAC.

    Args:
        passphrase: The user's passphrase (str is UTF-8 encoded).
        options: Salt, iteration count, key length and PRF digest.

    Returns:
        The derived key as unpadded base64 ASCII bytes.
    """
    kdf = PBKDF2HMAC(
        algorithm=_PRF_DIGESTS[options.hash](),
        length=options.key_length,
        salt=options.salt.encode("utf-8"),
        iterations=options.iteration_count,
    )
    raw = kdf.derive(_to_bytes(passphrase))
    return base64.b64encode(raw).rstrip(b"=")


class PasswordSource:
    """A password handed to a decrypt or encrypt routine.

    Calling the source returns the password. Use it as a context manager so
    the buffer is zeroed as soon as the routine is done with it::

        with PasswordSource(b"secret") as source:
            key = unwrap(pem, source)
    """

    def __init__(self, password: Secret):
        self._buffer: bytearray | None = bytearray(_to_bytes(password))

    def __call__(self) -> bytes:
        if self._buffer is None:
            raise PrerequisiteError("The password source has been cleared")
        return bytes(self._buffer)

    @property
    def cleared(self) -> bool:
        return self._buffer is None

    def clear(self) -> None:
        """Zero and drop the password buffer."""
        if self._buffer is not None:
            self._buffer[:] = b"\x00" * len(self._buffer)
            self._buffer = None

    def __enter__(self) -> "PasswordSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.clear()

    def __repr__(self) -> str:
        state = "cleared" if self._buffer is None else "set"
        return f"<PasswordSource {state}>"


class DekSession:
    """Holds the DEK between a successful unlock and lock/teardown.

    Owned by the keychain; never serialized.
    """

    def __init__(self, dek: bytes):
        self._dek: bytearray | None = bytearray(dek)

    @property
    def active(self) -> bool:
        return self._dek is not None

    def password(self) -> PasswordSource:
        """Return a short-lived source for the DEK.

        Raises:
            PrerequisiteError: If the session has been cleared.
        """
        if self._dek is None:
            raise PrerequisiteError("The key chain is locked; set the pass phrase first")
        return PasswordSource(self._dek)

    def clear(self) -> None:
        """Zero the DEK. The session cannot be used afterwards."""
        if self._dek is not None:
            self._dek[:] = b"\x00" * len(self._dek)
            self._dek = None
            logger.debug("DEK session cleared")

    def __repr__(self) -> str:
        return f"<DekSession active={self.active}>"

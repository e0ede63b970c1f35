"""Exception hierarchy for the keychain.

Every keychain failure derives from :class:`KeyChainError` and from the
builtin exception that describes the same failure class, so callers that
already catch ``ValueError`` or ``PermissionError`` keep working.

Unknown names are not errors: lookups return ``None``.
"""
from __future__ import annotations


class KeyChainError(Exception):
    """Base exception for all keychain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class AuthenticationError(KeyChainError, PermissionError):
    """Wrong passphrase or password, detected by a failed decryption."""


class UnsupportedKeyTypeError(KeyChainError, NotImplementedError):
    """The key algorithm is not one the keychain can handle."""

    def __init__(self, key_type: str) -> None:
        self.key_type = key_type
        super().__init__(f"The key type {key_type} is not supported.")


class InvalidKeyTypeError(KeyChainError, ValueError):
    """The requested key type name is not recognized."""

    def __init__(self, key_type: str) -> None:
        self.key_type = key_type
        super().__init__(f"Invalid key type '{key_type}'.")


class DataFormatError(KeyChainError, ValueError):
    """Malformed container, or a container that holds no private key."""


class PrerequisiteError(KeyChainError, RuntimeError):
    """An operation needs the DEK but no passphrase has been set."""


class KeyExistsError(KeyChainError, KeyError):
    """A key name is already taken; raised by the store at commit time."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"A key named '{name}' already exists.")

    def __str__(self) -> str:
        # KeyError would otherwise render the message with quotes
        return self.message


class ConsistencyError(KeyChainError, RuntimeError):
    """Only one half of a KeyInfo / EncryptedKey pair is stored."""

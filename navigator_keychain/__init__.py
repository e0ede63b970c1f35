"""Navigator Keychain.

Passphrase-protected identity keys for peer-to-peer nodes.
"""
from .version import __version__
from .exceptions import (
    KeyChainError,
    AuthenticationError,
    UnsupportedKeyTypeError,
    InvalidKeyTypeError,
    DataFormatError,
    PrerequisiteError,
    KeyExistsError,
    ConsistencyError,
)
from .vault import KeyChain, KeyChainOptions, KeyInfo

__all__ = [
    "__version__",
    "KeyChain",
    "KeyChainOptions",
    "KeyInfo",
    "KeyChainError",
    "AuthenticationError",
    "UnsupportedKeyTypeError",
    "InvalidKeyTypeError",
    "DataFormatError",
    "PrerequisiteError",
    "KeyExistsError",
    "ConsistencyError",
]

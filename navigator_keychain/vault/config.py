"""
Keychain Configuration: Key generation defaults and DEK derivation settings.

Reads optional overrides from environment variables:
    KEYCHAIN_DEFAULT_KEY_TYPE = rsa | secp256k1
    KEYCHAIN_DEFAULT_KEY_SIZE = <int>
    KEYCHAIN_DEK_SALT = <string, at least 16 characters>
    KEYCHAIN_DEK_ITERATION_COUNT = <int>
    KEYCHAIN_DEK_KEY_LENGTH = <int, bytes>
    KEYCHAIN_DEK_HASH = sha2-256 | sha2-512

Security Note:
    The salt is not secret, but it must be stable: changing it changes the
    DEK and makes every stored key unreadable. Never log passphrases.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("navigator.keychain")

SUPPORTED_KEY_TYPES = ("rsa", "secp256k1")
SUPPORTED_DEK_HASHES = ("sha2-256", "sha2-512")

_DEFAULT_SALT = "at least 16 characters long"


class DekOptions(BaseModel):
    """Parameters of the PBKDF2 derivation that turns a passphrase into a DEK."""

    salt: str = Field(default=_DEFAULT_SALT, min_length=16)
    iteration_count: int = Field(default=10000, ge=1000)
    key_length: int = Field(default=64, ge=16, le=64)
    hash: str = Field(default="sha2-256")

    @field_validator("hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        """Validate the PRF digest is supported."""
        v = v.lower()
        if v not in SUPPORTED_DEK_HASHES:
            raise ValueError(f"Unsupported DEK hash: {v}")
        return v


class KeyChainOptions(BaseModel):
    """Validated keychain configuration."""

    default_key_type: str = Field(default="rsa")
    default_key_size: int = Field(default=2048, ge=1)
    dek: DekOptions = Field(default_factory=DekOptions)

    @field_validator("default_key_type")
    @classmethod
    def validate_key_type(cls, v: str) -> str:
        """Validate the default key type is one the keychain can generate."""
        v = v.lower()
        if v not in SUPPORTED_KEY_TYPES:
            raise ValueError(f"Unsupported default key type: {v}")
        return v

    @model_validator(mode="after")
    def validate_rsa_size(self) -> "KeyChainOptions":
        """RSA moduli below 1024 bits are refused by the key generator."""
        if self.default_key_type == "rsa" and self.default_key_size < 1024:
            raise ValueError(
                f"default_key_size {self.default_key_size} is too small "
                f"for RSA (minimum 1024)"
            )
        return self

    @classmethod
    def from_env(cls) -> "KeyChainOptions":
        """Create KeyChainOptions from environment variables.

        Variables that are not set keep their defaults.

        Returns:
            Populated KeyChainOptions instance.
        """
        dek: dict = {}
        if (salt := os.environ.get("KEYCHAIN_DEK_SALT")) is not None:
            dek["salt"] = salt
        if (count := os.environ.get("KEYCHAIN_DEK_ITERATION_COUNT")) is not None:
            dek["iteration_count"] = int(count)
        if (length := os.environ.get("KEYCHAIN_DEK_KEY_LENGTH")) is not None:
            dek["key_length"] = int(length)
        if (digest := os.environ.get("KEYCHAIN_DEK_HASH")) is not None:
            dek["hash"] = digest
        options = cls(
            default_key_type=os.environ.get("KEYCHAIN_DEFAULT_KEY_TYPE", "rsa"),
            default_key_size=int(os.environ.get("KEYCHAIN_DEFAULT_KEY_SIZE", "2048")),
            dek=DekOptions(**dek),
        )
        if options.dek.salt == _DEFAULT_SALT:
            logger.warning(
                "KEYCHAIN_DEK_SALT is not set; using the built-in salt"
            )
        return options

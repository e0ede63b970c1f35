"""Tests for keychain configuration."""
import pytest
from pydantic import ValidationError

from navigator_keychain.vault.config import DekOptions, KeyChainOptions


class TestDefaults:
    def test_keychain_defaults(self):
        options = KeyChainOptions()
        assert options.default_key_type == "rsa"
        assert options.default_key_size == 2048
        assert options.dek.iteration_count == 10000
        assert options.dek.key_length == 64
        assert options.dek.hash == "sha2-256"


class TestValidation:
    def test_key_type_is_lowercased(self):
        assert KeyChainOptions(default_key_type="SECP256K1").default_key_type == "secp256k1"

    def test_unknown_key_type(self):
        with pytest.raises(ValidationError, match="Unsupported default key type"):
            KeyChainOptions(default_key_type="dsa")

    def test_small_rsa_size(self):
        with pytest.raises(ValidationError, match="too small"):
            KeyChainOptions(default_key_size=512)

    def test_small_size_allowed_for_ec(self):
        options = KeyChainOptions(default_key_type="secp256k1", default_key_size=256)
        assert options.default_key_size == 256

    def test_short_salt(self):
        with pytest.raises(ValidationError):
            DekOptions(salt="short")

    def test_low_iteration_count(self):
        with pytest.raises(ValidationError):
            DekOptions(iteration_count=10)

    def test_key_length_bounds(self):
        with pytest.raises(ValidationError):
            DekOptions(key_length=8)
        with pytest.raises(ValidationError):
            DekOptions(key_length=128)

    def test_unknown_hash(self):
        with pytest.raises(ValidationError, match="Unsupported DEK hash"):
            DekOptions(hash="md5")


class TestFromEnv:
    def test_defaults_without_env(self, monkeypatch):
        for name in (
            "KEYCHAIN_DEFAULT_KEY_TYPE",
            "KEYCHAIN_DEFAULT_KEY_SIZE",
            "KEYCHAIN_DEK_SALT",
            "KEYCHAIN_DEK_ITERATION_COUNT",
            "KEYCHAIN_DEK_KEY_LENGTH",
            "KEYCHAIN_DEK_HASH",
        ):
            monkeypatch.delenv(name, raising=False)
        assert KeyChainOptions.from_env() == KeyChainOptions()

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("KEYCHAIN_DEFAULT_KEY_TYPE", "secp256k1")
        monkeypatch.setenv("KEYCHAIN_DEFAULT_KEY_SIZE", "256")
        monkeypatch.setenv("KEYCHAIN_DEK_SALT", "node-specific-salt-value")
        monkeypatch.setenv("KEYCHAIN_DEK_ITERATION_COUNT", "20000")
        monkeypatch.setenv("KEYCHAIN_DEK_KEY_LENGTH", "32")
        monkeypatch.setenv("KEYCHAIN_DEK_HASH", "sha2-512")
        options = KeyChainOptions.from_env()
        assert options.default_key_type == "secp256k1"
        assert options.default_key_size == 256
        assert options.dek.salt == "node-specific-salt-value"
        assert options.dek.iteration_count == 20000
        assert options.dek.key_length == 32
        assert options.dek.hash == "sha2-512"

    def test_invalid_env(self, monkeypatch):
        monkeypatch.setenv("KEYCHAIN_DEK_HASH", "sha1")
        with pytest.raises(ValidationError):
            KeyChainOptions.from_env()

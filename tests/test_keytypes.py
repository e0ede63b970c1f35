"""Tests for the key algorithm table."""
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from navigator_keychain.exceptions import InvalidKeyTypeError, UnsupportedKeyTypeError
from navigator_keychain.vault.keytypes import (
    ALGORITHMS,
    RSA,
    RSA_PRIMALITY_CERTAINTY,
    SECP256K1,
    KeyType,
    algorithm_by_name,
    algorithm_of,
)


class TestAlgorithmTable:
    def test_names(self):
        assert sorted(ALGORITHMS) == ["rsa", "secp256k1"]

    def test_wire_tags(self):
        assert RSA.key_type is KeyType.RSA
        assert SECP256K1.key_type is KeyType.SECP256K1

    def test_primality_certainty(self):
        assert RSA.primality_certainty == RSA_PRIMALITY_CERTAINTY == 25
        assert SECP256K1.primality_certainty is None


class TestLookup:
    @pytest.mark.parametrize("name", ["rsa", "RSA", "Rsa"])
    def test_by_name(self, name):
        assert algorithm_by_name(name) is RSA

    def test_unknown_name(self):
        with pytest.raises(InvalidKeyTypeError):
            algorithm_by_name("ed25519")

    def test_of_private_and_public(self, rsa_key, secp256k1_key):
        assert algorithm_of(rsa_key) is RSA
        assert algorithm_of(rsa_key.public_key()) is RSA
        assert algorithm_of(secp256k1_key) is SECP256K1
        assert algorithm_of(secp256k1_key.public_key()) is SECP256K1

    def test_other_curve(self):
        key = ec.generate_private_key(ec.SECP256R1())
        with pytest.raises(UnsupportedKeyTypeError, match="secp256r1"):
            algorithm_of(key)

    def test_other_algorithm(self):
        with pytest.raises(UnsupportedKeyTypeError):
            algorithm_of(ed25519.Ed25519PrivateKey.generate())


class TestCapabilities:
    def test_rsa_generate(self):
        key = RSA.generate(1024)
        assert key.key_size == 1024
        assert key.public_key().public_numbers().e == 65537

    def test_secp256k1_ignores_size(self):
        key = SECP256K1.generate(4096)
        assert key.curve.name == "secp256k1"

    def test_derive_public(self, rsa_key, secp256k1_key):
        assert RSA.derive_public(rsa_key).public_numbers() == rsa_key.public_key().public_numbers()
        assert (
            SECP256K1.derive_public(secp256k1_key).public_numbers()
            == secp256k1_key.public_key().public_numbers()
        )

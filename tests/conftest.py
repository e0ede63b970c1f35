"""Shared fixtures for keychain tests."""
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from navigator_keychain.vault import (
    DekOptions,
    KeyChain,
    KeyChainOptions,
    MemoryKeyStore,
)

PASSPHRASE = "correct horse"


@pytest.fixture
def dek_options():
    """Cheap PBKDF2 settings so tests stay fast."""
    return DekOptions(salt="keychain-test-salt-0001", iteration_count=1000, key_length=32)


@pytest.fixture
def options(dek_options):
    return KeyChainOptions(default_key_size=1024, dek=dek_options)


@pytest.fixture
def store():
    return MemoryKeyStore()


@pytest.fixture
async def keychain(store, options):
    """An unlocked keychain over an empty in-memory store."""
    kc = KeyChain(store, options)
    await kc.set_passphrase(PASSPHRASE)
    yield kc
    await kc.lock()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


@pytest.fixture(scope="session")
def secp256k1_key():
    return ec.generate_private_key(ec.SECP256K1())

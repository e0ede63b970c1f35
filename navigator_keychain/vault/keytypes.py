"""
Key Algorithms: The closed set of key pair algorithms the keychain handles.

Each algorithm is described once by a :class:`KeyAlgorithm` entry holding
its capabilities (generate, derive the public half, wire tag). Code that
needs to act on a key asks :func:`algorithm_of` for the entry and then uses
the capabilities; nothing else inspects key classes.

Supported:
- ``rsa``: public exponent 65537, caller-chosen modulus size.
- ``secp256k1``: the Bitcoin/libp2p Koblitz curve.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..exceptions import InvalidKeyTypeError, UnsupportedKeyTypeError

__all__ = [
    "KeyType",
    "KeyAlgorithm",
    "PrivateKey",
    "PublicKey",
    "RSA",
    "SECP256K1",
    "ALGORITHMS",
    "RSA_PUBLIC_EXPONENT",
    "RSA_PRIMALITY_CERTAINTY",
    "algorithm_by_name",
    "algorithm_of",
]

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]

RSA_PUBLIC_EXPONENT = 0x10001
# Miller-Rabin certainty expected of RSA keys by other libp2p keychains.
# pyca/cryptography picks its own round count from the modulus size, so the
# value is published as algorithm metadata rather than passed to the generator.
RSA_PRIMALITY_CERTAINTY = 25


class KeyType(IntEnum):
    """Key type codes of the public key wire format."""

    RSA = 0
    SECP256K1 = 1


@dataclass(frozen=True, slots=True)
class KeyAlgorithm:
    """
    Capabilities of one key algorithm.

    Attributes:
        name: Lowercase name accepted by ``KeyChain.create``.
        key_type: Tag written into the public key wire format.
        generate: Build a new private key; receives the requested size in
            bits (ignored by fixed-size curves).
        derive_public: Rebuild the public half from private material only.
        primality_certainty: Miller-Rabin certainty of generated primes,
            for algorithms built on primes; None otherwise.
    """

    name: str
    key_type: KeyType
    generate: Callable[[int], PrivateKey]
    derive_public: Callable[[PrivateKey], PublicKey]
    primality_certainty: Optional[int] = None


def _generate_rsa(size: int) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=size,
    )


def _rsa_public(private_key: rsa.RSAPrivateKey) -> rsa.RSAPublicKey:
    # modulus and public exponent are carried by the CRT private numbers
    return private_key.private_numbers().public_numbers.public_key()


def _generate_secp256k1(size: int) -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256K1())


def _secp256k1_public(private_key: ec.EllipticCurvePrivateKey) -> ec.EllipticCurvePublicKey:
    return private_key.public_key()


RSA = KeyAlgorithm(
    name="rsa",
    key_type=KeyType.RSA,
    generate=_generate_rsa,
    derive_public=_rsa_public,
    primality_certainty=RSA_PRIMALITY_CERTAINTY,
)

SECP256K1 = KeyAlgorithm(
    name="secp256k1",
    key_type=KeyType.SECP256K1,
    generate=_generate_secp256k1,
    derive_public=_secp256k1_public,
)

ALGORITHMS: dict[str, KeyAlgorithm] = {
    RSA.name: RSA,
    SECP256K1.name: SECP256K1,
}


def algorithm_by_name(name: str) -> KeyAlgorithm:
    """Look up an algorithm by its (case-insensitive) name.

    Raises:
        InvalidKeyTypeError: If the name is not a supported key type.
    """
    try:
        return ALGORITHMS[name.lower()]
    except KeyError:
        raise InvalidKeyTypeError(name) from None


def algorithm_of(key: Union[PrivateKey, PublicKey]) -> KeyAlgorithm:
    """Classify a loaded key object.

    Works for both halves of a pair.

    Raises:
        UnsupportedKeyTypeError: For any algorithm outside the table,
            including elliptic curves other than secp256k1.
    """
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return RSA
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        if key.curve.name == SECP256K1.name:
            return SECP256K1
        raise UnsupportedKeyTypeError(f"EC/{key.curve.name}")
    raise UnsupportedKeyTypeError(type(key).__name__)

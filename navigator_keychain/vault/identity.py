"""
Key Identity: Canonical public key encoding and content-derived key IDs.

The key ID is the SHA-256 multihash of the public key wire encoding:

    message PublicKey {
        required KeyType Type = 1;   // varint
        required bytes Data = 2;     // DER SubjectPublicKeyInfo
    }

Wire format:
    [0x08][type_varint][0x12][length_varint][spki_der]

Multihash format:
    [code_varint][length_varint][digest]     code 0x12 = sha2-256

Both encodings are minimal and field-ordered, so the same public key always
yields the same bytes and the same key ID.

References:
    - https://github.com/libp2p/specs/blob/master/peer-ids/peer-ids.md
    - https://github.com/multiformats/multihash
"""
from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Final

from cryptography.hazmat.primitives import serialization

from ..exceptions import DataFormatError
from .keytypes import KeyType, PublicKey, algorithm_of

__all__ = [
    "PublicKeyProto",
    "Multihash",
    "MultihashCode",
    "Base58",
    "compute_key_id",
    "encode_public_key",
    "public_key_proto",
]


class _ProtobufTag(IntEnum):
    """Field tags of the PublicKey message: (field_number << 3) | wire_type."""

    TYPE = 0x08
    DATA = 0x12


class MultihashCode(IntEnum):
    """Multihash function codes."""

    SHA2_256 = 0x12

    @property
    def label(self) -> str:
        return _MULTIHASH_NAMES[self]

    @property
    def digest_size(self) -> int:
        return _MULTIHASH_SIZES[self]


_MULTIHASH_NAMES: Final = {MultihashCode.SHA2_256: "sha2-256"}
_MULTIHASH_SIZES: Final = {MultihashCode.SHA2_256: 32}


def _encode_varint(value: int) -> bytes:
    """Unsigned LEB128."""
    if value < 0:
        raise ValueError(f"varint must be non-negative, got {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned LEB128 value.

    Returns:
        Tuple of (value, offset just past the varint).

    Raises:
        DataFormatError: If the data ends inside the varint or it is too long.
    """
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise DataFormatError("Truncated varint")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7
        if shift > 63:
            raise DataFormatError("Varint exceeds 64 bits")


@dataclass(frozen=True, slots=True)
class PublicKeyProto:
    """
    A public key in wire format.

    Attributes:
        key_type: Algorithm tag.
        key_data: DER-encoded SubjectPublicKeyInfo.
    """

    key_type: KeyType
    key_data: bytes

    def encode(self) -> bytes:
        """Encode as protobuf: Type first, then Data, both always present."""
        type_field = bytes([_ProtobufTag.TYPE]) + _encode_varint(self.key_type)
        data_field = (
            bytes([_ProtobufTag.DATA])
            + _encode_varint(len(self.key_data))
            + self.key_data
        )
        return type_field + data_field

    @classmethod
    def decode(cls, data: bytes) -> PublicKeyProto:
        """Parse the protobuf encoding produced by :meth:`encode`.

        Raises:
            DataFormatError: On unknown tags, unknown key types, truncated
                data or missing fields.
        """
        key_type: KeyType | None = None
        key_data: bytes | None = None
        offset = 0
        while offset < len(data):
            tag = data[offset]
            offset += 1
            if tag == _ProtobufTag.TYPE:
                value, offset = _decode_varint(data, offset)
                try:
                    key_type = KeyType(value)
                except ValueError:
                    raise DataFormatError(f"Unknown key type {value}") from None
            elif tag == _ProtobufTag.DATA:
                length, offset = _decode_varint(data, offset)
                if offset + length > len(data):
                    raise DataFormatError("Truncated public key data")
                key_data = data[offset:offset + length]
                offset += length
            else:
                raise DataFormatError(f"Unexpected protobuf tag 0x{tag:02x}")
        if key_type is None or key_data is None:
            raise DataFormatError("Public key message is missing a field")
        return cls(key_type=key_type, key_data=key_data)

    def to_public_key(self) -> PublicKey:
        """Load the DER SubjectPublicKeyInfo as a key object."""
        try:
            return serialization.load_der_public_key(self.key_data)
        except ValueError as err:
            raise DataFormatError(f"Invalid SubjectPublicKeyInfo: {err}") from err


@dataclass(frozen=True, slots=True)
class Multihash:
    """
    A self-describing digest.

    Attributes:
        code: Hash function identifier.
        digest: Hash output.
    """

    code: MultihashCode
    digest: bytes

    @property
    def name(self) -> str:
        """Multihash table name of the hash function, e.g. ``sha2-256``."""
        return self.code.label

    def encode(self) -> bytes:
        return _encode_varint(self.code) + _encode_varint(len(self.digest)) + self.digest

    @classmethod
    def decode(cls, data: bytes) -> Multihash:
        """Parse multihash bytes.

        Raises:
            DataFormatError: On an unknown function code or a length mismatch.
        """
        code, offset = _decode_varint(data)
        length, offset = _decode_varint(data, offset)
        try:
            code = MultihashCode(code)
        except ValueError:
            raise DataFormatError(f"Unsupported multihash code 0x{code:x}") from None
        digest = data[offset:]
        if len(digest) != length or length != code.digest_size:
            raise DataFormatError(
                f"Multihash digest length mismatch: header says {length}, "
                f"got {len(digest)}"
            )
        return cls(code=code, digest=digest)

    @classmethod
    def sha256(cls, data: bytes) -> Multihash:
        return cls(code=MultihashCode.SHA2_256, digest=hashlib.sha256(data).digest())


class Base58:
    """Base58 (Bitcoin alphabet), the usual text form of key IDs."""

    ALPHABET: Final[str] = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

    @classmethod
    def encode(cls, data: bytes) -> str:
        leading_zeros = len(data) - len(data.lstrip(b"\x00"))
        num = int.from_bytes(data, "big")
        result: list[str] = []
        while num > 0:
            num, remainder = divmod(num, 58)
            result.append(cls.ALPHABET[remainder])
        result.extend([cls.ALPHABET[0]] * leading_zeros)
        return "".join(reversed(result))

    @classmethod
    def decode(cls, s: str) -> bytes:
        """Decode a Base58 string.

        Raises:
            ValueError: If the string contains a character outside the alphabet.
        """
        leading_ones = len(s) - len(s.lstrip(cls.ALPHABET[0]))
        num = 0
        for char in s:
            index = cls.ALPHABET.find(char)
            if index < 0:
                raise ValueError(f"Invalid Base58 character: {char!r}")
            num = num * 58 + index
        body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
        return b"\x00" * leading_ones + body


def public_key_proto(public_key: PublicKey) -> PublicKeyProto:
    """Build the wire message for a public key.

    Raises:
        UnsupportedKeyTypeError: If the algorithm is not supported.
    """
    algorithm = algorithm_of(public_key)
    spki = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return PublicKeyProto(key_type=algorithm.key_type, key_data=spki)


def compute_key_id(public_key: PublicKey) -> bytes:
    """Compute the key ID: sha2-256 multihash of the public key wire bytes.

    Args:
        public_key: RSA or secp256k1 public key.

    Returns:
        Multihash bytes (34 bytes: code, length, 32-byte digest).

    Raises:
        UnsupportedKeyTypeError: If the algorithm is not supported.
    """
    return Multihash.sha256(public_key_proto(public_key).encode()).encode()


def encode_public_key(public_key: PublicKey) -> str:
    """Return the base64 wire encoding of a public key."""
    return base64.b64encode(public_key_proto(public_key).encode()).decode("ascii")

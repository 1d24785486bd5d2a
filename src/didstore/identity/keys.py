# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ed25519 key pairs and DID documents.

Default implementation of the key/document generator collaborator.

DID Formats:
- Identifier: did:<method>:<multibase-encoded-public-key>
- Key id:     did:<method>:<...>#<multibase-encoded-public-key>

Examples:
- did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK
- did:key:z6Mkha...#z6MkpTHR8VNsBxYAAWHut2Geadd9jSwuBV8xRoAnwWsdvktH
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from typing import Any, Protocol

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..core.exceptions import InvalidIdentifierError, UnsupportedKeyTypeError

# =============================================================================
# CONSTANTS
# =============================================================================

# Multibase prefix for base58btc encoding
MULTIBASE_BASE58BTC = "z"

# Multicodec prefixes for Ed25519 keys (0xed01 public, 0x8026 private)
MULTICODEC_ED25519_PUB = bytes([0xED, 0x01])
MULTICODEC_ED25519_PRIV = bytes([0x80, 0x26])

# Identity multihash header for a 32-byte seed
IDENTITY_MULTIHASH_32 = bytes([0x00, 0x20])

SEED_LENGTH = 32

KEY_TYPES = {
    "ed25519": "Ed25519VerificationKey2020",
}

DID_CONTEXTS = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/ed25519-2020/v1",
]

# Relationships that reference verification methods by id
VERIFICATION_RELATIONSHIPS = (
    "authentication",
    "assertionMethod",
    "capabilityInvocation",
    "capabilityDelegation",
    "keyAgreement",
)

# =============================================================================
# BASE58 ENCODING
# =============================================================================

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(data: bytes) -> str:
    """Encode bytes to base58 string."""
    num = int.from_bytes(data, "big")
    result = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        result = BASE58_ALPHABET[remainder] + result

    # Handle leading zeros
    for byte in data:
        if byte == 0:
            result = BASE58_ALPHABET[0] + result
        else:
            break

    return result


def base58_decode(string: str) -> bytes:
    """Decode base58 string to bytes."""
    num = 0
    for char in string:
        index = BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58 character: {char!r}")
        num = num * 58 + index

    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""

    # Handle leading zeros
    pad = len(string) - len(string.lstrip(BASE58_ALPHABET[0]))
    return b"\x00" * pad + body


def multibase_encode(data: bytes) -> str:
    """Encode bytes to multibase (base58btc)."""
    return MULTIBASE_BASE58BTC + base58_encode(data)


def multibase_decode(string: str) -> bytes:
    """Decode multibase string to bytes."""
    if not string.startswith(MULTIBASE_BASE58BTC):
        raise ValueError(f"Unsupported multibase encoding: {string[:1]!r}")
    return base58_decode(string[1:])


# =============================================================================
# SEEDS
# =============================================================================


def encode_seed(seed: bytes) -> str:
    """Text form of a secret key seed: multibase(identity-multihash(seed))."""
    if len(seed) != SEED_LENGTH:
        raise ValueError(f"Seed must be {SEED_LENGTH} bytes")
    return multibase_encode(IDENTITY_MULTIHASH_32 + seed)


def decode_seed(text: str) -> bytes:
    """Inverse of :func:`encode_seed`."""
    decoded = multibase_decode(text)
    if decoded[:2] != IDENTITY_MULTIHASH_32 or len(decoded) != SEED_LENGTH + 2:
        raise ValueError("Seed is not an identity multihash of 32 bytes")
    return decoded[2:]


# =============================================================================
# KEY PAIRS
# =============================================================================


@dataclass
class KeyPair:
    """Ed25519 key pair."""

    private_key_bytes: bytes
    public_key_bytes: bytes

    @property
    def public_key_multibase(self) -> str:
        """Public key in multibase format (with multicodec prefix)."""
        return multibase_encode(MULTICODEC_ED25519_PUB + self.public_key_bytes)

    @property
    def private_key_multibase(self) -> str:
        return multibase_encode(MULTICODEC_ED25519_PRIV + self.private_key_bytes)

    def private_key(self) -> Ed25519PrivateKey:
        return Ed25519PrivateKey.from_private_bytes(self.private_key_bytes)

    def export(self, key_id: str, controller: str, passphrase: str | None = None) -> dict[str, Any]:
        """Export as a verification-method shaped dict including the private key.

        With a passphrase the private key is written as an encrypted PKCS#8 PEM.
        """
        exported: dict[str, Any] = {
            "id": key_id,
            "type": KEY_TYPES["ed25519"],
            "controller": controller,
            "publicKeyMultibase": self.public_key_multibase,
        }
        if passphrase:
            pem = self.private_key().private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode("utf-8")),
            )
            exported["privateKeyPem"] = pem.decode("ascii")
        else:
            exported["privateKeyMultibase"] = self.private_key_multibase
        return exported

    @classmethod
    def from_private_key(cls, private_key: Ed25519PrivateKey) -> KeyPair:
        return cls(
            private_key_bytes=private_key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            ),
            public_key_bytes=private_key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            ),
        )

    @classmethod
    def from_export(cls, exported: dict[str, Any], passphrase: str | None = None) -> KeyPair:
        """Rebuild a key pair from :meth:`export` output."""
        if "privateKeyPem" in exported:
            password = passphrase.encode("utf-8") if passphrase else None
            private_key = serialization.load_pem_private_key(exported["privateKeyPem"].encode("ascii"), password=password)
            if not isinstance(private_key, Ed25519PrivateKey):
                raise ValueError("Exported key is not an Ed25519 key")
            return cls.from_private_key(private_key)
        decoded = multibase_decode(exported["privateKeyMultibase"])
        if decoded[:2] != MULTICODEC_ED25519_PRIV:
            raise ValueError("Exported key is not an Ed25519 private key")
        return cls.from_private_key(Ed25519PrivateKey.from_private_bytes(decoded[2:]))


def generate_keypair(seed: bytes | None = None) -> KeyPair:
    """Generate an Ed25519 key pair; deterministic when ``seed`` is given."""
    if seed is None:
        return KeyPair.from_private_key(Ed25519PrivateKey.generate())
    if len(seed) != SEED_LENGTH:
        raise ValueError(f"Seed must be {SEED_LENGTH} bytes")
    return KeyPair.from_private_key(Ed25519PrivateKey.from_private_bytes(seed))


# =============================================================================
# DID PARSING
# =============================================================================

# method-name = 1*method-char; method-char = %x61-7A / DIGIT
# method-specific-id = *( *idchar ":" ) 1*idchar; idchar = ALPHA / DIGIT / "." / "-" / "_" / pct-encoded
DID_PATTERN = re.compile(
    r"^did:(?P<method>[a-z0-9]+):(?P<msid>(?:[A-Za-z0-9._\-]|%[0-9A-Fa-f]{2}|:)*(?:[A-Za-z0-9._\-]|%[0-9A-Fa-f]{2}))$"
)


@dataclass(frozen=True)
class ParsedDID:
    """Parsed decentralized identifier."""

    method: str
    method_specific_id: str

    @property
    def did(self) -> str:
        return f"did:{self.method}:{self.method_specific_id}"

    def __str__(self) -> str:
        return self.did


def parse_did(did: str) -> ParsedDID:
    """Parse a bare DID (no path, query or fragment).

    Raises:
        InvalidIdentifierError: If ``did`` is not ``did:<method>:<id>``.
    """
    if not isinstance(did, str):
        raise InvalidIdentifierError(did, "not a string")
    match = DID_PATTERN.match(did)
    if match is None:
        raise InvalidIdentifierError(did)
    return ParsedDID(method=match["method"], method_specific_id=match["msid"])


def validate_did(did: str) -> str:
    """Return ``did`` unchanged if well formed, else raise InvalidIdentifierError."""
    parse_did(did)
    return did


def split_key_id(key_id: str) -> tuple[str, str]:
    """Split ``<did>#<fragment>`` into the owning DID and fragment."""
    did, sep, fragment = key_id.partition("#")
    if not sep or not fragment:
        raise InvalidIdentifierError(key_id, "key id must be <did>#<fragment>")
    validate_did(did)
    return did, fragment


# =============================================================================
# GENERATOR
# =============================================================================


@dataclass
class GeneratedDocument:
    """A freshly generated DID document and its key pairs."""

    document: dict[str, Any]
    key_pairs: dict[str, KeyPair] = field(default_factory=dict)
    # Text-encoded seed for deterministic re-derivation
    seed: str | None = None

    @property
    def did(self) -> str:
        return self.document["id"]


@dataclass
class NewKey:
    """A replacement key for an existing controller."""

    key_id: str
    key_pair: KeyPair
    verification_method: dict[str, Any]


class DocumentGenerator(Protocol):
    """Key/document generator collaborator."""

    method: str

    async def generate(self, key_type: str, seed: str | None = None) -> GeneratedDocument: ...
    async def new_key(self, controller: str, key_type: str, seed: str | None = None) -> NewKey: ...


def _verification_method(key_id: str, controller: str, key_pair: KeyPair) -> dict[str, Any]:
    return {
        "id": key_id,
        "type": KEY_TYPES["ed25519"],
        "controller": controller,
        "publicKeyMultibase": key_pair.public_key_multibase,
    }


class Ed25519DocumentGenerator:
    """Generates Ed25519 DID documents for one DID method."""

    def __init__(self, method: str = "key") -> None:
        if not re.fullmatch(r"[a-z0-9]+", method):
            raise ValueError(f"Invalid DID method name: {method!r}")
        self.method = method

    @staticmethod
    def _check_key_type(key_type: str) -> None:
        if key_type not in KEY_TYPES:
            raise UnsupportedKeyTypeError(key_type, sorted(KEY_TYPES))

    @staticmethod
    def _seed_bytes(seed: str | None) -> bytes:
        return decode_seed(seed) if seed is not None else secrets.token_bytes(SEED_LENGTH)

    async def generate(self, key_type: str, seed: str | None = None) -> GeneratedDocument:
        """Generate a document whose identifier is derived from its first key."""
        self._check_key_type(key_type)
        seed_bytes = self._seed_bytes(seed)
        key_pair = generate_keypair(seed_bytes)
        fingerprint = key_pair.public_key_multibase
        did = f"did:{self.method}:{fingerprint}"
        key_id = f"{did}#{fingerprint}"

        document: dict[str, Any] = {
            "@context": list(DID_CONTEXTS),
            "id": did,
            "verificationMethod": [_verification_method(key_id, did, key_pair)],
        }
        for relationship in VERIFICATION_RELATIONSHIPS:
            if relationship != "keyAgreement":
                document[relationship] = [key_id]

        return GeneratedDocument(
            document=document,
            key_pairs={key_id: key_pair},
            seed=encode_seed(seed_bytes),
        )

    async def new_key(self, controller: str, key_type: str, seed: str | None = None) -> NewKey:
        """Generate a replacement key controlled by ``controller``."""
        self._check_key_type(key_type)
        key_pair = generate_keypair(self._seed_bytes(seed))
        key_id = f"{controller}#{key_pair.public_key_multibase}"
        return NewKey(
            key_id=key_id,
            key_pair=key_pair,
            verification_method=_verification_method(key_id, controller, key_pair),
        )


def export_key_material(did: str, key_pairs: dict[str, KeyPair], passphrase: str | None = None) -> dict[str, Any]:
    """Key collection entry for ``did``: every key pair keyed by key id."""
    return {
        "id": did,
        "keys": {key_id: pair.export(key_id, did, passphrase) for key_id, pair in key_pairs.items()},
    }

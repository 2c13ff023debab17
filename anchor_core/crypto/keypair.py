"""
Anchor Core - Shielded Keypairs and Note Encryption

A keypair holds:
- privkey: a field element known only to the owner (spends notes)
- pubkey: hash([privkey]), the value bound into commitments
- encryption key: an X25519 public key derived from privkey, used to seal
  note contents so the recipient can recover them from chain data

Sealed note layout (bytes):
    nonce (12) || ephemeral X25519 public key (32) || ChaCha20-Poly1305 ciphertext

The AEAD key is HKDF-SHA256 over the X25519 shared secret; the ephemeral
public key is bound as associated data.
"""
from __future__ import annotations

import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from anchor_core.crypto.field import FIELD_SIZE, FieldElement, FieldLike
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.schemas.errors import CryptoPreconditionError, SchemaValidationException


NONCE_LENGTH = 12
EPHEMERAL_KEY_LENGTH = 32
SEALED_HEADER_LENGTH = NONCE_LENGTH + EPHEMERAL_KEY_LENGTH

_HKDF_INFO = b"anchor-note-encryption-v1"


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_HKDF_INFO,
    ).derive(shared_secret)


def _raw_public(key: X25519PublicKey) -> bytes:
    return key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def seal(recipient_key: bytes, plaintext: bytes) -> bytes:
    """Encrypt ``plaintext`` to a raw 32-byte X25519 public key."""
    ephemeral = X25519PrivateKey.generate()
    ephemeral_public = _raw_public(ephemeral.public_key())
    shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(recipient_key))
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = ChaCha20Poly1305(_derive_key(shared)).encrypt(nonce, plaintext, ephemeral_public)
    return nonce + ephemeral_public + ciphertext


def open_sealed(private_key: X25519PrivateKey, data: bytes) -> bytes:
    """Inverse of seal. Raises CryptoPreconditionError if the key does not match."""
    if len(data) <= SEALED_HEADER_LENGTH:
        raise CryptoPreconditionError(
            f"Sealed note too short: {len(data)} bytes",
            details={"length": len(data)},
        )
    nonce = data[:NONCE_LENGTH]
    ephemeral_public = data[NONCE_LENGTH:SEALED_HEADER_LENGTH]
    ciphertext = data[SEALED_HEADER_LENGTH:]
    try:
        # low-order ephemeral points make the exchange fail
        shared = private_key.exchange(X25519PublicKey.from_public_bytes(ephemeral_public))
    except ValueError as e:
        raise CryptoPreconditionError("Note cannot be opened with this keypair") from e
    try:
        return ChaCha20Poly1305(_derive_key(shared)).decrypt(nonce, ciphertext, ephemeral_public)
    except InvalidTag as e:
        raise CryptoPreconditionError("Note cannot be opened with this keypair") from e


class Keypair:
    """
    Owner keys for shielded notes.

    Usage:
        keypair = Keypair.generate(hasher)
        sealed = keypair.encrypt(b"note bytes")
        assert keypair.decrypt(sealed) == b"note bytes"

        # Recipient side: only the public address is known
        recipient = Keypair.from_address(keypair.address())
    """

    def __init__(
        self,
        hasher: HashEngine,
        privkey: Optional[FieldLike] = None,
    ) -> None:
        self.hasher = hasher
        if privkey is None:
            privkey = secrets.randbelow(FIELD_SIZE - 1) + 1
        self.privkey: Optional[FieldElement] = FieldElement.coerce(privkey)
        self.pubkey: FieldElement = hasher.hash([self.privkey])
        self._encryption_private = X25519PrivateKey.from_private_bytes(self.privkey.to_bytes(32))
        self.encryption_key: bytes = _raw_public(self._encryption_private.public_key())

    @classmethod
    def generate(cls, hasher: HashEngine) -> "Keypair":
        return cls(hasher)

    @classmethod
    def from_address(cls, address: str, hasher: Optional[HashEngine] = None) -> "Keypair":
        """
        Build a public-only keypair from ``address()`` output.

        The result can receive notes (commitments and encryption) but cannot
        spend or decrypt them.
        """
        text = address[2:] if address.startswith("0x") else address
        if len(text) != 128:
            raise SchemaValidationException(
                f"Keypair address must be 64 bytes of hex, got {len(text)} hex chars"
            )
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise SchemaValidationException(f"Invalid keypair address: {e}") from e

        instance = cls.__new__(cls)
        instance.hasher = hasher
        instance.privkey = None
        instance.pubkey = FieldElement.from_bytes(raw[:32])
        instance._encryption_private = None
        instance.encryption_key = raw[32:]
        return instance

    @property
    def can_spend(self) -> bool:
        return self.privkey is not None

    def address(self) -> str:
        """0x || pubkey (32 bytes) || encryption key (32 bytes), hex."""
        return self.pubkey.to_hex() + self.encryption_key.hex()

    def encrypt(self, plaintext: bytes) -> bytes:
        return seal(self.encryption_key, plaintext)

    def decrypt(self, data: bytes) -> bytes:
        if self._encryption_private is None:
            raise CryptoPreconditionError("Cannot decrypt without a private key")
        return open_sealed(self._encryption_private, data)

    def sign(self, commitment: FieldLike, merkle_path: FieldLike) -> FieldElement:
        """hash([privkey, commitment, merkle_path])."""
        if self.privkey is None or self.hasher is None:
            raise CryptoPreconditionError("Cannot sign without a private key")
        return self.hasher.hash3([self.privkey, commitment, merkle_path])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.pubkey == other.pubkey and self.encryption_key == other.encryption_key

    def __hash__(self) -> int:
        return hash((self.pubkey, self.encryption_key))

    def __repr__(self) -> str:
        return f"Keypair(pubkey={self.pubkey.to_hex()}, spendable={self.can_spend})"


__all__ = [
    "Keypair",
    "seal",
    "open_sealed",
    "NONCE_LENGTH",
    "SEALED_HEADER_LENGTH",
]

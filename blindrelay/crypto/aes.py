"""AES-128-GCM over packed slot vectors (use library)."""

import os
import struct
from hashlib import sha256
from typing import List

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from blindrelay.common.errors import CryptoError
from blindrelay.crypto.provider import EncryptionContext, EncryptionProvider

MAGIC = b"BRS1"
KEY_ID_BYTES = 8
NONCE_BYTES = 12
TAG_BYTES = 16
SLOT_BYTES = 4                      # one unsigned 32-bit integer per slot

# MAGIC | key id | slot count (u32, big-endian) | nonce
HEADER_BYTES = len(MAGIC) + KEY_ID_BYTES + 4 + NONCE_BYTES


def key_id(key: bytes) -> bytes:
    """First 8 bytes of SHA-256(key); identifies the key without revealing it."""
    return sha256(key).digest()[:KEY_ID_BYTES]


def pack_slots(values: List[int]) -> bytes:
    """Pack slot values as big-endian u32."""
    try:
        return struct.pack(f">{len(values)}I", *values)
    except struct.error as exc:
        raise CryptoError(f"slot value out of range: {exc}") from exc


def unpack_slots(data: bytes) -> List[int]:
    if len(data) % SLOT_BYTES:
        raise CryptoError("packed slots are not a whole number of u32 values")
    return list(struct.unpack(f">{len(data) // SLOT_BYTES}I", data))


def parse_frame(blob: bytes, slot_count: int):
    """
    Split a sealed frame into (header, key id, nonce, ciphertext+tag).

    Validates only the framing, so it needs no key material.
    """
    expected = HEADER_BYTES + slot_count * SLOT_BYTES + TAG_BYTES
    if len(blob) != expected:
        raise CryptoError(f"ciphertext is {len(blob)} bytes, expected {expected}")
    if blob[:len(MAGIC)] != MAGIC:
        raise CryptoError("ciphertext does not carry the sealed-slot marker")

    pos = len(MAGIC)
    kid = blob[pos:pos + KEY_ID_BYTES]
    pos += KEY_ID_BYTES
    (count,) = struct.unpack(">I", blob[pos:pos + 4])
    pos += 4
    if count != slot_count:
        raise CryptoError(f"ciphertext holds {count} slots, context expects {slot_count}")
    nonce = blob[pos:pos + NONCE_BYTES]
    return blob[:HEADER_BYTES], kid, nonce, blob[HEADER_BYTES:]


class SealedSlotProvider(EncryptionProvider):
    """
    Authenticated encryption of the whole slot vector.

    The evaluation step admits no arithmetic on AES ciphertexts: it checks
    the frame and hands the ciphertext back untouched. The header is bound
    as associated data, so a forwarded frame cannot be re-labelled.
    """

    name = "sealed"

    def __init__(self, slot_count: int = 2048):
        if slot_count <= 0:
            raise ValueError("slot_count must be positive")
        self.slot_count = slot_count

    def create_context(self) -> EncryptionContext:
        key = AESGCM.generate_key(bit_length=128)
        return EncryptionContext(
            scheme=self.name,
            slot_count=self.slot_count,
            public=key_id(key),
            secret=key,
        )

    def encrypt(self, context: EncryptionContext, values: List[int]) -> bytes:
        if len(values) != context.slot_count:
            raise CryptoError(f"expected {context.slot_count} slots, got {len(values)}")

        nonce = os.urandom(NONCE_BYTES)
        header = MAGIC + key_id(context.secret) + struct.pack(">I", len(values)) + nonce
        ct = AESGCM(context.secret).encrypt(nonce, pack_slots(values), header)
        return header + ct

    def evaluate(self, context: EncryptionContext, blob: bytes) -> bytes:
        parse_frame(blob, context.slot_count)
        return blob

    def decrypt(self, context: EncryptionContext, blob: bytes) -> List[int]:
        if context.secret is None:
            raise CryptoError("context carries no secret key")

        header, kid, nonce, ct = parse_frame(blob, context.slot_count)
        if kid != context.public:
            raise CryptoError("ciphertext was sealed under a different key")
        try:
            packed = AESGCM(context.secret).decrypt(nonce, ct, header)
        except InvalidTag as exc:
            raise CryptoError("ciphertext failed authentication") from exc
        return unpack_slots(packed)

"""BFV batching via TenSEAL (install the `bfv` extra)."""

from typing import List

import tenseal as ts

from blindrelay.common.errors import CryptoError
from blindrelay.crypto.provider import EncryptionContext, EncryptionProvider


class BfvProvider(EncryptionProvider):
    """
    Homomorphic BFV encryption of integer slot vectors.

    The slot count equals the polynomial modulus degree. Evaluation is a
    ciphertext-plaintext product with the unit vector. It needs neither the
    secret key nor relinearization keys, so an operator holding its own
    context with the same parameters can evaluate a requester's ciphertext,
    and the requester still decrypts the slots it sent.

    Slot values must stay below the plain modulus.
    """

    name = "bfv"

    def __init__(self, poly_modulus_degree: int = 4096, plain_modulus: int = 1032193):
        self.poly_modulus_degree = poly_modulus_degree
        self.plain_modulus = plain_modulus

    def create_context(self) -> EncryptionContext:
        try:
            secret = ts.context(
                ts.SCHEME_TYPE.BFV,
                poly_modulus_degree=self.poly_modulus_degree,
                plain_modulus=self.plain_modulus,
            )
            public = ts.context_from(secret.serialize(save_secret_key=False))
        except Exception as exc:
            raise CryptoError(f"BFV context creation failed: {exc}") from exc

        return EncryptionContext(
            scheme=self.name,
            slot_count=self.poly_modulus_degree,
            public=public,
            secret=secret,
        )

    def encrypt(self, context: EncryptionContext, values: List[int]) -> bytes:
        if len(values) != context.slot_count:
            raise CryptoError(f"expected {context.slot_count} slots, got {len(values)}")
        too_big = [v for v in values if v >= self.plain_modulus]
        if too_big:
            raise CryptoError(
                f"slot value {too_big[0]} does not fit plain modulus {self.plain_modulus}"
            )
        try:
            return ts.bfv_vector(context.public, values).serialize()
        except Exception as exc:
            raise CryptoError(f"BFV encryption failed: {exc}") from exc

    def evaluate(self, context: EncryptionContext, blob: bytes) -> bytes:
        unit = [1] * context.slot_count
        try:
            vector = ts.bfv_vector_from(context.public, blob)
            return (vector * unit).serialize()
        except Exception as exc:
            raise CryptoError(f"BFV evaluation failed: {exc}") from exc

    def decrypt(self, context: EncryptionContext, blob: bytes) -> List[int]:
        if context.secret is None:
            raise CryptoError("context carries no secret key")
        try:
            vector = ts.bfv_vector_from(context.secret, blob)
            decrypted = vector.decrypt()
        except Exception as exc:
            raise CryptoError(f"BFV decryption failed: {exc}") from exc
        # decryption is centred around zero; slots are residues mod t
        return [int(v) % self.plain_modulus for v in decrypted]

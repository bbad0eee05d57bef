"""Encryption provider capability and the context it produces."""

from abc import ABC, abstractmethod
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class EncryptionContext(BaseModel):
    """
    Scheme parameters and key material for one boundary activation.

    Frozen: keys are generated once and only ever read afterwards.
    Never serialized to persistent storage.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    scheme: str
    slot_count: int
    public: Any = Field(repr=False)
    secret: Any = Field(default=None, repr=False)


class EncryptionProvider(ABC):
    """
    A scheme that encrypts fixed-width integer vectors.

    evaluate() is the processing-side transform and only ever touches
    `context.public`. decrypt() needs `context.secret`.
    All methods raise CryptoError on failure.
    """

    name = "abstract"

    @abstractmethod
    def create_context(self) -> EncryptionContext:
        """Generate parameters and keys. Expensive; called once per activation."""

    @abstractmethod
    def encrypt(self, context: EncryptionContext, values: List[int]) -> bytes:
        """Encrypt exactly `context.slot_count` values."""

    @abstractmethod
    def evaluate(self, context: EncryptionContext, blob: bytes) -> bytes:
        """Transform a ciphertext without the secret key."""

    @abstractmethod
    def decrypt(self, context: EncryptionContext, blob: bytes) -> List[int]:
        """Recover the integer vector."""

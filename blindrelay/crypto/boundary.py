"""
Encryption boundary: the only place plaintext turns into opaque payloads.

Two implementations:

    PlainBoundary   - passthrough, used when encryption is off
    SchemeBoundary  - backed by an EncryptionProvider (sealed AES slots or BFV)
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from blindrelay.common import codec
from blindrelay.common.errors import (
    AmbiguousPayload,
    CryptoError,
    DecodeError,
    InitError,
    NotReadyError,
)
from blindrelay.common.protocol import HomomorphicPayload, PlainPayload
from blindrelay.common.utils import b64_decode, b64_encode
from blindrelay.crypto.aes import SealedSlotProvider
from blindrelay.crypto.provider import EncryptionContext, EncryptionProvider
from blindrelay.crypto.slots import slots_to_text, text_to_slots


logger = structlog.get_logger(__name__)


class EncryptionBoundary(ABC):
    """
    Capability interface shared by every boundary.

    prepare_outbound / resolve_inbound are the sender's pair;
    evaluate_inbound is the processing side and never needs the secret key.
    """

    homomorphic = False

    async def initialize(self) -> None:
        """One-time set-up. Calling it again once ready is a no-op."""

    @property
    def ready(self) -> bool:
        return True

    def close(self) -> None:
        """Drop key material at mode deactivation."""

    @abstractmethod
    def prepare_outbound(self, plaintext: str) -> str:
        ...

    @abstractmethod
    def evaluate_inbound(self, opaque: str) -> str:
        ...

    @abstractmethod
    def resolve_inbound(self, opaque: str) -> str:
        ...

    def wrap(self, text: str):
        """
        Build the outbound payload for `text`.

        :raises AmbiguousPayload: plain text that would read back as a
            homomorphic payload
        """
        if self.homomorphic:
            return HomomorphicPayload(message=text, encrypted_value=self.prepare_outbound(text))
        if codec.is_structured(text):
            raise AmbiguousPayload("message reads as an encrypted payload")
        return PlainPayload(message=self.prepare_outbound(text))

    def side_channel(self, payload) -> Optional[str]:
        """
        Resolve the encrypted side-channel of an inbound response.

        None on a plain boundary. A homomorphic boundary raises CryptoError
        when the payload has none or it was sealed under another key.
        """
        if not self.homomorphic:
            return None
        if not isinstance(payload, HomomorphicPayload):
            raise CryptoError("response carries no encrypted side-channel")
        return self.resolve_inbound(payload.encrypted_value)

    def unwrap(self, payload) -> str:
        """
        Turn an inbound response payload into the text to show.

        A homomorphic boundary only accepts responses whose side-channel
        resolves under its own key; anything else raises CryptoError.
        """
        if self.homomorphic:
            value = self.side_channel(payload)
            logger.debug("side_channel_resolved", length=len(value))
            return payload.message

        if isinstance(payload, HomomorphicPayload):
            return payload.message
        return self.resolve_inbound(payload.message)


class PlainBoundary(EncryptionBoundary):
    """No encryption: every transform is the identity."""

    def prepare_outbound(self, plaintext: str) -> str:
        return plaintext

    def evaluate_inbound(self, opaque: str) -> str:
        return opaque

    def resolve_inbound(self, opaque: str) -> str:
        return opaque


class SchemeBoundary(EncryptionBoundary):
    """
    Boundary backed by an EncryptionProvider.

    Text is mapped to code points, padded to the provider's slot count with
    0 and encrypted; the opaque form is base64 of the provider's bytes.
    Until initialize() has finished every operation raises NotReadyError.
    """

    homomorphic = True

    def __init__(self, provider: EncryptionProvider):
        self.provider = provider
        self._context: Optional[EncryptionContext] = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._context is not None

    @property
    def context(self) -> EncryptionContext:
        if self._context is None:
            raise NotReadyError(f"{self.provider.name} boundary is not initialized")
        return self._context

    @property
    def batch_width(self) -> int:
        return self.context.slot_count

    async def initialize(self) -> None:
        async with self._lock:
            if self._context is not None:
                return
            logger.info("encryption_initializing", scheme=self.provider.name)
            try:
                context = await asyncio.to_thread(self.provider.create_context)
            except CryptoError as exc:
                raise InitError(str(exc)) from exc
            self._context = context
            logger.info(
                "encryption_ready",
                scheme=self.provider.name,
                slot_count=context.slot_count,
            )

    def close(self) -> None:
        self._context = None

    def _load(self, opaque: str) -> bytes:
        try:
            return b64_decode(opaque)
        except DecodeError as exc:
            raise CryptoError(f"malformed ciphertext: {exc}") from exc

    def prepare_outbound(self, plaintext: str) -> str:
        context = self.context
        values = text_to_slots(plaintext, context.slot_count)
        return b64_encode(self.provider.encrypt(context, values))

    def evaluate_inbound(self, opaque: str) -> str:
        context = self.context
        return b64_encode(self.provider.evaluate(context, self._load(opaque)))

    def resolve_inbound(self, opaque: str) -> str:
        context = self.context
        return slots_to_text(self.provider.decrypt(context, self._load(opaque)))


def build_boundary(scheme: str, slot_count: int = 2048) -> EncryptionBoundary:
    """Boundary for a configured scheme name: plain, sealed or bfv."""
    if scheme == "plain":
        return PlainBoundary()
    if scheme == "sealed":
        return SchemeBoundary(SealedSlotProvider(slot_count=slot_count))
    if scheme == "bfv":
        # needs the optional tenseal dependency
        from blindrelay.crypto.bfv import BfvProvider

        return SchemeBoundary(BfvProvider())
    raise ValueError(f"unknown encryption scheme: {scheme!r}")

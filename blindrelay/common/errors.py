"""Exception taxonomy shared by every blindrelay component."""


class BlindRelayError(Exception):
    """Base class for all errors raised by blindrelay."""


class TransportError(BlindRelayError):
    """Relay node or inference engine unreachable, or replied non-2xx."""


class DecodeError(BlindRelayError):
    """Malformed envelope or payload."""


class CryptoError(BlindRelayError):
    """Encryption boundary failure (bad ciphertext, wrong key, ...)."""


class NotReadyError(CryptoError):
    """Boundary used before initialize() completed."""


class InitError(CryptoError):
    """Encryption context could not be created."""


class PayloadTooLarge(CryptoError):
    """Plaintext does not fit into the scheme's batch width."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"payload of {length} characters exceeds batch width {limit}")
        self.length = length
        self.limit = limit


class NotFoundError(BlindRelayError):
    """Requested session does not exist in the store."""


class AmbiguousPayload(DecodeError):
    """Plain text that is indistinguishable from the structured payload form."""


class StorageError(BlindRelayError):
    """Session store exists but cannot be read."""

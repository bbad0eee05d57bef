"""
Wire codec: Envelope <-> relay message.

A plain payload travels as base64(utf-8 text). A homomorphic payload is
first written in its canonical JSON form

    {"message": "...", "metadata": {"encryptedValue": "...", "isHomomorphic": true}}

(sorted keys, no whitespace) and that text is then base64-encoded.
Plain text that is exactly such a canonical form is refused with
AmbiguousPayload, so decode(encode(e)) == e for every envelope encode()
accepts.
"""

import json

from pydantic import ValidationError

from blindrelay.common.errors import AmbiguousPayload, DecodeError
from blindrelay.common.protocol import (
    Envelope,
    HomomorphicPayload,
    PlainPayload,
    RelayMessage,
)
from blindrelay.common.utils import b64_decode, b64_encode


def _canonical(obj: dict) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _homomorphic_text(payload: HomomorphicPayload) -> str:
    return _canonical({
        "message": payload.message,
        "metadata": {
            "encryptedValue": payload.encrypted_value,
            "isHomomorphic": True,
        },
    })


def _parse_homomorphic(text: str):
    """Return a HomomorphicPayload if `text` is exactly its canonical form, else None."""
    if not text.startswith("{"):
        return None
    try:
        obj = json.loads(text)
    except ValueError:
        return None
    if not isinstance(obj, dict) or set(obj) != {"message", "metadata"}:
        return None
    meta = obj["metadata"]
    if not isinstance(meta, dict) or meta.get("isHomomorphic") is not True:
        return None
    message = obj["message"]
    value = meta.get("encryptedValue")
    if not isinstance(message, str) or not isinstance(value, str):
        return None
    payload = HomomorphicPayload(message=message, encrypted_value=value)
    # plain text that merely looks similar stays plain
    if _homomorphic_text(payload) != text:
        return None
    return payload


def is_structured(text: str) -> bool:
    """True if `text` reads back as a homomorphic payload."""
    return _parse_homomorphic(text) is not None


def encode_payload(payload) -> str:
    """
    Payload -> base64 text.

    :raises AmbiguousPayload: plain text that is exactly the canonical
        homomorphic form, which would decode as the other kind
    """
    if isinstance(payload, HomomorphicPayload):
        text = _homomorphic_text(payload)
    else:
        text = payload.message
        if is_structured(text):
            raise AmbiguousPayload("plain text collides with the structured payload form")
    return b64_encode(text.encode("utf-8"))


def decode_payload(data: str):
    """base64 text -> PlainPayload | HomomorphicPayload."""
    if not isinstance(data, str):
        raise DecodeError("payload must be a string")
    raw = b64_decode(data)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"payload is not utf-8: {exc}") from exc

    return _parse_homomorphic(text) or PlainPayload(message=text)


def to_wire(envelope: Envelope) -> RelayMessage:
    return RelayMessage(
        payload=encode_payload(envelope.payload),
        content_topic=envelope.content_topic,
        timestamp=envelope.timestamp,
    )


def from_wire(message: RelayMessage) -> Envelope:
    return Envelope(
        payload=decode_payload(message.payload),
        content_topic=message.content_topic,
        timestamp=message.timestamp,
    )


def encode(envelope: Envelope) -> str:
    """Envelope -> JSON body as posted to /relay/v1/auto/messages."""
    return to_wire(envelope).model_dump_json(by_alias=True)


def decode(wire: str) -> Envelope:
    """Inverse of encode(). Raises DecodeError on anything non-conforming."""
    try:
        message = RelayMessage.model_validate_json(wire)
    except ValidationError as exc:
        raise DecodeError(f"malformed relay message: {exc}") from exc
    return from_wire(message)

"""
Pydantic models for the blindrelay protocol.
Everything that crosses the relay, the inference engine or the session
store is one of these structures.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


CLIENT_TOPIC = "/waku-chat/1/client-message/proto"
RESPONSE_TOPIC = "/waku-chat/1/server-response/proto"


# -------------------------
# Relay wire format
# -------------------------

class RelayMessage(BaseModel):
    """One message as the relay node's REST API sends and receives it."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    payload: str                                   # base64
    content_topic: str = Field(alias="contentTopic")
    timestamp: int                                 # unix ms, producer-assigned


class PeerProtocol(BaseModel):
    protocol: str
    connected: bool


class Peer(BaseModel):
    multiaddr: str
    protocols: List[PeerProtocol] = []
    origin: str = ""


class ProtocolCount(BaseModel):
    name: str
    value: int
    connected: bool


# -------------------------
# Payloads (inside the base64)
# -------------------------

class PlainPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["plain"] = "plain"
    message: str


class HomomorphicPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["homomorphic"] = "homomorphic"
    message: str
    encrypted_value: str   # base64(provider ciphertext)


Payload = Annotated[Union[PlainPayload, HomomorphicPayload], Field(discriminator="kind")]


class Envelope(BaseModel):
    """Decoded relay message: structured payload plus routing fields."""

    model_config = ConfigDict(frozen=True)

    payload: Payload
    content_topic: str
    timestamp: int


# -------------------------
# In-memory views
# -------------------------

class Direction(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class Message(BaseModel):
    payload: Payload
    timestamp: int
    content_topic: str
    direction: Direction
    display_content: Optional[str] = None   # plaintext kept at the sender only


class MessageStatus(str, Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    RESPONDED = "responded"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [MessageStatus.RECEIVED, MessageStatus.PROCESSING, MessageStatus.RESPONDED]


class IncomingMessage(BaseModel):
    timestamp: int
    content: str
    status: MessageStatus = MessageStatus.RECEIVED


# -------------------------
# Chat sessions (persisted by the session store)
# -------------------------

class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    id: str
    content: str
    timestamp: int
    sender: Sender


class ChatSession(BaseModel):
    id: str
    title: str
    messages: List[ChatMessage] = []
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


# -------------------------
# Inference engine
# -------------------------

class GenerateRequest(BaseModel):
    model: str
    prompt: str
    stream: bool = False


class GenerateResponse(BaseModel):
    response: str

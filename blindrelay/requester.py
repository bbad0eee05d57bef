"""
Requester side: turn user input into chat-session updates and outbound
requests, and fold correlated responses back into the active session.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional, Set

import structlog

from blindrelay.common import codec
from blindrelay.common.dedup import Deduplicator
from blindrelay.common.errors import BlindRelayError, CryptoError, DecodeError, NotFoundError
from blindrelay.common.protocol import (
    CLIENT_TOPIC,
    RESPONSE_TOPIC,
    ChatSession,
    Direction,
    Envelope,
    Message,
    Sender,
)
from blindrelay.common.scheduler import PeriodicTask
from blindrelay.common.utils import next_timestamp
from blindrelay.crypto.boundary import EncryptionBoundary
from blindrelay.monitor import NodeMonitor
from blindrelay.net.relay import RelayClient
from blindrelay.storage.sessions import SessionStore


logger = structlog.get_logger(__name__)

FIRST_REPLY = "I'm here to help! What would you like to know?"
FOLLOW_UP_REPLY = "I understand your message. How can I assist you further?"


class DriverState(str, Enum):
    IDLE = "idle"
    AWAITING_SESSION_CREATE = "awaiting_session_create"
    SESSION_ACTIVE = "session_active"


class ChatSessionDriver:
    """
    Client-side state machine: IDLE -> AWAITING_SESSION_CREATE -> SESSION_ACTIVE.

    Without an attached RequesterLink the driver answers every user message
    itself with a canned assistant reply after `reply_delay` seconds.
    """

    def __init__(
        self,
        sessions: SessionStore,
        reply_delay: Optional[float] = 1.0,
        on_reply: Optional[Callable[[str], None]] = None,
    ):
        self.sessions = sessions
        self.reply_delay = reply_delay
        self.on_reply = on_reply
        self.state = DriverState.IDLE
        self.session_id: Optional[str] = None
        self.messages: List[Message] = []
        self.link: Optional["RequesterLink"] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def session(self) -> Optional[ChatSession]:
        if self.session_id is None:
            return None
        return self.sessions.get_session(self.session_id)

    def attach(self, link: "RequesterLink") -> None:
        self.link = link

    def detach(self) -> None:
        self.link = None

    def open(self, session_id: str) -> ChatSession:
        """Resume a stored session."""
        session = self.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError(f"chat session {session_id} not found")
        self.session_id = session.id
        self.state = DriverState.SESSION_ACTIVE
        return session

    async def send(self, text: str) -> Optional[ChatSession]:
        """
        Record `text` as a user message, creating the session on first use,
        then hand it to the link (or schedule the canned reply).

        The request is sealed before anything is stored, so an oversized or
        unencryptable message leaves the session untouched.
        """
        if not text.strip():
            return None

        link = self.link
        prepared = link.prepare(text) if link is not None else None

        first = self.session_id is None
        if first:
            self.state = DriverState.AWAITING_SESSION_CREATE
            try:
                session = self.sessions.create_session(text)
            except Exception:
                self.state = DriverState.IDLE
                raise
            self.session_id = session.id
            self.state = DriverState.SESSION_ACTIVE
        else:
            session = self.sessions.add_message(self.session_id, text, Sender.USER)

        if prepared is not None:
            message = await link.publish(prepared, text)
            if message is not None:
                self.messages.append(message)
        elif self.reply_delay is not None:
            self._schedule_reply(session.id, FIRST_REPLY if first else FOLLOW_UP_REPLY)
        return session

    async def receive(self, text: str, message: Optional[Message] = None) -> Optional[ChatSession]:
        """Append an assistant reply to the active session."""
        if self.state is not DriverState.SESSION_ACTIVE:
            logger.debug("reply_without_session_dropped")
            return None
        session = self.sessions.add_message(self.session_id, text, Sender.ASSISTANT)
        if message is not None:
            self.messages.append(message)
        if self.on_reply is not None:
            self.on_reply(text)
        return session

    def reset(self) -> None:
        """Back to IDLE. Persisted sessions stay; the in-memory buffer goes."""
        for task in self._pending:
            task.cancel()
        self._pending.clear()
        self.state = DriverState.IDLE
        self.session_id = None
        self.messages.clear()

    async def drain(self) -> None:
        """Wait for scheduled canned replies."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule_reply(self, session_id: str, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._reply_later(session_id, text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reply_later(self, session_id: str, text: str) -> None:
        await asyncio.sleep(self.reply_delay)
        if self.session_id != session_id:
            return
        await self.receive(text)


class RequesterLink:
    """
    Bridges a ChatSessionDriver to the relay.

    Outbound text is sealed by the boundary and published on CLIENT_TOPIC.
    RESPONSE_TOPIC is polled every `poll_interval` seconds; responses are
    deduplicated, unwrapped and passed to the driver.

    A response is only accepted while a request is pending. On a homomorphic
    boundary its side-channel must resolve under this requester's key to the
    text of a pending request, which pairs the response with that request.
    A plain boundary has nothing to pair on and answers requests in order.
    """

    def __init__(
        self,
        relay: RelayClient,
        monitor: NodeMonitor,
        boundary: EncryptionBoundary,
        driver: ChatSessionDriver,
        poll_interval: float = 1.0,
    ):
        self.relay = relay
        self.monitor = monitor
        self.boundary = boundary
        self.driver = driver
        self.dedup = Deduplicator()
        self.running = False
        self.subscribed = False
        self.pending: List[str] = []
        self._subscribe_task = PeriodicTask(
            "requester-subscribe", poll_interval, self.subscribe_once
        )
        self._poll_task = PeriodicTask("requester-poll", poll_interval, self.tick)

    @property
    def outstanding(self) -> int:
        return len(self.pending)

    async def start(self) -> None:
        if self.running:
            return
        await self.boundary.initialize()
        self.running = True
        self.driver.attach(self)
        self._subscribe_task.start()
        self._poll_task.start()

    async def stop(self) -> None:
        self.running = False
        self.subscribed = False
        self._subscribe_task.stop()
        self._poll_task.stop()
        if self.driver.link is self:
            self.driver.detach()

    async def wait(self) -> None:
        await self._subscribe_task.wait()
        await self._poll_task.wait()

    def _gated(self) -> bool:
        return self.running and self.monitor.active and self.boundary.ready

    # ------------- outbound -------------

    def prepare(self, text: str) -> Envelope:
        """
        Seal `text` into an envelope for CLIENT_TOPIC.

        :raises NotReadyError: encryption still initializing
        :raises PayloadTooLarge: text longer than the scheme's batch width
        :raises AmbiguousPayload: plain text that reads as a sealed payload
        """
        return Envelope(
            payload=self.boundary.wrap(text),
            content_topic=CLIENT_TOPIC,
            timestamp=next_timestamp(),
        )

    async def publish(self, envelope: Envelope, display: str) -> Optional[Message]:
        if not self._gated():
            logger.warning("request_not_sent", reason="node inactive or link stopped")
            return None
        if not await self.relay.publish(codec.to_wire(envelope)):
            return None
        self.pending.append(display)
        return Message(
            payload=envelope.payload,
            timestamp=envelope.timestamp,
            content_topic=envelope.content_topic,
            direction=Direction.OUTBOUND,
            display_content=display,
        )

    # ------------- inbound -------------

    async def subscribe_once(self) -> None:
        if self.subscribed:
            self._subscribe_task.stop()
            return
        if not self._gated():
            return
        ok = await self.relay.subscribe(RESPONSE_TOPIC)
        if not self.running:
            return
        self.subscribed = ok
        if ok:
            self._subscribe_task.stop()

    def _settle(self, echoed: Optional[str]) -> bool:
        """Retire the request a response answers. False if it answers none."""
        if echoed is None:
            self.pending.pop(0)
            return True
        if echoed in self.pending:
            self.pending.remove(echoed)
            return True
        return False

    async def tick(self) -> None:
        if not (self._gated() and self.subscribed):
            return

        messages = await self.relay.fetch(RESPONSE_TOPIC)
        if not self.running:
            return

        for raw in self.dedup.admit(messages):
            if not self.pending:
                logger.debug("uncorrelated_response_dropped", timestamp=raw.timestamp)
                continue
            try:
                envelope = codec.from_wire(raw)
                echoed = self.boundary.side_channel(envelope.payload)
                if echoed is None:
                    text = self.boundary.unwrap(envelope.payload)
                else:
                    text = envelope.payload.message
            except (DecodeError, CryptoError) as exc:
                logger.warning("response_dropped", timestamp=raw.timestamp, error=str(exc))
                continue

            if not self.running:
                return
            if not self._settle(echoed):
                logger.warning("response_for_unknown_request", timestamp=raw.timestamp)
                continue

            try:
                await self.driver.receive(
                    text,
                    Message(
                        payload=envelope.payload,
                        timestamp=envelope.timestamp,
                        content_topic=envelope.content_topic,
                        direction=Direction.INBOUND,
                        display_content=text,
                    ),
                )
            except BlindRelayError as exc:
                logger.warning("reply_not_stored", timestamp=raw.timestamp, error=str(exc))

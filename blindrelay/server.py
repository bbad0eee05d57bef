"""
Operator side: take prompts off the client topic, run them through the
inference engine and publish the answers on the response topic.

Per accepted message:  received -> processing -> responded
"""

import asyncio
import signal
from typing import Optional

import structlog

from blindrelay.common import codec
from blindrelay.common.board import IncomingBoard
from blindrelay.common.config import Settings, load_settings
from blindrelay.common.dedup import Deduplicator
from blindrelay.common.errors import AmbiguousPayload, CryptoError, DecodeError, TransportError
from blindrelay.common.logs import configure_logging
from blindrelay.common.protocol import (
    CLIENT_TOPIC,
    RESPONSE_TOPIC,
    Envelope,
    HomomorphicPayload,
    MessageStatus,
    PlainPayload,
    RelayMessage,
)
from blindrelay.common.scheduler import PeriodicTask
from blindrelay.common.utils import next_timestamp
from blindrelay.crypto.boundary import EncryptionBoundary, PlainBoundary, build_boundary
from blindrelay.monitor import NodeMonitor
from blindrelay.net.inference import InferenceClient
from blindrelay.net.relay import RelayClient


logger = structlog.get_logger(__name__)

APOLOGY = "Sorry, I encountered an error processing your request."


class OperatorPipeline:
    """
    Subscribe once, then poll CLIENT_TOPIC every tick.

    A tick is a no-op unless the node is active, the pipeline is running,
    the subscription is confirmed and the boundary is ready. Messages that
    arrive while encryption is still initializing are not fetched; they are
    picked up once ready if the relay still holds them.
    """

    def __init__(
        self,
        relay: RelayClient,
        inference: InferenceClient,
        monitor: NodeMonitor,
        boundary: Optional[EncryptionBoundary] = None,
        poll_interval: float = 1.0,
        display_limit: int = 10,
    ):
        self.relay = relay
        self.inference = inference
        self.monitor = monitor
        self.boundary = boundary or PlainBoundary()
        self.dedup = Deduplicator()
        self.board = IncomingBoard(limit=display_limit)
        self.running = False
        self.subscribed = False
        self._subscribe_task = PeriodicTask("operator-subscribe", poll_interval, self.subscribe_once)
        self._poll_task = PeriodicTask("operator-poll", poll_interval, self.tick)

    # ------------- lifecycle -------------

    async def start(self) -> None:
        if self.running:
            return
        await self.boundary.initialize()
        self.running = True
        self._subscribe_task.start()
        self._poll_task.start()
        logger.info("operator_started", homomorphic=self.boundary.homomorphic)

    async def stop(self) -> None:
        """Stop at once; in-flight ticks finish but their results are discarded."""
        self.running = False
        self.subscribed = False
        self._subscribe_task.stop()
        self._poll_task.stop()
        logger.info("operator_stopped")

    async def wait(self) -> None:
        await self._subscribe_task.wait()
        await self._poll_task.wait()

    # ------------- periodic work -------------

    async def subscribe_once(self) -> None:
        if self.subscribed:
            self._subscribe_task.stop()
            return
        if not (self.running and self.monitor.active):
            return

        ok = await self.relay.subscribe(CLIENT_TOPIC)
        if not self.running:
            return
        self.subscribed = ok
        if ok:
            self._subscribe_task.stop()

    def _gated(self) -> bool:
        return (
            self.monitor.active
            and self.running
            and self.subscribed
            and self.boundary.ready
        )

    async def tick(self) -> None:
        if not self._gated():
            return

        messages = await self.relay.fetch(CLIENT_TOPIC)
        if not self.running:
            return

        for message in self.dedup.admit(messages):
            self.board.track(message.timestamp, message.payload)
            self.board.advance(message.timestamp, MessageStatus.PROCESSING)
            try:
                await self.process(message)
            except Exception:
                # message stays in processing; the rest of the batch goes on
                logger.exception("request_crashed", timestamp=message.timestamp)
            if not self.running:
                return

    async def process(self, message: RelayMessage) -> None:
        """
        Handle one admitted message. Failures leave it in `processing`.

        The inference engine gets the payload's message. An encrypted
        side-channel is evaluated without the secret key and travels back
        to the requester in the response, never into the prompt.
        """
        log = logger.bind(timestamp=message.timestamp)
        try:
            envelope = codec.from_wire(message)
        except DecodeError as exc:
            log.warning("request_undecodable", error=str(exc))
            return

        payload = envelope.payload
        prompt = payload.message
        self.board.update_content(message.timestamp, prompt)

        side_channel = None
        if isinstance(payload, HomomorphicPayload) and self.boundary.homomorphic:
            try:
                side_channel = self.boundary.evaluate_inbound(payload.encrypted_value)
            except CryptoError as exc:
                log.warning("request_evaluation_failed", error=str(exc))
                return

        reply = await self.answer(prompt)
        if not self.running:
            return

        if side_channel is not None:
            response = HomomorphicPayload(message=reply, encrypted_value=side_channel)
        else:
            response = PlainPayload(message=reply)

        try:
            wire = self._response_wire(response)
        except AmbiguousPayload as exc:
            log.warning("reply_not_encodable", error=str(exc))
            wire = self._response_wire(PlainPayload(message=APOLOGY))

        published = await self.relay.publish(wire)
        if not published:
            log.warning("response_not_published")
        self.board.advance(message.timestamp, MessageStatus.RESPONDED)

    def _response_wire(self, payload) -> RelayMessage:
        outbound = Envelope(
            payload=payload,
            content_topic=RESPONSE_TOPIC,
            timestamp=next_timestamp(),
        )
        return codec.to_wire(outbound)

    async def answer(self, prompt: str) -> str:
        try:
            return await self.inference.generate(prompt)
        except TransportError as exc:
            logger.warning("inference_failed", error=str(exc))
            return APOLOGY


# ------------- Main operator loop -------------


async def run_operator(settings: Settings) -> None:
    relay = RelayClient(settings.relay_url, timeout=settings.http_timeout)
    inference = InferenceClient(
        settings.inference_url,
        model=settings.model,
        timeout=settings.inference_timeout,
    )
    monitor = NodeMonitor(relay, interval=settings.status_interval)
    pipeline = OperatorPipeline(
        relay,
        inference,
        monitor,
        boundary=build_boundary(settings.scheme, settings.slot_count),
        poll_interval=settings.poll_interval,
        display_limit=settings.display_limit,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt ends asyncio.run instead
            pass

    print(f"[CONFIG] Relay node: {settings.relay_url}")
    print(f"[CONFIG] Inference engine: {settings.inference_url} ({settings.model})")
    print(f"[CONFIG] Encryption: {settings.scheme}")

    monitor.start()
    await pipeline.start()
    print("[OPERATOR] Serving requests. Ctrl-C to stop.")
    try:
        await stop.wait()
    finally:
        await pipeline.stop()
        monitor.stop()
        await pipeline.wait()
        await monitor.wait()
        pipeline.boundary.close()
        await relay.close()
        await inference.close()
        for entry in pipeline.board.entries():
            print(f"[OPERATOR] #{entry.timestamp} {entry.status.value}: {entry.content[:60]}")
        print("[*] Operator stopped.")


def main():
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(run_operator(settings))


if __name__ == "__main__":
    main()

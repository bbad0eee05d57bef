"""
Shared fixtures: an in-memory relay node, stores and boundaries.
"""

from collections import defaultdict
from types import SimpleNamespace
from typing import List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from blindrelay.common.protocol import CLIENT_TOPIC, RelayMessage
from blindrelay.common.utils import b64_encode
from blindrelay.crypto.aes import SealedSlotProvider
from blindrelay.crypto.boundary import SchemeBoundary
from blindrelay.net.inference import InferenceClient
from blindrelay.net.relay import RelayClient
from blindrelay.storage.kv import MemoryStore
from blindrelay.storage.sessions import SessionStore


SLOTS = 64


class FakeRelay:
    """Relay node stand-in: keeps every published message per topic."""

    def __init__(self):
        self.topics = defaultdict(list)
        self.healthy = True
        self.subscriptions = set()

    async def health(self) -> bool:
        return self.healthy

    async def version(self) -> str:
        return "v0.test"

    async def list_peers(self) -> List:
        return []

    async def subscribe(self, topic: str) -> bool:
        self.subscriptions.add(topic)
        return True

    async def publish(self, message: RelayMessage) -> bool:
        self.topics[message.content_topic].append(message)
        return True

    async def fetch(self, topic: str) -> List[RelayMessage]:
        return list(self.topics[topic])


def plain_wire(timestamp: int, text: str, topic: str = CLIENT_TOPIC) -> RelayMessage:
    return RelayMessage(
        payload=b64_encode(text.encode("utf-8")),
        content_topic=topic,
        timestamp=timestamp,
    )


@pytest.fixture
def fake_relay():
    return FakeRelay()


@pytest.fixture
def relay_mock():
    relay = AsyncMock(spec=RelayClient)
    relay.health.return_value = True
    relay.subscribe.return_value = True
    relay.publish.return_value = True
    relay.fetch.return_value = []
    return relay


@pytest.fixture
def inference_mock():
    inference = AsyncMock(spec=InferenceClient)
    inference.generate.side_effect = lambda prompt: f"echo: {prompt}"
    return inference


@pytest.fixture
def active_monitor():
    return SimpleNamespace(active=True)


@pytest.fixture
def session_store():
    return SessionStore(MemoryStore())


@pytest_asyncio.fixture
async def sealed_boundary():
    boundary = SchemeBoundary(SealedSlotProvider(slot_count=SLOTS))
    await boundary.initialize()
    return boundary

import pytest
import pytest_asyncio

from blindrelay.common import codec
from blindrelay.common.errors import CryptoError, InitError, NotReadyError, PayloadTooLarge
from blindrelay.common.protocol import (
    CLIENT_TOPIC,
    RESPONSE_TOPIC,
    Direction,
    Envelope,
    HomomorphicPayload,
    PlainPayload,
    Sender,
)
from blindrelay.crypto.aes import SealedSlotProvider
from blindrelay.crypto.boundary import PlainBoundary, SchemeBoundary
from blindrelay.requester import ChatSessionDriver, RequesterLink

from conftest import SLOTS, plain_wire


def response_wire(timestamp, payload):
    return codec.to_wire(
        Envelope(payload=payload, content_topic=RESPONSE_TOPIC, timestamp=timestamp)
    )


@pytest.fixture
def driver(session_store):
    return ChatSessionDriver(session_store, reply_delay=None)


async def start_link(relay, monitor, boundary, driver):
    link = RequesterLink(relay, monitor, boundary, driver, poll_interval=60)
    await link.start()
    await link.subscribe_once()
    return link


@pytest_asyncio.fixture
async def plain_link(fake_relay, active_monitor, driver):
    link = await start_link(fake_relay, active_monitor, PlainBoundary(), driver)
    yield link
    await link.stop()
    await link.wait()


@pytest_asyncio.fixture
async def sealed_link(fake_relay, active_monitor, driver, sealed_boundary):
    link = await start_link(fake_relay, active_monitor, sealed_boundary, driver)
    yield link
    await link.stop()
    await link.wait()


# -------------------------
# plain mode
# -------------------------

@pytest.mark.asyncio
async def test_send_publishes_on_client_topic(plain_link, driver, fake_relay):
    assert fake_relay.subscriptions == {RESPONSE_TOPIC}
    assert driver.link is plain_link

    await driver.send("hello relay")

    [wire] = fake_relay.topics[CLIENT_TOPIC]
    assert codec.from_wire(wire).payload == PlainPayload(message="hello relay")
    assert plain_link.outstanding == 1
    assert driver.messages[0].direction is Direction.OUTBOUND
    assert driver.messages[0].display_content == "hello relay"


@pytest.mark.asyncio
async def test_response_reaches_active_session(plain_link, driver, fake_relay, session_store):
    session = await driver.send("hello relay")
    fake_relay.topics[RESPONSE_TOPIC].append(plain_wire(500, "hello requester", RESPONSE_TOPIC))

    await plain_link.tick()
    await plain_link.tick()     # same response again: deduplicated

    stored = session_store.get_session(session.id)
    assert [(m.sender, m.content) for m in stored.messages] == [
        (Sender.USER, "hello relay"),
        (Sender.ASSISTANT, "hello requester"),
    ]
    assert plain_link.outstanding == 0
    assert driver.messages[-1].direction is Direction.INBOUND


@pytest.mark.asyncio
async def test_uncorrelated_response_is_dropped(plain_link, driver, fake_relay, session_store):
    fake_relay.topics[RESPONSE_TOPIC].append(plain_wire(500, "nobody asked", RESPONSE_TOPIC))
    await plain_link.tick()

    await driver.send("now I ask")
    await plain_link.tick()

    [session] = session_store.list_sessions()
    assert [m.content for m in session.messages] == ["now I ask"]
    assert plain_link.outstanding == 1


@pytest.mark.asyncio
async def test_inactive_node_blocks_publish(fake_relay, active_monitor, driver, session_store):
    link = await start_link(fake_relay, active_monitor, PlainBoundary(), driver)
    active_monitor.active = False

    session = await driver.send("into the void")
    await link.stop()
    await link.wait()

    assert fake_relay.topics[CLIENT_TOPIC] == []
    assert link.outstanding == 0
    assert len(session_store.get_session(session.id).messages) == 1


# -------------------------
# sealed mode
# -------------------------

@pytest.mark.asyncio
async def test_sealed_request_carries_side_channel(sealed_link, driver, fake_relay, sealed_boundary):
    await driver.send("secret question")

    payload = codec.from_wire(fake_relay.topics[CLIENT_TOPIC][0]).payload
    assert isinstance(payload, HomomorphicPayload)
    assert sealed_boundary.resolve_inbound(payload.encrypted_value) == "secret question"


@pytest.mark.asyncio
async def test_foreign_ciphertext_leaves_session_untouched(
    sealed_link, driver, fake_relay, session_store
):
    session = await driver.send("secret question")

    stranger = SchemeBoundary(SealedSlotProvider(slot_count=SLOTS))
    await stranger.initialize()
    forged = HomomorphicPayload(message="forged", encrypted_value=stranger.prepare_outbound("x"))
    fake_relay.topics[RESPONSE_TOPIC].extend(
        [
            response_wire(500, forged),
            response_wire(501, PlainPayload(message="plain reply")),
            plain_wire(502, "not even base64 json", RESPONSE_TOPIC),
        ]
    )
    await sealed_link.tick()

    assert [m.content for m in session_store.get_session(session.id).messages] == [
        "secret question"
    ]
    assert sealed_link.outstanding == 1


@pytest.mark.asyncio
async def test_oversized_message_is_refused_before_storing(
    sealed_link, driver, fake_relay, session_store
):
    with pytest.raises(PayloadTooLarge):
        await driver.send("x" * (SLOTS + 1))

    assert session_store.list_sessions() == []
    assert fake_relay.topics[CLIENT_TOPIC] == []


@pytest.mark.asyncio
async def test_send_before_encryption_ready(fake_relay, active_monitor, driver, session_store):
    link = RequesterLink(
        fake_relay,
        active_monitor,
        SchemeBoundary(SealedSlotProvider(slot_count=SLOTS)),
        driver,
    )
    driver.attach(link)

    with pytest.raises(NotReadyError):
        await driver.send("too early")
    assert session_store.list_sessions() == []


@pytest.mark.asyncio
async def test_response_must_echo_a_pending_request(
    sealed_link, driver, fake_relay, session_store, sealed_boundary
):
    session = await driver.send("first question")
    await driver.send("second question")

    stale = HomomorphicPayload(
        message="answer to something else",
        encrypted_value=sealed_boundary.prepare_outbound("never asked"),
    )
    second = HomomorphicPayload(
        message="second answer",
        encrypted_value=sealed_boundary.prepare_outbound("second question"),
    )
    fake_relay.topics[RESPONSE_TOPIC].extend([response_wire(500, stale), response_wire(501, second)])
    await sealed_link.tick()

    assert [m.content for m in session_store.get_session(session.id).messages] == [
        "first question",
        "second question",
        "second answer",
    ]
    assert sealed_link.pending == ["first question"]


class FlakyProvider(SealedSlotProvider):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0

    def create_context(self):
        self.calls += 1
        if self.calls == 1:
            raise CryptoError("entropy unavailable")
        return super().create_context()


@pytest.mark.asyncio
async def test_failed_start_can_be_retried(fake_relay, active_monitor, driver):
    boundary = SchemeBoundary(FlakyProvider(slot_count=SLOTS))
    link = RequesterLink(fake_relay, active_monitor, boundary, driver, poll_interval=60)

    with pytest.raises(InitError):
        await link.start()
    assert not link.running
    assert driver.link is None

    await link.start()
    assert link.running
    assert driver.link is link

    await link.stop()
    await link.wait()

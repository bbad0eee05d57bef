import pytest

from blindrelay.common.config import Settings
from blindrelay.requester import ChatSessionDriver, DriverState, RequesterLink
from blindrelay.runtime import Mode, ModeController
from blindrelay.server import OperatorPipeline

from conftest import SLOTS


@pytest.fixture
def controller(fake_relay, inference_mock, active_monitor, session_store):
    settings = Settings(scheme="sealed", slot_count=SLOTS, poll_interval=60)
    driver = ChatSessionDriver(session_store, reply_delay=None)
    return ModeController(settings, fake_relay, inference_mock, active_monitor, driver)


@pytest.mark.asyncio
async def test_inference_mode_attaches_link(controller):
    await controller.activate(Mode.INFERENCE)

    assert controller.mode is Mode.INFERENCE
    assert isinstance(controller.link, RequesterLink)
    assert controller.driver.link is controller.link
    assert controller.boundary.ready

    link = controller.link
    await controller.deactivate()
    await link.wait()
    assert controller.driver.link is None


@pytest.mark.asyncio
async def test_switching_mode_resets_everything(controller, session_store):
    await controller.activate(Mode.INFERENCE)
    await controller.driver.send("remember me")
    old_boundary = controller.boundary
    old_link = controller.link

    await controller.activate(Mode.OPERATOR)
    await old_link.wait()

    assert controller.mode is Mode.OPERATOR
    assert isinstance(controller.pipeline, OperatorPipeline)
    assert controller.pipeline.running
    assert controller.link is None
    assert not old_boundary.ready
    assert controller.boundary is not old_boundary
    assert controller.boundary.ready
    assert controller.driver.state is DriverState.IDLE
    assert controller.driver.messages == []
    # persisted sessions survive the switch
    assert [s.title for s in session_store.list_sessions()] == ["remember me"]

    pipeline = controller.pipeline
    await controller.deactivate()
    await pipeline.wait()
    assert controller.mode is None
    assert controller.boundary is None


@pytest.mark.asyncio
async def test_failed_activation_leaves_nothing_running(controller, monkeypatch):
    async def broken_start(self):
        raise RuntimeError("cannot start")

    monkeypatch.setattr(OperatorPipeline, "start", broken_start)

    with pytest.raises(RuntimeError):
        await controller.activate(Mode.OPERATOR)

    assert controller.mode is None
    assert controller.pipeline is None
    assert controller.boundary is None

"""Mode activation: one encryption boundary and one worker per active mode."""

from enum import Enum
from typing import Optional

import structlog

from blindrelay.common.config import Settings
from blindrelay.crypto.boundary import EncryptionBoundary, build_boundary
from blindrelay.monitor import NodeMonitor
from blindrelay.net.inference import InferenceClient
from blindrelay.net.relay import RelayClient
from blindrelay.requester import ChatSessionDriver, RequesterLink
from blindrelay.server import OperatorPipeline


logger = structlog.get_logger(__name__)


class Mode(str, Enum):
    INFERENCE = "inference"
    OPERATOR = "operator"


class ModeController:
    """
    Owns the lifecycle of the mode-specific pieces.

    activate() tears the previous mode down completely (worker stopped,
    boundary keys dropped, driver reset to IDLE) before building a fresh
    boundary for the new one. Persisted sessions are never touched.
    """

    def __init__(
        self,
        settings: Settings,
        relay: RelayClient,
        inference: InferenceClient,
        monitor: NodeMonitor,
        driver: ChatSessionDriver,
    ):
        self.settings = settings
        self.relay = relay
        self.inference = inference
        self.monitor = monitor
        self.driver = driver
        self.mode: Optional[Mode] = None
        self.boundary: Optional[EncryptionBoundary] = None
        self.link: Optional[RequesterLink] = None
        self.pipeline: Optional[OperatorPipeline] = None

    async def activate(self, mode: Mode) -> None:
        await self.deactivate()

        self.boundary = build_boundary(self.settings.scheme, self.settings.slot_count)
        try:
            if mode is Mode.INFERENCE:
                self.link = RequesterLink(
                    self.relay,
                    self.monitor,
                    self.boundary,
                    self.driver,
                    poll_interval=self.settings.poll_interval,
                )
                await self.link.start()
            else:
                self.pipeline = OperatorPipeline(
                    self.relay,
                    self.inference,
                    self.monitor,
                    boundary=self.boundary,
                    poll_interval=self.settings.poll_interval,
                    display_limit=self.settings.display_limit,
                )
                await self.pipeline.start()
        except Exception:
            await self.deactivate()
            raise

        self.mode = mode
        logger.info("mode_activated", mode=mode.value, scheme=self.settings.scheme)

    async def deactivate(self) -> None:
        if self.link is not None:
            await self.link.stop()
            self.link = None
        if self.pipeline is not None:
            await self.pipeline.stop()
            self.pipeline = None
        if self.boundary is not None:
            self.boundary.close()
            self.boundary = None
        if self.mode is not None:
            logger.info("mode_deactivated", mode=self.mode.value)
        self.driver.reset()
        self.mode = None

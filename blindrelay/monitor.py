"""Relay node status: health, version and peer protocol census."""

from typing import Dict, List

import structlog

from blindrelay.common.protocol import Peer, ProtocolCount
from blindrelay.common.scheduler import PeriodicTask
from blindrelay.net.relay import UNKNOWN_VERSION, RelayClient


logger = structlog.get_logger(__name__)


def census(peers: List[Peer]) -> List[ProtocolCount]:
    """
    Count, per protocol, how many peers are connected and disconnected.

    Produces one "<protocol> (Connected)" and one "<protocol> (Disconnected)"
    entry per protocol in first-seen order, dropping zero counts.
    """
    counts: Dict[str, List[int]] = {}
    for peer in peers:
        for p in peer.protocols:
            current = counts.setdefault(p.protocol, [0, 0])
            current[0 if p.connected else 1] += 1

    result = []
    for name, (connected, disconnected) in counts.items():
        result.append(ProtocolCount(name=f"{name} (Connected)", value=connected, connected=True))
        result.append(
            ProtocolCount(name=f"{name} (Disconnected)", value=disconnected, connected=False)
        )
    return [item for item in result if item.value > 0]


class NodeMonitor:
    """
    Three independent periodic checks against the relay node.

    `active` flips to False within one health tick of the node failing,
    and the message pollers consult it before fetching.
    """

    def __init__(self, relay: RelayClient, interval: float = 30.0):
        self.relay = relay
        self.active = False
        self.version = UNKNOWN_VERSION
        self.protocols: List[ProtocolCount] = []
        self._tasks = [
            PeriodicTask("node-health", interval, self.check_health),
            PeriodicTask("node-version", interval, self.check_version),
            PeriodicTask("node-peers", interval, self.check_peers),
        ]

    async def check_health(self) -> None:
        active = await self.relay.health()
        if active != self.active:
            logger.info("node_status_changed", active=active)
        self.active = active

    async def check_version(self) -> None:
        self.version = await self.relay.version()

    async def check_peers(self) -> None:
        self.protocols = census(await self.relay.list_peers())

    async def refresh(self) -> None:
        """Run every check once, in order."""
        for task in self._tasks:
            await task.run_once()

    def start(self) -> None:
        for task in self._tasks:
            task.start()

    def stop(self) -> None:
        for task in self._tasks:
            task.stop()

    async def wait(self) -> None:
        for task in self._tasks:
            await task.wait()

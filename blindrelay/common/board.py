"""Operator-side view of incoming requests and their processing status."""

from collections import OrderedDict
from typing import List, Optional

import structlog

from blindrelay.common.protocol import IncomingMessage, MessageStatus


logger = structlog.get_logger(__name__)


class IncomingBoard:
    """
    Recent incoming requests, keyed by timestamp, newest last.

    Only the `limit` most recent entries are retained. Status moves
    strictly forward (received -> processing -> responded); attempts to
    move backwards, re-track a known timestamp or touch an unknown one
    are ignored.
    """

    def __init__(self, limit: int = 10):
        self.limit = limit
        self._entries: "OrderedDict[int, IncomingMessage]" = OrderedDict()

    def track(self, timestamp: int, content: str) -> bool:
        """Add a request in `received` state. False if the timestamp is known."""
        if timestamp in self._entries:
            return False
        self._entries[timestamp] = IncomingMessage(timestamp=timestamp, content=content)
        while len(self._entries) > self.limit:
            self._entries.popitem(last=False)
        return True

    def advance(self, timestamp: int, status: MessageStatus) -> bool:
        entry = self._entries.get(timestamp)
        if entry is None:
            return False
        if status.rank <= entry.status.rank:
            logger.debug(
                "status_not_advanced",
                timestamp=timestamp,
                current=entry.status.value,
                requested=status.value,
            )
            return False
        entry.status = status
        return True

    def status_of(self, timestamp: int) -> Optional[MessageStatus]:
        entry = self._entries.get(timestamp)
        return entry.status if entry else None

    def update_content(self, timestamp: int, content: str) -> None:
        entry = self._entries.get(timestamp)
        if entry is not None:
            entry.content = content

    def entries(self) -> List[IncomingMessage]:
        return [entry.model_copy() for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

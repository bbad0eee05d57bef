"""Per-topic timestamp deduplication of relay messages."""

from typing import Dict, List, Set, TypeVar

import structlog


logger = structlog.get_logger(__name__)

M = TypeVar("M")


class Deduplicator:
    """
    Remembers, per content topic, every timestamp already handed out.

    The relay is the ordering authority for a topic: admitted messages keep
    the order the transport delivered them in and are never re-sorted.
    The seen-sets grow without bound unless evict_older_than() is called.
    """

    def __init__(self):
        self._seen: Dict[str, Set[int]] = {}

    def admit(self, messages: List[M]) -> List[M]:
        """
        Return only messages whose (topic, timestamp) has not been seen,
        and record them. A repeat inside the same batch counts as seen.
        """
        admitted = []
        for msg in messages:
            seen = self._seen.setdefault(msg.content_topic, set())
            if msg.timestamp in seen:
                continue
            seen.add(msg.timestamp)
            admitted.append(msg)

        if len(admitted) != len(messages):
            logger.debug("dedup_dropped", dropped=len(messages) - len(admitted))
        return admitted

    def seen(self, topic: str, timestamp: int) -> bool:
        return timestamp in self._seen.get(topic, ())

    def evict_older_than(self, topic: str, cutoff: int) -> int:
        """
        Forget timestamps below `cutoff` (unix ms) for `topic`.

        Only safe for timestamps the relay no longer retains, otherwise
        those messages would be admitted again.
        """
        seen = self._seen.get(topic)
        if not seen:
            return 0
        stale = {ts for ts in seen if ts < cutoff}
        seen -= stale
        return len(stale)

    def size(self, topic: str) -> int:
        return len(self._seen.get(topic, ()))

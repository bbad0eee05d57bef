from blindrelay.common.dedup import Deduplicator
from blindrelay.common.protocol import CLIENT_TOPIC, RESPONSE_TOPIC

from conftest import plain_wire


def test_admit_is_idempotent():
    dedup = Deduplicator()
    batch = [plain_wire(100, "a"), plain_wire(200, "b")]

    assert dedup.admit(batch) == batch
    assert dedup.admit(batch) == []
    assert dedup.size(CLIENT_TOPIC) == 2


def test_repeat_inside_one_batch_is_dropped():
    dedup = Deduplicator()
    first, second, repeat = plain_wire(100, "a"), plain_wire(200, "b"), plain_wire(100, "a again")

    assert dedup.admit([first, second, repeat]) == [first, second]


def test_transport_order_is_kept():
    dedup = Deduplicator()
    batch = [plain_wire(300, "c"), plain_wire(100, "a"), plain_wire(200, "b")]

    assert [m.timestamp for m in dedup.admit(batch)] == [300, 100, 200]


def test_topics_are_tracked_separately():
    dedup = Deduplicator()
    dedup.admit([plain_wire(100, "request")])

    response = plain_wire(100, "response", topic=RESPONSE_TOPIC)
    assert dedup.admit([response]) == [response]
    assert dedup.seen(CLIENT_TOPIC, 100)
    assert dedup.seen(RESPONSE_TOPIC, 100)
    assert not dedup.seen(CLIENT_TOPIC, 101)


def test_evict_older_than():
    dedup = Deduplicator()
    dedup.admit([plain_wire(ts, "x") for ts in (100, 200, 300)])

    assert dedup.evict_older_than(CLIENT_TOPIC, 250) == 2
    assert dedup.size(CLIENT_TOPIC) == 1
    assert dedup.evict_older_than(RESPONSE_TOPIC, 250) == 0
    # evicted timestamps are admitted again
    assert len(dedup.admit([plain_wire(100, "x")])) == 1

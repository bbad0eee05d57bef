import pytest

from blindrelay.common.board import IncomingBoard
from blindrelay.common.protocol import MessageStatus


def test_status_only_moves_forward():
    board = IncomingBoard()
    board.track(100, "hello")

    assert board.status_of(100) is MessageStatus.RECEIVED
    assert board.advance(100, MessageStatus.PROCESSING)
    assert board.advance(100, MessageStatus.RESPONDED)
    assert not board.advance(100, MessageStatus.PROCESSING)
    assert not board.advance(100, MessageStatus.RESPONDED)
    assert board.status_of(100) is MessageStatus.RESPONDED


def test_received_can_jump_to_responded():
    board = IncomingBoard()
    board.track(100, "hello")
    assert board.advance(100, MessageStatus.RESPONDED)


def test_known_timestamp_is_not_tracked_twice():
    board = IncomingBoard()
    board.track(100, "hello")
    board.advance(100, MessageStatus.PROCESSING)

    assert not board.track(100, "hello again")
    assert board.status_of(100) is MessageStatus.PROCESSING
    assert board.entries()[0].content == "hello"


def test_unknown_timestamp_is_ignored():
    board = IncomingBoard()
    assert not board.advance(999, MessageStatus.RESPONDED)
    assert board.status_of(999) is None
    board.update_content(999, "ghost")
    assert len(board) == 0


@pytest.mark.parametrize("limit", [1, 10])
def test_keeps_only_most_recent(limit):
    board = IncomingBoard(limit=limit)
    for ts in range(1, 16):
        board.track(ts, f"m{ts}")

    assert len(board) == limit
    assert [e.timestamp for e in board.entries()] == list(range(16 - limit, 16))


def test_entries_are_copies():
    board = IncomingBoard()
    board.track(100, "hello")
    board.entries()[0].status = MessageStatus.RESPONDED
    assert board.status_of(100) is MessageStatus.RECEIVED


def test_update_content():
    board = IncomingBoard()
    board.track(100, "<encrypted>")
    board.update_content(100, "what is 2+2?")
    assert board.entries()[0].content == "what is 2+2?"

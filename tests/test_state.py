"""Tests for Message, id generation and the exchange state machine."""
from __future__ import annotations

import dataclasses
import threading

import pytest

from playercomm.state import (
    ExchangePhase,
    ExchangeState,
    ExchangeStateError,
    Message,
    MessageIdGenerator,
    Role,
)


def test_message_ids_strictly_increase():
    ids = [Message.create("a", "b", str(i)).id for i in range(50)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_explicit_generator_is_independent():
    generator = MessageIdGenerator(start=100)
    assert Message.create("a", "b", "x", generator).id == 100
    assert Message.create("a", "b", "y", generator).id == 101


def test_generator_is_unique_across_threads():
    generator = MessageIdGenerator()
    seen: list[int] = []
    lock = threading.Lock()

    def work() -> None:
        local = [generator.next_id() for _ in range(500)]
        with lock:
            seen.extend(local)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(seen) == list(range(1, 2001))


def test_message_is_immutable():
    message = Message.create("Alice", "Bob", "hi")
    with pytest.raises(dataclasses.FrozenInstanceError):
        message.content = "changed"


def test_message_str():
    message = Message.create("Alice", "Bob", "hi")
    assert str(message).endswith("] Alice -> Bob: hi")
    assert message.timestamp.tzinfo is not None


class TestExchangeState:
    def test_happy_path(self):
        state = ExchangeState(role=Role.INITIATOR, max_messages=2)
        assert state.phase is ExchangePhase.IDLE
        state.begin()
        for i in (1, 2):
            state.record_sent(f"Message {i}")
            assert state.record_received(f"Message {i} [{i}]") == i
        assert state.complete() is True
        assert state.phase is ExchangePhase.COMPLETE
        assert state.succeeded

    def test_cannot_record_before_begin(self):
        state = ExchangeState(role=Role.INITIATOR, max_messages=1)
        with pytest.raises(ExchangeStateError):
            state.record_sent("x")

    def test_cannot_begin_twice(self):
        state = ExchangeState(role=Role.INITIATOR, max_messages=1)
        state.begin()
        with pytest.raises(ExchangeStateError):
            state.begin()

    def test_counters_never_exceed_max(self):
        state = ExchangeState(role=Role.RESPONDER, max_messages=1)
        state.begin()
        state.record_received("a")
        state.record_sent("a [1]")
        with pytest.raises(ExchangeStateError):
            state.record_received("b")
        with pytest.raises(ExchangeStateError):
            state.record_sent("b [2]")

    def test_complete_is_terminal_and_once(self):
        state = ExchangeState(role=Role.INITIATOR, max_messages=3)
        state.begin()
        assert state.complete(error="boom") is True
        assert state.complete() is False
        assert state.error == "boom"
        assert not state.succeeded
        with pytest.raises(ExchangeStateError):
            state.record_sent("late")

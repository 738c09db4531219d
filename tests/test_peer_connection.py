"""Tests for line framing, connect retry and the socket-backed channel."""
from __future__ import annotations

import socket
import threading
from unittest.mock import Mock, patch

import pytest

from playercomm.message_router import InvalidPlayerError
from playercomm.peer_connection import (
    MAX_LINE_BYTES,
    PeerChannel,
    PeerClosedError,
    PeerConnection,
    PeerConnectionError,
    connect_with_retry,
)
from playercomm.peer_server import PeerListener
from playercomm.player import Player, ResponderBehavior, create_player
from playercomm.state import Message


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    a = PeerConnection(left, "left", is_outbound=True, read_timeout=5.0)
    b = PeerConnection(right, "right", is_outbound=False, read_timeout=5.0)
    yield a, b
    a.close()
    b.close()


class TestFraming:
    def test_lines_round_trip_in_order(self, pair):
        a, b = pair
        a.send_line("first")
        a.send_line("segundo ção")
        assert b.recv_line() == "first"
        assert b.recv_line() == "segundo ção"

    def test_several_lines_in_one_chunk(self, pair):
        a, b = pair
        a.socket.sendall(b"one\ntwo\r\nthree\n")
        assert [b.recv_line() for _ in range(3)] == ["one", "two", "three"]

    def test_eof_returns_none(self, pair):
        a, b = pair
        a.close()
        assert b.recv_line() is None

    def test_trailing_partial_line_counts_as_closure(self, pair):
        a, b = pair
        a.socket.sendall(b"complete\nincomplete")
        a.socket.shutdown(socket.SHUT_WR)
        assert b.recv_line() == "complete"
        assert b.recv_line() is None

    def test_rejects_embedded_newline(self, pair):
        a, _ = pair
        with pytest.raises(ValueError):
            a.send_line("two\nlines")

    def test_rejects_oversized_line(self, pair):
        a, _ = pair
        with pytest.raises(ValueError):
            a.send_line("x" * MAX_LINE_BYTES)

    def test_back_to_back_lines_near_limit(self, pair):
        a, b = pair
        line = b"a" * (MAX_LINE_BYTES - 10)
        writer = threading.Thread(target=a.socket.sendall, args=(line + b"\n" + line + b"\n",), daemon=True)
        writer.start()

        assert b.recv_line() == line.decode()
        assert b.recv_line() == line.decode()
        writer.join(timeout=5)

    def test_oversized_incoming_line_raises(self, pair):
        a, b = pair
        writer = threading.Thread(target=a.socket.sendall, args=(b"x" * (MAX_LINE_BYTES + 100),), daemon=True)
        writer.start()

        with pytest.raises(ValueError):
            b.recv_line()
        writer.join(timeout=5)

    def test_oversized_line_with_newline_in_same_chunk_raises(self, pair):
        a, b = pair
        writer = threading.Thread(target=a.socket.sendall, args=(b"x" * (MAX_LINE_BYTES + 1) + b"\nok\n",),
                                  daemon=True)
        writer.start()

        with pytest.raises(ValueError):
            b.recv_line()
        writer.join(timeout=5)

    def test_close_is_idempotent(self, pair):
        a, _ = pair
        a.close()
        a.close()
        assert a.closed


class TestConnectWithRetry:
    def test_gives_up_after_max_attempts(self):
        with patch("playercomm.peer_connection.socket.create_connection",
                   side_effect=ConnectionRefusedError("refused")) as create:
            with pytest.raises(PeerConnectionError) as excinfo:
                connect_with_retry("localhost", 5000, max_attempts=8, backoff_seconds=0)

        assert create.call_count == 8
        assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)

    def test_waits_backoff_between_attempts_only(self):
        stop = Mock()
        stop.is_set.return_value = False
        stop.wait.return_value = False
        with patch("playercomm.peer_connection.socket.create_connection",
                   side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(PeerConnectionError):
                connect_with_retry("localhost", 5000, max_attempts=3, backoff_seconds=1.5, stop_event=stop)

        assert [call.args for call in stop.wait.call_args_list] == [(1.5,), (1.5,)]

    def test_stop_event_aborts_backoff(self):
        stop = threading.Event()
        stop.set()
        with patch("playercomm.peer_connection.socket.create_connection") as create:
            with pytest.raises(PeerConnectionError):
                connect_with_retry("localhost", 5000, max_attempts=8, backoff_seconds=10, stop_event=stop)
        create.assert_not_called()

    def test_succeeds_on_later_attempt(self):
        left, right = socket.socketpair()
        outcomes = [ConnectionRefusedError("refused"), left]
        try:
            with patch("playercomm.peer_connection.socket.create_connection", side_effect=outcomes):
                connection = connect_with_retry("localhost", 5000, max_attempts=8, backoff_seconds=0)
            assert connection.is_outbound
            assert connection.peer_label == "localhost:5000"
        finally:
            left.close()
            right.close()


class TestPeerChannel:
    def test_register_requires_named_player(self, pair):
        channel = PeerChannel(pair[0], "responder")
        with pytest.raises(InvalidPlayerError):
            channel.register(None)

    def test_publish_writes_content_line(self, pair):
        a, b = pair
        channel = PeerChannel(a, "responder")
        player = create_player(channel, "initiator")

        player.send_message("responder", "Message 1")

        assert b.recv_line() == "Message 1"

    def test_publish_to_other_name_is_dropped(self, pair, caplog):
        a, b = pair
        channel = PeerChannel(a, "responder")
        channel.publish(Message.create("initiator", "someone-else", "lost"))
        b.socket.settimeout(0.1)
        with pytest.raises(socket.timeout):
            b.socket.recv(1)
        assert "someone-else" in caplog.text

    def test_receive_one_delivers_and_replies(self, pair):
        a, b = pair
        channel = PeerChannel(b, "initiator")
        create_player(channel, "responder", on_receive=ResponderBehavior())

        a.send_line("ping")
        channel.receive_one()

        assert a.recv_line() == "ping [1]"

    def test_receive_one_raises_on_closure(self, pair):
        a, b = pair
        channel = PeerChannel(b, "initiator")
        create_player(channel, "responder")
        a.close()
        with pytest.raises(PeerClosedError):
            channel.receive_one()

    def test_unregister_only_clears_same_player(self, pair):
        channel = PeerChannel(pair[0], "responder")
        player = create_player(channel, "initiator")
        channel.unregister(Player("initiator", channel))
        assert channel.player is player
        player.shutdown()
        assert channel.player is None


class TestPeerListener:
    def test_accepts_a_single_peer(self):
        with PeerListener("127.0.0.1", 0, poll_interval=0.05) as listener:
            port = listener.bound_port
            client = socket.create_connection(("127.0.0.1", port), timeout=5)
            try:
                with listener.accept() as inbound:
                    client.sendall(b"hello\n")
                    assert inbound.recv_line() == "hello"
                    assert not inbound.is_outbound
            finally:
                client.close()
        assert listener.bound_port is None

    def test_stop_event_interrupts_accept(self):
        stop = threading.Event()
        stop.set()
        with PeerListener("127.0.0.1", 0, poll_interval=0.05) as listener:
            with pytest.raises(PeerConnectionError):
                listener.accept(stop)

"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import socket
import sys
from pathlib import Path

import pytest

# Ensure src/ is on the import path (for local runs without installing the package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from playercomm.config import SessionSettings  # noqa: E402
from playercomm.state import Mode, Role  # noqa: E402


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    """A loopback port that nothing is listening on right now."""
    return _free_port()


@pytest.fixture
def remote_settings(free_port: int):
    """Factory for validated remote settings sharing one port pair."""

    def _make(role: Role, max_messages: int = 2, **overrides) -> SessionSettings:
        values = dict(
            mode=Mode.REMOTE,
            role=role,
            listen_host="127.0.0.1",
            peer_host="127.0.0.1",
            my_port=free_port if role is Role.RESPONDER else 50001,
            other_port=free_port if role is Role.INITIATOR else 50001,
            max_messages=max_messages,
            max_connect_attempts=40,
            connect_backoff_seconds=0.05,
            connect_timeout=1.0,
            read_timeout=5.0,
            accept_poll_interval=0.05,
        )
        values.update(overrides)
        settings = SessionSettings(**values)
        settings.validate()
        return settings

    return _make

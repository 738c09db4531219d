"""TCP listener used by the responder to accept its single peer."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from .peer_connection import PeerConnection, PeerConnectionError


logger = logging.getLogger(__name__)


class PeerListener:
    """Escuta em ``host:port`` e aceita exatamente uma conexão de peer."""

    def __init__(
        self,
        host: str,
        port: int,
        poll_interval: float = 1.0,
        read_timeout: Optional[float] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.poll_interval = poll_interval
        self.read_timeout = read_timeout
        self._server_socket: Optional[socket.socket] = None

    @property
    def bound_port(self) -> Optional[int]:
        if self._server_socket is None:
            return None
        return self._server_socket.getsockname()[1]

    def open(self) -> "PeerListener":
        if self._server_socket is not None:
            return self
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind((self.host, self.port))
            server.listen(1)
        except OSError:
            server.close()
            raise
        self._server_socket = server
        logger.info("[responder] Aguardando iniciador conectar em %s:%s...", self.host, self.bound_port)
        return self

    def accept(self, stop_event: Optional[threading.Event] = None) -> PeerConnection:
        """Bloqueia até um peer conectar.

        O socket de escuta acorda a cada ``poll_interval`` para checar ``stop_event``.

        Raises:
            PeerConnectionError: espera interrompida pelo ``stop_event``.
        """
        if self._server_socket is None:
            self.open()
        server = self._server_socket
        stop_event = stop_event or threading.Event()
        server.settimeout(self.poll_interval)
        while True:
            if stop_event.is_set():
                raise PeerConnectionError("espera pelo iniciador interrompida")
            try:
                conn, addr = server.accept()
            except socket.timeout:
                continue
            break
        logger.info("[responder] Iniciador conectado de %s:%s. Pronto para receber mensagens.", addr[0], addr[1])
        return PeerConnection.from_inbound(conn, addr, read_timeout=self.read_timeout)

    def close(self) -> None:
        if self._server_socket is None:
            return
        try:
            self._server_socket.close()
        except OSError:
            pass
        self._server_socket = None
        logger.debug("[responder] socket de escuta fechado")

    def __enter__(self) -> "PeerListener":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

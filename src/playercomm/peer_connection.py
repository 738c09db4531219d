"""Abstrações para a conexão TCP com o outro jogador."""
from __future__ import annotations

import logging
import socket
import threading
from typing import TYPE_CHECKING, Optional

from .message_router import check_player
from .state import Message, MessageIdGenerator

if TYPE_CHECKING:
    from .player import Player


logger = logging.getLogger(__name__)
MAX_LINE_BYTES = 32 * 1024


class PeerConnectionError(RuntimeError):
    """Não foi possível estabelecer (ou manter) a conexão com o peer."""


class PeerClosedError(PeerConnectionError):
    """O peer fechou o stream antes do fim da troca."""


class PeerConnection:
    """Conexão com o peer: uma mensagem por linha UTF-8 terminada em ``\\n``."""

    def __init__(
        self,
        sock: socket.socket,
        peer_label: str,
        is_outbound: bool,
        read_timeout: Optional[float] = None,
    ) -> None:
        self.socket = sock
        self.peer_label = peer_label
        self.is_outbound = is_outbound
        self._buffer = b""
        self._closed = False
        self.socket.settimeout(read_timeout)

    @classmethod
    def from_inbound(
        cls,
        sock: socket.socket,
        addr: tuple,
        read_timeout: Optional[float] = None,
    ) -> "PeerConnection":
        return cls(sock, f"{addr[0]}:{addr[1]}", is_outbound=False, read_timeout=read_timeout)

    @classmethod
    def connect_outbound(
        cls,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ) -> "PeerConnection":
        sock = socket.create_connection((host, port), timeout=timeout)
        return cls(sock, f"{host}:{port}", is_outbound=True, read_timeout=read_timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def send_line(self, text: str) -> None:
        if "\n" in text or "\r" in text:
            raise ValueError("conteúdo não pode conter quebra de linha")
        encoded = text.encode("utf-8") + b"\n"
        if len(encoded) > MAX_LINE_BYTES:
            raise ValueError("Payload excede 32KiB")
        self.socket.sendall(encoded)

    def recv_line(self) -> Optional[str]:
        """Lê a próxima linha. Retorna None quando o peer fechou o stream.

        Bytes sem ``\\n`` no fim do stream contam como fechamento e são descartados.
        """
        while b"\n" not in self._buffer:
            chunk = self.socket.recv(4096)
            if not chunk:
                if self._buffer:
                    logger.debug(
                        "[%s] descartando linha incompleta no fim do stream (%d bytes)",
                        self.peer_label,
                        len(self._buffer),
                    )
                    self._buffer = b""
                return None
            self._buffer += chunk
            if b"\n" not in self._buffer and len(self._buffer) > MAX_LINE_BYTES:
                raise ValueError("Mensagem maior que o limite permitido")
        line, self._buffer = self._buffer.split(b"\n", 1)
        # O limite vale para a linha, não para o que já chegou da próxima
        if len(line) > MAX_LINE_BYTES:
            raise ValueError("Mensagem maior que o limite permitido")
        return line.decode("utf-8", errors="replace").rstrip("\r")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        finally:
            self.socket.close()
        logger.debug("[%s] conexão fechada", self.peer_label)

    def __enter__(self) -> "PeerConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def connect_with_retry(
    host: str,
    port: int,
    max_attempts: int,
    backoff_seconds: float,
    connect_timeout: Optional[float] = None,
    read_timeout: Optional[float] = None,
    stop_event: Optional[threading.Event] = None,
) -> PeerConnection:
    """Tenta conectar em ``host:port`` até ``max_attempts`` vezes.

    Entre tentativas espera ``backoff_seconds`` no ``stop_event``; se ele for
    sinalizado, desiste na hora.

    Raises:
        PeerConnectionError: tentativas esgotadas ou espera interrompida.
    """
    stop_event = stop_event or threading.Event()
    last_error: Optional[OSError] = None

    for attempt in range(1, max_attempts + 1):
        if stop_event.is_set():
            raise PeerConnectionError("conexão interrompida antes da tentativa")
        logger.info(
            "Conectando ao responder em %s:%s (tentativa %d/%d)...",
            host,
            port,
            attempt,
            max_attempts,
        )
        try:
            return PeerConnection.connect_outbound(host, port, timeout=connect_timeout, read_timeout=read_timeout)
        except OSError as exc:
            last_error = exc
            if attempt == max_attempts:
                break
            logger.info("Responder ainda não está pronto (%s). Nova tentativa em %.1fs...", exc, backoff_seconds)
            if stop_event.wait(backoff_seconds):
                raise PeerConnectionError("conexão interrompida durante o backoff") from exc

    raise PeerConnectionError(
        f"não foi possível conectar a {host}:{port} após {max_attempts} tentativas"
    ) from last_error


class PeerChannel:
    """Canal de um Player local cujo único destino é o peer do outro lado do socket."""

    def __init__(
        self,
        connection: PeerConnection,
        peer_name: str,
        id_generator: Optional[MessageIdGenerator] = None,
    ) -> None:
        self.connection = connection
        self.peer_name = peer_name
        self._id_generator = id_generator
        self._player: Optional["Player"] = None

    @property
    def player(self) -> Optional["Player"]:
        return self._player

    def register(self, player: "Player") -> None:
        self._player = check_player(player)

    def unregister(self, player: Optional["Player"]) -> None:
        if player is not None and self._player is player:
            self._player = None

    def publish(self, message: Message) -> None:
        if message.receiver != self.peer_name:
            logger.warning(
                "[%s] entrega falhou: destino desconhecido %s (peer é %s)",
                message.sender,
                message.receiver,
                self.peer_name,
            )
            return
        self.connection.send_line(message.content)
        logger.info("[%s] enviou: %s", message.sender, message.content)

    def receive_one(self) -> None:
        """Lê uma linha do peer e entrega ao Player registrado.

        Raises:
            PeerClosedError: o peer fechou o stream.
        """
        line = self.connection.recv_line()
        if line is None:
            raise PeerClosedError(f"{self.peer_name} encerrou a conexão")
        if self._player is None:
            logger.warning("[%s] linha recebida sem jogador registrado; descartada", self.peer_name)
            return
        message = Message.create(self.peer_name, self._player.name, line, self._id_generator)
        self._player.receive(message)

"""Exchange loop: drives the counted back-and-forth for local and remote sessions."""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import ExitStack
from typing import Callable, Optional

from .config import SessionSettings
from .message_router import MessageRouter
from .peer_connection import PeerChannel, PeerConnection, PeerConnectionError, connect_with_retry
from .peer_server import PeerListener
from .player import InitiatorBehavior, Player, ResponderBehavior, create_player
from .state import ExchangePhase, ExchangeState, MessageIdGenerator, Mode, Role


logger = logging.getLogger(__name__)

MessageSource = Callable[[int], str]


def automatic_message(index: int) -> str:
    """Conteúdo gerado automaticamente para a rodada ``index`` (1-based)."""
    return f"Message {index}"


class ExchangeSession(ABC):
    """Base das sessões: ``run`` leva o estado até ``COMPLETE`` e libera os recursos.

    Subclasses implementam ``_open`` (preparar os dois lados), ``_exchange`` (as
    rodadas) e ``_release`` (liberar o que ``_open`` adquiriu). Erros de conexão e de
    E/S viram log + ``state.error``; ``KeyboardInterrupt`` libera os recursos e segue
    adiante.
    """

    role: Role = Role.INITIATOR

    def __init__(
        self,
        settings: SessionSettings,
        message_source: Optional[MessageSource] = None,
        stop_event: Optional[threading.Event] = None,
        id_generator: Optional[MessageIdGenerator] = None,
    ) -> None:
        self.settings = settings
        self.message_source = message_source or automatic_message
        self.stop_event = stop_event or threading.Event()
        self.id_generator = id_generator
        self.state = ExchangeState(role=self.role, max_messages=settings.max_messages)

    @property
    def label(self) -> str:
        return self.role.value

    def run(self) -> ExchangeState:
        if self.state.phase is not ExchangePhase.IDLE:
            logger.debug("[%s] sessão já executada; ignorando chamada extra.", self.label)
            return self.state

        error: Optional[str] = None
        try:
            self._open()
            self.state.begin()
            logger.info("[%s] Iniciando troca de %d mensagens", self.label, self.state.max_messages)
            self._exchange()
        except PeerConnectionError as exc:
            error = str(exc)
            logger.error("[%s] %s", self.label, exc)
        except (OSError, ValueError) as exc:
            error = f"erro de E/S: {exc}"
            logger.error("[%s] Erro de E/S durante a troca: %s", self.label, exc)
        except KeyboardInterrupt:
            error = "interrompido"
            logger.warning("[%s] Troca interrompida", self.label)
            raise
        except Exception as exc:
            error = f"erro inesperado: {exc}"
            logger.exception("[%s] Erro inesperado; liberando recursos", self.label)
            raise
        finally:
            self._finish(error)
        return self.state

    def _finish(self, error: Optional[str]) -> None:
        if not self.state.complete(error):
            return
        logger.info("[%s] Liberando recursos...", self.label)
        self._release()
        if self.state.succeeded:
            logger.info("[%s] Comunicação concluída.", self.label)
        elif error is None:
            logger.warning(
                "[%s] Troca encerrada incompleta (%d enviadas, %d recebidas)",
                self.label,
                self.state.sent_count,
                self.state.received_count,
            )

    def _check_stop(self) -> None:
        if self.stop_event.is_set():
            raise PeerConnectionError("troca interrompida pelo stop event")

    @abstractmethod
    def _open(self) -> None: ...

    @abstractmethod
    def _exchange(self) -> None: ...

    @abstractmethod
    def _release(self) -> None: ...


class LocalSession(ExchangeSession):
    """Dois jogadores no mesmo processo, ligados por um ``MessageRouter``.

    A entrega é síncrona: quando ``send_message`` do iniciador retorna, a resposta do
    responder já foi contada.
    """

    def __init__(self, settings: SessionSettings, *args, **kwargs) -> None:
        super().__init__(settings, *args, **kwargs)
        self.router = MessageRouter()
        self.initiator: Optional[Player] = None
        self.responder: Optional[Player] = None

    @property
    def label(self) -> str:
        return self.settings.initiator_name

    def _open(self) -> None:
        self.initiator = create_player(
            self.router,
            self.settings.initiator_name,
            on_receive=InitiatorBehavior(self.state),
            id_generator=self.id_generator,
        )
        self.responder = create_player(
            self.router,
            self.settings.responder_name,
            on_receive=ResponderBehavior(max_replies=self.settings.max_messages),
            id_generator=self.id_generator,
        )

    def _exchange(self) -> None:
        for index in range(1, self.state.max_messages + 1):
            self._check_stop()
            content = self.message_source(index)
            logger.info("[%s] enviando: %s", self.initiator.name, content)
            self.initiator.send_message(self.responder.name, content)
            self.state.record_sent(content)

    def _release(self) -> None:
        for player in (self.responder, self.initiator):
            if player is not None:
                player.shutdown()


class RemoteSession(ExchangeSession):
    """Um jogador por processo, ligados por uma conexão TCP.

    O iniciador disca ``peer_host:other_port`` com retry; o responder escuta em
    ``listen_host:my_port`` e aceita um único peer. Sockets são fechados na ordem
    inversa de aquisição.
    """

    def __init__(self, settings: SessionSettings, *args, **kwargs) -> None:
        self.role = Role(settings.role)
        super().__init__(settings, *args, **kwargs)
        self._resources = ExitStack()
        self.listener: Optional[PeerListener] = None
        self.connection: Optional[PeerConnection] = None
        self.channel: Optional[PeerChannel] = None
        self.player: Optional[Player] = None
        self.responder_behavior: Optional[ResponderBehavior] = None

    def _open(self) -> None:
        settings = self.settings
        if self.role is Role.INITIATOR:
            self.connection = connect_with_retry(
                settings.peer_host,
                settings.other_port,
                max_attempts=settings.max_connect_attempts,
                backoff_seconds=settings.connect_backoff_seconds,
                connect_timeout=settings.connect_timeout,
                read_timeout=settings.read_timeout,
                stop_event=self.stop_event,
            )
            self._resources.callback(self.connection.close)
            on_receive = InitiatorBehavior(self.state)
        else:
            self.listener = PeerListener(
                settings.listen_host,
                settings.my_port,
                poll_interval=settings.accept_poll_interval,
                read_timeout=settings.read_timeout,
            )
            self._resources.callback(self.listener.close)
            self.listener.open()
            self.connection = self.listener.accept(self.stop_event)
            self._resources.callback(self.connection.close)
            self.responder_behavior = ResponderBehavior(max_replies=settings.max_messages, state=self.state)
            on_receive = self.responder_behavior

        self.channel = PeerChannel(self.connection, settings.peer_role.value, self.id_generator)
        self.player = create_player(self.channel, self.role.value, on_receive=on_receive, id_generator=self.id_generator)
        self._resources.callback(self.player.shutdown)

    def _exchange(self) -> None:
        if self.role is Role.INITIATOR:
            self._run_initiator()
        else:
            self._run_responder()

    def _run_initiator(self) -> None:
        for index in range(1, self.state.max_messages + 1):
            self._check_stop()
            content = self.message_source(index)
            self.player.send_message(self.channel.peer_name, content)
            self.state.record_sent(content)
            # Exatamente uma resposta por rodada
            self.channel.receive_one()

    def _run_responder(self) -> None:
        # Para de ler assim que a última resposta foi produzida.
        while not self.responder_behavior.exhausted:
            self._check_stop()
            self.channel.receive_one()

    def _release(self) -> None:
        self._resources.close()


def create_session(
    settings: SessionSettings,
    message_source: Optional[MessageSource] = None,
    stop_event: Optional[threading.Event] = None,
    id_generator: Optional[MessageIdGenerator] = None,
) -> ExchangeSession:
    """Escolhe a sessão a partir de ``settings.mode``."""
    try:
        mode = Mode(settings.mode)
    except ValueError:
        raise ValueError(f"Modo inválido: {settings.mode!r}") from None
    if mode is Mode.LOCAL:
        return LocalSession(settings, message_source, stop_event, id_generator)
    return RemoteSession(settings, message_source, stop_event, id_generator)

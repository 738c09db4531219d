"""Players and their pluggable receive behaviors."""
from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .state import ExchangeState, Message, MessageIdGenerator


logger = logging.getLogger(__name__)


class Channel(Protocol):
    """Por onde um Player envia: ``MessageRouter`` (local) ou ``PeerChannel`` (TCP)."""

    def register(self, player: "Player") -> None: ...

    def unregister(self, player: Optional["Player"]) -> None: ...

    def publish(self, message: Message) -> None: ...


ReceiveHandler = Callable[["Player", Message], None]


def log_only(player: "Player", message: Message) -> None:
    """Comportamento padrão: apenas registra a mensagem recebida."""
    logger.info("[%s] recebeu: %s", player.name, message.content)


def format_reply(content: str, counter: int) -> str:
    return f"{content} [{counter}]"


class ResponderBehavior:
    """Responde cada mensagem recebida com ``conteúdo [n]``.

    O contador é deste responder (começa em 1). Com ``max_replies`` definido, nenhuma
    resposta além do limite é produzida. Se ``state`` for informado, entradas e
    respostas também são registradas nele.
    """

    def __init__(self, max_replies: Optional[int] = None, state: Optional[ExchangeState] = None) -> None:
        self.max_replies = max_replies
        self.state = state
        self.reply_counter = 0

    @property
    def exhausted(self) -> bool:
        return self.max_replies is not None and self.reply_counter >= self.max_replies

    def __call__(self, player: "Player", message: Message) -> None:
        log_only(player, message)
        if self.exhausted:
            logger.warning(
                "[%s] limite de %d respostas atingido; mensagem de %s ignorada",
                player.name,
                self.max_replies,
                message.sender,
            )
            return
        reply = format_reply(message.content, self.reply_counter + 1)
        player.send_message(message.sender, reply)
        # Só conta depois que a resposta saiu
        self.reply_counter += 1
        if self.state is not None:
            self.state.record_received(message.content)
            self.state.record_sent(reply)


class InitiatorBehavior:
    """Conta as respostas recebidas no ``ExchangeState`` compartilhado.

    Ao chegar em ``max_messages`` apenas avisa no log; quem encerra o envio é o loop
    da sessão.
    """

    def __init__(self, state: ExchangeState) -> None:
        self.state = state

    def __call__(self, player: "Player", message: Message) -> None:
        log_only(player, message)
        self.state.record_received(message.content)
        if self.state.all_received:
            logger.info("[%s] recebeu todas as respostas. Comunicação concluída.", player.name)


class Player:
    """Representa um jogador identificado por nome.

    Não guarda referência a outros jogadores: envia pelo ``channel`` e recebe pelo
    ``on_receive`` instalado na sessão.
    """

    def __init__(
        self,
        name: str,
        channel: Channel,
        on_receive: Optional[ReceiveHandler] = None,
        id_generator: Optional[MessageIdGenerator] = None,
    ) -> None:
        self._name = name
        self.channel = channel
        self.on_receive: ReceiveHandler = on_receive or log_only
        self._id_generator = id_generator
        self._shut_down = False

    @property
    def name(self) -> str:
        return self._name

    def send_message(self, receiver_name: str, content: str) -> None:
        message = Message.create(self._name, receiver_name, content, self._id_generator)
        logger.debug("[%s] enviando #%d para %s", self._name, message.id, receiver_name)
        self.channel.publish(message)

    def receive(self, message: Message) -> None:
        self.on_receive(self, message)

    def shutdown(self) -> None:
        """Remove o jogador do seu canal. Chamadas repetidas não fazem nada."""
        if self._shut_down:
            return
        self._shut_down = True
        self.channel.unregister(self)
        logger.debug("[%s] removido do canal", self._name)

    def __repr__(self) -> str:
        return f"Player(name={self._name!r})"


def create_player(
    channel: Channel,
    name: str,
    on_receive: Optional[ReceiveHandler] = None,
    id_generator: Optional[MessageIdGenerator] = None,
) -> Player:
    """Cria um Player e já o registra no canal."""
    player = Player(name, channel, on_receive=on_receive, id_generator=id_generator)
    channel.register(player)
    return player

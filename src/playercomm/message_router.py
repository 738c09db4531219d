"""In-process routing of messages between registered players."""
from __future__ import annotations

import logging
import threading
from collections import deque
from threading import RLock
from typing import TYPE_CHECKING, Deque, Dict, List, Optional

from .state import Message

if TYPE_CHECKING:
    from .player import Player

logger = logging.getLogger(__name__)

# Limite da fila de entrega por thread
MAX_PENDING_DELIVERIES = 1024


class InvalidPlayerError(ValueError):
    """Player ausente ou sem nome."""


def check_player(player: Optional["Player"]) -> "Player":
    if player is None:
        raise InvalidPlayerError("player não pode ser None")
    name = getattr(player, "name", None)
    if not isinstance(name, str) or not name:
        raise InvalidPlayerError("player precisa de um nome não vazio")
    return player


class MessageRouter:
    """Registro de jogadores por nome que entrega mensagens de forma síncrona.

    - ``register`` substitui qualquer associação anterior para o mesmo nome.
    - ``unregister`` é idempotente.
    - ``publish`` para um nome desconhecido apenas registra um aviso no log.

    Entregas feitas de dentro de um callback de recebimento (ex.: a resposta automática
    do responder) entram na fila da thread atual e são processadas pelo ``publish`` mais
    externo antes de ele retornar. A ordem observável é a mesma de chamadas aninhadas,
    mas a pilha não cresce com a cadeia de respostas.
    """

    def __init__(self, max_pending: int = MAX_PENDING_DELIVERIES) -> None:
        self._players: Dict[str, "Player"] = {}
        self._lock = RLock()
        self._local = threading.local()
        self.max_pending = max_pending

    def register(self, player: "Player") -> None:
        check_player(player)
        with self._lock:
            replaced = self._players.get(player.name)
            self._players[player.name] = player
        if replaced is not None and replaced is not player:
            logger.debug("[Router] %s substituído por novo registro", player.name)
        logger.debug("[Router] %s registrado", player.name)

    def unregister(self, player: Optional["Player"]) -> None:
        if player is None or not getattr(player, "name", None):
            return
        with self._lock:
            removed = self._players.pop(player.name, None)
        if removed is not None:
            logger.debug("[Router] %s removido do registro", player.name)

    def get(self, name: str) -> Optional["Player"]:
        with self._lock:
            return self._players.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._players.keys())

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._players

    def publish(self, message: Message) -> None:
        """Entrega ``message`` ao destinatário registrado, se houver."""
        pending: Optional[Deque[Message]] = getattr(self._local, "pending", None)
        if pending is not None:
            # Chamada reentrante: o publish externo desta thread faz a entrega.
            if len(pending) >= self.max_pending:
                logger.warning(
                    "[Router] fila de entrega cheia (%d); mensagem %d de %s descartada",
                    self.max_pending,
                    message.id,
                    message.sender,
                )
                return
            pending.append(message)
            return

        pending = deque([message])
        self._local.pending = pending
        try:
            while pending:
                self._deliver(pending.popleft())
        finally:
            self._local.pending = None

    def _deliver(self, message: Message) -> None:
        with self._lock:
            receiver = self._players.get(message.receiver)
        if receiver is None:
            logger.warning(
                "[Router] entrega falhou: %s tentou enviar para jogador desconhecido %s",
                message.sender,
                message.receiver,
            )
            return
        receiver.receive(message)

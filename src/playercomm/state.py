"""Shared state models for a playercomm session."""
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class Mode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Role(str, Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"


class ExchangePhase(str, Enum):
    IDLE = "idle"
    EXCHANGING = "exchanging"
    COMPLETE = "complete"


class ExchangeStateError(RuntimeError):
    """Transição inválida ou contador acima de ``max_messages``."""


class MessageIdGenerator:
    """Contador atômico de ids de mensagem, com escopo de processo."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


# Gerador compartilhado pelos Players que não recebem um explicitamente.
default_id_generator = MessageIdGenerator()


@dataclass(frozen=True, slots=True)
class Message:
    """Mensagem imutável trocada entre dois jogadores."""

    id: int
    sender: str
    receiver: str
    content: str
    timestamp: datetime

    @classmethod
    def create(
        cls,
        sender: str,
        receiver: str,
        content: str,
        id_generator: Optional[MessageIdGenerator] = None,
    ) -> "Message":
        """Monta a mensagem atribuindo o próximo id e o instante atual (UTC)."""

        generator = id_generator or default_id_generator
        return cls(
            id=generator.next_id(),
            sender=sender,
            receiver=receiver,
            content=content,
            timestamp=datetime.now(timezone.utc),
        )

    def __str__(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.sender} -> {self.receiver}: {self.content}"


@dataclass(slots=True)
class ExchangeState:
    """Máquina de estados da troca: ``IDLE -> EXCHANGING -> COMPLETE``.

    ``sent``/``received`` guardam o conteúdo trafegado pelo lado dono deste estado
    (apenas em memória). Nenhum dos dois pode passar de ``max_messages``; se isso
    acontecer é bug e ``ExchangeStateError`` é levantado.
    """

    role: Role
    max_messages: int
    phase: ExchangePhase = ExchangePhase.IDLE
    sent: List[str] = field(default_factory=list)
    received: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def sent_count(self) -> int:
        return len(self.sent)

    @property
    def received_count(self) -> int:
        return len(self.received)

    @property
    def all_received(self) -> bool:
        return self.received_count == self.max_messages

    @property
    def succeeded(self) -> bool:
        return (
            self.phase is ExchangePhase.COMPLETE
            and self.error is None
            and self.sent_count == self.max_messages
            and self.received_count == self.max_messages
        )

    def begin(self) -> None:
        if self.phase is not ExchangePhase.IDLE:
            raise ExchangeStateError(f"troca já iniciada (fase={self.phase.value})")
        self.phase = ExchangePhase.EXCHANGING

    def record_sent(self, content: str) -> None:
        self._require_exchanging()
        if self.sent_count >= self.max_messages:
            raise ExchangeStateError(f"limite de {self.max_messages} envios excedido")
        self.sent.append(content)

    def record_received(self, content: str) -> int:
        """Registra uma mensagem recebida e retorna a contagem atual (1-based)."""
        self._require_exchanging()
        if self.received_count >= self.max_messages:
            raise ExchangeStateError(f"limite de {self.max_messages} recebimentos excedido")
        self.received.append(content)
        return self.received_count

    def complete(self, error: Optional[str] = None) -> bool:
        """Entra em ``COMPLETE``. Retorna False se a sessão já estava concluída."""
        if self.phase is ExchangePhase.COMPLETE:
            return False
        self.phase = ExchangePhase.COMPLETE
        self.error = error
        return True

    def _require_exchanging(self) -> None:
        if self.phase is not ExchangePhase.EXCHANGING:
            raise ExchangeStateError(f"troca não está em andamento (fase={self.phase.value})")

"""Two-player message exchange, in one process or across two.

Módulos:
- ``config`` carrega parâmetros de arquivo JSON e valida portas, papel e contagem.
- ``state`` modela ``Message``, o gerador de ids e a máquina de estados da troca.
- ``message_router`` entrega mensagens entre jogadores do mesmo processo.
- ``player`` define o ``Player`` e os comportamentos de recebimento por papel.
- ``peer_connection`` contém o socket com framing por linha e o connect com retry.
- ``peer_server`` escuta e aceita o único peer do responder.
- ``exchange`` conduz as rodadas (local e remoto) e a liberação dos recursos.
- ``cli`` e ``main`` expõem a linha de comando.
"""
from .config import ConfigValidationError, SessionSettings
from .exchange import LocalSession, RemoteSession, automatic_message, create_session
from .message_router import InvalidPlayerError, MessageRouter
from .peer_connection import PeerClosedError, PeerConnectionError
from .player import InitiatorBehavior, Player, ResponderBehavior, create_player
from .state import ExchangePhase, ExchangeState, Message, MessageIdGenerator, Mode, Role

__all__ = [
    "ConfigValidationError",
    "ExchangePhase",
    "ExchangeState",
    "InitiatorBehavior",
    "InvalidPlayerError",
    "LocalSession",
    "Message",
    "MessageIdGenerator",
    "MessageRouter",
    "Mode",
    "PeerClosedError",
    "PeerConnectionError",
    "Player",
    "RemoteSession",
    "ResponderBehavior",
    "Role",
    "SessionSettings",
    "automatic_message",
    "create_player",
    "create_session",
]

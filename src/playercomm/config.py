"""Configuration helpers for a playercomm session.

Responsabilidades:
- Carregar parâmetros de um arquivo ``config.json`` e aplicar defaults seguros.
- Validar limites (portas, quantidade de mensagens, tentativas de conexão).
- Converter ``mode``/``role`` recebidos como texto para os enums correspondentes.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .state import Mode, Role


MAX_NAME_LENGTH = 64
MIN_PORT = 1024
MAX_PORT = 65535
DEFAULT_MAX_MESSAGES = 10
MAX_CONNECT_ATTEMPTS = 8
CONNECT_BACKOFF_SECONDS = 1.0


class ConfigValidationError(ValueError):
    """Erro de validação de configuração."""
    pass


def validate_name(name: str, label: str = "name") -> str:
    """Valida um nome de jogador (até 64 caracteres)."""
    if not isinstance(name, str):
        raise ConfigValidationError(f"{label} deve ser string, recebido: {type(name).__name__}")
    if len(name.strip()) == 0:
        raise ConfigValidationError(f"{label} não pode ser vazio")
    if len(name) > MAX_NAME_LENGTH:
        raise ConfigValidationError(f"{label} excede {MAX_NAME_LENGTH} caracteres: {len(name)}")
    return name


def validate_port(port: int, label: str = "port") -> int:
    """Valida uma porta TCP (1024-65535)."""
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigValidationError(f"{label} deve ser inteiro, recebido: {type(port).__name__}")
    if port < MIN_PORT or port > MAX_PORT:
        raise ConfigValidationError(f"{label} deve estar entre {MIN_PORT} e {MAX_PORT}, recebido: {port}")
    return port


def validate_max_messages(max_messages: int) -> int:
    """Valida a quantidade de mensagens da troca (inteiro positivo)."""
    if isinstance(max_messages, bool) or not isinstance(max_messages, int):
        raise ConfigValidationError(
            f"max_messages deve ser inteiro, recebido: {type(max_messages).__name__}"
        )
    if max_messages < 1:
        raise ConfigValidationError(f"max_messages deve ser positivo, recebido: {max_messages}")
    return max_messages


def validate_seconds(value: Any, label: str, allow_zero: bool = False, allow_none: bool = False) -> Optional[float]:
    """Valida uma duração em segundos (número, > 0 ou >= 0 com ``allow_zero``)."""
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(f"{label} deve ser numérico, recebido: {type(value).__name__}")
    if value < 0 or (value == 0 and not allow_zero):
        limit = ">= 0" if allow_zero else "> 0"
        raise ConfigValidationError(f"{label} deve ser {limit}, recebido: {value}")
    return value


def validate_role(role: Any) -> Role:
    """Aceita ``Role`` ou texto (``initiator``/``responder``, ``i``/``r``)."""
    if isinstance(role, Role):
        return role
    if isinstance(role, str):
        value = role.strip().lower()
        shortcuts = {"i": Role.INITIATOR, "r": Role.RESPONDER}
        if value in shortcuts:
            return shortcuts[value]
        try:
            return Role(value)
        except ValueError:
            pass
    raise ConfigValidationError(f"role inválido: {role!r} (use initiator ou responder)")


def validate_mode(mode: Any) -> Mode:
    if isinstance(mode, Mode):
        return mode
    if isinstance(mode, str):
        try:
            return Mode(mode.strip().lower())
        except ValueError:
            pass
    raise ConfigValidationError(f"mode inválido: {mode!r} (use local ou remote)")


@dataclass(slots=True)
class SessionSettings:
    """Conjunto de parâmetros de uma sessão de troca de mensagens.

    Os defaults servem para desenvolvimento local: os dois processos rodam na mesma
    máquina e o iniciador disca ``localhost``. ``my_port``/``other_port`` só são
    exigidas no modo remoto.
    """

    mode: Mode = Mode.LOCAL
    role: Role = Role.INITIATOR
    listen_host: str = "localhost"
    peer_host: str = "localhost"
    my_port: Optional[int] = None
    other_port: Optional[int] = None
    max_messages: int = DEFAULT_MAX_MESSAGES
    initiator_name: str = "Initiator"
    responder_name: str = "Responder"
    automatic: bool = True
    max_connect_attempts: int = MAX_CONNECT_ATTEMPTS
    connect_backoff_seconds: float = CONNECT_BACKOFF_SECONDS
    connect_timeout: float = 5.0  # segundos, por tentativa
    read_timeout: Optional[float] = None  # None = leitura bloqueante
    accept_poll_interval: float = 1.0  # segundos entre checagens do stop event
    log_level: str = "INFO"
    config_file: Optional[Path] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def peer_role(self) -> Role:
        """Papel do outro processo no modo remoto."""

        return Role.RESPONDER if validate_role(self.role) is Role.INITIATOR else Role.INITIATOR

    def validate(self) -> None:
        """Valida e normaliza todos os campos.

        Raises:
            ConfigValidationError: Se algum campo estiver fora dos limites.
        """
        self.mode = validate_mode(self.mode)
        self.role = validate_role(self.role)
        validate_max_messages(self.max_messages)

        if self.mode is Mode.REMOTE:
            if self.my_port is None or self.other_port is None:
                raise ConfigValidationError("modo remoto exige my_port e other_port")
            validate_port(self.my_port, "my_port")
            validate_port(self.other_port, "other_port")
        else:
            validate_name(self.initiator_name, "initiator_name")
            validate_name(self.responder_name, "responder_name")
            if self.initiator_name == self.responder_name:
                raise ConfigValidationError("initiator_name e responder_name devem ser diferentes")

        if isinstance(self.max_connect_attempts, bool) or not isinstance(self.max_connect_attempts, int) \
                or self.max_connect_attempts < 1:
            raise ConfigValidationError(
                f"max_connect_attempts deve ser inteiro >= 1, recebido: {self.max_connect_attempts!r}"
            )
        validate_seconds(self.connect_backoff_seconds, "connect_backoff_seconds", allow_zero=True)
        validate_seconds(self.connect_timeout, "connect_timeout")
        validate_seconds(self.read_timeout, "read_timeout", allow_none=True)
        validate_seconds(self.accept_poll_interval, "accept_poll_interval")

    @classmethod
    def from_file(cls, path: Optional[Path], validate: bool = True) -> "SessionSettings":
        """Carrega configurações de um arquivo JSON, se existir.

        Com ``validate=False`` a validação fica para quem ainda vai aplicar overrides.
        """

        if path is None or not path.exists():
            return cls(config_file=path)

        with path.open("r", encoding="utf-8") as fp:
            raw_data = json.load(fp)
        if not isinstance(raw_data, dict):
            raise ConfigValidationError(f"{path} deve conter um objeto JSON")

        known_fields = {f.name for f in fields(cls)} - {"config_file", "extra"}
        init_kwargs: Dict[str, Any] = {
            key: value for key, value in raw_data.items() if key in known_fields
        }
        extra = {key: value for key, value in raw_data.items() if key not in known_fields}
        settings = cls(**init_kwargs, config_file=path)
        settings.extra.update(extra)
        if validate:
            settings.validate()  # Valida após carregar
        return settings

    def to_dict(self) -> Dict[str, Any]:
        """Exporta a configuração atual (útil para logs e debug)."""

        return {
            "mode": self.mode.value if isinstance(self.mode, Mode) else self.mode,
            "role": self.role.value if isinstance(self.role, Role) else self.role,
            "listen_host": self.listen_host,
            "peer_host": self.peer_host,
            "my_port": self.my_port,
            "other_port": self.other_port,
            "max_messages": self.max_messages,
            "initiator_name": self.initiator_name,
            "responder_name": self.responder_name,
            "automatic": self.automatic,
            "max_connect_attempts": self.max_connect_attempts,
            "connect_backoff_seconds": self.connect_backoff_seconds,
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
            "accept_poll_interval": self.accept_poll_interval,
            "log_level": self.log_level,
            "config_file": str(self.config_file) if self.config_file else None,
            "extra": self.extra,
        }

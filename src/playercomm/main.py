"""Entry-point helper for running a playercomm session."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from .cli import ConsolePrompter
from .config import SessionSettings
from .exchange import create_session
from .state import Mode, Role


def find_default_config() -> Path | None:
    """Procura config.json no diretório do módulo ou diretório atual."""
    module_dir = Path(__file__).parent
    config_in_module = module_dir / "config.json"
    if config_in_module.exists():
        return config_in_module

    config_in_cwd = Path.cwd() / "config.json"
    if config_in_cwd.exists():
        return config_in_cwd

    return None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Troca de mensagens entre dois jogadores")
    parser.add_argument("--config", type=Path, help="Caminho para arquivo de configuração", default=None)
    parser.add_argument("--log-level", help="Override de nível de log", default=None)
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=None)
    parser.add_argument("--role", help="initiator/responder (ou i/r) no modo remoto", default=None)
    parser.add_argument("--port", dest="my_port", type=int, help="Porta local (responder escuta aqui)")
    parser.add_argument("--peer-port", dest="other_port", type=int, help="Porta do outro jogador")
    parser.add_argument("--peer-host", default=None)
    parser.add_argument("--max-messages", type=int, default=None)
    parser.add_argument("--initiator-name", default=None)
    parser.add_argument("--responder-name", default=None)
    parser.add_argument("--connect-attempts", dest="max_connect_attempts", type=int, default=None)
    parser.add_argument("--connect-backoff", dest="connect_backoff_seconds", type=float, default=None)
    content = parser.add_mutually_exclusive_group()
    content.add_argument("--auto", dest="automatic", action="store_true", default=None,
                         help="Gera 'Message i' automaticamente")
    content.add_argument("--manual", dest="automatic", action="store_false",
                         help="Pede o conteúdo de cada mensagem no terminal")
    return parser


OVERRIDABLE_FIELDS = (
    "mode",
    "role",
    "my_port",
    "other_port",
    "peer_host",
    "max_messages",
    "initiator_name",
    "responder_name",
    "max_connect_attempts",
    "connect_backoff_seconds",
    "automatic",
)


def build_settings(args: argparse.Namespace) -> SessionSettings:
    """Carrega o arquivo de configuração e aplica os overrides da linha de comando.

    Raises:
        ConfigValidationError: configuração inválida.
    """
    config_path = args.config if args.config else find_default_config()
    settings = SessionSettings.from_file(config_path, validate=False)
    for name in OVERRIDABLE_FIELDS:
        value = getattr(args, name, None)
        if value is not None:
            setattr(settings, name, value)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    settings.validate()
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None, prompter: Optional[ConsolePrompter] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        settings = build_settings(args)
    except ValueError as exc:  # ConfigValidationError ou JSON inválido
        parser.error(str(exc))

    configure_logging(settings.log_level)
    prompter = prompter or ConsolePrompter()

    sends_content = settings.mode is Mode.LOCAL or settings.role is Role.INITIATOR
    if sends_content and args.automatic is None and sys.stdin.isatty():
        settings.automatic = prompter.read_yes_no("Deseja enviar as mensagens automaticamente?")
    message_source = None if settings.automatic else prompter.message_source()

    # SIGTERM passa a se comportar como Ctrl+C para liberar os sockets
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, signal.default_int_handler)

    print(f"[Modo] {settings.mode.value}" + (f" ({settings.role.value})" if settings.mode is Mode.REMOTE else ""))
    session = create_session(settings, message_source=message_source)
    try:
        state = session.run()
    except KeyboardInterrupt:
        print("\nRecebido sinal de interrupção. Encerrando...")
        return 130

    if state.succeeded:
        print(f"Troca concluída: {state.sent_count} enviadas, {state.received_count} recebidas.")
        return 0
    print(f"Troca não concluída: {state.error or 'respostas faltando'}")
    return 1


if __name__ == "__main__":
    sys.exit(main())

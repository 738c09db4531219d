"""Console prompts for manually supplied message content."""
from __future__ import annotations

from typing import Callable, Optional


class ConsolePrompter:
    """Lê respostas do usuário no terminal.

    ``input_func``/``output`` podem ser trocados em testes para simular o teclado.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._input = input_func
        self._output = output or print

    def read_line(self, prompt: str) -> str:
        return self._input(prompt)

    def read_yes_no(self, prompt: str) -> bool:
        """Repete a pergunta até receber ``y`` ou ``n``."""
        while True:
            answer = self._input(f"{prompt} (y/n): ").strip().lower()
            if answer == "y":
                return True
            if answer == "n":
                return False
            self._output("Entrada inválida. Digite 'y' ou 'n'.")

    def message_source(self) -> Callable[[int], str]:
        """Fonte de conteúdo que pergunta ao usuário a mensagem de cada rodada."""

        def _ask(index: int) -> str:
            return self.read_line(f"Enter message {index}: ")

        return _ask

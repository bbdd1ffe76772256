"""Operator decision strategies.

Workflows never call ``input()`` directly; they ask the
:class:`Prompter` held by :class:`~isaac_setup.system.state.SystemState`.
The console prompter reads the terminal, ``--yes`` swaps in
:class:`AssumeYes`, and tests use :class:`ScriptedPrompter`.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from isaac_setup.errors import InputClosed

logger = logging.getLogger(__name__)


class Prompter:
    """Base prompter: answers every question with its default."""

    def confirm(self, question: str, default: bool) -> bool:
        return default

    def choose(
        self,
        question: str,
        options: Sequence[tuple[str, str]],
        default: str,
    ) -> str:
        """Pick one key from *options* (``(key, label)`` pairs)."""
        return default


class AssumeYes(Prompter):
    """Non-interactive: every confirmation is "yes", every choice the default."""

    def confirm(self, question: str, default: bool) -> bool:
        logger.info("Assuming yes: %s", question)
        return True


class ConsolePrompter(Prompter):
    """Interactive prompts on the terminal.

    Empty input selects the default.  End of input (closed or piped
    stdin) raises :class:`~isaac_setup.errors.InputClosed`; only
    ``--yes`` answers on the operator's behalf.
    """

    def __init__(self, read: Callable[[str], str] = input) -> None:
        self._read = read

    def _ask(self, prompt: str) -> str:
        try:
            return self._read(prompt).strip()
        except EOFError as exc:
            logger.warning("End of input at prompt: %s", prompt.strip())
            raise InputClosed(
                "No answer on standard input",
                hint="Run interactively, or pass --yes to accept every step",
            ) from exc

    def confirm(self, question: str, default: bool) -> bool:
        suffix = "(Y/n)" if default else "(y/N)"
        while True:
            answer = self._ask(f"{question} {suffix} ")
            if not answer:
                return default
            lowered = answer.lower()
            if lowered in ("y", "yes"):
                return True
            if lowered in ("n", "no"):
                return False
            print("  Please answer y or n.")

    def choose(
        self,
        question: str,
        options: Sequence[tuple[str, str]],
        default: str,
    ) -> str:
        keys = [key for key, _ in options]
        default_num = keys.index(default) + 1
        print(question)
        for num, (key, label) in enumerate(options, 1):
            marker = " (default)" if key == default else ""
            print(f"  {num}) {label}{marker}")
        while True:
            answer = self._ask(f"Enter choice [1-{len(options)}] (default: {default_num}): ")
            if not answer:
                return default
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return keys[int(answer) - 1]
            if answer in keys:
                return answer
            print(f"  Please enter a number between 1 and {len(options)}.")


class ScriptedPrompter(Prompter):
    """Replays a fixed sequence of answers and records each question.

    Parameters
    ----------
    answers : Iterable[bool | str]
        Consumed in order; when exhausted, defaults are used.
    """

    def __init__(self, answers: Iterable[bool | str] = ()) -> None:
        self._answers = list(answers)
        self.asked: list[str] = []

    def confirm(self, question: str, default: bool) -> bool:
        self.asked.append(question)
        if not self._answers:
            return default
        return bool(self._answers.pop(0))

    def choose(
        self,
        question: str,
        options: Sequence[tuple[str, str]],
        default: str,
    ) -> str:
        self.asked.append(question)
        if not self._answers:
            return default
        return str(self._answers.pop(0))

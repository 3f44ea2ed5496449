from __future__ import annotations

import logging
import shlex
import sys
from typing import Any, List, Optional, TextIO

from ..errors import CommandSyntaxError
from ..session import Session
from .commands import COMMANDS, parse_args
from .render import render

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit"}
HELP_COMMANDS = {"help", "?"}


class Console:
    """Line-oriented command loop over a :class:`Session`.

    Failures never end the session: syntax problems are reported as
    "Syntax error", everything else as "Runtime error".
    """

    def __init__(
        self,
        session: Session,
        *,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        debug: bool = False,
    ) -> None:
        self.session = session
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self._debug = debug
        self.alive = True

    def _print(self, line: str = "", *, stream: Optional[TextIO] = None) -> None:
        (stream or self._out).write(line + "\n")

    def help_lines(self) -> List[str]:
        width = max(len(n) for n in COMMANDS)
        lines = [f"{c.name.ljust(width)}  {c.help}" for c in COMMANDS.values()]
        lines.append(f"{'exit'.ljust(width)}  Exits the shell")
        return lines

    def interpret(self, line: str) -> Any:
        """Run one command line and return its result; raises on failure."""
        try:
            tokens = shlex.split(line)
        except ValueError as e:
            raise CommandSyntaxError(str(e)) from e
        if not tokens:
            return None

        name, rest = tokens[0], tokens[1:]
        if name in EXIT_COMMANDS:
            self.alive = False
            return None
        if name in HELP_COMMANDS:
            return self.help_lines()

        command = COMMANDS.get(name)
        if command is None:
            raise CommandSyntaxError(f"'{line.strip()}' not recognized")
        args = parse_args(name, rest, command.value_flags, command.bool_flags)

        if name == "kinbound" and (args.has("-w") or self.session.inbound_tracker.needs_baseline()):
            self._print("Sampling data; this may take a few seconds...")
        return command.fn(self.session, args)

    def execute(self, line: str) -> bool:
        """Run one command line, print its result or error; True on success."""
        try:
            result = self.interpret(line)
        except CommandSyntaxError as e:
            if self._debug:
                logger.exception("Syntax error in %r", line)
            self._print(f"Syntax error: {e}", stream=self._err)
            return False
        except Exception as e:
            if self._debug:
                logger.exception("Runtime error in %r", line)
            self._print(f"Runtime error: {e}", stream=self._err)
            return False

        for out_line in render(result, encoding=self.session.settings.encoding):
            self._print(out_line)
        return True

    def run(self) -> None:
        self._print("Type 'help' (or '?') to see the list of available commands")
        while self.alive:
            try:
                line = input(f"kafka:{self.session.prompt()}> ")
            except EOFError:
                self._print()
                break
            except KeyboardInterrupt:
                self._print()
                continue
            if line.strip():
                self.execute(line)

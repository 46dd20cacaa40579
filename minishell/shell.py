"""The interactive read-parse-run loop of the shell."""

from __future__ import annotations

import os
import signal
import socket
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Mapping, Optional, Sequence

from minishell.builtins import ShellExit, ShellState
from minishell.environment import Environment
from minishell.executor import run_pipeline
from minishell.expand import expand_tokens
from minishell.tokens import ShellSyntaxError, parse

Reader = Callable[[str], Optional[str]]

_GREEN = "\033[0;32m"
_BLUE = "\033[0;34m"
_WHITE = "\033[0;37m"
_RED = "\033[0;31m"

_BANNER = (
    _RED
    + "\n\n\n     #      #          #####     "
    "#     #     #####     #####     #     #     "
    "#######     #            #\n    # #    # #   "
    "        #       # #   #       #      #       "
    "   #     #     #           #            #\n  "
    " #   #  #   #          #       #  #  #       "
    "#       ##        #######     #######     #  "
    "          #\n  #     ##     #         #      "
    " #   # #       #         ##      #     #     "
    "#           #            #\n #              #"
    "        #       #    ##       #           #  "
    "   #     #     #           #            #\n# "
    "               #     #####     #     #     ##"
    "###    #####      #     #     #######     ###"
    "####      #######\n\n\n\n"
)


def banner() -> str:
    """The coloured title printed when the shell starts."""
    return _BANNER


def prompt(state: ShellState) -> str:
    """Build the ``user@host: cwd$`` prompt for *state*."""
    user = state.env.get("USER") or ""
    host = socket.gethostname().split(".")[0]
    try:
        cwd = os.getcwd()
    except OSError:
        cwd = ""
    return f"{_GREEN}{user}@{host}: {_BLUE}{cwd}{_WHITE}$ "


def _read_line(text: str) -> Optional[str]:
    try:
        return input(text)
    except EOFError:
        return None


class Shell:
    """A shell session: its state, where lines come from, and how they run."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        reader: Optional[Reader] = None,
    ) -> None:
        env = Environment.from_mapping(os.environ if environ is None else environ)
        env.init_defaults()
        self.state = ShellState(env=env, status=0)
        self._reader: Reader = reader or _read_line
        self._history: Optional[Callable[[str], None]] = None
        self._running = False
        if reader is None and sys.stdin.isatty():
            try:
                import readline
            except ImportError:
                pass
            else:
                self._history = readline.add_history

    def run_line(self, line: str) -> int:
        """Parse and run one input line; return the resulting status.

        Raises :class:`ShellExit` when the line asks the shell to leave.
        """
        if not line:
            return self.state.status
        if self._history is not None:
            self._history(line)
        try:
            tokens = parse(line)
        except ShellSyntaxError as exc:
            sys.stderr.write(f"{exc}\n")
            return self.state.status
        tokens = expand_tokens(tokens, self.state.env, self.state.status)
        self._running = True
        try:
            return run_pipeline(self.state, tokens, self._reader)
        except ShellSyntaxError as exc:
            sys.stderr.write(f"{exc}\n")
            return self.state.status
        finally:
            self._running = False

    def _on_quit(self, signum: int, frame: object) -> None:
        if self._running:
            sys.stderr.write(f"Quit: {signum}\n")

    @contextmanager
    def _signals(self) -> Iterator[None]:
        quit_signal = getattr(signal, "SIGQUIT", None)
        if quit_signal is None or threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = signal.signal(quit_signal, self._on_quit)
        try:
            yield
        finally:
            signal.signal(quit_signal, previous)

    def loop(self) -> int:
        """Read and run lines until end of input or ``exit``; return the status."""
        with self._signals():
            try:
                while True:
                    try:
                        line = self._reader(prompt(self.state))
                    except KeyboardInterrupt:
                        sys.stderr.write("\n")
                        continue
                    if line is None:
                        sys.stdout.write("exit\n")
                        sys.stdout.flush()
                        return 0
                    try:
                        self.run_line(line)
                    except KeyboardInterrupt:
                        sys.stderr.write("\n")
                        self.state.status = 0
            except ShellExit as exc:
                return exc.status


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start an interactive shell and return its exit status."""
    sys.stdout.write(banner())
    sys.stdout.flush()
    return Shell().loop()


if __name__ == "__main__":
    sys.exit(main())
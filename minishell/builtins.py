"""Commands that the shell runs itself instead of starting a program."""

from __future__ import annotations

import os
import string
from dataclasses import dataclass, field
from typing import Callable, Dict, Sequence, TextIO

from minishell.environment import Environment

_CASE_FREE = frozenset({"cd", "echo", "env", "pwd"})
_CASE_EXACT = frozenset({"exit", "unset", "export"})
_INT64_MAX = 9223372036854775807


@dataclass
class ShellState:
    """What the builtins read and change: variables and the last status."""

    env: Environment = field(default_factory=Environment)
    status: int = 0


class ShellExit(Exception):
    """Raised by ``exit`` to end the shell with :attr:`status`."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


def _lower_ascii(name: str) -> str:
    return name.translate(str.maketrans(string.ascii_uppercase, string.ascii_lowercase))


def is_builtin(name: str) -> bool:
    """Whether *name* is handled by the shell itself.

    ``cd``, ``echo``, ``env`` and ``pwd`` are recognised in any letter case.
    """
    return name in _CASE_EXACT or _lower_ascii(name) in _CASE_FREE


def _finish(state: ShellState, status: int) -> int:
    state.status = status
    return status


def parse_exit_status(text: str) -> int:
    """Turn the argument of ``exit`` into a status from 0 to 255.

    Raises ValueError when the argument is not a number that fits in a
    signed 64-bit integer.
    """
    body = text.lstrip(" ")
    sign = 1
    if body[:1] in ("-", "+"):
        if body[0] == "-":
            sign = -1
        body = body[1:]
    if len(body) > 19 or any(ch not in string.digits for ch in body):
        raise ValueError(f"{text}: numeric argument required")
    number = int(body) if body else 0
    limit = _INT64_MAX + 1 if sign == -1 else _INT64_MAX
    if number > limit:
        raise ValueError(f"{text}: numeric argument required")
    return (sign * number) % 256


def _is_echo_flag(arg: str) -> bool:
    return len(arg) >= 2 and arg[0] == "-" and all(ch == "n" for ch in arg[2:])


def echo(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """Print the arguments separated by spaces; ``-n`` drops the newline."""
    args = list(argv[1:])
    newline = True
    while args and _is_echo_flag(args[0]):
        newline = False
        args.pop(0)
    out.write(" ".join(args))
    if newline:
        out.write("\n")
    return _finish(state, 0)


def pwd(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """Print the working directory."""
    try:
        path = os.getcwd()
    except OSError:
        return _finish(state, 1)
    out.write(path + "\n")
    return _finish(state, 0)


def _home_entry(env: Environment) -> str | None:
    for entry in env:
        if entry.startswith("HOME"):
            return entry
    return None


def _change_dir(target: str, err: TextIO) -> bool:
    try:
        os.chdir(target)
        return True
    except OSError:
        pass
    err.write(f"minishell: cd: {target}")
    if not os.path.exists(target):
        err.write(": No such file or directory\n")
    else:
        try:
            fd = os.open(target, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
        except OSError:
            err.write("Permission denied\n")
        else:
            os.close(fd)
    return False


def cd(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """Change directory and record PWD and OLDPWD where they exist."""
    home = _home_entry(state.env)
    if home is None:
        err.write("minishell: cd: HOME not set\n\n")
        return _finish(state, 1)
    try:
        old = os.getcwd()
    except OSError:
        old = ""
    if len(argv) < 2:
        ok = _change_dir(home[5:], err)
    elif argv[1] == "..":
        ok = _change_dir(old[: old.rfind("/") + 1] or old, err)
    else:
        ok = _change_dir(argv[1], err)
    if state.env.find("OLDPWD") is not None:
        state.env.set(f"OLDPWD={old}")
    if state.env.find("PWD") is not None:
        try:
            state.env.set(f"PWD={os.getcwd()}")
        except OSError:
            state.env.set("PWD=")
    return _finish(state, 0 if ok else 1)


def env(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """List the variables that have a value."""
    out.write(state.env.format_env())
    return _finish(state, 0)


def export(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """Set variables, or list them all when called without arguments.

    Stops at the first invalid identifier.
    """
    if len(argv) < 2:
        out.write(state.env.format_export())
        return _finish(state, 0)
    for arg in argv[1:]:
        try:
            state.env.set(arg)
        except ValueError as exc:
            err.write(f"minishell: export: {exc}\n")
            return _finish(state, 1)
    return _finish(state, 0)


def unset(state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
    """Remove variables; stops at the first invalid identifier."""
    for arg in argv[1:]:
        try:
            state.env.unset(arg)
        except ValueError as exc:
            err.write(f"minishell: unset: {exc}\n")
            return _finish(state, 1)
    return _finish(state, 0)


def exit_command(
    state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO
) -> int:
    """Leave the shell by raising :class:`ShellExit`.

    With more than one numeric argument nothing is left and 1 is returned.
    """
    out.write("exit\n")
    if len(argv) < 2:
        raise ShellExit(state.status)
    try:
        status = parse_exit_status(argv[1])
    except ValueError as exc:
        err.write(f"minishell: exit: {exc}\n")
        _finish(state, 255)
        raise ShellExit(255) from None
    if len(argv) > 2:
        err.write("minishell: exit: too many arguments\n")
        return _finish(state, 1)
    _finish(state, status)
    raise ShellExit(status)


_Builtin = Callable[[ShellState, Sequence[str], TextIO, TextIO], int]

_CASE_FREE_TABLE: Dict[str, _Builtin] = {"pwd": pwd, "env": env, "echo": echo}
_EXACT_TABLE: Dict[str, _Builtin] = {
    "export": export,
    "unset": unset,
    "cd": cd,
    "exit": exit_command,
}


def run_builtin(
    state: ShellState, argv: Sequence[str], out: TextIO, err: TextIO
) -> int:
    """Run the builtin named by ``argv[0]`` and return its status.

    Raises ValueError when the name is not a builtin.
    """
    name = argv[0]
    if not is_builtin(name):
        raise ValueError(f"{name}: not a builtin")
    handler = _CASE_FREE_TABLE.get(_lower_ascii(name)) or _EXACT_TABLE.get(name)
    if handler is None:
        return state.status
    return handler(state, argv, out, err)
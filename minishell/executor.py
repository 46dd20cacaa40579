"""Running parsed command lines: redirections, pipes and programs."""

from __future__ import annotations

import errno
import io
import os
import subprocess
import sys
import tempfile
import threading
from contextlib import ExitStack, suppress
from dataclasses import dataclass, field
from typing import IO, Callable, List, Optional, Sequence, Tuple, Union

from minishell.builtins import ShellExit, ShellState, is_builtin, run_builtin
from minishell.environment import Environment
from minishell.expand import expand
from minishell.tokens import VAR_MARK, ShellSyntaxError, Token, TokenType

Reader = Callable[[str], Optional[str]]

_HEREDOCS = frozenset({TokenType.DELIM, TokenType.DELIM_TAB})
_OUTPUT_FLAGS = {
    TokenType.REDIR: os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    TokenType.APPEND: os.O_WRONLY | os.O_CREAT | os.O_APPEND,
}
_OUTPUT_MODE = 0o700
_SIGPIPE = 13


@dataclass(frozen=True)
class Redirection:
    """A redirection operator together with the word it applies to."""

    kind: TokenType
    target: str

    @property
    def is_heredoc(self) -> bool:
        return self.kind in _HEREDOCS


@dataclass
class Command:
    """One stage of a pipeline: its arguments and its redirections."""

    argv: List[str] = field(default_factory=list)
    redirections: List[Redirection] = field(default_factory=list)


class _StageFailed(Exception):
    """A pipeline stage could not be started."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


def split_pipeline(tokens: Sequence[Token]) -> List[List[Token]]:
    """Split tokens at every pipe into the stages of a pipeline."""
    if not tokens:
        return []
    stages: List[List[Token]] = [[]]
    for token in tokens:
        if token.type is TokenType.PIPE:
            stages.append([])
        else:
            stages[-1].append(token)
    return stages


def build_commands(tokens: Sequence[Token]) -> List[Command]:
    """Turn tokens into commands.

    The arguments are the words before the first redirection of a stage.
    Raises ShellSyntaxError when a redirection has no target.
    """
    commands: List[Command] = []
    for stage in split_pipeline(tokens):
        command = Command()
        pending: Optional[TokenType] = None
        seen_operator = False
        for token in stage:
            if pending is not None:
                if token.type.is_operator:
                    raise ShellSyntaxError("syntax error")
                command.redirections.append(Redirection(pending, token.text))
                pending = None
            elif token.type.is_redirection:
                pending = token.type
                seen_operator = True
            elif not seen_operator:
                command.argv.append(token.text)
        if pending is not None:
            raise ShellSyntaxError("syntax error")
        commands.append(command)
    return commands


def find_executable(name: str, env: Environment) -> Optional[str]:
    """Return ``dir/name`` for the first PATH directory listing *name*.

    Returns None when there is no PATH variable or no directory matches.
    """
    entry = next((item for item in env if item.startswith("PATH")), None)
    if entry is None:
        return None
    for directory in filter(None, entry[5:].split(":")):
        try:
            listing = os.listdir(directory)
        except OSError:
            continue
        if name in (".", "..") or name in listing:
            return f"{directory}/{name}"
    return None


def remove_leading_tabs(line: str) -> str:
    """Drop the tabs at the start of a here-document line."""
    return line.lstrip("\t")


def _default_reader(prompt: str) -> Optional[str]:
    try:
        return input(prompt)
    except EOFError:
        return None


def read_heredoc(
    delimiter: str,
    state: ShellState,
    strip_tabs: bool = False,
    reader: Optional[Reader] = None,
) -> str:
    """Read lines up to *delimiter* and return them as the document body.

    *reader* is called with the prompt and returns a line, or None at end
    of input. Variables in the lines are expanded.
    """
    read = reader or _default_reader
    lines: List[str] = []
    while True:
        line = read("> ")
        if line is None:
            break
        if strip_tabs:
            line = remove_leading_tabs(line)
        if line == delimiter:
            break
        if "$" in line:
            line = expand(line.replace("$", VAR_MARK), state.env, state.status)
        lines.append(line + "\n")
    return "".join(lines)


def _open_redirections(
    command: Command,
    state: ShellState,
    reader: Optional[Reader],
    stack: ExitStack,
) -> Tuple[Optional[IO[bytes]], Optional[IO[bytes]]]:
    """Read here-documents, then open files; return (stdin, stdout)."""
    stdin: Optional[IO[bytes]] = None
    stdout: Optional[IO[bytes]] = None
    for redirection in command.redirections:
        if not redirection.is_heredoc:
            continue
        try:
            body = read_heredoc(
                redirection.target,
                state,
                redirection.kind is TokenType.DELIM_TAB,
                reader,
            )
        except KeyboardInterrupt:
            sys.stderr.write("\n")
            raise _StageFailed(1) from None
        buffer = stack.enter_context(tempfile.TemporaryFile())
        buffer.write(body.encode("utf-8", "surrogateescape"))
        buffer.seek(0)
        stdin = buffer
    for redirection in command.redirections:
        try:
            if redirection.kind in _OUTPUT_FLAGS:
                fd = os.open(
                    redirection.target, _OUTPUT_FLAGS[redirection.kind], _OUTPUT_MODE
                )
                stdout = stack.enter_context(os.fdopen(fd, "wb"))
            elif redirection.kind is TokenType.INPUT:
                stdin = stack.enter_context(open(redirection.target, "rb"))
        except OSError as exc:
            sys.stderr.write(f"minishell: {redirection.target}: {exc.strerror}\n")
            raise _StageFailed(1) from None
    return stdin, stdout


def _exit_status(returncode: int) -> int:
    if returncode == 255:
        return 127
    if returncode == -_SIGPIPE:
        return 1
    if returncode < 0:
        return 0
    return returncode


def _flush_std() -> None:
    for stream in (sys.stdout, sys.stderr):
        with suppress(OSError, ValueError):
            stream.flush()


def _spawn(
    state: ShellState,
    argv: Sequence[str],
    stdin: Union[IO[bytes], int, None],
    stdout: Union[IO[bytes], int, None],
) -> Union[subprocess.Popen, int]:
    """Start a program; return the process, or a status if exec failed."""
    path = find_executable(argv[0], state.env) or argv[0]
    if "/" not in path:
        sys.stderr.write(f"minishell: {argv[0]}: command not found\n")
        raise _StageFailed(127)
    _flush_std()
    try:
        return subprocess.Popen(
            list(argv),
            executable=path,
            stdin=stdin,
            stdout=stdout,
            env=state.env.as_dict(),
        )
    except OSError as exc:
        if os.path.isdir(path):
            sys.stderr.write(f"minishell: {path}: is a directory\n")
        else:
            sys.stderr.write(f"minishell: {path}: {exc.strerror}\n")
        return 126 if exc.errno == errno.EACCES else 127


def _builtin_in_shell(
    state: ShellState, argv: Sequence[str], handle: Optional[IO[bytes]]
) -> int:
    if handle is None:
        try:
            return run_builtin(state, argv, sys.stdout, sys.stderr)
        finally:
            _flush_std()
    out = io.TextIOWrapper(handle, encoding="utf-8", write_through=True)
    try:
        return run_builtin(state, argv, out, sys.stderr)
    finally:
        out.flush()
        out.detach()


def _pipeline_builtin(
    state: ShellState,
    argv: Sequence[str],
    handle: Optional[IO[bytes]],
    fd: Optional[int],
    results: List[Optional[int]],
    index: int,
) -> None:
    if handle is not None:
        out = io.TextIOWrapper(handle, encoding="utf-8", write_through=True)
    elif fd is not None:
        out = os.fdopen(fd, "w", encoding="utf-8")
    else:
        out = sys.stdout
    try:
        status = run_builtin(state, argv, out, sys.stderr)
    except ShellExit as exc:
        status = exc.status
    except BrokenPipeError:
        status = 1
    finally:
        with suppress(OSError, ValueError):
            if handle is not None:
                out.flush()
                out.detach()
            elif fd is not None:
                out.close()
            else:
                out.flush()
    results[index] = status


def _run_single(
    state: ShellState, command: Command, reader: Optional[Reader]
) -> int:
    with ExitStack() as stack:
        try:
            stdin, stdout = _open_redirections(command, state, reader, stack)
            if not command.argv:
                state.status = 0
                return state.status
            if is_builtin(command.argv[0]):
                return _builtin_in_shell(state, command.argv, stdout)
            launched = _spawn(state, command.argv, stdin, stdout)
        except _StageFailed as failure:
            state.status = failure.status
            return state.status
        if isinstance(launched, int):
            state.status = launched
        else:
            state.status = _exit_status(launched.wait())
    return state.status


def _run_many(
    state: ShellState, commands: Sequence[Command], reader: Optional[Reader]
) -> int:
    pipes = [os.pipe() for _ in commands[1:]]
    open_fds = {fd for pair in pipes for fd in pair}
    results: List[Optional[int]] = [None] * len(commands)
    processes: List[Tuple[int, subprocess.Popen]] = []
    threads: List[threading.Thread] = []

    def release(fd: Optional[int]) -> None:
        if fd is not None and fd in open_fds:
            open_fds.discard(fd)
            os.close(fd)

    with ExitStack() as stack:
        try:
            for index, command in enumerate(commands):
                pipe_in = pipes[index - 1][0] if index else None
                pipe_out = pipes[index][1] if index < len(pipes) else None
                try:
                    stdin, stdout = _open_redirections(command, state, reader, stack)
                    if not command.argv:
                        results[index] = 0
                    elif is_builtin(command.argv[0]):
                        target_fd = pipe_out if stdout is None else None
                        if target_fd is not None:
                            open_fds.discard(target_fd)
                        child_state = ShellState(
                            env=Environment(state.env), status=state.status
                        )
                        thread = threading.Thread(
                            target=_pipeline_builtin,
                            args=(child_state, command.argv, stdout, target_fd,
                                  results, index),
                            daemon=True,
                        )
                        thread.start()
                        threads.append(thread)
                    else:
                        launched = _spawn(
                            state,
                            command.argv,
                            stdin if stdin is not None else pipe_in,
                            stdout if stdout is not None else pipe_out,
                        )
                        if isinstance(launched, int):
                            results[index] = launched
                        else:
                            processes.append((index, launched))
                except _StageFailed:
                    state.status = 1
                finally:
                    release(pipe_in)
                    release(pipe_out)
            for thread in threads:
                thread.join()
            for index, process in processes:
                results[index] = _exit_status(process.wait())
        finally:
            for fd in list(open_fds):
                release(fd)
    for result in results:
        if result is not None:
            state.status = result
    return state.status


def run_pipeline(
    state: ShellState, tokens: Sequence[Token], reader: Optional[Reader] = None
) -> int:
    """Run expanded tokens as a pipeline and return the resulting status.

    A lone builtin runs inside the shell; in a pipeline builtins work on
    a copy of the state so their changes do not last.
    """
    commands = build_commands(tokens)
    if not commands:
        return state.status
    if len(commands) == 1:
        return _run_single(state, commands[0], reader)
    return _run_many(state, commands, reader)
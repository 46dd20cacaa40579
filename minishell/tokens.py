"""Lexing and classification of shell input lines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence

VAR_MARK = "\x01"
"""Stands in for a ``$`` that is subject to variable expansion."""

_BLANKS = " \t\f\v\r"
_QUOTES = ("'", '"')
_OPERATOR_CHARS = "|<>"


class TokenType(IntEnum):
    """Kinds of token; the numeric order matters for classification."""

    ARG = 0
    CMD = 1
    DELIM = 2
    DELIM_TAB = 3
    REDIR = 4
    PIPE = 5
    INPUT = 6
    APPEND = 7

    @property
    def is_redirection(self) -> bool:
        return self in _REDIRECTIONS

    @property
    def is_operator(self) -> bool:
        return self is TokenType.PIPE or self in _REDIRECTIONS


_REDIRECTIONS = frozenset(
    {
        TokenType.REDIR,
        TokenType.APPEND,
        TokenType.INPUT,
        TokenType.DELIM,
        TokenType.DELIM_TAB,
    }
)

_OPERATORS = {
    ">>": TokenType.APPEND,
    ">": TokenType.REDIR,
    "|": TokenType.PIPE,
    "<": TokenType.INPUT,
    "<<": TokenType.DELIM,
    "<<-": TokenType.DELIM_TAB,
}


@dataclass(frozen=True)
class Token:
    """A word of the input line together with its kind."""

    text: str
    type: TokenType


class ShellSyntaxError(ValueError):
    """The line cannot be run because its operators are misplaced."""


class UnclosedQuoteError(ShellSyntaxError):
    """A quote opened on the line is never closed."""


def mark_dollars(line: str) -> str:
    """Replace every ``$`` outside single quotes with :data:`VAR_MARK`.

    Raises :class:`UnclosedQuoteError` when a quote is left open.
    """
    quote = ""
    out = []
    for ch in line:
        if not quote and ch in _QUOTES:
            quote = ch
        elif ch == quote:
            quote = ""
        out.append(VAR_MARK if ch == "$" and quote != "'" else ch)
    if quote:
        raise UnclosedQuoteError("error open quotes")
    return "".join(out)


def _read_operator(line: str, pos: int) -> tuple[str, int]:
    for op in ("<<-", "<<", ">>"):
        if line.startswith(op, pos):
            return op, pos + len(op)
    return line[pos], pos + 1


def _read_word(line: str, pos: int) -> tuple[str, int]:
    chars = []
    quote = ""
    end = len(line)
    while pos < end:
        ch = line[pos]
        following = line[pos + 1] if pos + 1 < end else ""
        if ch == VAR_MARK and not quote and following in _QUOTES:
            pass  # a $ directly before a quote is dropped
        elif not quote and ch in _QUOTES:
            quote = ch
            chars.append(ch)
        elif ch == quote:
            quote = ""
            chars.append(ch)
        elif not quote and (ch == " " or ch in _OPERATOR_CHARS):
            break
        else:
            chars.append(ch)
        pos += 1
    return "".join(chars), pos


def split_line(line: str) -> List[str]:
    """Split a line into words and operators; quotes stay in the words."""
    words = []
    pos = 0
    end = len(line)
    while True:
        while pos < end and line[pos] in _BLANKS:
            pos += 1
        if pos >= end:
            return words
        if line[pos] in _OPERATOR_CHARS:
            word, pos = _read_operator(line, pos)
        else:
            word, pos = _read_word(line, pos)
        words.append(word)


def classify(words: Iterable[str]) -> List[Token]:
    """Give each word its token type."""
    tokens: List[Token] = []
    for word in words:
        kind = _OPERATORS.get(word)
        if kind is None:
            if not tokens or tokens[-1].type > TokenType.DELIM:
                kind = TokenType.CMD
            else:
                kind = TokenType.ARG
        tokens.append(Token(word, kind))
    return tokens


def reorder_redirections(tokens: Sequence[Token]) -> List[Token]:
    """Move redirections behind the plain words of each pipeline stage.

    The relative order of words and of redirections is kept, so the
    command name ends up first in its stage.
    """
    ordered: List[str] = []
    plain: List[str] = []
    redirections: List[str] = []
    awaiting_target = False
    for token in tokens:
        if token.type is TokenType.PIPE:
            ordered.extend(plain)
            ordered.extend(redirections)
            ordered.append(token.text)
            plain, redirections = [], []
            awaiting_target = False
        elif token.type.is_redirection:
            redirections.append(token.text)
            awaiting_target = True
        elif awaiting_target:
            redirections.append(token.text)
            awaiting_target = False
        else:
            plain.append(token.text)
    ordered.extend(plain)
    ordered.extend(redirections)
    return classify(ordered)


def tokenize(line: str) -> List[Token]:
    """Split, classify and reorder an already marked line."""
    return reorder_redirections(classify(split_line(line)))


def validate(tokens: Sequence[Token]) -> Sequence[Token]:
    """Check operator placement; raise :class:`ShellSyntaxError` if wrong."""
    followers: List[Optional[Token]] = [*tokens[1:], None]
    for index, (token, after) in enumerate(zip(tokens, followers)):
        bad_follower = after is None or after.type.is_operator
        if token.type.is_redirection and bad_follower:
            raise ShellSyntaxError("syntax error")
        if token.type is TokenType.PIPE and (index == 0 or bad_follower):
            raise ShellSyntaxError("syntax error")
    return tokens


def parse(line: str) -> List[Token]:
    """Turn a raw input line into checked tokens."""
    tokens = tokenize(mark_dollars(line))
    validate(tokens)
    return tokens
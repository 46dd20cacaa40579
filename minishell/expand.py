"""Variable expansion and quote removal for tokens."""

from __future__ import annotations

import string
from typing import List, Optional, Sequence

from minishell.environment import Environment
from minishell.tokens import VAR_MARK, Token

_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_")


def variable_name_length(text: str, start: int) -> int:
    """Length of the variable name that begins at *start* in *text*."""
    if start >= len(text):
        return 0
    first = text[start]
    if first in string.digits or first == "?":
        return 1
    length = 0
    for ch in text[start:]:
        if ch not in _NAME_CHARS:
            break
        length += 1
    return length


def lookup(name: str, env: Environment, last_status: int) -> Optional[str]:
    """Value for ``$name``: ``$`` for an empty name, the status for ``?``."""
    if name == "":
        return "$"
    if name == "?":
        return str(last_status)
    return env.get(name)


def expand(text: str, env: Environment, last_status: int) -> str:
    """Replace marked dollars in *text* by the values they name."""
    out: List[str] = []
    pos = 0
    end = len(text)
    while pos < end:
        ch = text[pos]
        if ch == VAR_MARK and pos + 1 < end:
            pos += 1
            length = variable_name_length(text, pos)
            value = lookup(text[pos:pos + length], env, last_status)
            if value:
                out.append(value)
            pos += length
        else:
            out.append("$" if ch == VAR_MARK else ch)
            pos += 1
    return "".join(out)


def strip_quotes(text: str) -> str:
    """Drop the quote characters that open and close quoted stretches."""
    quote = ""
    out: List[str] = []
    for ch in text:
        if not quote and ch in ("'", '"'):
            quote = ch
        elif ch == quote:
            quote = ""
        else:
            out.append(ch)
    return "".join(out)


def expand_tokens(
    tokens: Sequence[Token], env: Environment, last_status: int
) -> List[Token]:
    """Expand and unquote every token.

    A token that held a variable and expands to nothing is dropped.
    """
    result: List[Token] = []
    for token in tokens:
        text = token.text
        if VAR_MARK in text:
            text = expand(text, env, last_status)
            if not text:
                continue
        result.append(Token(strip_quotes(text), token.type))
    return result
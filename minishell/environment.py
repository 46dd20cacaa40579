"""The shell's table of environment variables."""

from __future__ import annotations

import string
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_")
_ATOI_BLANKS = " \n\r\t\v\f"


def _name_of(entry: str) -> str:
    return entry.partition("=")[0]


def _leading_name(text: str) -> str:
    for index, ch in enumerate(text):
        if ch not in _NAME_CHARS:
            return text[:index]
    return text


def _atoi(text: str) -> int:
    """Parse an integer the lenient way, clamping overflow like the shell."""
    text = text.lstrip(_ATOI_BLANKS)
    sign = 1
    if text[:1] in ("-", "+"):
        if text[0] == "-":
            sign = -1
        text = text[1:]
    digits = ""
    for ch in text:
        if ch not in string.digits:
            break
        digits += ch
    total = int(digits) if digits else 0
    if sign == -1 and total > 2147483648:
        return 0
    if sign == 1 and total > 2147483647:
        return -1
    return sign * total


def _truncating_mod(value: int, modulus: int) -> int:
    remainder = abs(value) % modulus
    return -remainder if value < 0 else remainder


class Environment:
    """An ordered list of ``NAME=value`` (or bare ``NAME``) entries."""

    def __init__(self, entries: Iterable[str] = ()) -> None:
        self._entries: List[str] = list(entries)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "Environment":
        """Build an environment from a name-to-value mapping."""
        return cls(f"{name}={value}" for name, value in mapping.items())

    def find(self, name: str) -> Optional[int]:
        """Return the position of the entry called *name*, or None."""
        name = name.rstrip("=")
        for index, entry in enumerate(self._entries):
            if _name_of(entry) == name:
                return index
        return None

    def get(self, name: str) -> Optional[str]:
        """Return the value of *name*, or None if unset or valueless."""
        index = self.find(name)
        if index is None:
            return None
        _, sep, value = self._entries[index].partition("=")
        return value if sep else None

    def set(self, entry: str) -> None:
        """Add or update a variable the way ``export`` does.

        A bare ``NAME`` only adds the name when it is not present yet.
        Raises ValueError for an invalid identifier.
        """
        rest = entry[len(_leading_name(entry)):]
        if (
            not entry
            or (rest and rest[0] != "=")
            or entry[0] in string.digits
            or entry[0] == "="
        ):
            raise ValueError(f"`{entry}': not a valid identifier")
        name, sep, _ = entry.partition("=")
        index = self.find(name)
        if index is None:
            self._entries.append(entry)
        elif sep:
            self._entries[index] = entry

    def unset(self, name: str) -> None:
        """Remove *name*; raises ValueError for an invalid identifier."""
        if _leading_name(name) != name or (name and name[0] in string.digits):
            raise ValueError(f"`{name} ': not a valid identifier")
        if not name:
            return
        index = self.find(name)
        if index is not None:
            del self._entries[index]

    def init_defaults(self) -> None:
        """Bump SHLVL and make sure OLDPWD exists, as at shell start-up."""
        index = self.find("SHLVL")
        if index is None:
            self._entries.append("SHLVL=1")
        else:
            _, _, value = self._entries[index].partition("=")
            level = _truncating_mod(_atoi(value) + 1, 200)
            self._entries[index] = f"SHLVL={level}"
        if self.find("OLDPWD") is None:
            self._entries.append("OLDPWD")

    def sorted_for_export(self) -> List[str]:
        """Return the entries in byte order, as ``export`` lists them."""
        return sorted(self._entries)

    def format_export(self) -> str:
        """Render the listing printed by ``export`` with no arguments."""
        lines = []
        for entry in self.sorted_for_export():
            name, sep, value = entry.partition("=")
            if sep and name:
                lines.append(f'declare -x {name}="{value}"\n')
            else:
                lines.append(f"declare -x {entry}\n")
        return "".join(lines)

    def format_env(self) -> str:
        """Render the listing printed by ``env``: only entries with a value."""
        return "".join(f"{entry}\n" for entry in self._entries if "=" in entry)

    def as_dict(self) -> Dict[str, str]:
        """Return the variables that have a value, for child processes."""
        result: Dict[str, str] = {}
        for entry in self._entries:
            name, sep, value = entry.partition("=")
            if sep:
                result[name] = value
        return result

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
"""Parsing of colon-separated key/value system files such as /proc/cpuinfo."""

from __future__ import annotations

import errno
import os
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


def _parse(text: str) -> dict[str, list[str]]:
    values: dict[str, list[str]] = {}
    for raw in text.split("\n"):
        parts = raw.strip().split(":")
        if len(parts) < 2:
            continue
        tokens = [token.strip() for token in parts[1].split(" ") if token]
        values[parts[0].strip()] = tokens
    return values


class SysFileParser:
    """Key/value view of a system file; a repeated key keeps its last value."""

    def __init__(self, file_name: PathLike) -> None:
        self.file_name = os.fspath(file_name)
        try:
            with open(self.file_name, encoding="utf-8", errors="replace") as handle:
                text = handle.read()
        except OSError as exc:
            raise FileNotFoundError(
                errno.ENOENT, f"cannot open {self.file_name}", self.file_name
            ) from exc
        self._values = _parse(text)

    @classmethod
    def from_text(cls, text: str) -> SysFileParser:
        """Build a parser from file contents already in memory."""
        parser = cls.__new__(cls)
        parser.file_name = ""
        parser._values = _parse(text)
        return parser

    def value_at(self, key: str) -> list[str] | None:
        """Space-separated values stored under ``key``, or None if absent."""
        found = self._values.get(key)
        return None if found is None else list(found)
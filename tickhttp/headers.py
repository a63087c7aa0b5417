"""Header Table - Ordered response header storage with replace semantics.

Response headers arrive one raw physical line at a time from the transport
(status line, field lines, and the blank terminator). Each line is parsed with
parse_header_line() and stored in a HeaderTable, where a repeated name
overwrites the earlier value (last occurrence wins). Names are kept exactly as
received; no case normalization happens here.
"""

from __future__ import annotations

from typing import Iterator


def parse_header_line(line: str | bytes) -> tuple[str, str] | None:
    """Split a raw header line into (name, value).

    Splits on the first colon and trims exactly one leading space from the
    value. The line terminator (CRLF or LF) is not part of the value.

    Args:
        line: One raw header line as delivered by the transport.

    Returns:
        (name, value) tuple, or None if the line has no `name: value`
        structure (no colon, empty name, or nothing after the colon).
    """
    if isinstance(line, bytes):
        # Header bytes are ISO-8859-1 on the wire; latin-1 never fails to decode
        line = line.decode("latin-1")

    line = line.rstrip("\r\n")
    name, sep, value = line.partition(":")
    if not sep or not name or not value:
        return None

    if value.startswith(" "):
        value = value[1:]

    return name, value


class HeaderTable:
    """Ordered header name -> value mapping with last-write-wins replacement.

    Replacing an existing name keeps its original position in iteration order.

    Usage:
        table = HeaderTable()
        table.replace("Set-Cookie", "a=1")
        table.replace("Set-Cookie", "b=2")
        table.get("Set-Cookie")  # "b=2"
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def replace(self, name: str, value: str) -> None:
        """Store value under name, overwriting any previous value."""
        self._entries[name] = value

    def receive_line(self, line: str | bytes) -> bool:
        """Parse a raw header line and store it. Returns False if ignored."""
        parsed = parse_header_line(line)
        if parsed is None:
            return False
        self.replace(*parsed)
        return True

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._entries.get(name, default)

    def items(self) -> list[tuple[str, str]]:
        return list(self._entries.items())

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __getitem__(self, name: str) -> str:
        return self._entries[name]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"HeaderTable({self._entries!r})"

"""Parsing of the human readable ``stat`` output.

Only the GNU coreutils format is understood, e.g.::

      File: somefile.zip
      Size: 71231369   Blocks: 139128   IO Block: 4096   regular file
    Access: (0664/-rw-rw-r--)  Uid: ( 1000/   peter)   Gid: ( 1000/   peter)

Other locales or stat implementations yield ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_FILE_MODE = 0o644


@dataclass(frozen=True)
class StatDetails:
    permissions: str
    owner: str
    group: str
    file_size: int = 0


def extract_bracket_contents(line: str) -> Optional[list[str]]:
    """Return the text inside every ``(...)`` pair of ``line``."""

    if line.count("(") != line.count(")") or "(" not in line:
        return None
    items: list[str] = []
    remaining = line
    while "(" in remaining:
        start = remaining.index("(")
        end = remaining.find(")", start)
        if end == -1:
            return None
        items.append(remaining[start + 1:end])
        remaining = remaining[end + 1:]
    return items


def _parse_size(text: str) -> Optional[int]:
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped.startswith("Size:"):
            continue
        fields = stripped[len("Size:"):].split()
        if not fields:
            return None
        try:
            return int(fields[0])
        except ValueError:
            return None
    return None


def parse_stat_output(text: str) -> Optional[StatDetails]:
    access_line = next(
        (line.strip() for line in text.splitlines() if line.strip().startswith("Access:")),
        None,
    )
    if access_line is None:
        return None

    items = extract_bracket_contents(access_line)
    if not items or len(items) != 3:
        return None

    mode_part, sep, _ = items[0].partition("/")
    if not sep or len(mode_part) < 2:
        return None
    # stat prints a leading zero (0664)
    permissions = mode_part.strip()[1:]

    names: list[str] = []
    for item in items[1:]:
        _, sep, name = item.partition("/")
        if not sep:
            return None
        names.append(name.strip())

    size = _parse_size(text)
    return StatDetails(
        permissions=permissions,
        owner=names[0],
        group=names[1],
        file_size=size if size is not None else 0,
    )


def mode_from_stat(details: Optional[StatDetails], default: int = DEFAULT_FILE_MODE) -> int:
    if details is None:
        return default
    try:
        return int(details.permissions, 8)
    except ValueError:
        return default

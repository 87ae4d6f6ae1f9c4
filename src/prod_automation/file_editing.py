"""Line based text mutators used by the editFile, configureSSH and disableSwap actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


class MatchType(Enum):
    CONTAINS = "contains"
    MATCHES = "matches"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"

    @classmethod
    def from_value(cls, value: object) -> "MatchType":
        for match_type in cls:
            if match_type.value == value:
                return match_type
        if value is not None:
            logger.warning("Unrecognised matchType '%s', using 'contains'.", value)
        return cls.CONTAINS


class InsertPosition(Enum):
    ABOVE = "above"
    BELOW = "below"


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, dropping a trailing ``\\r`` per line and the empty tail."""

    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def line_matches(match_type: MatchType, match_string: str, line: str) -> bool:
    if match_type is MatchType.CONTAINS:
        return match_string in line
    if match_type is MatchType.MATCHES:
        return line == match_string
    if match_type is MatchType.STARTS_WITH:
        return line.startswith(match_string)
    return line.endswith(match_string)


@dataclass(frozen=True)
class ReplaceLineEntry:
    match_string: str
    replace_string: str
    match_type: MatchType = MatchType.CONTAINS

    @classmethod
    def from_map(cls, entry: Mapping[str, object]) -> Optional["ReplaceLineEntry"]:
        match_string = entry.get("matchString")
        replace_string = entry.get("replaceString")
        if not isinstance(match_string, str) or not isinstance(replace_string, str):
            return None
        if not match_string or not replace_string:
            return None
        return cls(match_string, replace_string, MatchType.from_value(entry.get("matchType")))


@dataclass(frozen=True)
class InsertLineEntry:
    position: InsertPosition
    match_string: str
    insert_string: str
    match_type: MatchType = MatchType.CONTAINS

    @classmethod
    def from_map(cls, entry: Mapping[str, object]) -> Optional["InsertLineEntry"]:
        match_string = entry.get("matchString")
        insert_string = entry.get("insertString")
        if not isinstance(match_string, str) or not isinstance(insert_string, str):
            return None
        if not match_string or not insert_string:
            return None

        raw_position = entry.get("position")
        if raw_position == "above":
            position = InsertPosition.ABOVE
        elif raw_position == "below":
            position = InsertPosition.BELOW
        else:
            if raw_position is None:
                logger.warning("Undefined 'position' value for insertLine entry item. Setting to 'below'.")
            else:
                logger.warning("Unrecognised 'position' value for insertLine entry item. Setting to 'below'.")
            position = InsertPosition.BELOW
        return cls(position, match_string, insert_string, MatchType.from_value(entry.get("matchType")))


@dataclass(frozen=True)
class CommentLineEntry:
    match_string: str
    comment_char: str = "#"
    match_type: MatchType = MatchType.CONTAINS

    @classmethod
    def from_map(cls, entry: Mapping[str, object]) -> Optional["CommentLineEntry"]:
        match_string = entry.get("matchString")
        comment_char = entry.get("commentChar", "#")
        if not isinstance(match_string, str) or not isinstance(comment_char, str):
            return None
        if not match_string or not comment_char:
            return None
        return cls(match_string, comment_char, MatchType.from_value(entry.get("matchType")))


def edit_lines(
    text: str,
    replace: Sequence[ReplaceLineEntry] = (),
    insert: Sequence[InsertLineEntry] = (),
    comment: Sequence[CommentLineEntry] = (),
) -> str:
    """Apply line rules to ``text``.

    Per line the last matching insert rule is remembered and the last matching
    replace or comment rule (comment rules are checked after replace rules)
    rewrites the line. A line rewritten by a replace or comment rule does not
    get its insert applied.
    """

    output: list[str] = []
    for line in split_lines(text):
        pending_insert: Optional[InsertLineEntry] = None
        for insert_item in insert:
            if line_matches(insert_item.match_type, insert_item.match_string, line):
                pending_insert = insert_item

        rewritten: Optional[str] = None
        for replace_item in replace:
            if line_matches(replace_item.match_type, replace_item.match_string, line):
                rewritten = replace_item.replace_string
        for comment_item in comment:
            if line_matches(comment_item.match_type, comment_item.match_string, line):
                rewritten = f"{comment_item.comment_char}{line}"

        if rewritten is not None:
            if pending_insert is not None:
                logger.debug("Dropping insertLine for line also matched by replace/comment: %r", line)
            output.append(rewritten)
            continue

        if pending_insert is None:
            output.append(line)
        elif pending_insert.position is InsertPosition.ABOVE:
            output.extend([pending_insert.insert_string, line])
        else:
            output.extend([line, pending_insert.insert_string])

    return "\n".join(output) + "\n"


def set_config_value(lines: list[str], key: str, value: str) -> None:
    """Set ``key value`` in sshd_config style ``lines`` in place.

    Active occurrences of ``key`` are commented out and the new line goes where
    the last active one was. Without an active occurrence it goes above the
    first commented one, and without any occurrence at the top.
    """

    insert_index: Optional[int] = None
    for index, line in enumerate(lines):
        position = line.find(key)
        if position == -1:
            continue
        following = line[position + len(key):position + len(key) + 1]
        if following not in ("", " ", "\t"):
            # a longer key such as PortForwarding
            continue
        if line[:position].strip().startswith("#"):
            if insert_index is None:
                insert_index = index
        else:
            lines[index] = f"#{line}"
            insert_index = index

    lines.insert(insert_index if insert_index is not None else 0, f"{key} {value}")


class PermitRootLogin(Enum):
    NO = "no"
    PROHIBIT_PASSWORD = "prohibit-password"
    YES = "yes"

    @classmethod
    def from_param(cls, value: object) -> "PermitRootLogin":
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("yes", "true"):
                return cls.YES
            if lowered in ("no", "false"):
                return cls.NO
            if lowered == "prohibit-password":
                return cls.PROHIBIT_PASSWORD
        raise ValueError(f"invalid PermitRootLogin value '{value}'")


@dataclass
class SshdConfigChanges:
    password_authentication: Optional[bool] = None
    permit_empty_passwords: Optional[bool] = None
    permit_root_login: Optional[PermitRootLogin] = None
    port: Optional[int] = None
    pubkey_authentication: Optional[bool] = None

    def any_set(self) -> bool:
        return any(
            value is not None
            for value in (
                self.password_authentication,
                self.permit_empty_passwords,
                self.permit_root_login,
                self.port,
                self.pubkey_authentication,
            )
        )


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def modify_sshd_config(text: str, changes: SshdConfigChanges) -> str:
    lines = split_lines(text)
    if changes.password_authentication is not None:
        set_config_value(lines, "PasswordAuthentication", _yes_no(changes.password_authentication))
    if changes.permit_empty_passwords is not None:
        set_config_value(lines, "PermitEmptyPasswords", _yes_no(changes.permit_empty_passwords))
    if changes.permit_root_login is not None:
        set_config_value(lines, "PermitRootLogin", changes.permit_root_login.value)
    if changes.port is not None:
        set_config_value(lines, "Port", str(changes.port))
    if changes.pubkey_authentication is not None:
        set_config_value(lines, "PubkeyAuthentication", _yes_no(changes.pubkey_authentication))
    return "\n".join(lines) + "\n"


def comment_out_entries(text: str, names: Iterable[str], comment_char: str = "#") -> str:
    """Comment out fstab style lines whose first field is one of ``names``."""

    names = {name for name in names if name}
    output: list[str] = []
    for line in split_lines(text):
        fields = line.split()
        if not fields or fields[0].startswith(comment_char) or fields[0] not in names:
            output.append(line)
        else:
            output.append(f"{comment_char}{line}")
    return "\n".join(output) + "\n"

"""Checks that a target host runs the distribution an action script expects.

A constraint string is either a single value or a parenthesised pair:

* ``"Debian"``: distribution id only (case-insensitive)
* ``"12"`` / ``"<12"`` / ``">=12"``: release constraint only
* ``"(>=12,Debian)"`` or ``"(Debian,12)"``: both, in either order

Only integer releases are supported. A release containing ``.`` (Ubuntu's
``20.04`` for example) parses, but never validates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ValidationParseError(ValueError):
    pass


class ReleaseOp(Enum):
    NONE = ""
    EQUAL = "="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="


_OPERATORS = {op.value: op for op in ReleaseOp if op is not ReleaseOp.NONE}


@dataclass(frozen=True)
class ReleaseConstraint:
    op: ReleaseOp = ReleaseOp.NONE
    version: Optional[str] = None

    def is_set(self) -> bool:
        return self.op is not ReleaseOp.NONE

    def is_version_okay(self, host_version: str) -> bool:
        if not self.is_set() or self.version is None:
            return True
        if "." in self.version or "." in host_version:
            logger.error("Release versions containing '.' are not supported by system validation.")
            return False
        try:
            expected = int(self.version)
        except ValueError:
            logger.error("Error parsing expected release version string: '%s'", self.version)
            return False
        try:
            actual = int(host_version.strip())
        except ValueError:
            logger.error("Error parsing actual release version string: '%s'", host_version)
            return False

        if self.op is ReleaseOp.EQUAL:
            return actual == expected
        if self.op is ReleaseOp.LESS_THAN:
            return actual < expected
        if self.op is ReleaseOp.LESS_THAN_OR_EQUAL:
            return actual <= expected
        if self.op is ReleaseOp.GREATER_THAN:
            return actual > expected
        return actual >= expected

    def __str__(self) -> str:
        if not self.is_set():
            return "any"
        return f"{self.op.value}{self.version}"


@dataclass
class SystemValidation:
    id_name: Optional[str] = None
    release: ReleaseConstraint = field(default_factory=ReleaseConstraint)

    def needs_checking(self) -> bool:
        return self.id_name is not None or self.release.is_set()

    def check_actual_distro_values(self, distro_id: str, release: str) -> bool:
        if self.id_name is not None and self.id_name.lower() != distro_id.strip().lower():
            return False
        return self.release.is_version_okay(release)

    def describe(self) -> str:
        parts = []
        if self.id_name:
            parts.append(self.id_name)
        if self.release.is_set():
            parts.append(str(self.release))
        return " ".join(parts) or "any"

    @classmethod
    def parse(cls, value: str) -> "SystemValidation":
        working = value
        if working.startswith("("):
            if not working.endswith(")"):
                raise ValidationParseError("Invalid SystemValidation string: missing closing parenthesis")
            working = working[1:-1]

        if not working:
            raise ValidationParseError("Invalid SystemValidation string: empty value")

        parsed = cls()
        first, sep, second = working.partition(",")
        items = [first.strip(), second.strip()] if sep else [working]
        for item in items:
            parsed._process_value(item)
        return parsed

    def _process_value(self, value: str) -> None:
        first_digit = next((pos for pos, char in enumerate(value) if char.isdigit()), None)
        if first_digit is None:
            # no digits, so this has to be the distribution id
            if not value:
                raise ValidationParseError("Invalid SystemValidation string: missing value")
            if not any(char.isalpha() for char in value):
                raise ValidationParseError(f"Invalid SystemValidation string: couldn't interpret '{value}'")
            self.id_name = value
            return

        if first_digit == 0:
            self.release = ReleaseConstraint(ReleaseOp.EQUAL, value)
            return

        prefix, version = value[:first_digit], value[first_digit:]
        op = _OPERATORS.get(prefix)
        if op is None:
            raise ValidationParseError(f"Invalid SystemValidation string: unsupported operator '{prefix}'")
        self.release = ReleaseConstraint(op, version)

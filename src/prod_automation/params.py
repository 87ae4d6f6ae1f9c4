from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional, Union

from .errors import InvalidParams

logger = logging.getLogger(__name__)

ParamValue = Union[None, bool, int, str, list, dict]

_TRUE_STRINGS = {"true", "yes", "1", "on"}
_FALSE_STRINGS = {"false", "no", "0", "off"}


def to_param_value(value: Any) -> ParamValue:
    """Convert a loaded YAML value into the restricted parameter value tree."""

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_param_value(item) for item in value]
    if isinstance(value, Mapping):
        converted: dict[str, ParamValue] = {}
        for key in sorted(value, key=str):
            if not isinstance(key, str):
                logger.warning("Ignoring non-string parameter key %r", key)
                continue
            converted[key] = to_param_value(value[key])
        return converted
    # floats, dates and other scalars are kept as their textual form
    return str(value)


class ParamBag:
    """Named, dynamically typed parameters of one action."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: dict[str, ParamValue] = {}
        if values:
            converted = to_param_value(dict(values))
            assert isinstance(converted, dict)
            self._values = converted

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParamBag({self._values!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParamBag):
            return NotImplemented
        return self._values == other._values

    def has(self, key: str) -> bool:
        return self._values.get(key) is not None

    def raw(self, key: str) -> ParamValue:
        return self._values.get(key)

    def as_dict(self) -> dict[str, ParamValue]:
        return dict(self._values)

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, str):
            raise InvalidParams(f"The '{key}' parameter must be a string.")
        return value

    def require_str(self, key: str) -> str:
        value = self.get_str(key)
        if not value:
            raise InvalidParams(f"The '{key}' parameter was not specified.")
        return value

    def get_str_or_int(self, key: str) -> Optional[str]:
        # unquoted permissions like 755 load as ints
        value = self._values.get(key)
        if value is None:
            return None
        if isinstance(value, bool):
            raise InvalidParams(f"The '{key}' parameter must be a string or integer.")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value
        raise InvalidParams(f"The '{key}' parameter must be a string or integer.")

    def get_bool(self, key: str, default: bool) -> bool:
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise InvalidParams(f"Unable to interpret the '{key}' parameter value '{value}' as a boolean.")

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            raise InvalidParams(f"The '{key}' parameter must be an integer.")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise InvalidParams(f"The '{key}' parameter must be an integer.")

    def get_str_list(self, key: str) -> list[str]:
        value = self._values.get(key)
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            raise InvalidParams(f"The '{key}' parameter must be a list of strings.")
        items: list[str] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (str, int)):
                raise InvalidParams(f"The '{key}' parameter must only contain strings.")
            items.append(str(item))
        return items

    def get_map_entries(self, key: str) -> list[dict[str, ParamValue]]:
        """Return ``key`` as a list of maps; a single inline map is allowed."""

        value = self._values.get(key)
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        if isinstance(value, list):
            entries: list[dict[str, ParamValue]] = []
            for item in value:
                if not isinstance(item, dict):
                    raise InvalidParams(f"Every '{key}' entry must be a mapping.")
                entries.append(item)
            return entries
        raise InvalidParams(f"The '{key}' parameter must be a mapping or a list of mappings.")

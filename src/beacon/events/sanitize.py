"""Property sanitization.

Caller-supplied property maps are reduced to the closed value set the upload
format understands: None, bool, int, float, str, list and dict. Anything else
is dropped or coerced before an entry reaches the queue.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from beacon.constants import MAX_PROPERTY_DEPTH, MAX_PROPERTY_KEYS, MAX_STRING_LENGTH

logger = logging.getLogger(__name__)

_DROP = object()


@dataclass(frozen=True)
class Sanitized:
    """Result of ``sanitize``: the cleaned value and how many strings were cut."""

    value: dict[str, Any]
    truncations: int = 0


class _Walker:
    def __init__(self, max_keys: int, max_depth: int, max_string_length: int) -> None:
        self.max_keys = max_keys
        self.max_depth = max_depth
        self.max_string_length = max_string_length
        self.truncations = 0

    def mapping(self, value: Mapping, depth: int) -> dict[str, Any]:
        if len(value) > self.max_keys:
            logger.warning("Property map has %d keys (max %d), dropping all", len(value), self.max_keys)
            return {}
        result: dict[str, Any] = {}
        for key, item in value.items():
            cleaned = self.value(item, depth + 1, in_list=False)
            if cleaned is not _DROP:
                result[str(key)] = cleaned
        return result

    def value(self, value: Any, depth: int, in_list: bool) -> Any:
        if depth > self.max_depth:
            logger.warning("Property nested deeper than %d levels, dropping", self.max_depth)
            return _DROP
        if value is None:
            return _DROP
        if isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            if len(value) > self.max_string_length:
                self.truncations += 1
                return value[: self.max_string_length]
            return value
        if isinstance(value, BaseException):
            return self.value(f"{type(value).__name__}: {value}", depth, in_list)
        if isinstance(value, Mapping):
            return self.mapping(value, depth)
        if isinstance(value, (list, tuple)):
            if in_list:
                logger.warning("Nested arrays are not supported, dropping")
                return _DROP
            items = [self.value(item, depth + 1, in_list=True) for item in value]
            return [item for item in items if item is not _DROP]
        logger.warning("Dropping property value of unsupported type %s", type(value).__name__)
        return _DROP


def sanitize(
    value: Any,
    max_keys: int = MAX_PROPERTY_KEYS,
    max_depth: int = MAX_PROPERTY_DEPTH,
    max_string_length: int = MAX_STRING_LENGTH,
) -> Sanitized:
    """
    Sanitize a property map.

    Args:
        value: Caller-supplied properties; anything but a mapping yields ``{}``
        max_keys: Maximum keys allowed in any one mapping (exceeded -> ``{}``)
        max_depth: Maximum nesting depth; deeper values are dropped
        max_string_length: Strings are truncated to this many characters

    Returns:
        Sanitized value and the number of truncated strings
    """
    if not isinstance(value, Mapping):
        if value is not None:
            logger.warning("Expected a property map, got %s", type(value).__name__)
        return Sanitized({})
    walker = _Walker(max_keys, max_depth, max_string_length)
    return Sanitized(walker.mapping(value, 0), walker.truncations)


def _group_name(value: Any) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


def sanitize_groups(groups: Any) -> dict[str, str | list[str]]:
    """
    Coerce a group-type -> group-name(s) mapping to strings.

    Scalar names become strings (booleans lowercase). Lists keep their scalar
    members only. Mappings, None and other values are dropped.
    """
    if not isinstance(groups, Mapping):
        return {}
    result: dict[str, str | list[str]] = {}
    for group_type, value in groups.items():
        if isinstance(value, (list, tuple)):
            names = [name for name in map(_group_name, value) if name is not None]
            result[str(group_type)] = names
            continue
        name = _group_name(value)
        if name is None:
            logger.warning("Dropping invalid group value for %s", group_type)
            continue
        result[str(group_type)] = name
    return result

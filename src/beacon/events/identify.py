"""Identify builder and input resolution.

An ``Identify`` collects user or group property operations and renders them as
the operation map carried by ``$identify``/``$groupidentify`` entries::

    Identify().set("plan", "pro").add("logins", 1).payload()
    # {"$set": {"plan": "pro"}, "$add": {"logins": 1}}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from beacon.constants import (
    OP_ADD,
    OP_APPEND,
    OP_CLEAR_ALL,
    OP_PREPEND,
    OP_SET,
    OP_SET_ONCE,
    OP_UNSET,
)

logger = logging.getLogger(__name__)

UNSET_VALUE = "-"

PROXY_QUEUE_KEY = "_q"


class Identify:
    """
    Builder for property operations.

    Each property may be touched by one operation only; later operations on
    the same property are ignored. ``clear_all`` must be the only operation.
    """

    def __init__(self) -> None:
        self._operations: dict[str, dict[str, Any]] = {}
        self._properties: list[str] = []

    def __len__(self) -> int:
        return len(self._operations)

    def __repr__(self) -> str:
        return f"Identify({self._operations!r})"

    def _add_operation(self, operation: str, prop: Any, value: Any) -> "Identify":
        if OP_CLEAR_ALL in self._operations:
            logger.warning("Cannot add %s on %r after $clearAll", operation, prop)
            return self
        if not isinstance(prop, str):
            logger.warning("Property name must be a string, got %r", prop)
            return self
        if prop in self._properties:
            logger.warning("Property %r already used in this identify, skipping %s", prop, operation)
            return self
        self._operations.setdefault(operation, {})[prop] = value
        self._properties.append(prop)
        return self

    def set(self, prop: str, value: Any) -> "Identify":
        return self._add_operation(OP_SET, prop, value)

    def set_once(self, prop: str, value: Any) -> "Identify":
        return self._add_operation(OP_SET_ONCE, prop, value)

    def add(self, prop: str, value: Any) -> "Identify":
        """Increment a numeric property; only numbers or numeric strings are accepted."""
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            logger.warning("Unsupported value for $add on %r: %r", prop, value)
            return self
        return self._add_operation(OP_ADD, prop, value)

    def append(self, prop: str, value: Any) -> "Identify":
        return self._add_operation(OP_APPEND, prop, value)

    def prepend(self, prop: str, value: Any) -> "Identify":
        return self._add_operation(OP_PREPEND, prop, value)

    def unset(self, prop: str) -> "Identify":
        return self._add_operation(OP_UNSET, prop, UNSET_VALUE)

    def clear_all(self) -> "Identify":
        """Remove every user property. Rejected once any other operation exists."""
        if self._properties:
            logger.warning("$clearAll must be the only operation in an identify")
            return self
        self._operations[OP_CLEAR_ALL] = UNSET_VALUE
        return self

    def payload(self) -> dict[str, Any]:
        """Operation map, copied so later builder calls do not leak into queued entries."""
        return {
            op: dict(value) if isinstance(value, dict) else value
            for op, value in self._operations.items()
        }


_OPERATIONS = {
    "set": Identify.set,
    "setOnce": Identify.set_once,
    "set_once": Identify.set_once,
    "add": Identify.add,
    "append": Identify.append,
    "prepend": Identify.prepend,
    "unset": Identify.unset,
    "clearAll": Identify.clear_all,
    "clear_all": Identify.clear_all,
}


class IdentifyInput(Enum):
    """Which shape an identify argument was recognized as."""

    BUILDER = "builder"
    PROXY_RECORDS = "proxy_records"
    INVALID = "invalid"


@dataclass(frozen=True)
class ResolvedIdentify:
    kind: IdentifyInput
    identify: Identify | None = None

    @property
    def valid(self) -> bool:
        return self.kind is not IdentifyInput.INVALID


def _replay_records(records: list[Any]) -> Identify:
    identify = Identify()
    for record in records:
        if not isinstance(record, (list, tuple)) or not record:
            logger.warning("Skipping malformed identify record %r", record)
            continue
        name, *args = record
        method = _OPERATIONS.get(name) if isinstance(name, str) else None
        if method is None:
            logger.warning("Skipping unknown identify operation %r", name)
            continue
        try:
            method(identify, *args)
        except TypeError as e:
            logger.warning("Skipping identify operation %r: %s", name, e)
    return identify


def resolve_identify(value: Any) -> ResolvedIdentify:
    """
    Classify an identify argument.

    Accepts an ``Identify`` builder or a mapping ``{"_q": [[op, *args], ...]}``
    recorded before the builder existed. Builders without operations and
    record lists that replay to nothing are invalid.

    Args:
        value: Candidate identify input

    Returns:
        ResolvedIdentify with the variant and, when valid, a builder
    """
    if isinstance(value, Identify):
        if not len(value):
            return ResolvedIdentify(IdentifyInput.INVALID)
        return ResolvedIdentify(IdentifyInput.BUILDER, value)

    if isinstance(value, Mapping) and isinstance(value.get(PROXY_QUEUE_KEY), list):
        identify = _replay_records(value[PROXY_QUEUE_KEY])
        if not len(identify):
            return ResolvedIdentify(IdentifyInput.INVALID)
        return ResolvedIdentify(IdentifyInput.PROXY_RECORDS, identify)

    return ResolvedIdentify(IdentifyInput.INVALID)

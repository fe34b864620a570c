"""Recorded client calls, replayed once the client can execute them.

Used for calls made before ``init`` (records collected by an embedding
snippet as ``[name, *args]`` lists) and for calls made while initialization
is deferred.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import cache
from typing import TYPE_CHECKING, Any, Callable, Iterable

if TYPE_CHECKING:
    from beacon.client import TelemetryClient

logger = logging.getLogger(__name__)


class CommandName(str, Enum):
    """Replayable client operations; values are the snippet spellings."""

    INIT = "init"
    ON_INIT = "onInit"
    LOG_EVENT = "logEvent"
    LOG_EVENT_WITH_TIMESTAMP = "logEventWithTimestamp"
    LOG_EVENT_WITH_GROUPS = "logEventWithGroups"
    IDENTIFY = "identify"
    GROUP_IDENTIFY = "groupIdentify"
    SET_USER_PROPERTIES = "setUserProperties"
    CLEAR_USER_PROPERTIES = "clearUserProperties"
    SET_GROUP = "setGroup"
    SET_USER_ID = "setUserId"
    SET_DEVICE_ID = "setDeviceId"
    REGENERATE_DEVICE_ID = "regenerateDeviceId"
    SET_OPT_OUT = "setOptOut"
    SET_SESSION_ID = "setSessionId"
    RESET_SESSION_ID = "resetSessionId"
    SET_VERSION_NAME = "setVersionName"

    @classmethod
    def parse(cls, name: object) -> "CommandName | None":
        """Accept the snippet spelling (``logEvent``) or the member name (``LOG_EVENT``/``log_event``)."""
        if not isinstance(name, str):
            return None
        try:
            return cls(name)
        except ValueError:
            return cls.__members__.get(name.upper())


@dataclass(frozen=True)
class Command:
    name: CommandName
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


@cache
def _dispatch_table() -> dict[CommandName, Callable[..., Any]]:
    from beacon.client import TelemetryClient

    return {
        CommandName.INIT: TelemetryClient.init,
        CommandName.ON_INIT: TelemetryClient.on_init,
        CommandName.LOG_EVENT: TelemetryClient.log_event,
        CommandName.LOG_EVENT_WITH_TIMESTAMP: TelemetryClient.log_event_with_timestamp,
        CommandName.LOG_EVENT_WITH_GROUPS: TelemetryClient.log_event_with_groups,
        CommandName.IDENTIFY: TelemetryClient.identify,
        CommandName.GROUP_IDENTIFY: TelemetryClient.group_identify,
        CommandName.SET_USER_PROPERTIES: TelemetryClient.set_user_properties,
        CommandName.CLEAR_USER_PROPERTIES: TelemetryClient.clear_user_properties,
        CommandName.SET_GROUP: TelemetryClient.set_group,
        CommandName.SET_USER_ID: TelemetryClient.set_user_id,
        CommandName.SET_DEVICE_ID: TelemetryClient.set_device_id,
        CommandName.REGENERATE_DEVICE_ID: TelemetryClient.regenerate_device_id,
        CommandName.SET_OPT_OUT: TelemetryClient.set_opt_out,
        CommandName.SET_SESSION_ID: TelemetryClient.set_session_id,
        CommandName.RESET_SESSION_ID: TelemetryClient.reset_session_id,
        CommandName.SET_VERSION_NAME: TelemetryClient.set_version_name,
    }


class CommandQueue:
    """FIFO of recorded commands."""

    def __init__(self, commands: Iterable[Command] = ()) -> None:
        self._commands: deque[Command] = deque(commands)

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self):
        return iter(list(self._commands))

    def record(self, name: CommandName, *args: Any, **kwargs: Any) -> Command:
        command = Command(name, args, kwargs)
        self._commands.append(command)
        return command

    def extend_from_records(self, records: Iterable[Any]) -> int:
        """
        Append snippet records of the form ``[name, *args]``.

        Args:
            records: Iterable of lists/tuples; malformed or unknown ones are skipped

        Returns:
            Number of commands appended
        """
        added = 0
        for record in records:
            if not isinstance(record, (list, tuple)) or not record:
                logger.warning("Skipping malformed command record %r", record)
                continue
            name = CommandName.parse(record[0])
            if name is None:
                logger.warning("Skipping unknown command %r", record[0])
                continue
            self.record(name, *record[1:])
            added += 1
        return added

    def replay(self, client: "TelemetryClient") -> int:
        """
        Drain the queue, executing each command on ``client`` in order.

        Commands recorded while replaying (for example by a deferred client)
        are appended behind the current ones and drained too.

        Commands whose arguments do not fit the operation are skipped.

        Returns:
            Number of commands executed
        """
        table = _dispatch_table()
        executed = 0
        while self._commands:
            command = self._commands.popleft()
            try:
                table[command.name](client, *command.args, **command.kwargs)
            except TypeError as e:
                logger.warning("Skipping command %s: %s", command.name.value, e)
                continue
            executed += 1
        return executed

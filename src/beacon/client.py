"""Public call surface.

``TelemetryClient`` ties identity, the unsent queue and delivery together.
No exception escapes its public methods: invalid input is ignored (the
callback, if any, receives ``(0, "No request sent")``), delivery failures are
reported through callbacks, and persistence failures are logged.

Example::

    client = TelemetryClient()
    client.init("API_KEY", options={"batch_events": True})
    client.log_event("Signed Up", {"plan": "pro"}, callback=on_done)
"""

from __future__ import annotations

import logging
import platform
import uuid
from collections.abc import Mapping
from typing import Any, Callable

from beacon.clock import Clock, now_millis
from beacon.commands import CommandName, CommandQueue
from beacon.config import ClientOptions, load_options
from beacon.constants import (
    DEFAULT_INSTANCE,
    GROUP_IDENTIFY_EVENT,
    IDENTIFY_EVENT,
    LIBRARY_NAME,
    LIBRARY_VERSION,
    NO_REQUEST_MESSAGE,
    NO_REQUEST_STATUS,
)
from beacon.delivery import (
    AsyncioTimer,
    DeliveryScheduler,
    HttpxTransport,
    ResponseCallback,
    Timer,
    Transport,
    invoke,
)
from beacon.events import EventQueue, Identify, resolve_identify, sanitize, sanitize_groups
from beacon.identity import IdentityState
from beacon.storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

InitCallback = Callable[["TelemetryClient"], None]


def _run_init_callback(callback: InitCallback, client: "TelemetryClient") -> None:
    try:
        callback(client)
    except Exception:
        logger.exception("Init callback raised")


class TelemetryClient:
    """
    One named telemetry client.

    Construct directly or through :func:`beacon.get_instance`. Nothing is
    loaded, persisted or sent before :meth:`init`.
    """

    def __init__(
        self,
        instance_name: str = DEFAULT_INSTANCE,
        store: KeyValueStore | None = None,
        transport: Transport | None = None,
        timer: Timer | None = None,
        clock: Clock = now_millis,
    ) -> None:
        """
        Initialize TelemetryClient.

        Args:
            instance_name: Normalized instance name (namespaces storage keys)
            store: Durable store; a MemoryStore is created at init if omitted
            transport: Upload transport; an HttpxTransport is created at init if omitted
            timer: Delayed-flush timer; AsyncioTimer if omitted
            clock: Epoch-millisecond clock
        """
        self.instance_name = instance_name
        self.store = store
        self.transport = transport
        self.timer = timer or AsyncioTimer()
        self.clock = clock

        self.options = ClientOptions()
        self.api_key: str | None = None
        self.version_name: str | None = None
        self.identity: IdentityState | None = None
        self.queue: EventQueue | None = None
        self.scheduler: DeliveryScheduler | None = None

        self._initialized = False
        self._deferred = False
        self._deferred_init: tuple[str, Any, Any, InitCallback | None] | None = None
        self._deferred_commands = CommandQueue()
        self._on_init_callbacks: list[InitCallback] = []

    def __repr__(self) -> str:
        return f"TelemetryClient({self.instance_name!r}, initialized={self._initialized})"

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def deferred(self) -> bool:
        return self._deferred

    # ==================================================================
    # Initialization
    # ==================================================================

    def init(
        self,
        api_key: str,
        user_id: str | int | None = None,
        options: Mapping[str, Any] | ClientOptions | None = None,
        callback: InitCallback | None = None,
    ) -> None:
        """
        Initialize the client for a project.

        Loads the persisted identity and unsent entries, starts or resumes the
        session, and flushes anything left over. With
        ``defer_initialization`` and no persisted identity, nothing is loaded
        or written until :meth:`enable_tracking`.

        Args:
            api_key: Project API key; empty or non-string leaves the client uninitialized
            user_id: Optional user id (numbers are coerced to strings)
            options: Option mapping or ClientOptions; invalid fields fall back to defaults
            callback: Called with this client once initialization completes

        Calling ``init`` on an initialized client changes nothing; the
        callback still runs.
        """
        if self._initialized:
            logger.warning("Client %s is already initialized", self.instance_name)
            if callback is not None:
                _run_init_callback(callback, self)
            return

        if not isinstance(api_key, str) or not api_key:
            logger.error("Invalid API key, client not initialized")
            return

        opts = load_options(options)
        logging.getLogger("beacon").setLevel(opts.logging_level())
        self.options = opts
        self.api_key = api_key
        if self.store is None:
            self.store = MemoryStore(expiration_days=opts.cookie_expiration)

        self.identity = IdentityState(
            self.store,
            api_key,
            cookie_name=opts.cookie_name,
            session_timeout=opts.session_timeout,
            instance_name=self.instance_name,
        )

        if opts.defer_initialization and not self.identity.exists():
            logger.info("Initialization deferred until tracking is enabled")
            self._deferred = True
            self._deferred_init = (api_key, user_id, opts, callback)
            return

        self._complete_init(user_id, callback)

    def _complete_init(self, user_id: Any, callback: InitCallback | None) -> None:
        opts = self.options
        identity = self.identity
        record = identity.load()
        if opts.opt_out:
            record.opt_out = True
        if opts.device_id:
            record.device_id = opts.device_id
        if isinstance(user_id, (str, int, float)) and not isinstance(user_id, bool) and user_id != "":
            record.user_id = str(user_id)

        self.queue = EventQueue(
            self.store,
            identity,
            self.api_key,
            unsent_key=opts.unsent_key,
            unsent_identify_key=opts.unsent_identify_key,
            instance_name=self.instance_name,
            save_events=opts.save_events,
        )
        self.queue.load()

        if self.transport is None:
            self.transport = HttpxTransport()
        self.scheduler = DeliveryScheduler(
            self.queue,
            self.transport,
            self.timer,
            url=opts.upload_url,
            api_key=self.api_key,
            upload_batch_size=opts.upload_batch_size,
            batch_events=opts.batch_events,
            event_upload_threshold=opts.event_upload_threshold,
            event_upload_period_millis=opts.event_upload_period_millis,
            clock=self.clock,
        )
        self.scheduler.suspended = record.opt_out

        identity.ensure_session(self.clock())
        self._initialized = True
        self._deferred = False
        logger.info("Client %s initialized", self.instance_name)

        self.scheduler.send_if_ready()

        if callback is not None:
            _run_init_callback(callback, self)
        callbacks, self._on_init_callbacks = self._on_init_callbacks, []
        for fn in callbacks:
            _run_init_callback(fn, self)

    def on_init(self, fn: InitCallback) -> None:
        """Run ``fn(client)`` after initialization, or now if already initialized."""
        if self._initialized:
            _run_init_callback(fn, self)
        else:
            self._on_init_callbacks.append(fn)

    def enable_tracking(self) -> None:
        """
        Complete a deferred initialization.

        Persists the identity, then replays every call recorded while
        deferred, in order.
        """
        if not self._deferred or self._deferred_init is None:
            return
        _, user_id, _, callback = self._deferred_init
        self._deferred_init = None
        self._complete_init(user_id, callback)
        self.identity.save()
        self._deferred_commands.replay(self)

    def run_queued_commands(self, commands: CommandQueue | list[Any]) -> int:
        """
        Replay commands recorded before this client existed.

        Args:
            commands: A CommandQueue or snippet records ``[[name, *args], ...]``

        Returns:
            Number of commands executed
        """
        if not isinstance(commands, CommandQueue):
            queue = CommandQueue()
            queue.extend_from_records(commands if isinstance(commands, list) else [])
            commands = queue
        return commands.replay(self)

    # ==================================================================
    # Gating
    # ==================================================================

    def _defer(self, name: CommandName, *args: Any, **kwargs: Any) -> bool:
        if self._deferred:
            self._deferred_commands.record(name, *args, **kwargs)
            return True
        return False

    def _can_track(self, callback: ResponseCallback | None) -> bool:
        if not self._initialized:
            logger.warning("Client not initialized, entry not sent")
        elif self.identity.opt_out:
            logger.debug("Opted out, entry not sent")
        else:
            return True
        invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
        return False

    # ==================================================================
    # Entry construction
    # ==================================================================

    def _tracked(self, option: str, value: Any) -> Any:
        return value if getattr(self.options.tracking_options, option) else None

    def _build_payload(
        self,
        event_type: str,
        timestamp: int,
        session_id: int,
        event_properties: Any = None,
        user_properties: Any = None,
        group_properties: Any = None,
        groups: Any = None,
    ) -> dict[str, Any]:
        payloads = {}
        for name, value in (
            ("event_properties", event_properties),
            ("user_properties", user_properties),
            ("group_properties", group_properties),
        ):
            result = sanitize(value)
            if result.truncations:
                logger.debug("Truncated %d string values in %s", result.truncations, name)
            payloads[name] = result.value

        payload = {
            "device_id": self.identity.device_id,
            "user_id": self.identity.user_id,
            "timestamp": timestamp,
            "session_id": session_id or -1,
            "event_type": event_type,
            "version_name": self._tracked("version_name", self.version_name),
            "platform": self._tracked("platform", self.options.platform),
            "os_name": self._tracked("os_name", platform.system() or None),
            "os_version": self._tracked("os_version", platform.release() or None),
            "device_model": self._tracked("device_model", platform.machine() or None),
            "language": self._tracked("language", self.options.language),
            "api_properties": self.options.api_properties,
            **payloads,
            "groups": sanitize_groups(groups),
            "uuid": str(uuid.uuid4()),
        }
        if self.options.include_library:
            payload["library"] = {"name": LIBRARY_NAME, "version": LIBRARY_VERSION}
        return payload

    def _log(
        self,
        event_type: Any,
        event_properties: Any = None,
        user_properties: Any = None,
        group_properties: Any = None,
        groups: Any = None,
        timestamp: Any = None,
        callback: ResponseCallback | None = None,
    ) -> int:
        if not self._can_track(callback):
            return -1
        if not isinstance(event_type, str) or not event_type:
            logger.warning("Invalid event type %r, entry not sent", event_type)
            invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
            return -1

        now = self.clock()
        session_id = self.identity.ensure_session(now)
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            timestamp = now

        payload = self._build_payload(
            event_type,
            timestamp,
            session_id,
            event_properties=event_properties,
            user_properties=user_properties,
            group_properties=group_properties,
            groups=groups,
        )
        if event_type in (IDENTIFY_EVENT, GROUP_IDENTIFY_EVENT):
            entry = self.queue.append_identify(payload)
        else:
            entry = self.queue.append_event(payload)
        self.scheduler.enqueued(entry, callback)
        return entry.event_id

    # ==================================================================
    # Events
    # ==================================================================

    def log_event(
        self,
        event_type: str,
        event_properties: Mapping[str, Any] | None = None,
        callback: ResponseCallback | None = None,
    ) -> int:
        """
        Queue an event for delivery.

        Args:
            event_type: Event name (non-empty)
            event_properties: Properties, sanitized before queueing
            callback: Called once with ``(status, body)``

        Returns:
            The event id, or -1 if nothing was queued
        """
        if self._defer(CommandName.LOG_EVENT, event_type, event_properties, callback):
            return -1
        return self._log(event_type, event_properties, callback=callback)

    def log_event_with_timestamp(
        self,
        event_type: str,
        event_properties: Mapping[str, Any] | None = None,
        timestamp: int | None = None,
        callback: ResponseCallback | None = None,
    ) -> int:
        """Like :meth:`log_event` with an explicit epoch-ms timestamp (current time if not an int)."""
        if self._defer(
            CommandName.LOG_EVENT_WITH_TIMESTAMP, event_type, event_properties, timestamp, callback
        ):
            return -1
        return self._log(event_type, event_properties, timestamp=timestamp, callback=callback)

    def log_event_with_groups(
        self,
        event_type: str,
        event_properties: Mapping[str, Any] | None = None,
        groups: Mapping[str, Any] | None = None,
        callback: ResponseCallback | None = None,
    ) -> int:
        if self._defer(CommandName.LOG_EVENT_WITH_GROUPS, event_type, event_properties, groups, callback):
            return -1
        return self._log(event_type, event_properties, groups=groups, callback=callback)

    # ==================================================================
    # Identify
    # ==================================================================

    def identify(self, identify: Identify | Mapping[str, Any], callback: ResponseCallback | None = None) -> int:
        """
        Queue a user property update.

        Args:
            identify: Identify builder or snippet proxy mapping ``{"_q": [...]}``
            callback: Called once with ``(status, body)``

        Returns:
            The identify id, or -1 if nothing was queued
        """
        if self._defer(CommandName.IDENTIFY, identify, callback):
            return -1
        resolved = resolve_identify(identify)
        if not resolved.valid:
            logger.warning("Invalid identify input %r, entry not sent", identify)
            invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
            return -1
        return self._log(IDENTIFY_EVENT, user_properties=resolved.identify.payload(), callback=callback)

    def group_identify(
        self,
        group_type: str,
        group_name: Any,
        identify: Identify | Mapping[str, Any],
        callback: ResponseCallback | None = None,
    ) -> int:
        """Queue a group property update for ``group_type``/``group_name``."""
        if self._defer(CommandName.GROUP_IDENTIFY, group_type, group_name, identify, callback):
            return -1
        if not isinstance(group_type, str) or not group_type:
            logger.warning("Invalid group type %r, entry not sent", group_type)
            invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
            return -1
        if group_name is None:
            logger.warning("Missing group name for %s, entry not sent", group_type)
            invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
            return -1
        resolved = resolve_identify(identify)
        if not resolved.valid:
            logger.warning("Invalid group identify input %r, entry not sent", identify)
            invoke(callback, NO_REQUEST_STATUS, NO_REQUEST_MESSAGE)
            return -1
        return self._log(
            GROUP_IDENTIFY_EVENT,
            group_properties=resolved.identify.payload(),
            groups={group_type: group_name},
            callback=callback,
        )

    def set_user_properties(self, user_properties: Mapping[str, Any]) -> None:
        """Set each given property via an identify; an empty or invalid map is ignored."""
        if self._defer(CommandName.SET_USER_PROPERTIES, user_properties):
            return
        sanitized = sanitize(user_properties).value
        if not sanitized:
            return
        identify = Identify()
        for key, value in sanitized.items():
            identify.set(key, value)
        self.identify(identify)

    def clear_user_properties(self) -> None:
        if self._defer(CommandName.CLEAR_USER_PROPERTIES):
            return
        self.identify(Identify().clear_all())

    def set_group(self, group_type: str, group_name: Any) -> None:
        """Assign the user to a group; recorded as ``$set`` of the group on the user."""
        if self._defer(CommandName.SET_GROUP, group_type, group_name):
            return
        if not self._can_track(None):
            return
        if not isinstance(group_type, str) or not group_type:
            logger.warning("Invalid group type %r", group_type)
            return
        groups = sanitize_groups({group_type: group_name})
        if group_type not in groups:
            return
        self._log(IDENTIFY_EVENT, user_properties={"$set": groups}, groups=groups)

    # ==================================================================
    # Identity and session
    # ==================================================================

    def set_user_id(self, user_id: str | int | None) -> None:
        if self._defer(CommandName.SET_USER_ID, user_id):
            return
        if self._initialized:
            self.identity.set_user_id(user_id)

    def set_device_id(self, device_id: str) -> None:
        if self._defer(CommandName.SET_DEVICE_ID, device_id):
            return
        if self._initialized:
            self.identity.set_device_id(device_id)

    def regenerate_device_id(self) -> None:
        """Switch to a fresh random device id, for example on logout."""
        if self._defer(CommandName.REGENERATE_DEVICE_ID):
            return
        if self._initialized:
            self.identity.regenerate_device_id()

    def set_opt_out(self, enable: bool) -> None:
        """
        Stop (True) or resume (False) tracking.

        While opted out, tracking calls queue nothing and callbacks receive
        the no-request sentinel. Resuming does not send what was suppressed.
        """
        if self._defer(CommandName.SET_OPT_OUT, enable):
            return
        if not self._initialized:
            return
        self.identity.set_opt_out(enable)
        self.scheduler.suspended = bool(enable)
        if not enable:
            self.scheduler.send_if_ready()

    def set_session_id(self, session_id: int) -> None:
        if self._defer(CommandName.SET_SESSION_ID, session_id):
            return
        if self._initialized:
            self.identity.set_session_id(session_id)

    def reset_session_id(self) -> None:
        if self._defer(CommandName.RESET_SESSION_ID):
            return
        if self._initialized:
            self.identity.reset_session_id(self.clock())

    def get_session_id(self) -> int:
        if self.identity is None:
            return 0
        return self.identity.session_id

    def set_version_name(self, version_name: str) -> None:
        if self._defer(CommandName.SET_VERSION_NAME, version_name):
            return
        if not isinstance(version_name, str):
            logger.warning("Invalid version name %r", version_name)
            return
        self.version_name = version_name

    # ==================================================================
    # Delivery
    # ==================================================================

    def flush(self) -> bool:
        """
        Upload pending entries now, regardless of batching mode.

        Returns:
            True if an upload was started
        """
        if not self._initialized:
            return False
        return self.scheduler.send_events()

    def unsent_count(self) -> int:
        return self.queue.unsent_count if self.queue is not None else 0

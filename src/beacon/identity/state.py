"""Identity and session state management."""

from __future__ import annotations

import logging

from beacon.constants import DEFAULT_INSTANCE
from beacon.errors import StorageError
from beacon.identity.models import IdentityRecord, new_device_id
from beacon.storage import KeyValueStore, decode_json

logger = logging.getLogger(__name__)


# ============================================================================
# Storage keys
# ============================================================================


def identity_storage_key(cookie_name: str, api_key: str, instance_name: str = DEFAULT_INSTANCE) -> str:
    """Namespaced key of the identity record for one API key and instance."""
    key = f"{cookie_name}_{api_key[:6]}"
    if instance_name != DEFAULT_INSTANCE:
        key += f"_{instance_name}"
    return key


# ============================================================================
# Identity State
# ============================================================================


class IdentityState:
    """
    Device, user, session and counter state of one client instance.

    Loaded once from the store at startup and written back after every
    mutation. The three counters (event id, identify id, sequence number) are
    monotonic and persisted on every increment, so a reload continues from
    the same next value.

    Persistence can be switched off (deferred initialization); the in-memory
    record stays authoritative either way.
    """

    def __init__(
        self,
        store: KeyValueStore,
        api_key: str,
        cookie_name: str,
        session_timeout: int,
        instance_name: str = DEFAULT_INSTANCE,
    ) -> None:
        """
        Initialize IdentityState.

        Args:
            store: Durable store for the identity record
            api_key: Project API key (first six characters namespace the key)
            cookie_name: Base storage key name
            session_timeout: Inactivity gap (ms) after which a new session starts
            instance_name: Normalized client instance name
        """
        self.store = store
        self.session_timeout = session_timeout
        self.instance_name = instance_name
        self.storage_key = identity_storage_key(cookie_name, api_key, instance_name)
        self.legacy_key = cookie_name if instance_name == DEFAULT_INSTANCE else None
        self.record = IdentityRecord()
        self._pending_legacy_removal = False

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def _read(self, key: str) -> str | None:
        try:
            return self.store.get(key)
        except StorageError as e:
            logger.warning("Failed to read identity record %s: %s", key, e)
            return None

    def exists(self) -> bool:
        """Whether an identity record (current or legacy) is already persisted."""
        if self._read(self.storage_key):
            return True
        return bool(self.legacy_key and isinstance(decode_json(self._read(self.legacy_key)), dict))

    def load(self) -> IdentityRecord:
        """
        Load the persisted record, migrating a legacy record if needed.

        Returns:
            The loaded record; missing fields take defaults (fresh device id,
            counters at 0)
        """
        raw = self._read(self.storage_key)
        record = None

        if raw:
            legacy = decode_json(raw)
            if isinstance(legacy, dict):
                record = IdentityRecord.from_legacy(legacy)
            else:
                record = IdentityRecord.decode(raw)
        elif self.legacy_key:
            legacy = decode_json(self._read(self.legacy_key))
            if isinstance(legacy, dict):
                logger.info("Migrating identity record from legacy key %s", self.legacy_key)
                record = IdentityRecord.from_legacy(legacy)
                self._pending_legacy_removal = True

        self.record = record or IdentityRecord()
        if not self.record.device_id:
            self.record.device_id = new_device_id()
        return self.record

    def save(self) -> bool:
        """
        Persist the record. Failures are logged and reported, never raised.

        Returns:
            True if the record was written
        """
        try:
            self.store.set(self.storage_key, self.record.encode())
            if self._pending_legacy_removal and self.legacy_key:
                self.store.remove(self.legacy_key)
                self._pending_legacy_removal = False
        except StorageError as e:
            logger.warning("Failed to persist identity record: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> int:
        return self.record.session_id

    def ensure_session(self, now: int) -> int:
        """
        Return the current session id, starting a new session when needed.

        A new session (``session_id = now``) starts when there is none yet or
        the gap since the last event exceeds the session timeout. The device
        id is never touched. Updates ``last_event_time`` and persists.

        Args:
            now: Current epoch milliseconds

        Returns:
            Session id in effect after the call
        """
        record = self.record
        if (
            not record.session_id
            or not record.last_event_time
            or now - record.last_event_time > self.session_timeout
        ):
            record.session_id = now
        record.last_event_time = now
        self.save()
        return record.session_id

    def set_session_id(self, session_id: object) -> bool:
        """Set an explicit session id; non-integer values are ignored."""
        if isinstance(session_id, bool) or not isinstance(session_id, int):
            logger.warning("Ignoring invalid session id %r", session_id)
            return False
        self.record.session_id = session_id
        self.save()
        return True

    def reset_session_id(self, now: int) -> int:
        self.record.session_id = now
        self.save()
        return now

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def device_id(self) -> str:
        return self.record.device_id or ""

    @property
    def user_id(self) -> str | None:
        return self.record.user_id

    @property
    def opt_out(self) -> bool:
        return self.record.opt_out

    def set_opt_out(self, enable: bool) -> None:
        self.record.opt_out = bool(enable)
        self.save()

    def set_device_id(self, device_id: object) -> bool:
        """Replace the device id; only non-empty strings are accepted."""
        if not isinstance(device_id, str) or not device_id:
            logger.warning("Ignoring invalid device id %r", device_id)
            return False
        self.record.device_id = device_id
        self.save()
        return True

    def regenerate_device_id(self) -> str:
        """Replace the device id with a fresh random one. Counters are kept."""
        self.record.device_id = new_device_id()
        self.save()
        return self.record.device_id

    def set_user_id(self, user_id: object) -> bool:
        """
        Set or clear the user id.

        Args:
            user_id: String, number (coerced to string), or None/"" to clear

        Returns:
            True if the user id was updated
        """
        if user_id is None or user_id == "":
            self.record.user_id = None
        elif isinstance(user_id, bool) or not isinstance(user_id, (str, int, float)):
            logger.warning("Ignoring invalid user id %r", user_id)
            return False
        else:
            self.record.user_id = str(user_id)
        self.save()
        return True

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def next_event_id(self) -> int:
        """
        Increment the event counter and return the new value (persisted).

        Returns:
            New event id (monotonically increasing)
        """
        self.record.event_id += 1
        self.save()
        return self.record.event_id

    def next_identify_id(self) -> int:
        self.record.identify_id += 1
        self.save()
        return self.record.identify_id

    def next_sequence_number(self) -> int:
        """Increment the shared sequence counter that orders events and identifies."""
        self.record.sequence_number += 1
        self.save()
        return self.record.sequence_number

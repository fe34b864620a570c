"""Persisted identity/session record."""

from __future__ import annotations

import base64
import binascii
import secrets
import string
from dataclasses import dataclass

DEVICE_ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"
DEVICE_ID_LENGTH = 22

_BASE32_DIGITS = "0123456789abcdefghijklmnopqrstuv"


def new_device_id() -> str:
    """Random 22-character identifier over the URL-safe base64 alphabet."""
    return "".join(secrets.choice(DEVICE_ID_ALPHABET) for _ in range(DEVICE_ID_LENGTH))


def _to_base32(value: int | None) -> str:
    if not value or value < 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 32)
        digits.append(_BASE32_DIGITS[rem])
    return "".join(reversed(digits))


def _from_base32(text: str | None) -> int:
    if not text:
        return 0
    try:
        return int(text, 32)
    except ValueError:
        return 0


def _coerce_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


@dataclass
class IdentityRecord:
    """
    Identity and session state of one client instance.

    Encoded as a single delimiter-joined string; field order is part of the
    storage format and must never change:

    ``deviceId.base64(userId).optOut.sessionId.lastEventTime.eventId.identifyId.sequenceNumber``

    Integer fields are written in base 32, zero as ``"0"``. Readers treat
    missing trailing fields as zero/false so older records stay loadable.
    """
    device_id: str | None = None
    user_id: str | None = None
    opt_out: bool = False
    session_id: int = 0  # epoch ms, also the session start time
    last_event_time: int = 0  # epoch ms
    event_id: int = 0
    identify_id: int = 0
    sequence_number: int = 0

    def encode(self) -> str:
        """Serialize to the delimited storage format."""
        user_id = base64.b64encode((self.user_id or "").encode("utf-8")).decode("ascii")
        return ".".join(
            [
                self.device_id or "",
                user_id,
                "1" if self.opt_out else "",
                _to_base32(self.session_id),
                _to_base32(self.last_event_time),
                _to_base32(self.event_id),
                _to_base32(self.identify_id),
                _to_base32(self.sequence_number),
            ]
        )

    @classmethod
    def decode(cls, text: str) -> "IdentityRecord":
        """Deserialize from the delimited storage format (lenient)."""
        values = text.split(".")
        values += [""] * (8 - len(values))

        user_id = None
        if values[1]:
            try:
                user_id = base64.b64decode(values[1], validate=True).decode("utf-8") or None
            except (binascii.Error, UnicodeDecodeError):
                user_id = None

        return cls(
            device_id=values[0] or None,
            user_id=user_id,
            opt_out=values[2] == "1",
            session_id=_from_base32(values[3]),
            last_event_time=_from_base32(values[4]),
            event_id=_from_base32(values[5]),
            identify_id=_from_base32(values[6]),
            sequence_number=_from_base32(values[7]),
        )

    @classmethod
    def from_legacy(cls, data: dict[str, object]) -> "IdentityRecord":
        """Build from a legacy JSON record (camelCase keys, any subset present)."""
        device_id = data.get("deviceId")
        user_id = data.get("userId")
        return cls(
            device_id=device_id if isinstance(device_id, str) and device_id else None,
            user_id=str(user_id) if isinstance(user_id, (str, int)) and user_id != "" else None,
            opt_out=data.get("optOut") is True,
            session_id=_coerce_int(data.get("sessionId")),
            last_event_time=_coerce_int(data.get("lastEventTime")),
            event_id=_coerce_int(data.get("eventId")),
            identify_id=_coerce_int(data.get("identifyId")),
            sequence_number=_coerce_int(data.get("sequenceNumber")),
        )

"""
Identity and session state.

Holds device id, user id, opt-out flag, session id, last event time and the
event/identify/sequence counters, persisted as one delimited record.
"""

from beacon.identity.models import IdentityRecord, new_device_id
from beacon.identity.state import IdentityState, identity_storage_key

__all__ = [
    "IdentityRecord",
    "IdentityState",
    "identity_storage_key",
    "new_device_id",
]

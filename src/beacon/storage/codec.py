"""Base64-wrapped JSON values, the format legacy identity records were written in."""

import base64
import binascii
import json
from typing import Any


def encode_json(value: Any) -> str:
    return base64.b64encode(json.dumps(value).encode("utf-8")).decode("ascii")


def decode_json(text: str | None) -> Any:
    """Decode a value written by ``encode_json``; malformed input yields None."""
    if not text:
        return None
    try:
        return json.loads(base64.b64decode(text, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"


def hash_payload(value: Any) -> str:
    """
    Return a stable, truncated SHA-256 digest so user ids and payloads can be
    correlated across log lines without being written out.

    Strings are encoded as UTF-8, bytes are used as-is, and other objects
    (dicts of Decimals and dates included) are JSON-serialized with `str` as the
    fallback encoder.
    """

    if value is None:
        normalized = b"null"
    elif isinstance(value, bytes):
        normalized = value
    elif isinstance(value, str):
        normalized = value.encode("utf-8")
    else:
        normalized = json.dumps(value, sort_keys=True, default=str).encode("utf-8")

    return hashlib.sha256(normalized).hexdigest()[:16]


def redact_fields(payload: Mapping[str, Any], allowed_keys: Iterable[str]) -> dict[str, Any]:
    """
    Shallow copy that keeps whitelisted keys and masks everything else,
    used before logging request bodies such as budget templates.
    """

    whitelist = set(allowed_keys)
    return {key: (value if key in whitelist else REDACTED) for key, value in payload.items()}

"""
Device status change detection.

Decides whether a freshly fetched device status differs enough from the
stored one to be written back. Only a fixed set of fields is monitored.
A status that cannot be parsed counts as changed.
"""
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

MONITORED_FIELDS: Tuple[str, ...] = (
    "ssid",
    "mac",
    "usb",
    "ota_status",
    "ota_errcode",
)

_MAX_JSON_DEPTH = 3


class StatusParseError(ValueError):
    """Raised when a status value cannot be turned into a mapping."""


def parse_status_string(status: str) -> Dict[str, str]:
    """
    Parse the device's "key=value,key=value" status string.

    Pairs without a key or a value are ignored.

    Example:
        >>> parse_status_string("mac=08:f9:e0:d4:a4:04,usb=1")
        {'mac': '08:f9:e0:d4:a4:04', 'usb': '1'}
    """
    params = {}
    for pair in status.split(","):
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            params[key] = value
    return params


def normalize_status(status: Any) -> Dict[str, Any]:
    """
    Turn a status in any accepted form into a mapping.

    Accepted forms: a mapping, a JSON object string, a "key=value" string,
    or either string form wrapped in further JSON encoding (how string
    statuses end up once stored).

    Raises:
        StatusParseError: If the value has none of the accepted forms.
    """
    if isinstance(status, Mapping):
        return dict(status)

    if not isinstance(status, str):
        raise StatusParseError(f"Unsupported status type: {type(status).__name__}")

    decoded: Any = status.strip()
    # Stored statuses may be JSON-encoded more than once
    for _ in range(_MAX_JSON_DEPTH):
        if not isinstance(decoded, str):
            break
        try:
            decoded = json.loads(decoded)
        except ValueError:
            break

    if isinstance(decoded, Mapping):
        return dict(decoded)

    if isinstance(decoded, str):
        params = parse_status_string(decoded)
        if params:
            return params

    raise StatusParseError(f"Unparseable status: {status!r}")


def _field_value(status: Dict[str, Any], name: str) -> Optional[str]:
    # "1" from a status string and 1 from JSON are the same value
    value = status.get(name)
    return None if value is None else str(value)


def has_significant_change(old_status: Any, new_status: Any) -> bool:
    """
    Compare two device statuses on the monitored fields.

    Args:
        old_status: Stored status (mapping or serialized form).
        new_status: Status just fetched from the API.

    Returns:
        True if any monitored field differs, or if either status
        cannot be parsed.
    """
    try:
        old = normalize_status(old_status)
        new = normalize_status(new_status)
    except StatusParseError as e:
        logger.warning(f"Error comparing status objects, assuming change: {e}")
        return True

    for name in MONITORED_FIELDS:
        if _field_value(old, name) != _field_value(new, name):
            logger.debug(f"Status field '{name}' changed")
            return True

    return False

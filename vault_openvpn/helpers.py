"""
Common utility functions.

Provides helpers for serial number formatting, TTL durations and
revocation status checks.
"""

import re
import time
from datetime import timedelta
from typing import Any, Optional


# Duration component: number followed by an h/m/s unit, e.g. "8760h", "1.5h", "30m"
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)([hms])")
_DURATION_FULL = re.compile(r"^(?:\d+(?:\.\d+)?[hms])+$")

_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}

_SERIAL_HEX = re.compile(r"^[0-9a-fA-F]+$")


def format_serial(serial_number: int) -> str:
    """
    Format an integer certificate serial as canonical colon-separated hex.

    The serial is rendered as its minimal big-endian byte string, two
    uppercase hex digits per byte.

    Args:
        serial_number: Certificate serial as an integer

    Returns:
        Canonical serial string

    Examples:
        >>> format_serial(0x1A2B03)
        '1A:2B:03'
    """
    if serial_number < 0:
        raise ValueError(f"Serial number must not be negative: {serial_number}")

    length = max(1, (serial_number.bit_length() + 7) // 8)
    raw = serial_number.to_bytes(length, "big")
    return ":".join(f"{byte:02X}" for byte in raw)


def normalize_serial(serial: str) -> str:
    """
    Canonicalize a serial supplied as text.

    Accepts upper or lower case hex with ':' or '-' separators, the form
    Vault uses in listings and in its storage paths, as well as plain
    undelimited hex.

    Args:
        serial: Serial text as typed by an operator or returned by Vault

    Returns:
        Canonical serial string

    Raises:
        ValueError: If the text is not a hex serial
    """
    text = serial.strip()
    groups = re.split(r"[:\-]", text)

    # Undelimited hex, e.g. "1a2b03"
    if len(groups) == 1 and len(text) > 2 and _SERIAL_HEX.match(text):
        text = text.zfill(len(text) + len(text) % 2)
        groups = [text[i:i + 2] for i in range(0, len(text), 2)]

    if not groups or any(not _SERIAL_HEX.match(g) or len(g) > 2 for g in groups):
        raise ValueError(f"Invalid serial number: '{serial}'")

    return ":".join(g.upper().zfill(2) for g in groups)


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string such as "8760h", "1h30m" or "90s".

    A bare integer is taken as a number of seconds.

    Args:
        value: Duration text

    Returns:
        Parsed duration

    Raises:
        ValueError: If the text is not a valid positive duration
    """
    text = str(value).strip()

    if text.isdigit():
        seconds = float(text)
    elif _DURATION_FULL.match(text):
        seconds = sum(
            float(amount) * _UNIT_SECONDS[unit]
            for amount, unit in _DURATION_PART.findall(text)
        )
    else:
        raise ValueError(f"Invalid duration '{value}' (expected e.g. 8760h, 1h30m, 90s)")

    if seconds < 1:
        raise ValueError(f"Duration must be at least one second: '{value}'")

    return timedelta(seconds=int(seconds))


def format_duration(duration: timedelta) -> str:
    """
    Format a duration the way Vault and Go print them, e.g. "8760h0m0s".

    Args:
        duration: Duration to format

    Returns:
        Duration string accepted by the Vault API
    """
    total = int(duration.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def parse_revocation_time(value: Any) -> Optional[int]:
    """
    Parse the revocation_time field of a Vault certificate record.

    Args:
        value: Raw JSON value (int, float, numeric string or None)

    Returns:
        Epoch seconds, or None if the field is absent

    Raises:
        ValueError: If the value is not numeric
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"revocation_time is not numeric: {value!r}")
    if isinstance(value, str):
        value = float(value.strip())
    if not isinstance(value, (int, float)):
        raise ValueError(f"revocation_time is not numeric: {value!r}")

    try:
        return int(value)
    except OverflowError as e:
        raise ValueError(f"revocation_time is out of range: {value!r}") from e


def is_revoked(revocation_time: Optional[int], now: Optional[float] = None) -> bool:
    """
    Check whether a revocation timestamp marks a certificate as revoked.

    A certificate is revoked when the timestamp is set, positive and not in
    the future. Expiry is not taken into account.

    Args:
        revocation_time: Epoch seconds recorded by the CA, or None
        now: Current epoch seconds (defaults to the wall clock)

    Returns:
        True if the certificate is revoked
    """
    if revocation_time is None or revocation_time <= 0:
        return False

    if now is None:
        now = time.time()

    return revocation_time <= now

"""Trigger timestamp parsing and recurrence renewal.

Task records carry ``scheduledLocalTime`` as text with an explicit UTC
offset, e.g. ``2026-01-01T10:00:00+08:00``. The offset token is part of the
record's identity as far as users are concerned, so renewal re-renders the
advanced instant in the same offset and writes the token back verbatim.

Everything here is pure: no clock, no filesystem.
"""

import re
from datetime import datetime, timedelta, timezone

DEFAULT_OFFSET = "+08:00"

# YYYY-MM-DD-HH:mm, always interpreted in the default offset
_SHORTHAND_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})-(\d{2}):(\d{2})$")
_OFFSET_TOKEN_RE = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")
# Sub-second part of the time of day, kept verbatim on renewal
_FRACTION_RE = re.compile(r"T\d{2}:\d{2}:\d{2}([.,]\d+)")

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"
UTC_TZ = timezone.utc


class InvalidTimestampError(ValueError):
    """A scheduled time that cannot be resolved to an instant."""


def offset_token(value: str) -> str | None:
    """Return the trailing offset token (``+08:00``, ``-0500``, ``Z``) or None."""
    text = value.strip()
    # The shorthand's "-HH:mm" tail is a time, not an offset
    if _SHORTHAND_RE.match(text):
        return None
    match = _OFFSET_TOKEN_RE.search(text)
    return match.group(1) if match else None


def _tz_for_token(token: str) -> timezone:
    if token == "Z":
        return UTC_TZ
    sign = 1 if token[0] == "+" else -1
    digits = token[1:].replace(":", "")
    hours, minutes = int(digits[:2]), int(digits[2:4])
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def normalize_scheduled_time(raw: str, default_offset: str = DEFAULT_OFFSET) -> str:
    """Normalize user input into the canonical stored form.

    Accepts ISO 8601 (``2026-01-01T10:00:00+08:00``) or the shorthand
    ``YYYY-MM-DD-HH:mm``, which becomes ``YYYY-MM-DDTHH:mm:00<default_offset>``.

    Raises:
        InvalidTimestampError: If the value is in neither form or does not
            resolve to a real instant.
    """
    text = (raw or "").strip()
    if not text:
        raise InvalidTimestampError("scheduled time is empty")

    if match := _SHORTHAND_RE.match(text):
        year, month, day, hour, minute = match.groups()
        text = f"{year}-{month}-{day}T{hour}:{minute}:00{default_offset}"
    elif "T" not in text:
        raise InvalidTimestampError(
            f'Unrecognized time format: "{raw}". Use ISO 8601 or YYYY-MM-DD-HH:mm'
        )

    parse_scheduled_time(text, default_offset)
    return text


def parse_scheduled_time(value: str, default_offset: str = DEFAULT_OFFSET) -> datetime:
    """Resolve a stored ``scheduledLocalTime`` to an offset-aware instant.

    Values without an offset are taken to be in ``default_offset``.

    Raises:
        InvalidTimestampError: If the value cannot be parsed.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimestampError(f"scheduled time must be a string: {value!r}")

    text = value.strip()
    if match := _SHORTHAND_RE.match(text):
        year, month, day, hour, minute = match.groups()
        text = f"{year}-{month}-{day}T{hour}:{minute}:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid scheduled time {value!r}: {e}") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_tz_for_token(default_offset))
    return parsed


def advance_scheduled_time(
    previous: str,
    interval: int,
    default_offset: str = DEFAULT_OFFSET,
) -> str:
    """Advance a canonical timestamp by ``interval`` seconds.

    The result is rendered in the same UTC offset as ``previous`` and ends
    with the original offset token, e.g.::

        >>> advance_scheduled_time("2026-01-01T10:00:00+08:00", 60)
        '2026-01-01T10:01:00+08:00'

    Raises:
        InvalidTimestampError: If ``previous`` cannot be parsed.
        ValueError: If ``interval`` is not a positive integer.
    """
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ValueError(f"interval must be a positive integer, got {interval!r}")

    instant = parse_scheduled_time(previous, default_offset)
    token = offset_token(previous) or default_offset
    following = (instant + timedelta(seconds=interval)).astimezone(_tz_for_token(token))
    fraction = _FRACTION_RE.search(previous)
    # Whole-second steps leave the sub-second part unchanged
    suffix = fraction.group(1) if fraction else ""
    return following.strftime(CANONICAL_FORMAT) + suffix + token


def format_display_time(value: str, default_offset: str = DEFAULT_OFFSET) -> str:
    """Render a stored timestamp as wall-clock text in its own offset."""
    instant = parse_scheduled_time(value, default_offset)
    return instant.strftime(DISPLAY_FORMAT)

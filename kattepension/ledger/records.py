"""Shared vocabulary for booking, stay and cage records."""

from __future__ import annotations

import datetime as dt
import secrets
import time
from enum import Enum
from typing import Any


class ValidationError(RuntimeError):
    """Raised when incoming data fails validation."""


class BookingStatus(str, Enum):
    PENDING = "pending"
    PRECHECK = "precheck"
    CONVERTED = "converted"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    # Anything written by another client that we do not recognise.
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "BookingStatus":
        """Read a stored status without ever failing."""

        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.PENDING
        if not isinstance(value, str):
            return cls.UNKNOWN
        value = LEGACY_STATUS_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def coerce(cls, value: Any) -> "BookingStatus":
        """Validate a status supplied by a caller before it is written."""

        if not isinstance(value, str):
            raise ValidationError(f"Unknown booking status: {value!r}")
        try:
            status = cls(LEGACY_STATUS_ALIASES.get(value, value))
        except ValueError:
            raise ValidationError(f"Unknown booking status: {value!r}") from None
        if status is cls.UNKNOWN:
            raise ValidationError("Status 'unknown' cannot be written")
        return status


LEGACY_STATUS_ALIASES = {"checkedOut": BookingStatus.CHECKED_OUT.value}

STAY_STATUSES = (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT)


class BookingSource(str, Enum):
    OWNER = "owner"
    INTERNAL = "internal"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "BookingSource":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown booking source: {value!r}") from None


def new_id(prefix: str) -> str:
    """Return a short unique id such as ``b_18c2f0a1b3d_4e9a1f``."""

    return f"{prefix}_{int(time.time() * 1000):x}_{secrets.token_hex(3)}"


def utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def parse_date(value: Any) -> dt.date | None:
    """Return a calendar date from an ISO string or date, or None."""

    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return dt.date.fromisoformat(value[:10])
    except ValueError:
        return None


def coerce_count(value: Any) -> int:
    """Return a positive head count, defaulting to 1."""

    try:
        count = int(value)
    except (TypeError, ValueError):
        return 1
    return count if count > 0 else 1


_FALSE_STRINGS = {"", "0", "false", "no", "off", "nej"}


def coerce_flag(value: Any) -> bool:
    """Read a checkbox value that may arrive as a form string."""

    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)

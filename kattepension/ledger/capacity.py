"""Daily capacity derived from bookings and stays.

A record occupies the nights of its half-open ``[check_in, check_out)`` range.
Accepted bookings (``precheck``) and stays that have not been checked out
both take up room; a converted booking is represented by its stay only.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Iterable

from .records import BookingStatus, coerce_count, parse_date

# Annisse has six cages.
FIXED_DAILY_CAPACITY = 6


def each_day(start: Any, end: Any) -> list[str]:
    """Return every ISO date from ``start`` to ``end``, both inclusive."""

    first = parse_date(start)
    last = parse_date(end)
    if first is None or last is None:
        return []
    return [
        (first + dt.timedelta(days=offset)).isoformat()
        for offset in range((last - first).days + 1)
    ]


def overlaps_day(check_in: Any, check_out: Any, day: Any) -> bool:
    start = parse_date(check_in)
    end = parse_date(check_out)
    target = parse_date(day)
    if start is None or end is None or target is None:
        return False
    return start <= target < end


def occupancy(record: dict) -> int:
    return coerce_count(record.get("cat_count"))


def occupies_capacity(record: dict, *, is_stay: bool) -> bool:
    status = BookingStatus.parse(record.get("status"))
    if is_stay:
        return status is not BookingStatus.CHECKED_OUT
    return status is BookingStatus.PRECHECK


def booked_on(day: str, bookings: Iterable[dict], stays: Iterable[dict]) -> int:
    total = 0
    for stay in stays:
        if occupies_capacity(stay, is_stay=True) and overlaps_day(
            stay.get("check_in"), stay.get("check_out"), day
        ):
            total += occupancy(stay)
    for booking in bookings:
        if occupies_capacity(booking, is_stay=False) and overlaps_day(
            booking.get("check_in"), booking.get("check_out"), day
        ):
            total += occupancy(booking)
    return total


def capacity_for_range(
    bookings: Iterable[dict],
    stays: Iterable[dict],
    start: Any,
    end: Any,
    *,
    capacity: int = FIXED_DAILY_CAPACITY,
) -> list[dict]:
    """Summarise occupancy for each day of the inclusive range."""

    bookings = list(bookings)
    stays = list(stays)
    days = []
    for day in each_day(start, end):
        booked = min(booked_on(day, bookings, stays), capacity)
        days.append(
            {
                "date": day,
                "booked": booked,
                "capacity": capacity,
                "free": max(0, capacity - booked),
            }
        )
    return days


__all__ = [
    "FIXED_DAILY_CAPACITY",
    "booked_on",
    "capacity_for_range",
    "each_day",
    "occupancy",
    "occupies_capacity",
    "overlaps_day",
]

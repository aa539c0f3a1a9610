from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from leaveflow.exceptions import ValidationFailed

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_WORKING_DAYS: tuple[int, ...] = (1, 2, 3, 4, 5)
UNITS_PER_DAY = 2


def calculate_units(
    start_date: date,
    end_date: date,
    *,
    working_days: Iterable[int] | None = None,
    half_day_start: bool = False,
    half_day_end: bool = False,
) -> int:
    """Count half-day units of working time between two dates, both inclusive.

    ``working_days`` holds ISO weekday numbers (Monday=1, Sunday=7). A half-day
    flag takes one unit off its boundary day only when that day is worked.
    Returns 0 when ``end_date`` precedes ``start_date``.
    """
    if end_date < start_date:
        return 0

    worked = set(working_days or DEFAULT_WORKING_DAYS)

    units = 0
    current = start_date
    one_day = timedelta(days=1)
    while current <= end_date:
        if current.isoweekday() in worked:
            units += UNITS_PER_DAY
        current += one_day

    if units == 0:
        return 0

    if half_day_start and start_date.isoweekday() in worked:
        units -= 1
    if half_day_end and end_date.isoweekday() in worked:
        units -= 1

    return max(units, 0)


def units_for_request(
    start_date: date,
    end_date: date,
    *,
    working_days: Iterable[int] | None = None,
    half_day_start: bool = False,
    half_day_end: bool = False,
) -> int:
    """Compute request units, rejecting ranges that cannot be booked.

    A request must stay within one calendar year (balances are per year) and
    must cover at least one half-day of working time.
    """
    if end_date < start_date:
        raise ValidationFailed("start_date must be on or before end_date")
    if start_date.year != end_date.year:
        raise ValidationFailed("A request cannot span two calendar years; split it at the year boundary")

    units = calculate_units(
        start_date,
        end_date,
        working_days=working_days,
        half_day_start=half_day_start,
        half_day_end=half_day_end,
    )
    if units <= 0:
        raise ValidationFailed("Request covers no working time")
    return units

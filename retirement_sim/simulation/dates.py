"""Month arithmetic on :class:`datetime.date` values.

The simulation steps one calendar month at a time and always represents a
month by its first day.

>>> month_start(date(2030, 5, 17))
datetime.date(2030, 5, 1)
>>> add_months(date(2030, 11, 1), 3)
datetime.date(2031, 2, 1)
>>> months_between(date(2030, 1, 1), date(2031, 7, 1))
18
"""

from __future__ import annotations

from datetime import date
from typing import Iterator, Union


def month_start(value: Union[date, str]) -> date:
    """Normalise a date (or ``YYYY-MM`` / ``YYYY-MM-DD`` string) to the first of its month."""
    if isinstance(value, str):
        parts = value.strip().split("-")
        if len(parts) < 2:
            raise ValueError(f"expected YYYY-MM, got {value!r}")
        return date(int(parts[0]), int(parts[1]), 1)
    return date(value.year, value.month, 1)


def add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def months_between(start: date, end: date) -> int:
    """Whole months from ``start`` to ``end`` (negative if ``end`` is earlier)."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def iter_months(start: date, end: date) -> Iterator[date]:
    """Yield the first day of every month from ``start`` to ``end`` inclusive."""
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        yield current
        current = add_months(current, 1)


def age_on(birth_date: date, on: date) -> int:
    """Completed years of age at ``on``."""
    years = on.year - birth_date.year
    if (on.month, on.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


__all__ = ["month_start", "add_months", "months_between", "iter_months", "age_on"]

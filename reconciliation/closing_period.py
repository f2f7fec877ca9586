"""
Closing period detection for month-end collections.

The source dashboard keeps publishing the closing month's figures during the
first days of the next month. A collection taken on 2026-01-04 may therefore
describe December 2025, and the snapshot built from it has to be dated
2025-12-31, not 2026-01-04.

The detector is pure: no I/O, no clock.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from reconciliation.errors import ClosingPeriodError

DateLike = Union[date, datetime, str]

_FULL_MONTH = re.compile(r'^(\d{4})-(\d{2})$')
_BARE_MONTH = re.compile(r'^(\d{1,2})$')

_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    """Gregorian leap year rule."""
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def last_day_of_month(year: int, month: int) -> int:
    """Number of days in the given month.

    Raises:
        ClosingPeriodError: if month is outside 1-12
    """
    if not 1 <= month <= 12:
        raise ClosingPeriodError(f"Month out of range: {month}")
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_IN_MONTH[month - 1]


def month_end_date(month: str) -> str:
    """'YYYY-MM' -> 'YYYY-MM-DD' of the month's last day."""
    year, mon = parse_month(month)
    return f"{year:04d}-{mon:02d}-{last_day_of_month(year, mon):02d}"


def previous_month(on: date) -> str:
    """'YYYY-MM' of the calendar month before ``on`` (January wraps to December)."""
    if on.month == 1:
        return f"{on.year - 1:04d}-12"
    return f"{on.year:04d}-{on.month - 1:02d}"


def parse_month(month: str) -> tuple[int, int]:
    """Parse 'YYYY-MM' into (year, month).

    Raises:
        ClosingPeriodError: on any other format or an out-of-range month
    """
    match = _FULL_MONTH.match(month.strip()) if isinstance(month, str) else None
    if not match:
        raise ClosingPeriodError(f"Invalid month format: {month!r} (expected YYYY-MM)")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ClosingPeriodError(f"Month out of range in {month!r}")
    return year, mon


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime, 'YYYY-MM-DD' or ISO-8601 datetime string to a date.

    The whole string must parse; trailing text is an error.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            if text.endswith('Z'):
                text = text[:-1] + '+00:00'
            return datetime.fromisoformat(text).date()
        except ValueError as e:
            raise ClosingPeriodError(f"Invalid date: {value!r}") from e
    raise ClosingPeriodError(f"Unsupported date value: {value!r}")


@dataclass(frozen=True)
class ClosingPeriodResult:
    """Result of closing period detection.

    Attributes:
        is_closing_period: True if the data describes a month before the collection month
        data_month: Month the data describes, 'YYYY-MM'
        as_of_date: The collection date as given (never replaced)
        collection_date: The collection date as given (never replaced)
        snapshot_date: Date the snapshot should carry, 'YYYY-MM-DD'
    """
    is_closing_period: bool
    data_month: str
    as_of_date: str
    collection_date: str
    snapshot_date: str


class ClosingPeriodDetector:
    """Maps (collection date, reported data month) to the snapshot date.

    The reported month may be 'YYYY-MM' or a bare 'MM'. A bare month larger
    than the collection month belongs to the previous year ('12' reported in
    January is last December); otherwise it belongs to the collection year.
    """

    def detect(self, collection_date: DateLike, data_month: str) -> ClosingPeriodResult:
        """Classify a collection.

        Args:
            collection_date: Date the source published the report
            data_month: Reported data month, 'YYYY-MM' or 'MM'

        Returns:
            ClosingPeriodResult

        Raises:
            ClosingPeriodError: on unparseable input, or when the data month is
                after the collection month
        """
        collected = to_date(collection_date)
        collected_str = collected.isoformat()
        year, month = self.resolve_data_month(collected, data_month)
        data_month_str = f"{year:04d}-{month:02d}"

        if (year, month) == (collected.year, collected.month):
            return ClosingPeriodResult(
                is_closing_period=False,
                data_month=data_month_str,
                as_of_date=collected_str,
                collection_date=collected_str,
                snapshot_date=collected_str,
            )

        if (year, month) > (collected.year, collected.month):
            raise ClosingPeriodError(
                f"Data month {data_month_str} is after collection date {collected_str}"
            )

        return ClosingPeriodResult(
            is_closing_period=True,
            data_month=data_month_str,
            as_of_date=collected_str,
            collection_date=collected_str,
            snapshot_date=f"{data_month_str}-{last_day_of_month(year, month):02d}",
        )

    @staticmethod
    def resolve_data_month(collected: date, data_month: str) -> tuple[int, int]:
        """Resolve a reported month to (year, month) relative to the collection date."""
        if not isinstance(data_month, str):
            raise ClosingPeriodError(f"Invalid data month: {data_month!r}")
        text = data_month.strip()

        bare = _BARE_MONTH.match(text)
        if bare:
            month = int(bare.group(1))
            if not 1 <= month <= 12:
                raise ClosingPeriodError(f"Month out of range: {data_month!r}")
            year = collected.year - 1 if month > collected.month else collected.year
            return year, month

        return parse_month(text)


__all__ = [
    'ClosingPeriodDetector',
    'ClosingPeriodResult',
    'is_leap_year',
    'last_day_of_month',
    'month_end_date',
    'previous_month',
    'parse_month',
    'to_date',
]

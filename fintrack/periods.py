from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

COMPARISON_MODES = {"MOM", "YOY"}


def to_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def month_start(value: date) -> date:
    return to_date(value).replace(day=1)


def shift_month(value: date, months: int) -> date:
    value = to_date(value)
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1)


def shift_month_keep_day(value: date, months: int) -> date:
    value = to_date(value)
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    day = min(value.day, last_day)
    return date(year, month, day)


def month_end(value: date) -> date:
    next_month = shift_month(month_start(value), 1)
    return next_month - timedelta(days=1)


def iter_months(start_value: date, end_value: date) -> list[date]:
    months: list[date] = []
    cursor = month_start(start_value)
    end_month = month_start(end_value)
    while cursor <= end_month:
        months.append(cursor)
        cursor = shift_month(cursor, 1)
    return months


def trailing_months(as_of: date, count: int) -> list[date]:
    """First day of each of the ``count`` months ending with ``as_of``'s month."""
    if count < 1:
        raise ValueError("count must be at least 1.")
    return iter_months(shift_month(as_of, -(count - 1)), as_of)


def parse_month_value(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError:
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as exc:
            raise ValueError("Invalid month format. Use YYYY-MM.") from exc


def comparison_date(as_of: date, mode: str) -> date:
    normalized = mode.strip().upper()
    if normalized not in COMPARISON_MODES:
        raise ValueError("Comparison mode must be 'MoM' or 'YoY'.")
    months = -1 if normalized == "MOM" else -12
    return shift_month_keep_day(as_of, months)

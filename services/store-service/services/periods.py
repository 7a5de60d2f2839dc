"""Date bucketing expressions for reporting queries."""
from datetime import date, datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import AppError

_SQLITE_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%Y-W%W",
    "month": "%Y-%m",
    "year": "%Y",
}

_POSTGRES_FORMATS = {
    "day": "YYYY-MM-DD",
    "week": "IYYY-\"W\"IW",
    "month": "YYYY-MM",
    "year": "YYYY",
}

_MYSQL_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%x-W%v",
    "month": "%Y-%m",
    "year": "%Y",
}


def period_label(db: Session, column: Any, period: str) -> Any:
    """
    SQL expression rendering a timestamp column as a period label.

    Args:
        db: Session, used to pick the dialect
        column: Timestamp column
        period: "day", "week", "month" or "year"

    Returns:
        A string-valued SQL expression, e.g. "2024-05" for month
    """
    if period not in _SQLITE_FORMATS:
        raise AppError(f"Unsupported period: {period}", 400)

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return func.to_char(column, _POSTGRES_FORMATS[period])
    if dialect in ("mysql", "mariadb"):
        return func.date_format(column, _MYSQL_FORMATS[period])
    return func.strftime(_SQLITE_FORMATS[period], column)


def month_start(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def shift_months(moment: datetime, months: int) -> datetime:
    """First day of the month `months` away from moment's month."""
    index = moment.year * 12 + (moment.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


def day_start(value: date) -> datetime:
    return datetime(value.year, value.month, value.day)

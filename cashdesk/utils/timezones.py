"""Утилиты для работы с часовыми поясами и БД."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from cashdesk.config import settings


def local_tz() -> ZoneInfo:
    """Часовой пояс ресторана из настроек (America/Lima по умолчанию)."""
    return ZoneInfo(settings.timezone)


def day_bounds_utc(start: date, end: date) -> tuple[datetime, datetime]:
    """Границы периода [начало start; конец end] в локальных сутках, переведённые в UTC."""
    tz = local_tz()
    start_dt = datetime.combine(start, datetime.min.time(), tzinfo=tz)
    end_dt = datetime.combine(end, datetime.max.time(), tzinfo=tz)
    return start_dt.astimezone(timezone.utc), end_dt.astimezone(timezone.utc)


def adapt_datetime_for_db(value: datetime, bind) -> datetime:
    """Преобразует datetime к форме, понятной текущему диалекту БД.

    SQLite не понимает tz-aware значения, поэтому убираем tzinfo
    (все времена в БД хранятся в UTC). Для остальных диалектов возвращаем как есть.
    """
    if value is None:
        return value
    dialect_name = None
    if bind is not None:
        dialect = getattr(bind, "dialect", None)
        if dialect:
            dialect_name = getattr(dialect, "name", None)
    if dialect_name == "sqlite":
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)
    return value


__all__ = ["adapt_datetime_for_db", "day_bounds_utc", "local_tz"]

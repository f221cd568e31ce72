"""История закрытых смен и статистика расхождений."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List

from cashdesk.config import settings
from cashdesk.core.db import db_session
from cashdesk.core.errors import ValidationError
from cashdesk.core.models import Shift, ShiftStatus
from cashdesk.services.reconciliation import Classification, classify
from cashdesk.services.tolerance import get_tolerance
from cashdesk.utils.money import Money
from cashdesk.utils.timezones import adapt_datetime_for_db, day_bounds_utc, local_tz

logger = logging.getLogger(__name__)

REPORT_DEFAULT_DAYS = 30


@dataclass(frozen=True)
class ShiftPage:
    items: List[Shift]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class DifferenceStat:
    shift_id: int
    operator_id: int
    closed_at: datetime
    difference: Money
    classification: Classification


@dataclass(frozen=True)
class CashRegisterReport:
    start: date
    end: date
    total_sessions: int
    open_sessions: int
    total_discrepancy: Money
    discrepancy_count: int
    by_classification: dict[Classification, int]


def _opened_between(local, start: date | None, end: date | None) -> list:
    """Фильтры по дате открытия в локальных сутках ресторана."""
    if start and end and start > end:
        raise ValidationError("Дата начала позже даты конца.")
    filters = []
    if start:
        start_utc, _ = day_bounds_utc(start, start)
        filters.append(Shift.opened_at >= adapt_datetime_for_db(start_utc, local.bind))
    if end:
        _, end_utc = day_bounds_utc(end, end)
        filters.append(Shift.opened_at <= adapt_datetime_for_db(end_utc, local.bind))
    return filters


def list_closed_shifts(
    restaurant_id: int,
    *,
    operator_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int | None = None,
    page: int = 1,
    session=None,
) -> ShiftPage:
    """Закрытые смены ресторана, сначала самые свежие.

    :param restaurant_id: ресторан
    :param operator_id: только смены оператора (опционально)
    :param start: дата открытия с (включительно)
    :param end: дата открытия по (включительно)
    :param limit: размер страницы; по умолчанию HISTORY_PAGE_SIZE
    :param page: номер страницы с 1
    :return: ShiftPage
    :raises ValidationError: некорректные limit/page или диапазон дат
    """
    page_size = limit if limit is not None else settings.history_page_size
    if page_size < 1 or page < 1:
        raise ValidationError("limit и page должны быть положительными.")

    with db_session(session=session) as local:
        filters = [
            Shift.restaurant_id == restaurant_id,
            Shift.status == ShiftStatus.CLOSED,
            *_opened_between(local, start, end),
        ]
        if operator_id is not None:
            filters.append(Shift.operator_id == operator_id)

        total = local.query(Shift.id).filter(*filters).count()
        items = (
            local.query(Shift)
            .filter(*filters)
            .order_by(Shift.closed_at.desc(), Shift.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        logger.debug(
            "history: restaurant=%s operator=%s page=%s -> %s/%s",
            restaurant_id,
            operator_id,
            page,
            len(items),
            total,
        )
        return ShiftPage(items=items, total=total, page=page, limit=page_size)


def difference_stats(
    restaurant_id: int,
    sample_size: int | None = None,
    session=None,
) -> List[DifferenceStat]:
    """Расхождения N последних закрытых смен для графика.

    Берётся только сохранённое при закрытии значение difference, движения
    не перечитываются. Классификация использует текущий допуск ресторана.
    """
    size = sample_size if sample_size is not None else settings.stats_sample_size
    if size < 1:
        raise ValidationError("Размер выборки должен быть положительным.")

    with db_session(session=session) as local:
        tolerance = get_tolerance(restaurant_id, session=local)
        rows = (
            local.query(
                Shift.id,
                Shift.operator_id,
                Shift.closed_at,
                Shift.difference,
            )
            .filter(
                Shift.restaurant_id == restaurant_id,
                Shift.status == ShiftStatus.CLOSED,
            )
            .order_by(Shift.closed_at.desc(), Shift.id.desc())
            .limit(size)
            .all()
        )

    stats: List[DifferenceStat] = []
    for row in rows:
        diff = Money.of(row.difference)
        stats.append(
            DifferenceStat(
                shift_id=row.id,
                operator_id=row.operator_id,
                closed_at=row.closed_at,
                difference=diff,
                classification=classify(diff, tolerance),
            )
        )
    return stats


def cash_register_report(
    restaurant_id: int,
    start: date | None = None,
    end: date | None = None,
    session=None,
) -> CashRegisterReport:
    """Отчёт по кассе за период (по умолчанию последние 30 дней).

    :return: число закрытых и открытых смен, сумма и число ненулевых расхождений, разбивка по классам
    """
    period_end = end or datetime.now(local_tz()).date()
    period_start = start or period_end - timedelta(days=REPORT_DEFAULT_DAYS)

    with db_session(session=session) as local:
        tolerance = get_tolerance(restaurant_id, session=local)
        rows = (
            local.query(Shift.status, Shift.difference)
            .filter(
                Shift.restaurant_id == restaurant_id,
                *_opened_between(local, period_start, period_end),
            )
            .all()
        )

    by_class = {item: 0 for item in Classification}
    total_discrepancy = Money.zero()
    discrepancy_count = 0
    open_sessions = 0
    for row in rows:
        if row.status != ShiftStatus.CLOSED:
            open_sessions += 1
            continue
        diff = Money.of(row.difference)
        by_class[classify(diff, tolerance)] += 1
        if not diff.is_zero():
            total_discrepancy = total_discrepancy + diff
            discrepancy_count += 1

    return CashRegisterReport(
        start=period_start,
        end=period_end,
        total_sessions=len(rows) - open_sessions,
        open_sessions=open_sessions,
        total_discrepancy=total_discrepancy,
        discrepancy_count=discrepancy_count,
        by_classification=by_class,
    )


__all__ = [
    "CashRegisterReport",
    "DifferenceStat",
    "ShiftPage",
    "cash_register_report",
    "difference_stats",
    "list_closed_shifts",
]

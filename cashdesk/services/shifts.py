"""Сервис кассовых смен: открытие, закрытие со сверкой, сводка."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from cashdesk.config import SHIFT_SCOPES, settings
from cashdesk.core.db import db_session
from cashdesk.core.errors import ConflictError, NotFoundError, ValidationError
from cashdesk.core.models import (
    CashMovement,
    Register,
    Shift,
    ShiftStatus,
    User,
    utcnow,
)
from cashdesk.services import ledger
from cashdesk.services import reconciliation
from cashdesk.services.reconciliation import Classification, DenominationLine
from cashdesk.services.tolerance import get_tolerance
from cashdesk.utils.money import Money

logger = logging.getLogger(__name__)

OPEN_GUARD_COLUMNS = {
    "operator": "operator_open_guard",
    "register": "register_open_guard",
    "restaurant": "restaurant_open_guard",
}


@dataclass(frozen=True)
class SettledSales:
    """Итоги оплаченных заказов за смену по способу оплаты.

    Заказы и платежи ведёт кассовая система; сюда попадают только суммы.
    В ожидаемую наличность входит только cash.
    """

    cash: Money = Money.zero()
    card: Money = Money.zero()
    other: Money = Money.zero()

    @classmethod
    def of(cls, cash=0, card=0, other=0) -> "SettledSales":
        """
        :raises ValidationError: отрицательная или нецелая в центах сумма
        """
        values = [Money.of(cash), Money.of(card), Money.of(other)]
        if any(item.is_negative() for item in values):
            raise ValidationError("Итоги продаж не могут быть отрицательными.")
        return cls(*values)

    @property
    def total(self) -> Money:
        return self.cash + self.card + self.other


@dataclass(frozen=True)
class ClosedShiftSummary:
    shift: Shift
    totals: ledger.MovementTotals
    sales: SettledSales
    expected_cash: Money
    counted_cash: Money | None
    closing_cash: Money
    difference: Money
    classification: Classification
    tolerance: Money
    manual_override: bool
    breakdown: List[DenominationLine]


@dataclass(frozen=True)
class ShiftSummary:
    shift: Shift
    movements: List[CashMovement]
    totals: ledger.MovementTotals
    sales: SettledSales
    opening_cash: Money
    running_balance: Money
    expected_cash: Money | None
    closing_cash: Money | None
    difference: Money | None
    counted_cash: Money | None
    breakdown: List[DenominationLine]

    @property
    def is_open(self) -> bool:
        return self.shift.status == ShiftStatus.OPEN


def _resolve_scope(scope: Iterable[str] | None) -> tuple[str, ...]:
    resolved = tuple(scope) if scope is not None else settings.shift_scope
    unknown = [item for item in resolved if item not in SHIFT_SCOPES]
    if unknown or not resolved:
        raise ValidationError("Область уникальности смены: operator, register или restaurant.")
    return resolved


def _open_guards(operator: User, register_id: int | None, scope: tuple[str, ...]) -> dict[str, int]:
    """Значения guard-колонок для новой открытой смены."""
    values = {
        "operator": operator.id,
        "register": register_id,
        "restaurant": operator.restaurant_id,
    }
    guards = {
        OPEN_GUARD_COLUMNS[name]: values[name]
        for name in scope
        if values[name] is not None
    }
    if not guards:
        raise ValidationError("Для открытия смены нужно указать кассу.")
    return guards


def _scoped_shift(local, operator: User, shift_id: int, *, for_update: bool = False) -> Shift | None:
    query = (
        local.query(Shift)
        .filter(
            Shift.id == shift_id,
            Shift.restaurant_id == operator.restaurant_id,
        )
        .populate_existing()
    )
    if for_update:
        query = query.with_for_update()
    return query.one_or_none()


def _merge_notes(current: str | None, extra: str | None) -> str | None:
    parts = [part for part in (current, extra) if part]
    return "\n".join(parts) or None


def open_shift(
    operator: User,
    opening_cash,
    turn: str,
    notes: str | None = None,
    *,
    register_id: int | None = None,
    scope: Iterable[str] | None = None,
    session=None,
) -> Shift:
    """Открывает смену с начальной суммой в кассе.

    Проверка «уже есть открытая смена» и вставка атомарны: кроме
    предварительного запроса их страхует уникальный индекс guard-колонок,
    поэтому из двух параллельных открытий проходит только одно.

    :param operator: оператор
    :param opening_cash: начальная сумма, >= 0
    :param turn: метка смены («mañana», «tarde», ...)
    :param notes: комментарий (опционально)
    :param register_id: касса (опционально)
    :param scope: области уникальности; по умолчанию SHIFT_UNIQUE_SCOPE
    :return: созданный Shift
    :raises ValidationError: сумма отрицательная, пустая метка смены
    :raises NotFoundError: касса не найдена в ресторане оператора
    :raises ConflictError: открытая смена уже есть
    """
    cash = Money.of(opening_cash)
    if cash.is_negative():
        raise ValidationError("Начальная сумма не может быть отрицательной.")
    turn_label = (turn or "").strip()
    if not turn_label:
        raise ValidationError("Выберите смену.")
    active_scope = _resolve_scope(scope)

    with db_session(session=session) as local:
        if register_id is not None:
            register = (
                local.query(Register)
                .filter(
                    Register.id == register_id,
                    Register.restaurant_id == operator.restaurant_id,
                    Register.is_active.is_(True),
                )
                .one_or_none()
            )
            if not register:
                raise NotFoundError("Касса не найдена.")

        guards = _open_guards(operator, register_id, active_scope)
        existing = (
            local.query(Shift.id)
            .filter(
                Shift.status == ShiftStatus.OPEN,
                or_(*(getattr(Shift, column) == value for column, value in guards.items())),
            )
            .first()
        )
        if existing:
            logger.warning("open rejected: operator=%s already has shift=%s", operator.id, existing.id)
            raise ConflictError("Уже есть открытая смена.")

        shift = Shift(
            restaurant_id=operator.restaurant_id,
            operator_id=operator.id,
            register_id=register_id,
            turn=turn_label,
            notes=(notes or "").strip() or None,
            opening_cash=cash.amount,
            status=ShiftStatus.OPEN,
            **guards,
        )
        local.add(shift)
        try:
            local.flush()
        except IntegrityError as exc:
            logger.warning("open rejected by unique guard: operator=%s", operator.id)
            raise ConflictError("Уже есть открытая смена.") from exc

        logger.info(
            "shift opened: id=%s operator=%s register=%s opening=%s",
            shift.id,
            operator.id,
            register_id,
            cash,
        )
        return shift


def get_open_shift(operator: User, session=None) -> Shift | None:
    """Возвращает открытую смену оператора, если есть.

    :param operator: оператор
    :return: Shift или None
    """
    with db_session(session=session) as local:
        return (
            local.query(Shift)
            .filter(
                Shift.operator_id == operator.id,
                Shift.status == ShiftStatus.OPEN,
            )
            .order_by(Shift.opened_at.desc(), Shift.id.desc())
            .first()
        )


def get_latest_shift(operator: User, session=None) -> Shift | None:
    """Последняя смена оператора, открытая или закрытая."""
    with db_session(session=session) as local:
        return (
            local.query(Shift)
            .filter(Shift.operator_id == operator.id)
            .order_by(Shift.opened_at.desc(), Shift.id.desc())
            .first()
        )


def close_shift(
    operator: User,
    shift_id: int,
    counted_denominations: Mapping[str, int] | None = None,
    notes: str | None = None,
    *,
    closing_cash=None,
    settled_sales: SettledSales | None = None,
    session=None,
) -> ClosedShiftSummary:
    """Закрывает смену: пересчёт, ожидаемая сумма, расхождение.

    Строка смены блокируется (FOR UPDATE), леджер читается целиком, а итог
    пишется одним условным UPDATE: смена ещё открыта и после прочитанного
    леджера не появилось новых движений. Иначе закрытие отклоняется и смена
    остаётся открытой; движение никогда не теряется молча.

    :param operator: кто закрывает (область ресторана)
    :param shift_id: смена
    :param counted_denominations: пересчёт купюр {"s100": 1, ...}
    :param notes: комментарий к закрытию, дописывается к заметкам смены
    :param closing_cash: подтверждённая сумма вместо итога пересчёта
    :param settled_sales: итоги оплаченных заказов; cash входит в ожидаемую сумму
    :return: ClosedShiftSummary
    :raises ValidationError: отрицательное количество, нет ни пересчёта, ни суммы
    :raises NotFoundError: смены нет или она уже закрыта
    :raises ConflictError: смена изменилась во время закрытия
    """
    counts = (
        reconciliation.validate_counts(counted_denominations)
        if counted_denominations is not None
        else None
    )
    override = Money.of(closing_cash) if closing_cash is not None else None
    if counts is None and override is None:
        raise ValidationError("Укажите пересчёт купюр или итоговую сумму.")
    if override is not None and override.is_negative():
        raise ValidationError("Итоговая сумма не может быть отрицательной.")
    sales = settled_sales or SettledSales()

    with db_session(session=session) as local:
        shift = _scoped_shift(local, operator, shift_id, for_update=True)
        if not shift or shift.status != ShiftStatus.OPEN:
            raise NotFoundError("Открытая смена не найдена.")

        movements = ledger.list_movements(shift.id, session=local)
        last_movement_id = max((item.id for item in movements), default=0)
        expected = Money.of(shift.opening_cash) + ledger.running_total(movements) + sales.cash
        tolerance = get_tolerance(shift.restaurant_id, session=local)
        result = reconciliation.reconcile(expected, counts, override, tolerance)

        values = {
            "status": ShiftStatus.CLOSED,
            "closing_cash": result.closing_cash.amount,
            "expected_cash": result.expected_cash.amount,
            "difference": result.difference.amount,
            "cash_sales": sales.cash.amount,
            "card_sales": sales.card.amount,
            "other_sales": sales.other.amount,
            "closed_at": utcnow(),
            "closed_by_id": operator.id,
            "notes": _merge_notes(shift.notes, (notes or "").strip() or None),
            "operator_open_guard": None,
            "register_open_guard": None,
            "restaurant_open_guard": None,
        }
        if counts is not None:
            values["denomination_breakdown"] = counts

        newer_movements = (
            select(CashMovement.id)
            .where(
                CashMovement.shift_id == shift.id,
                CashMovement.id > last_movement_id,
            )
            .exists()
        )
        stmt = (
            update(Shift)
            .where(
                Shift.id == shift.id,
                Shift.status == ShiftStatus.OPEN,
                ~newer_movements,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if local.execute(stmt).rowcount != 1:
            status = local.query(Shift.status).filter(Shift.id == shift.id).scalar()
            if status == ShiftStatus.CLOSED:
                raise NotFoundError("Смена уже закрыта.")
            logger.warning("close rejected: shift=%s got new movements", shift.id)
            raise ConflictError("Во время закрытия появились новые движения, повторите закрытие.")
        local.refresh(shift)

        logger.info(
            "shift closed: id=%s expected=%s closing=%s difference=%s (%s)",
            shift.id,
            result.expected_cash,
            result.closing_cash,
            result.difference,
            result.classification.value,
        )
        return ClosedShiftSummary(
            shift=shift,
            totals=ledger.movement_totals(movements),
            sales=sales,
            expected_cash=result.expected_cash,
            counted_cash=result.counted_cash,
            closing_cash=result.closing_cash,
            difference=result.difference,
            classification=result.classification,
            tolerance=result.tolerance,
            manual_override=result.manual_override,
            breakdown=reconciliation.breakdown(counts),
        )


def get_shift_summary(
    operator: User,
    shift_id: int,
    settled_sales: SettledSales | None = None,
    session=None,
) -> ShiftSummary:
    """Сводка по смене для отображения.

    Для открытой смены running_balance = начальная сумма + движения + продажи
    наличными на текущий момент (settled_sales передаёт кассовая система).
    Для закрытой берутся сохранённые при закрытии продажи, ожидаемая сумма и
    расхождение (не пересчитываются), settled_sales игнорируется.

    :raises NotFoundError: смены нет в ресторане оператора
    """
    with db_session(session=session) as local:
        shift = _scoped_shift(local, operator, shift_id)
        if not shift:
            raise NotFoundError("Смена не найдена.")
        movements = ledger.list_movements(shift.id, session=local)
        opening = Money.of(shift.opening_cash)
        counts = shift.denomination_breakdown
        closed = shift.status == ShiftStatus.CLOSED
        if closed:
            sales = SettledSales.of(shift.cash_sales, shift.card_sales, shift.other_sales)
        else:
            sales = settled_sales or SettledSales()
        return ShiftSummary(
            shift=shift,
            movements=movements,
            totals=ledger.movement_totals(movements),
            sales=sales,
            opening_cash=opening,
            running_balance=opening + ledger.running_total(movements) + sales.cash,
            expected_cash=Money.of(shift.expected_cash) if closed else None,
            closing_cash=Money.of(shift.closing_cash) if closed else None,
            difference=Money.of(shift.difference) if closed else None,
            counted_cash=reconciliation.total(counts) if counts is not None else None,
            breakdown=reconciliation.breakdown(counts),
        )


__all__ = [
    "ClosedShiftSummary",
    "ConflictError",
    "NotFoundError",
    "SettledSales",
    "ShiftStatus",
    "ShiftSummary",
    "ValidationError",
    "close_shift",
    "get_latest_shift",
    "get_open_shift",
    "get_shift_summary",
    "open_shift",
]

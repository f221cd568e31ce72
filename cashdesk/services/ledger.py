"""Леджер смены: только добавление движений, баланс всегда считается суммой."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from cashdesk.core.db import db_session, supports_row_locks
from cashdesk.core.errors import ConflictError, NotFoundError, ValidationError
from cashdesk.core.models import CashMovement, MovementType, Shift, ShiftStatus, User
from cashdesk.utils.money import Money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MovementTotals:
    income: Money
    expense: Money
    withdrawal: Money

    @property
    def net(self) -> Money:
        return self.income - self.expense - self.withdrawal


def _as_movement_type(value: MovementType | str) -> MovementType:
    try:
        return MovementType(getattr(value, "value", value))
    except ValueError as exc:
        raise ValidationError("Тип движения: INCOME, EXPENSE или WITHDRAWAL.") from exc


def signed_amount(movement: CashMovement) -> Money:
    """+amount для INCOME, -amount для EXPENSE и WITHDRAWAL."""
    amount = Money.of(movement.amount)
    if movement.type == MovementType.INCOME:
        return amount
    return -amount


def running_total(movements: Iterable[CashMovement]) -> Money:
    """Чистый эффект движений; от порядка не зависит."""
    return sum((signed_amount(item) for item in movements), Money.zero())


def movement_totals(movements: Iterable[CashMovement]) -> MovementTotals:
    """Суммы по типам движений."""
    sums = {kind: Money.zero() for kind in MovementType}
    for item in movements:
        sums[item.type] = sums[item.type] + Money.of(item.amount)
    return MovementTotals(
        income=sums[MovementType.INCOME],
        expense=sums[MovementType.EXPENSE],
        withdrawal=sums[MovementType.WITHDRAWAL],
    )


def add_movement(
    operator: User,
    shift_id: int,
    movement_type: MovementType | str,
    amount,
    concept: str,
    reference: str | None = None,
    session=None,
) -> CashMovement:
    """Добавляет движение в открытую смену.

    Строка смены блокируется на чтение (FOR SHARE): параллельные движения
    не мешают друг другу, а закрытие (FOR UPDATE) ждёт их завершения.
    Сама смена не изменяется.

    :param operator: кто записывает движение (область ресторана)
    :param shift_id: смена
    :param movement_type: INCOME / EXPENSE / WITHDRAWAL
    :param amount: сумма > 0
    :param concept: описание, не пустое
    :param reference: номер документа (опционально)
    :return: CashMovement
    :raises ValidationError: сумма <= 0, пустой концепт, неизвестный тип
    :raises NotFoundError: смены нет в ресторане оператора
    :raises ConflictError: смена закрыта
    """
    kind = _as_movement_type(movement_type)
    value = Money.of(amount)
    if not value.is_positive():
        raise ValidationError("Сумма движения должна быть больше 0.")
    normalized_concept = (concept or "").strip()
    if not normalized_concept:
        raise ValidationError("Укажите концепт движения.")
    normalized_reference = (reference or "").strip() or None

    with db_session(session=session) as local:
        shift: Shift | None = (
            local.query(Shift)
            .filter(
                Shift.id == shift_id,
                Shift.restaurant_id == operator.restaurant_id,
            )
            .populate_existing()
            .with_for_update(read=True)
            .one_or_none()
        )
        if not shift:
            raise NotFoundError("Смена не найдена.")
        if shift.status != ShiftStatus.OPEN:
            logger.warning("movement rejected: shift=%s is closed", shift_id)
            raise ConflictError("Смена уже закрыта, движение не записано.")

        movement = CashMovement(
            shift_id=shift.id,
            type=kind,
            amount=value.amount,
            concept=normalized_concept,
            reference=normalized_reference,
            created_by_id=operator.id,
        )
        local.add(movement)
        local.flush()

        if not supports_row_locks(local.bind):
            # Без FOR SHARE закрытие могло проскочить между проверкой и вставкой
            current_status = (
                local.query(Shift.status)
                .filter(Shift.id == shift.id)
                .scalar()
            )
            if current_status != ShiftStatus.OPEN:
                logger.warning("movement rejected: shift=%s closed concurrently", shift_id)
                raise ConflictError("Смена закрылась во время записи, повторите действие.")

        logger.info(
            "movement added: shift=%s type=%s amount=%s by=%s",
            shift.id,
            kind.value,
            value,
            operator.id,
        )
        return movement


def list_movements(shift_id: int, session=None) -> List[CashMovement]:
    """Движения смены в хронологическом порядке (при равном времени по id)."""
    with db_session(session=session) as local:
        return (
            local.query(CashMovement)
            .filter(CashMovement.shift_id == shift_id)
            .order_by(CashMovement.created_at.asc(), CashMovement.id.asc())
            .all()
        )


__all__ = [
    "ConflictError",
    "MovementTotals",
    "NotFoundError",
    "ValidationError",
    "add_movement",
    "list_movements",
    "movement_totals",
    "running_total",
    "signed_amount",
]

"""Сверка кассы: пересчёт купюр, расхождение и его классификация."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Mapping

from cashdesk.core.denominations import DENOMINATIONS, DenominationKind, get_denomination
from cashdesk.core.errors import ValidationError
from cashdesk.utils.money import Money


class Classification(str, enum.Enum):
    """Итог сверки относительно допуска."""

    WITHIN_TOLERANCE = "WITHIN_TOLERANCE"
    SHORTAGE = "SHORTAGE"
    OVERAGE = "OVERAGE"


@dataclass(frozen=True)
class DenominationLine:
    key: str
    label: str
    kind: DenominationKind
    count: int
    subtotal: Money


@dataclass(frozen=True)
class Reconciliation:
    expected_cash: Money
    counted_cash: Money | None
    closing_cash: Money
    difference: Money
    classification: Classification
    tolerance: Money

    @property
    def manual_override(self) -> bool:
        """Оператор подтвердил сумму, отличную от пересчёта купюр."""
        return self.counted_cash is not None and self.counted_cash != self.closing_cash


def validate_counts(counts: Mapping[str, int] | None) -> dict[str, int]:
    """Проверяет пересчёт купюр и монет.

    :param counts: {"s100": 2, "c010": 10, ...}; отсутствующие ключи = 0
    :return: нормализованный словарь только с известными ключами
    :raises ValidationError: неизвестный номинал, отрицательное или дробное количество
    """
    if counts is None:
        return {}
    normalized: dict[str, int] = {}
    for key, count in counts.items():
        if get_denomination(key) is None:
            raise ValidationError(f"Неизвестный номинал: {key}.")
        if count is None:
            continue
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError(f"Количество для {key} должно быть целым числом.")
        if count < 0:
            raise ValidationError(f"Количество для {key} не может быть отрицательным.")
        normalized[key] = count
    return normalized


def total(counts: Mapping[str, int] | None) -> Money:
    """Σ(количество × номинал), в целых центах."""
    normalized = validate_counts(counts)
    return sum(
        (item.face_value * normalized.get(item.key, 0) for item in DENOMINATIONS),
        Money.zero(),
    )


def breakdown(counts: Mapping[str, int] | None) -> list[DenominationLine]:
    """Строки пересчёта с ненулевым количеством, от крупных номиналов к мелким."""
    normalized = validate_counts(counts)
    lines = []
    for item in DENOMINATIONS:
        count = normalized.get(item.key, 0)
        if not count:
            continue
        lines.append(
            DenominationLine(
                key=item.key,
                label=item.label,
                kind=item.kind,
                count=count,
                subtotal=item.face_value * count,
            )
        )
    return lines


def difference(expected_cash: Money, closing_cash: Money) -> Money:
    """Фактическая минус ожидаемая сумма: < 0 недостача, > 0 излишек."""
    return closing_cash - expected_cash


def classify(diff: Money, tolerance: Money) -> Classification:
    """Граница включительная: |diff| == tolerance ещё в допуске."""
    if tolerance.is_negative():
        raise ValidationError("Допуск расхождения не может быть отрицательным.")
    if abs(diff) <= tolerance:
        return Classification.WITHIN_TOLERANCE
    if diff.is_negative():
        return Classification.SHORTAGE
    return Classification.OVERAGE


def reconcile(
    expected_cash: Money,
    counts: Mapping[str, int] | None,
    closing_cash: Money | None,
    tolerance: Money,
) -> Reconciliation:
    """Сводит ожидаемую сумму с пересчётом.

    :param expected_cash: начальная сумма + движения
    :param counts: пересчёт купюр (может отсутствовать, если сумма введена вручную)
    :param closing_cash: подтверждённая оператором сумма; None = итог пересчёта
    :param tolerance: допуск ресторана
    :raises ValidationError: нет ни пересчёта, ни суммы; сумма отрицательная
    """
    if counts is None and closing_cash is None:
        raise ValidationError("Укажите пересчёт купюр или итоговую сумму.")
    counted = total(counts) if counts is not None else None
    confirmed = closing_cash if closing_cash is not None else counted
    if confirmed.is_negative():
        raise ValidationError("Итоговая сумма не может быть отрицательной.")
    diff = difference(expected_cash, confirmed)
    return Reconciliation(
        expected_cash=expected_cash,
        counted_cash=counted,
        closing_cash=confirmed,
        difference=diff,
        classification=classify(diff, tolerance),
        tolerance=tolerance,
    )


__all__ = [
    "Classification",
    "DenominationLine",
    "Reconciliation",
    "breakdown",
    "classify",
    "difference",
    "reconcile",
    "total",
    "validate_counts",
]

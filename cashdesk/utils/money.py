"""Денежное значение в целых центах (céntimos) без двоичной плавающей точки."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import total_ordering

from cashdesk.core.errors import ValidationError

CENT = Decimal("0.01")


def as_decimal(value: float | int | str | Decimal) -> Decimal:
    """Преобразует входное значение к Decimal.

    float проходит через str(), поэтому 0.1 превращается в Decimal("0.1"),
    а не в двоичное приближение.

    :param value: число/строка
    :return: Decimal
    :raises ValidationError: если преобразовать нельзя
    """
    if isinstance(value, bool):
        raise ValidationError("Сумма должна быть числом.")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Сумма должна быть числом.") from exc
    if not result.is_finite():
        raise ValidationError("Сумма должна быть конечным числом.")
    return result


@total_ordering
@dataclass(frozen=True)
class Money:
    """Сумма в минимальных единицах валюты.

    Сложение, вычитание и умножение на целое выполняются над int,
    поэтому 10 × 0.10 всегда ровно 1.00.
    """

    cents: int

    @classmethod
    def of(cls, value: "Money | float | int | str | Decimal | None") -> "Money":
        """Строит Money из числа, строки, Decimal (например, Numeric из БД).

        :raises ValidationError: если значение не число или точнее цента
        """
        if isinstance(value, Money):
            return value
        if value is None:
            return cls.zero()
        amount = as_decimal(value)
        cents = amount * 100
        if cents != cents.to_integral_value():
            raise ValidationError("Сумма не может быть точнее одного céntimo.")
        return cls(int(cents))

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @property
    def amount(self) -> Decimal:
        """Decimal с двумя знаками, для колонок Numeric(12, 2)."""
        return (Decimal(self.cents) / 100).quantize(CENT)

    def is_zero(self) -> bool:
        return self.cents == 0

    def is_negative(self) -> bool:
        return self.cents < 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __radd__(self, other):
        # sum() стартует с 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __mul__(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.cents * factor)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self.cents)

    def __abs__(self) -> "Money":
        return Money(abs(self.cents))

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.cents < other.cents

    def __str__(self) -> str:
        return f"{self.amount:.2f}"


__all__ = ["CENT", "Money", "as_decimal"]

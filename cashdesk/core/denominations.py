"""Справочник купюр и монет (соль, PEN). Статичен, не хранится в БД."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType

from cashdesk.utils.money import Money


class DenominationKind(str, enum.Enum):
    """Вид номинала."""

    BILL = "bill"
    COIN = "coin"


@dataclass(frozen=True)
class Denomination:
    key: str
    label: str
    face_value: Money
    kind: DenominationKind


def _denomination(key: str, label: str, face_value: str, kind: DenominationKind) -> Denomination:
    return Denomination(key=key, label=label, face_value=Money.of(face_value), kind=kind)


# От крупных к мелким, как в форме пересчёта
DENOMINATIONS: tuple[Denomination, ...] = (
    _denomination("s200", "S/ 200", "200", DenominationKind.BILL),
    _denomination("s100", "S/ 100", "100", DenominationKind.BILL),
    _denomination("s50", "S/ 50", "50", DenominationKind.BILL),
    _denomination("s20", "S/ 20", "20", DenominationKind.BILL),
    _denomination("s10", "S/ 10", "10", DenominationKind.BILL),
    _denomination("c5", "S/ 5", "5", DenominationKind.COIN),
    _denomination("c2", "S/ 2", "2", DenominationKind.COIN),
    _denomination("c1", "S/ 1", "1", DenominationKind.COIN),
    _denomination("c050", "S/ 0.50", "0.50", DenominationKind.COIN),
    _denomination("c020", "S/ 0.20", "0.20", DenominationKind.COIN),
    _denomination("c010", "S/ 0.10", "0.10", DenominationKind.COIN),
)

DENOMINATIONS_BY_KEY = MappingProxyType({item.key: item for item in DENOMINATIONS})


def get_denomination(key: str) -> Denomination | None:
    """Возвращает номинал по ключу (s100, c050, ...) или None."""
    return DENOMINATIONS_BY_KEY.get(key)


__all__ = [
    "DENOMINATIONS",
    "DENOMINATIONS_BY_KEY",
    "Denomination",
    "DenominationKind",
    "get_denomination",
]

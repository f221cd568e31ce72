"""Тесты сервиса смен."""

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError

from cashdesk.core.models import CashMovement, MovementType, Shift
from cashdesk.services import ledger, shifts
from cashdesk.services.reconciliation import Classification
from cashdesk.services.tolerance import set_tolerance
from cashdesk.utils.money import Money


def test_open_shift_creates_open_shift(session, cashier, register):
    shift = shifts.open_shift(cashier, "150.50", " mañana ", "fondo de caja", register_id=register.id, session=session)
    assert shift.id is not None
    assert shift.status == shifts.ShiftStatus.OPEN
    assert shift.opening_cash == Decimal("150.50")
    assert shift.turn == "mañana"
    assert shift.operator_open_guard == cashier.id
    assert shift.register_open_guard == register.id
    assert shifts.get_open_shift(cashier, session=session).id == shift.id


def test_open_shift_prevent_double(session, cashier):
    shifts.open_shift(cashier, 50, "mañana", session=session)
    with pytest.raises(shifts.ConflictError):
        shifts.open_shift(cashier, 10, "tarde", session=session)


def test_open_shift_validation(session, cashier):
    with pytest.raises(shifts.ValidationError):
        shifts.open_shift(cashier, -1, "mañana", session=session)
    with pytest.raises(shifts.ValidationError):
        shifts.open_shift(cashier, 10, "  ", session=session)
    with pytest.raises(shifts.ValidationError):
        shifts.open_shift(cashier, 10, "mañana", scope=["terminal"], session=session)


def test_register_scope_blocks_second_operator(session, cashier, second_cashier, register):
    shifts.open_shift(cashier, 100, "mañana", register_id=register.id, scope=["operator", "register"], session=session)
    with pytest.raises(shifts.ConflictError):
        shifts.open_shift(second_cashier, 100, "mañana", register_id=register.id, scope=["operator", "register"], session=session)


def test_operator_scope_allows_shared_register(session, cashier, second_cashier, register):
    shifts.open_shift(cashier, 100, "mañana", register_id=register.id, scope=["operator"], session=session)
    other = shifts.open_shift(second_cashier, 80, "mañana", register_id=register.id, scope=["operator"], session=session)
    assert other.register_open_guard is None


def test_register_scope_requires_register(session, cashier):
    with pytest.raises(shifts.ValidationError):
        shifts.open_shift(cashier, 100, "mañana", scope=["register"], session=session)


def test_open_shift_with_foreign_register(session, outsider, register):
    with pytest.raises(shifts.NotFoundError):
        shifts.open_shift(outsider, 100, "mañana", register_id=register.id, session=session)


def test_unique_guard_rejects_second_open_row(session, cashier):
    """Даже в обход предварительной проверки БД не даст открыть вторую смену."""
    shifts.open_shift(cashier, 10, "mañana", session=session)
    session.add(
        Shift(
            restaurant_id=cashier.restaurant_id,
            operator_id=cashier.id,
            turn="tarde",
            opening_cash=Decimal("0"),
            operator_open_guard=cashier.id,
        )
    )
    with pytest.raises(IntegrityError):
        session.flush()


def test_close_shift_end_to_end(session, cashier, restaurant):
    set_tolerance(restaurant.id, "5.00", session=session)
    shift = shifts.open_shift(cashier, "100.00", "mañana", "apertura", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.INCOME, "50.00", "sale", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.EXPENSE, "20.00", "supplies", session=session)

    summary = shifts.close_shift(cashier, shift.id, {"s100": 1, "s20": 1, "c5": 1}, "cuadre", session=session)

    assert summary.expected_cash == Money.of("130.00")
    assert summary.counted_cash == Money.of("125.00")
    assert summary.closing_cash == Money.of("125.00")
    assert summary.difference == Money.of("-5.00")
    assert summary.classification == Classification.WITHIN_TOLERANCE
    assert summary.manual_override is False
    assert [line.key for line in summary.breakdown] == ["s100", "s20", "c5"]

    closed = summary.shift
    assert closed.status == shifts.ShiftStatus.CLOSED
    assert closed.closing_cash == Decimal("125.00")
    assert closed.expected_cash == Decimal("130.00")
    assert closed.difference == Decimal("-5.00")
    assert closed.closed_at is not None
    assert closed.closed_by_id == cashier.id
    assert closed.notes == "apertura\ncuadre"
    assert closed.denomination_breakdown == {"s100": 1, "s20": 1, "c5": 1}
    assert closed.operator_open_guard is None
    assert shifts.get_open_shift(cashier, session=session) is None


def test_close_shift_with_manual_amount(session, cashier, restaurant):
    set_tolerance(restaurant.id, "1.00", session=session)
    shift = shifts.open_shift(cashier, 50, "tarde", session=session)
    summary = shifts.close_shift(cashier, shift.id, {"s50": 1}, closing_cash="52.00", session=session)
    assert summary.counted_cash == Money.of(50)
    assert summary.closing_cash == Money.of(52)
    assert summary.manual_override is True
    assert summary.classification == Classification.OVERAGE


def test_close_shift_rejects_negative_count(session, cashier):
    shift = shifts.open_shift(cashier, 50, "tarde", session=session)
    with pytest.raises(shifts.ValidationError):
        shifts.close_shift(cashier, shift.id, {"s50": -1}, session=session)
    assert shifts.get_open_shift(cashier, session=session).id == shift.id


def test_close_shift_requires_count_or_amount(session, cashier):
    shift = shifts.open_shift(cashier, 50, "tarde", session=session)
    with pytest.raises(shifts.ValidationError):
        shifts.close_shift(cashier, shift.id, session=session)


def test_close_twice_keeps_stored_difference(session, cashier):
    shift = shifts.open_shift(cashier, 100, "mañana", session=session)
    shifts.close_shift(cashier, shift.id, {"s100": 1}, session=session)
    with pytest.raises(shifts.NotFoundError):
        shifts.close_shift(cashier, shift.id, {"s200": 1}, session=session)
    session.refresh(shift)
    assert shift.difference == Decimal("0.00")
    assert shift.closing_cash == Decimal("100.00")


def test_close_unknown_or_foreign_shift(session, cashier, outsider):
    shift = shifts.open_shift(cashier, 100, "mañana", session=session)
    with pytest.raises(shifts.NotFoundError):
        shifts.close_shift(cashier, 999, {"s100": 1}, session=session)
    with pytest.raises(shifts.NotFoundError):
        shifts.close_shift(outsider, shift.id, {"s100": 1}, session=session)


def test_closed_shift_is_immutable(session, cashier):
    shift = shifts.open_shift(cashier, 100, "mañana", session=session)
    shifts.close_shift(cashier, shift.id, {"s100": 1}, session=session)
    shift.notes = "editado"
    with pytest.raises(shifts.ConflictError):
        session.flush()


def test_reopen_after_close(session, cashier):
    first = shifts.open_shift(cashier, 100, "mañana", session=session)
    shifts.close_shift(cashier, first.id, {"s100": 1}, session=session)
    second = shifts.open_shift(cashier, 40, "tarde", session=session)
    assert second.id != first.id
    assert shifts.get_latest_shift(cashier, session=session).id == second.id


def test_shift_summary_for_open_and_closed(session, cashier):
    shift = shifts.open_shift(cashier, "80.00", "noche", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.INCOME, "12.40", "venta", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.WITHDRAWAL, "30.00", "depósito", session=session)

    summary = shifts.get_shift_summary(cashier, shift.id, session=session)
    assert summary.is_open
    assert len(summary.movements) == 2
    assert summary.running_balance == Money.of("62.40")
    assert summary.difference is None

    shifts.close_shift(cashier, shift.id, {"s50": 1, "s10": 1, "c2": 1, "c020": 2}, session=session)
    closed = shifts.get_shift_summary(cashier, shift.id, session=session)
    assert not closed.is_open
    assert closed.expected_cash == Money.of("62.40")
    assert closed.counted_cash == Money.of("62.40")
    assert closed.difference == Money.zero()


def test_shift_summary_foreign_restaurant(session, cashier, outsider):
    shift = shifts.open_shift(cashier, 10, "mañana", session=session)
    with pytest.raises(shifts.NotFoundError):
        shifts.get_shift_summary(outsider, shift.id, session=session)


def test_close_shift_includes_settled_cash_sales(session, cashier, restaurant):
    set_tolerance(restaurant.id, "1.00", session=session)
    shift = shifts.open_shift(cashier, "100.00", "mañana", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.INCOME, "50.00", "propina", session=session)
    sales = shifts.SettledSales.of(cash="40.00", card="25.50", other="4.50")

    summary = shifts.close_shift(cashier, shift.id, {"s100": 1, "s50": 1, "s20": 2}, settled_sales=sales, session=session)

    assert summary.expected_cash == Money.of("190.00")
    assert summary.difference == Money.zero()
    assert summary.classification == Classification.WITHIN_TOLERANCE
    assert summary.sales.total == Money.of("70.00")
    assert summary.shift.cash_sales == Decimal("40.00")
    assert summary.shift.card_sales == Decimal("25.50")
    assert summary.shift.other_sales == Decimal("4.50")


def test_unreported_cash_sales_show_as_overage(session, cashier, restaurant):
    set_tolerance(restaurant.id, "1.00", session=session)
    shift = shifts.open_shift(cashier, "100.00", "mañana", session=session)
    summary = shifts.close_shift(cashier, shift.id, {"s100": 1, "s20": 2}, session=session)
    assert summary.classification == Classification.OVERAGE
    assert summary.shift.cash_sales == Decimal("0")


def test_shift_summary_with_settled_sales(session, cashier):
    shift = shifts.open_shift(cashier, "100.00", "noche", session=session)
    ledger.add_movement(cashier, shift.id, MovementType.EXPENSE, "10.00", "hielo", session=session)

    live = shifts.get_shift_summary(cashier, shift.id, shifts.SettledSales.of(cash=30, card=12), session=session)
    assert live.running_balance == Money.of("120.00")
    assert live.sales.card == Money.of(12)

    shifts.close_shift(cashier, shift.id, {"s100": 1, "s20": 1}, settled_sales=shifts.SettledSales.of(cash=30), session=session)
    closed = shifts.get_shift_summary(cashier, shift.id, shifts.SettledSales.of(cash=999), session=session)
    assert closed.sales.cash == Money.of(30)
    assert closed.sales.card == Money.zero()
    assert closed.running_balance == closed.expected_cash == Money.of("120.00")


def test_settled_sales_cannot_be_negative():
    with pytest.raises(shifts.ValidationError):
        shifts.SettledSales.of(cash="-1.00")


def _closed_shift_with_sale(session, operator, register):
    shift = shifts.open_shift(operator, 100, "mañana", register_id=register.id, session=session)
    ledger.add_movement(operator, shift.id, MovementType.INCOME, 10, "venta", session=session)
    shifts.close_shift(operator, shift.id, {"s100": 1, "s10": 1}, session=session)
    session.commit()
    return shift


def _audit_rows(session, shift_id):
    return (
        session.query(Shift).filter_by(id=shift_id).count(),
        session.query(CashMovement).filter_by(shift_id=shift_id).count(),
    )


def test_deleting_operator_keeps_closed_shift_and_ledger(session, cashier, register):
    shift = _closed_shift_with_sale(session, cashier, register)
    with pytest.raises(IntegrityError):
        session.execute(text("DELETE FROM users WHERE id = :id"), {"id": cashier.id})
    session.rollback()
    assert _audit_rows(session, shift.id) == (1, 1)


def test_deleting_register_keeps_closed_shift(session, cashier, register):
    shift = _closed_shift_with_sale(session, cashier, register)
    with pytest.raises(IntegrityError):
        session.execute(text("DELETE FROM registers WHERE id = :id"), {"id": register.id})
    session.rollback()
    stored = session.get(Shift, shift.id)
    assert stored.register_id == register.id


def test_database_rejects_raw_changes_to_closed_audit(session, cashier, register):
    shift = _closed_shift_with_sale(session, cashier, register)
    with pytest.raises(DBAPIError):
        session.execute(text("UPDATE shifts SET difference = 0 WHERE id = :id"), {"id": shift.id})
    session.rollback()
    with pytest.raises(DBAPIError):
        session.execute(text("DELETE FROM shifts WHERE id = :id"), {"id": shift.id})
    session.rollback()
    with pytest.raises(DBAPIError):
        session.execute(text("DELETE FROM cash_movements WHERE shift_id = :id"), {"id": shift.id})
    session.rollback()

    assert _audit_rows(session, shift.id) == (1, 1)
    assert session.get(Shift, shift.id).difference == Decimal("0.00")

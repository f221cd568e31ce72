"""ORM-модели кассовых смен."""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from cashdesk.core.errors import ConflictError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Базовый класс для ORM."""


class UserRole(str, enum.Enum):
    """Роль оператора."""

    CASHIER = "cashier"
    ADMIN = "admin"


class ShiftStatus(str, enum.Enum):
    """Статус смены."""

    OPEN = "open"
    CLOSED = "closed"


class MovementType(str, enum.Enum):
    """Тип движения денег по смене."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    WITHDRAWAL = "WITHDRAWAL"


class Restaurant(Base):
    """Ресторан (область видимости данных)."""

    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    users = relationship("User", back_populates="restaurant")
    registers = relationship("Register", back_populates="restaurant")
    settings = relationship("RestaurantSetting", back_populates="restaurant")


class RestaurantSetting(Base):
    """Настройка ресторана ключ-значение (например, допуск по кассе)."""

    __tablename__ = "restaurant_settings"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "key", name="uq_restaurant_settings_key"),
    )

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )
    key = Column(String(64), nullable=False)
    value = Column(String(255), nullable=False)

    restaurant = relationship("Restaurant", back_populates="settings")


class User(Base):
    """Оператор кассы (кассир или админ)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    role = Column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        server_default=UserRole.CASHIER.value,
    )
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    restaurant = relationship("Restaurant", back_populates="users")
    shifts = relationship(
        "Shift",
        back_populates="operator",
        foreign_keys="Shift.operator_id",
        passive_deletes="all",
    )


class Register(Base):
    """Физическая касса/терминал."""

    __tablename__ = "registers"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(String(64), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)

    restaurant = relationship("Restaurant", back_populates="registers")
    shifts = relationship("Shift", back_populates="register", passive_deletes="all")


class Shift(Base):
    """Кассовая смена: от открытия с начальной суммой до закрытия с пересчётом.

    Колонки *_open_guard заполнены только пока смена открыта. Уникальный индекс
    по ним гарантирует не больше одной открытой смены на оператора / кассу /
    ресторан; NULL не участвует в уникальности, поэтому закрытых смен сколько угодно.
    """

    __tablename__ = "shifts"
    __table_args__ = (
        Index("ix_shifts_restaurant_closed", "restaurant_id", "status", "closed_at"),
    )

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="RESTRICT"),
        nullable=False,
    )
    operator_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    register_id = Column(
        Integer,
        ForeignKey("registers.id", ondelete="RESTRICT"),
        nullable=True,
    )
    turn = Column(String(32), nullable=False)
    notes = Column(Text)
    opening_cash = Column(Numeric(12, 2), nullable=False)
    opened_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    status = Column(
        Enum(
            ShiftStatus,
            name="shift_status",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        server_default=ShiftStatus.OPEN.value,
        default=ShiftStatus.OPEN,
    )
    closing_cash = Column(Numeric(12, 2))
    expected_cash = Column(Numeric(12, 2))
    difference = Column(Numeric(12, 2))
    # Итоги продаж из кассовой системы, учтённые при закрытии
    cash_sales = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    card_sales = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    other_sales = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    denomination_breakdown = Column(JSON)
    closed_at = Column(DateTime(timezone=True))
    closed_by_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )

    operator_open_guard = Column(Integer, unique=True)
    register_open_guard = Column(Integer, unique=True)
    restaurant_open_guard = Column(Integer, unique=True)

    operator = relationship("User", foreign_keys=[operator_id], back_populates="shifts")
    closed_by = relationship("User", foreign_keys=[closed_by_id])
    register = relationship("Register", back_populates="shifts")
    movements = relationship(
        "CashMovement",
        back_populates="shift",
        order_by=lambda: [CashMovement.created_at, CashMovement.id],
        passive_deletes="all",
    )


class CashMovement(Base):
    """Движение по смене. Сумма всегда > 0, знак задаёт тип."""

    __tablename__ = "cash_movements"
    __table_args__ = (
        Index("ix_cash_movements_shift_created", "shift_id", "created_at", "id"),
        CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
    )

    id = Column(Integer, primary_key=True)
    shift_id = Column(
        Integer,
        ForeignKey("shifts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    type = Column(
        Enum(
            MovementType,
            name="cash_movement_type",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    concept = Column(String(255), nullable=False)
    reference = Column(String(255))
    created_by_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    shift = relationship("Shift", back_populates="movements")
    creator = relationship("User", foreign_keys=[created_by_id])


def _previous_value(target, attr: str):
    """Значение атрибута до текущих изменений в сессии."""
    history = inspect(target).attrs[attr].history
    previous = history.deleted or history.unchanged
    return previous[0] if previous else None


@event.listens_for(CashMovement, "before_update")
def _forbid_movement_update(mapper, connection, target) -> None:
    raise ConflictError("Движения по смене не изменяются. Оформите корректирующее движение.")


@event.listens_for(CashMovement, "before_delete")
def _forbid_movement_delete(mapper, connection, target) -> None:
    raise ConflictError("Движения по смене не удаляются. Оформите корректирующее движение.")


@event.listens_for(Shift, "before_update")
def _forbid_closed_shift_update(mapper, connection, target) -> None:
    if _previous_value(target, "status") == ShiftStatus.CLOSED:
        raise ConflictError("Смена закрыта и не может быть изменена.")


@event.listens_for(Shift, "before_delete")
def _forbid_closed_shift_delete(mapper, connection, target) -> None:
    if _previous_value(target, "status") == ShiftStatus.CLOSED:
        raise ConflictError("Закрытая смена хранится как аудиторская запись.")


# Те же запреты на уровне БД: raw SQL и каскады тоже не трогают аудит.
_SQLITE_IMMUTABILITY = {
    "shifts": (
        "CREATE TRIGGER trg_shifts_closed_no_update BEFORE UPDATE ON shifts "
        "FOR EACH ROW WHEN OLD.status = 'closed' "
        "BEGIN SELECT RAISE(ABORT, 'closed shift is immutable'); END",
        "CREATE TRIGGER trg_shifts_closed_no_delete BEFORE DELETE ON shifts "
        "FOR EACH ROW WHEN OLD.status = 'closed' "
        "BEGIN SELECT RAISE(ABORT, 'closed shift is immutable'); END",
    ),
    "cash_movements": (
        "CREATE TRIGGER trg_cash_movements_no_update BEFORE UPDATE ON cash_movements "
        "FOR EACH ROW BEGIN SELECT RAISE(ABORT, 'cash movements are append-only'); END",
        "CREATE TRIGGER trg_cash_movements_no_delete BEFORE DELETE ON cash_movements "
        "FOR EACH ROW BEGIN SELECT RAISE(ABORT, 'cash movements are append-only'); END",
    ),
}

_POSTGRES_IMMUTABILITY = {
    "shifts": (
        """
        CREATE OR REPLACE FUNCTION shifts_closed_immutable() RETURNS trigger AS $$
        BEGIN
            IF OLD.status = 'closed' THEN
                RAISE EXCEPTION 'closed shift is immutable' USING ERRCODE = '23000';
            END IF;
            IF TG_OP = 'DELETE' THEN
                RETURN OLD;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        "CREATE TRIGGER trg_shifts_closed_immutable BEFORE UPDATE OR DELETE ON shifts "
        "FOR EACH ROW EXECUTE FUNCTION shifts_closed_immutable()",
    ),
    "cash_movements": (
        """
        CREATE OR REPLACE FUNCTION cash_movements_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'cash movements are append-only' USING ERRCODE = '23000';
        END;
        $$ LANGUAGE plpgsql
        """,
        "CREATE TRIGGER trg_cash_movements_append_only BEFORE UPDATE OR DELETE ON cash_movements "
        "FOR EACH ROW EXECUTE FUNCTION cash_movements_append_only()",
    ),
}

for _table in (Shift.__table__, CashMovement.__table__):
    for _statement in _SQLITE_IMMUTABILITY[_table.name]:
        event.listen(_table, "after_create", DDL(_statement).execute_if(dialect="sqlite"))
    for _statement in _POSTGRES_IMMUTABILITY[_table.name]:
        event.listen(_table, "after_create", DDL(_statement).execute_if(dialect="postgresql"))

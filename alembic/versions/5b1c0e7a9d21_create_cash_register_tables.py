"""cash register tables

Revision ID: 5b1c0e7a9d21
Revises:
Create Date: 2026-10-12 10:24:41.118204
"""

from alembic import op
import sqlalchemy as sa


revision = "5b1c0e7a9d21"
down_revision = None
branch_labels = None
depends_on = None


SQLITE_TRIGGERS = [
    "CREATE TRIGGER trg_shifts_closed_no_update BEFORE UPDATE ON shifts "
    "FOR EACH ROW WHEN OLD.status = 'closed' "
    "BEGIN SELECT RAISE(ABORT, 'closed shift is immutable'); END",
    "CREATE TRIGGER trg_shifts_closed_no_delete BEFORE DELETE ON shifts "
    "FOR EACH ROW WHEN OLD.status = 'closed' "
    "BEGIN SELECT RAISE(ABORT, 'closed shift is immutable'); END",
    "CREATE TRIGGER trg_cash_movements_no_update BEFORE UPDATE ON cash_movements "
    "FOR EACH ROW BEGIN SELECT RAISE(ABORT, 'cash movements are append-only'); END",
    "CREATE TRIGGER trg_cash_movements_no_delete BEFORE DELETE ON cash_movements "
    "FOR EACH ROW BEGIN SELECT RAISE(ABORT, 'cash movements are append-only'); END",
]

POSTGRES_TRIGGERS = [
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
    """
    CREATE OR REPLACE FUNCTION cash_movements_append_only() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'cash movements are append-only' USING ERRCODE = '23000';
    END;
    $$ LANGUAGE plpgsql
    """,
    "CREATE TRIGGER trg_cash_movements_append_only BEFORE UPDATE OR DELETE ON cash_movements "
    "FOR EACH ROW EXECUTE FUNCTION cash_movements_append_only()",
]


def upgrade() -> None:
    user_role_enum = sa.Enum("cashier", "admin", name="user_role")
    shift_status_enum = sa.Enum("open", "closed", name="shift_status")
    movement_type_enum = sa.Enum(
        "INCOME",
        "EXPENSE",
        "WITHDRAWAL",
        name="cash_movement_type",
    )

    op.create_table(
        "restaurants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "restaurant_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["restaurant_id"],
            ["restaurants.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("restaurant_id", "key", name="uq_restaurant_settings_key"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", user_role_enum, server_default="cashier", nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["restaurant_id"],
            ["restaurants.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "registers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.ForeignKeyConstraint(
            ["restaurant_id"],
            ["restaurants.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=False),
        sa.Column("register_id", sa.Integer(), nullable=True),
        sa.Column("turn", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("opening_cash", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            "opened_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "status",
            shift_status_enum,
            server_default="open",
            nullable=False,
        ),
        sa.Column("closing_cash", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("expected_cash", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("difference", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("cash_sales", sa.Numeric(precision=12, scale=2), server_default="0", nullable=False),
        sa.Column("card_sales", sa.Numeric(precision=12, scale=2), server_default="0", nullable=False),
        sa.Column("other_sales", sa.Numeric(precision=12, scale=2), server_default="0", nullable=False),
        sa.Column("denomination_breakdown", sa.JSON(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by_id", sa.Integer(), nullable=True),
        sa.Column("operator_open_guard", sa.Integer(), nullable=True),
        sa.Column("register_open_guard", sa.Integer(), nullable=True),
        sa.Column("restaurant_open_guard", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["restaurant_id"],
            ["restaurants.id"],
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["operator_id"],
            ["users.id"],
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["register_id"],
            ["registers.id"],
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["closed_by_id"],
            ["users.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("operator_open_guard"),
        sa.UniqueConstraint("register_open_guard"),
        sa.UniqueConstraint("restaurant_open_guard"),
    )
    op.create_index("ix_shifts_operator_id", "shifts", ["operator_id"])
    op.create_index(
        "ix_shifts_restaurant_closed",
        "shifts",
        ["restaurant_id", "status", "closed_at"],
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("type", movement_type_enum, nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("concept", sa.String(length=255), nullable=False),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        sa.ForeignKeyConstraint(
            ["shift_id"],
            ["shifts.id"],
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"],
            ["users.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_cash_movements_shift_created",
        "cash_movements",
        ["shift_id", "created_at", "id"],
    )

    dialect = op.get_context().dialect.name
    if dialect == "postgresql":
        for statement in POSTGRES_TRIGGERS:
            op.execute(statement)
    elif dialect == "sqlite":
        for statement in SQLITE_TRIGGERS:
            op.execute(statement)


def downgrade() -> None:
    if op.get_context().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS trg_cash_movements_append_only ON cash_movements")
        op.execute("DROP TRIGGER IF EXISTS trg_shifts_closed_immutable ON shifts")
        op.execute("DROP FUNCTION IF EXISTS cash_movements_append_only()")
        op.execute("DROP FUNCTION IF EXISTS shifts_closed_immutable()")
    op.drop_index("ix_cash_movements_shift_created", table_name="cash_movements")
    op.drop_table("cash_movements")
    op.drop_index("ix_shifts_restaurant_closed", table_name="shifts")
    op.drop_index("ix_shifts_operator_id", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("registers")
    op.drop_table("users")
    op.drop_table("restaurant_settings")
    op.drop_table("restaurants")

    op.execute("DROP TYPE IF EXISTS cash_movement_type")
    op.execute("DROP TYPE IF EXISTS shift_status")
    op.execute("DROP TYPE IF EXISTS user_role")

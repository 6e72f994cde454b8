"""Initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Must match settings.booking_buffer_minutes.
BOOKING_BUFFER = "5 minutes"

port_status_enum = sa.Enum(
    "available", "occupied", "maintenance", "out_of_order", name="port_status_enum", native_enum=False
)
booking_status_enum = sa.Enum(
    "pending", "confirmed", "active", "completed", "cancelled", "expired", "failed",
    name="booking_status_enum",
    native_enum=False,
)
payment_status_enum = sa.Enum(
    "pending", "processing", "paid", "failed", "refunded", "partial_refund",
    name="payment_status_enum",
    native_enum=False,
)
cancelled_by_enum = sa.Enum("user", "vendor", "admin", "system", name="cancelled_by_enum", native_enum=False)
refund_status_enum = sa.Enum(
    "pending", "processing", "completed", "rejected", "failed", name="refund_status_enum", native_enum=False
)
food_order_status_enum = sa.Enum(
    "pending", "confirmed", "preparing", "ready", "served", "cancelled",
    name="food_order_status_enum",
    native_enum=False,
)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(10, 2), nullable=nullable)


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "charging_stations",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("operating_hours", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _money("peak_hourly_rate", nullable=True),
        _money("off_peak_hourly_rate", nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_charging_stations_vendor_id", "charging_stations", ["vendor_id"], unique=False)

    op.create_table(
        "charging_ports",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("station_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("port_number", sa.String(length=16), nullable=False),
        sa.Column("connector_type", sa.String(length=32), nullable=False),
        sa.Column("power_output_kw", sa.Numeric(8, 2), nullable=False),
        _money("price_per_unit"),
        sa.Column("is_operational", sa.Boolean(), nullable=False),
        sa.Column("current_status", port_status_enum, nullable=False),
        sa.ForeignKeyConstraint(
            ["station_id"],
            ["charging_stations.id"],
            name="fk_charging_ports_station_id_charging_stations",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_charging_ports_station_id", "charging_ports", ["station_id"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("booking_reference", sa.String(length=32), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("station_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("port_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        _money("price_per_unit"),
        sa.Column("estimated_units", sa.Numeric(10, 3), nullable=False),
        _money("base_cost"),
        _money("taxes"),
        _money("service_charges"),
        _money("platform_fee"),
        _money("merchant_amount"),
        _money("total_amount"),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("payment_status", payment_status_enum, nullable=False),
        sa.Column("customer_name", sa.String(length=128), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("vehicle_number", sa.String(length=32), nullable=True),
        sa.Column("food_order_restaurant_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("food_order_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("food_order_placed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", cancelled_by_enum, nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_eligible", sa.Boolean(), nullable=True),
        sa.Column("hours_before_start", sa.Numeric(8, 2), nullable=True),
        sa.Column("actual_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("charged_minutes", sa.Integer(), nullable=True),
        _money("usage_refund_amount", nullable=True),
        _money("final_amount", nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["station_id"],
            ["charging_stations.id"],
            name="fk_bookings_station_id_charging_stations",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["port_id"],
            ["charging_ports.id"],
            name="fk_bookings_port_id_charging_ports",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("booking_reference", name="uq_bookings_booking_reference"),
        sa.CheckConstraint("end_at > start_at", name="ck_bookings_interval_positive"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"], unique=False)
    op.create_index("ix_bookings_vendor_id", "bookings", ["vendor_id"], unique=False)
    op.create_index("ix_bookings_station_id", "bookings", ["station_id"], unique=False)
    op.create_index("ix_bookings_port_id", "bookings", ["port_id"], unique=False)
    op.create_index("ix_bookings_start_at", "bookings", ["start_at"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_cancelled_at", "bookings", ["cancelled_at"], unique=False)

    # Confirmed/active bookings on one port never overlap once both edges are
    # widened by the buffer. Index expressions must be immutable, so the range
    # is built on UTC wall time.
    op.execute(
        f"""
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_port_buffered_interval
        EXCLUDE USING gist (
            port_id WITH =,
            tsrange(
                (start_at AT TIME ZONE 'UTC') - interval '{BOOKING_BUFFER}',
                (end_at AT TIME ZONE 'UTC') + interval '{BOOKING_BUFFER}',
                '[)'
            ) WITH &&
        )
        WHERE (status IN ('confirmed', 'active'))
        """,
    )

    op.create_table(
        "refunds",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("refund_reference", sa.String(length=40), nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        _money("original_amount"),
        _money("platform_fee"),
        _money("base_refund_amount"),
        _money("slot_occupancy_fee"),
        sa.Column("slot_occupancy_fee_percentage", sa.Numeric(5, 2), nullable=False),
        _money("platform_fee_deducted"),
        _money("final_refund_amount"),
        sa.Column("refund_percentage", sa.Integer(), nullable=False),
        sa.Column("hours_before_start", sa.Numeric(8, 2), nullable=False),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("refund_status", refund_status_enum, nullable=False),
        sa.Column("security_validation", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("audit_trail", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], name="fk_refunds_booking_id_bookings", ondelete="RESTRICT"),
        sa.UniqueConstraint("refund_reference", name="uq_refunds_refund_reference"),
        sa.UniqueConstraint("booking_id", name="uq_refunds_booking_id"),
    )
    op.create_index("ix_refunds_user_id", "refunds", ["user_id"], unique=False)
    op.create_index("ix_refunds_vendor_id", "refunds", ["vendor_id"], unique=False)
    op.create_index("ix_refunds_refund_status", "refunds", ["refund_status"], unique=False)

    op.create_table(
        "food_orders",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("customer_name", sa.String(length=128), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=False),
        sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=False),
        _money("total_amount"),
        sa.Column("status", food_order_status_enum, nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", cancelled_by_enum, nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("refund_eligible", sa.Boolean(), nullable=True),
        sa.UniqueConstraint("order_number", name="uq_food_orders_order_number"),
    )
    op.create_index("ix_food_orders_restaurant_id", "food_orders", ["restaurant_id"], unique=False)
    op.create_index("ix_food_orders_customer_phone", "food_orders", ["customer_phone"], unique=False)
    op.create_index("ix_food_orders_ordered_at", "food_orders", ["ordered_at"], unique=False)
    op.create_index("ix_food_orders_status", "food_orders", ["status"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=128), nullable=False),
        sa.Column("aggregate_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_food_orders_status", table_name="food_orders")
    op.drop_index("ix_food_orders_ordered_at", table_name="food_orders")
    op.drop_index("ix_food_orders_customer_phone", table_name="food_orders")
    op.drop_index("ix_food_orders_restaurant_id", table_name="food_orders")
    op.drop_table("food_orders")

    op.drop_index("ix_refunds_refund_status", table_name="refunds")
    op.drop_index("ix_refunds_vendor_id", table_name="refunds")
    op.drop_index("ix_refunds_user_id", table_name="refunds")
    op.drop_table("refunds")

    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_port_buffered_interval")
    op.drop_index("ix_bookings_cancelled_at", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_start_at", table_name="bookings")
    op.drop_index("ix_bookings_port_id", table_name="bookings")
    op.drop_index("ix_bookings_station_id", table_name="bookings")
    op.drop_index("ix_bookings_vendor_id", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_charging_ports_station_id", table_name="charging_ports")
    op.drop_table("charging_ports")

    op.drop_index("ix_charging_stations_vendor_id", table_name="charging_stations")
    op.drop_table("charging_stations")

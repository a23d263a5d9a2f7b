"""Reconciliation schema: time slots, bookings, payments, holds, cleanup outbox.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Time slots: seats_left is the contended seat ledger
    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("school_id", sa.String(64), nullable=True),
        sa.Column("sport_id", sa.String(64), nullable=True),
        sa.Column("slot_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("seats_left", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'open'")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
        # The guarded decrement never goes below zero; this makes any other writer fail loudly
        sa.CheckConstraint("seats_left >= 0", name="check_seats_left_non_negative"),
        sa.CheckConstraint("seats_left <= capacity", name="check_seats_left_lte_capacity"),
    )
    op.create_index("ix_time_slots_school_id", "time_slots", ["school_id"])
    op.create_index("ix_time_slots_date", "time_slots", ["slot_date"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("booking_code", sa.String(32), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("time_slot_id", sa.String(64), sa.ForeignKey("time_slots.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending_hold'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'unpaid'")),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("participants", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("amount", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending_hold', 'paid_deposit', 'expired', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'pending', 'paid')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_booking_code", "bookings", ["booking_code"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_time_slot_id", "bookings", ["time_slot_id"])

    # Payments: order_id is the key both entry points look up by
    op.create_table(
        "payments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("booking_id", sa.String(64), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("provider", sa.String(32), nullable=False, server_default=sa.text("'razorpay'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'created'")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('created', 'succeeded', 'failed')", name="check_payment_status"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=True)
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])

    op.create_table(
        "holds",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("booking_id", sa.String(64), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_holds_booking_id", "holds", ["booking_id"], unique=True)
    op.create_index("ix_holds_expires_at", "holds", ["expires_at"])

    # Cleanup outbox: one row per (booking, kind) so a seat is taken at most once per booking
    op.create_table(
        "cleanup_tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("time_slot_id", sa.String(64), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "kind", name="uq_cleanup_booking_kind"),
        sa.CheckConstraint("kind IN ('seat_decrement', 'hold_release')", name="check_cleanup_kind"),
    )
    op.create_index("ix_cleanup_tasks_booking_id", "cleanup_tasks", ["booking_id"])
    op.create_index("ix_cleanup_tasks_pending", "cleanup_tasks", ["completed_at", "attempts"])


def downgrade() -> None:
    op.drop_table("cleanup_tasks")
    op.drop_table("holds")
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("time_slots")

"""Initial schema: users, shuttles, trips, reservations, notifications.

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

ACTIVE_ONLY = "status = 'active'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'passenger'")),
        sa.Column("device_token", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('passenger', 'driver')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "shuttles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("base_route", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("seats_capacity", sa.Integer(), nullable=False, server_default=sa.text("20")),
        sa.Column("driver_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("seats_capacity > 0", name="check_shuttle_capacity_positive"),
    )
    op.create_index("ix_shuttles_id", "shuttles", ["id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shuttle_id", sa.Integer(), sa.ForeignKey("shuttles.id"), nullable=False),
        sa.Column("departure_time", sa.String(16), nullable=False),
        sa.Column("route", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("direction", sa.String(10), nullable=False, server_default=sa.text("'forward'")),
        sa.Column("seats_capacity", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("direction IN ('forward', 'reverse')", name="check_trip_direction"),
        sa.CheckConstraint("seats_capacity IS NULL OR seats_capacity > 0", name="check_trip_capacity_positive"),
    )
    op.create_index("ix_trips_id", "trips", ["id"])
    op.create_index("ix_trips_shuttle_id", "trips", ["shuttle_id"])
    # The time-conflict check joins a user's reservations to trips by label.
    op.create_index("ix_trips_departure_time", "trips", ["departure_time"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("shuttle_id", sa.Integer(), sa.ForeignKey("shuttles.id"), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("seat_number > 0", name="check_reservation_seat_positive"),
        sa.CheckConstraint("status IN ('active', 'cancelled')", name="check_reservation_status"),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_trip_id", "reservations", ["trip_id"])
    op.create_index("ix_reservations_shuttle_id", "reservations", ["shuttle_id"])
    op.create_index("ix_reservations_user_status", "reservations", ["user_id", "status"])
    # PARTIAL UNIQUE INDEXES: the concurrency guard.
    # Two racing bookings for the same seat (or the same user on the same
    # trip) both pass validation; the second INSERT fails here and the engine
    # reports SeatTaken / DuplicateBooking. Cancelled rows are excluded so a
    # released seat can be booked again while the old row stays for audit.
    op.create_index(
        "uq_reservations_active_trip_seat",
        "reservations",
        ["trip_id", "seat_number"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_ONLY),
        sqlite_where=sa.text(ACTIVE_ONLY),
    )
    op.create_index(
        "uq_reservations_active_user_trip",
        "reservations",
        ["user_id", "trip_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_ONLY),
        sqlite_where=sa.text(ACTIVE_ONLY),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id"), nullable=False),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("shuttle_id", sa.Integer(), sa.ForeignKey("shuttles.id"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default=sa.text("'reminder'")),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.String(1000), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "kind IN ('confirmation', 'cancellation', 'reminder')",
            name="check_notification_kind",
        ),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_due", "notifications", ["is_sent", "scheduled_for"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("reservations")
    op.drop_table("trips")
    op.drop_table("shuttles")
    op.drop_table("users")

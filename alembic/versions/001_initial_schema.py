"""Initial schema: users, driver profiles, rides, bookings, login codes.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-05
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the carpool tables."""
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(120), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("university", sa.String(120), nullable=True),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- driver_profiles ---
    op.create_table(
        "driver_profiles",
        sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_seats", sa.Integer(), nullable=True),
        sa.Column("offered_seats", sa.Integer(), server_default="3", nullable=False),
        sa.Column("zelle_handle", sa.String(120), nullable=True),
        sa.Column("cash_app_handle", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # --- rides ---
    op.create_table(
        "rides",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("driver_id", sa.String(32), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("origin_text", sa.String(255), nullable=False),
        sa.Column("origin_lat", sa.Float(), nullable=False),
        sa.Column("origin_lng", sa.Float(), nullable=False),
        sa.Column("dest_text", sa.String(255), nullable=False),
        sa.Column("dest_lat", sa.Float(), nullable=False),
        sa.Column("dest_lng", sa.Float(), nullable=False),
        sa.Column("depart_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seats_total", sa.Integer(), nullable=False),
        sa.Column("seats_available", sa.Integer(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), server_default="open", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("polyline", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("seats_available >= 0", name="ck_rides_seats_non_negative"),
        sa.CheckConstraint("seats_available <= seats_total", name="ck_rides_seats_bounded"),
    )
    op.create_index("idx_rides_status_depart", "rides", ["status", "depart_at"])
    op.execute(
        "ALTER TABLE rides ADD CONSTRAINT ck_rides_status "
        "CHECK (status IN ('open', 'full', 'in_progress', 'completed', 'cancelled'))"
    )

    # --- bookings ---
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("ride_id", sa.String(32), sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("rider_id", sa.String(32), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seats", sa.Integer(), nullable=False),
        sa.Column("auth_estimate_cents", sa.Integer(), nullable=False),
        sa.Column("final_share_cents", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), server_default="authorized", nullable=False),
        sa.Column("trip_start_otp", sa.String(8), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(32), nullable=True),
        sa.Column("late_cancel", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("etiquette_payment_due", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("disputed_by", sa.String(32), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("seats >= 1", name="ck_bookings_seats_positive"),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_rider", "bookings", ["rider_id"])
    # At most one active booking per rider per ride
    op.create_index(
        "uq_bookings_active_rider",
        "bookings",
        ["ride_id", "rider_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('authorized', 'confirmed', 'in_progress')"),
    )

    # --- login_codes ---
    op.create_table(
        "login_codes",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_login_codes_email", "login_codes", ["email"])


def downgrade() -> None:
    """Drop all carpool tables."""
    op.drop_table("login_codes")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("driver_profiles")
    op.drop_table("users")

"""ORM models for users, drivers, rides, bookings and login codes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatoryde.clock import new_id, utcnow
from gatoryde.db.base import Base, UTCDateTime


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A student account. Riders and drivers share this table."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    university: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    driver_profile: Mapped[DriverProfile | None] = relationship(
        "DriverProfile", back_populates="user", uselist=False,
    )


class DriverProfile(Base):
    """Driver verification state, vehicle capacity and payment handles."""

    __tablename__ = "driver_profiles"

    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )
    verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    vehicle_make: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_seats: Mapped[int | None] = mapped_column(Integer, nullable=True)
    offered_seats: Mapped[int] = mapped_column(Integer, default=3, server_default="3")
    zelle_handle: Mapped[str | None] = mapped_column(String(120), nullable=True)
    cash_app_handle: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="driver_profile")

    @property
    def max_ride_seats(self) -> int:
        """Most seats one ride may offer: the vehicle minus the driver, capped by offered_seats."""
        if not self.vehicle_seats:
            return 0
        return max(0, min(self.vehicle_seats - 1, self.offered_seats))


# ---------------------------------------------------------------------------
# Rides
# ---------------------------------------------------------------------------


class Ride(Base):
    """An offered trip. Seat availability is owned by the seat ledger."""

    __tablename__ = "rides"
    __table_args__ = (
        CheckConstraint("seats_available >= 0", name="ck_rides_seats_non_negative"),
        CheckConstraint("seats_available <= seats_total", name="ck_rides_seats_bounded"),
        Index("idx_rides_status_depart", "status", "depart_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    driver_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), nullable=False)
    origin_text: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_lat: Mapped[float] = mapped_column(Float, nullable=False)
    origin_lng: Mapped[float] = mapped_column(Float, nullable=False)
    dest_text: Mapped[str] = mapped_column(String(255), nullable=False)
    dest_lat: Mapped[float] = mapped_column(Float, nullable=False)
    dest_lng: Mapped[float] = mapped_column(Float, nullable=False)
    depart_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    seats_total: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_available: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    polyline: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    driver: Mapped[User] = relationship("User")
    bookings: Mapped[list[Booking]] = relationship("Booking", back_populates="ride")


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class Booking(Base):
    """A rider's seat reservation on a ride."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("seats >= 1", name="ck_bookings_seats_positive"),
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_rider", "rider_id"),
        Index(
            "uq_bookings_active_rider",
            "ride_id",
            "rider_id",
            unique=True,
            postgresql_where=text("status IN ('authorized', 'confirmed', 'in_progress')"),
            sqlite_where=text("status IN ('authorized', 'confirmed', 'in_progress')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    ride_id: Mapped[str] = mapped_column(String(32), ForeignKey("rides.id"), nullable=False)
    rider_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), nullable=False)
    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    auth_estimate_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    final_share_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="authorized")
    trip_start_otp: Mapped[str | None] = mapped_column(String(8), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    trip_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    trip_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    late_cancel: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    etiquette_payment_due: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disputed_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    ride: Mapped[Ride] = relationship("Ride", back_populates="bookings")
    rider: Mapped[User] = relationship("User")


# ---------------------------------------------------------------------------
# Auth: passwordless login codes
# ---------------------------------------------------------------------------


class LoginCode(Base):
    """A one-time email login code. Only the SHA-256 digest is stored."""

    __tablename__ = "login_codes"
    __table_args__ = (Index("idx_login_codes_email", "email"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

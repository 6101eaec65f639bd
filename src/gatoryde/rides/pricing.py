"""Fare splitting for shared rides.

All amounts are integer cents. Shares always round up so a rider is never
undercharged by integer truncation.

Headcount convention: riders are counted by booked seats and the driver is
never part of the divisor. A ride with ``seats_total=4, seats_available=1``
therefore has three riders aboard. The same convention is used for the
authorization estimate and for the final settlement.
"""

from __future__ import annotations


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def compute_auth_estimate(total_cost_cents: int, current_riders: int, new_seats: int) -> int:
    """Amount authorized for a new booking of ``new_seats``.

    The per-rider share is rounded up before scaling by the seat count.
    Callers guarantee ``current_riders + new_seats >= 1``.
    """
    riders_after_booking = current_riders + new_seats
    return _ceil_div(total_cost_cents, riders_after_booking) * new_seats


def compute_final_share(total_cost_cents: int, final_riders: int) -> int:
    """Per-rider share once the trip has been completed."""
    return _ceil_div(total_cost_cents, final_riders)


def get_current_riders(seats_total: int, seats_available: int) -> int:
    """Riders already holding seats on the ride (driver excluded)."""
    return seats_total - seats_available


def get_riders_after_booking(seats_total: int, seats_available: int, new_seats: int) -> int:
    """Riders on the ride once ``new_seats`` more are booked (driver excluded)."""
    return get_current_riders(seats_total, seats_available) + new_seats


def calculate_rider_shares(total_cost_cents: int, rider_count: int) -> list[int]:
    """Split a cost exactly, handing the leftover cents to the first riders."""
    if rider_count <= 0:
        raise ValueError("Rider count must be positive")
    if total_cost_cents < 0:
        raise ValueError("Total cost cannot be negative")

    base_share, remainder = divmod(total_cost_cents, rider_count)
    return [base_share + (1 if i < remainder else 0) for i in range(rider_count)]


def format_currency(cents: int) -> str:
    """Format cents as US dollars, e.g. ``1234 -> "$12.34"``."""
    sign = "-" if cents < 0 else ""
    dollars, rem = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{rem:02d}"

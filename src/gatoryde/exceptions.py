"""Domain errors.

Every precondition failure carries a stable ``code`` that request handlers
render for the user, and an HTTP status used by the global error handler.
Services raise these before writing anything, so the enclosing transaction
rolls back cleanly.
"""

from __future__ import annotations


class GatoRydeError(Exception):
    """Base class for all expected, user-facing failures."""

    code = "error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


class ValidationFailed(GatoRydeError):
    code = "validation_failed"
    status_code = 422
    default_message = "Invalid request"


class Unauthorized(GatoRydeError):
    code = "unauthorized"
    status_code = 403
    default_message = "You are not authorized to perform this action"


# --- Rides ---


class RideNotFound(GatoRydeError):
    code = "ride_not_found"
    status_code = 404
    default_message = "Ride not found"


class RideNotOpen(GatoRydeError):
    code = "ride_not_open"
    status_code = 409
    default_message = "This ride is no longer available for booking"


class InsufficientSeats(GatoRydeError):
    code = "insufficient_seats"
    status_code = 409
    default_message = "Not enough seats available"


class NotDriver(GatoRydeError):
    code = "not_driver"
    status_code = 403
    default_message = "You must be registered as a driver to offer rides"


class DriverNotVerified(GatoRydeError):
    code = "driver_not_verified"
    status_code = 403
    default_message = "Your driver account must be verified before offering rides"


class NoVehicle(GatoRydeError):
    code = "no_vehicle"
    status_code = 409
    default_message = "You must have a registered vehicle to offer rides"


class SeatLimitExceeded(GatoRydeError):
    code = "seat_limit_exceeded"
    status_code = 422
    default_message = "Requested seats exceed what your vehicle can offer"


class DriverNotFound(GatoRydeError):
    code = "driver_not_found"
    status_code = 404
    default_message = "Driver profile not found"


# --- Bookings ---


class BookingNotFound(GatoRydeError):
    code = "booking_not_found"
    status_code = 404
    default_message = "Booking not found"


class SelfBookingForbidden(GatoRydeError):
    code = "self_booking_forbidden"
    status_code = 409
    default_message = "You cannot book your own ride"


class DuplicateBooking(GatoRydeError):
    code = "duplicate_booking"
    status_code = 409
    default_message = "You already have an active booking for this ride"


class InvalidBookingState(GatoRydeError):
    code = "invalid_booking_state"
    status_code = 409
    default_message = "This booking cannot be changed in its current state"


class NoActiveBookings(GatoRydeError):
    code = "no_active_bookings"
    status_code = 409
    default_message = "No active bookings to complete"


class DuplicateDispute(GatoRydeError):
    code = "duplicate_dispute"
    status_code = 409
    default_message = "A dispute is already open for this booking"


# --- OTP ---


class InvalidCode(GatoRydeError):
    code = "invalid_code"
    status_code = 400
    default_message = "Invalid code"


class CodeExpired(GatoRydeError):
    code = "code_expired"
    status_code = 400
    default_message = "Code has expired"


class RateLimited(GatoRydeError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many requests. Try again later."


# --- Notifications ---


class TemplateNotFound(GatoRydeError):
    code = "template_not_found"
    status_code = 500
    default_message = "No notification template registered"


class DeliveryError(GatoRydeError):
    """A transport provider failed to deliver a message."""

    code = "delivery_failed"
    status_code = 502
    default_message = "Notification delivery failed"

"""
Domain errors raised by the service layer.

Each error is an HTTPException so routes can let it propagate untouched, and
carries a stable machine-readable ``code`` in its detail payload so clients
(and the payment reconciliation adapter) can branch on it.
"""

from typing import Optional

from fastapi import HTTPException, status


class ReservationError(HTTPException):
    """Base class for ledger and availability errors."""

    code = "RESERVATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Reservation request failed"

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(
            status_code=self.http_status,
            detail={"code": self.code, "message": self.message, **context},
        )


class CapacityExceeded(ReservationError):
    code = "FULL"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Fully booked for this date. Please choose another date."


class InvalidReservation(ReservationError):
    code = "INVALID"
    http_status = 422
    default_message = "Invalid reservation request"


class ReservationNotFound(ReservationError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Reservation not found"


class ReservationAlreadyTerminal(ReservationError):
    """Commit on a hold that was already released or expired."""

    code = "ALREADY_TERMINAL"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Your reservation is no longer held. Please start your booking again."

    def __init__(self, reservation_id: str, current_status: str):
        self.reservation_id = reservation_id
        self.current_status = current_status
        super().__init__(reservation_id=reservation_id, status=current_status)


class IdempotencyKeyExpired(ReservationError):
    """The key belongs to a hold that is no longer usable."""

    code = "IDEMPOTENCY_KEY_EXPIRED"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This reservation request has expired. Please start a new reservation."


class BookingNotFound(ReservationError):
    code = "BOOKING_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Booking not found"


class PaymentVerificationError(ReservationError):
    code = "PAYMENT_VERIFICATION_FAILED"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Payment could not be verified"


class PaymentGatewayError(ReservationError):
    code = "PAYMENT_GATEWAY_ERROR"
    http_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider is unavailable. Please try again."

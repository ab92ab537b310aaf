"""
Error taxonomy of the booking engine.

Every error carries the HTTP status the API layer answers with and a short
machine-readable code; the Flask error handler in app.py renders both.
"""


class BookingError(Exception):
    status_code = 400
    code = "BOOKING_ERROR"
    default_message = "Booking request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class NotFound(BookingError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class CourtNotFound(NotFound):
    code = "COURT_NOT_FOUND"
    default_message = "Court not found"


class Forbidden(BookingError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class SlotConflict(BookingError):
    status_code = 409
    code = "SLOT_CONFLICT"
    default_message = "Slot already booked"

    def __init__(self, message: str = None, slots=None):
        super().__init__(message)
        self.slots = list(slots or [])


class InvalidBookingState(BookingError):
    code = "INVALID_BOOKING_STATE"
    default_message = "Booking not in a valid state for this operation"


class CancellationWindowExpired(BookingError):
    code = "CANCELLATION_WINDOW_EXPIRED"
    default_message = "Cancellation window has expired"


class PaymentOrderError(BookingError):
    status_code = 502
    code = "PAYMENT_ORDER_ERROR"
    default_message = "Failed to create payment order"


class PaymentUnfulfilled(BookingError):
    status_code = 409
    code = "PAYMENT_UNFULFILLED"
    default_message = "Payment received but the bookings are no longer pending; a refund is required"

    def __init__(self, message: str = None, order_id: str = None, payment_id: str = None):
        super().__init__(message)
        self.order_id = order_id
        self.payment_id = payment_id


class PaymentLookupError(BookingError):
    status_code = 502
    code = "PAYMENT_LOOKUP_ERROR"
    default_message = "Failed to get payment details"


class StoreError(BookingError):
    status_code = 500
    code = "STORE_ERROR"
    default_message = "Data store error"


class ResolverError(StoreError):
    code = "RESOLVER_ERROR"
    default_message = "Failed to get time slots"

from datetime import timedelta

from .availability import AvailabilityResolver, SlotAvailability
from .errors import (
    BookingError,
    CancellationWindowExpired,
    CourtNotFound,
    Forbidden,
    InvalidBookingState,
    NotFound,
    PaymentLookupError,
    PaymentOrderError,
    PaymentUnfulfilled,
    ResolverError,
    SlotConflict,
    StoreError,
    ValidationError,
)
from .lifecycle import BookingLifecycle
from .payments import (
    OrderHandle,
    PaymentDetails,
    PaymentReconciler,
    ProviderEvent,
    StripeGateway,
    VerificationResult,
    sign_payment,
)
from .policy import can_cancel
from .slots import Slot, generate_slots, normalize_slots, parse_date


def _operating_hours(config):
    return (
        int(config.get("OPERATING_START_HOUR", 6)),
        int(config.get("OPERATING_END_HOUR", 22)),
    )


def build_resolver(session, config) -> AvailabilityResolver:
    return AvailabilityResolver(session, operating_hours=_operating_hours(config))


def build_lifecycle(session, config) -> BookingLifecycle:
    return BookingLifecycle(
        session,
        operating_hours=_operating_hours(config),
        cancel_cutoff=timedelta(hours=config.get("CANCEL_CUTOFF_HOURS", 2)),
    )


def build_reconciler(session, config, gateway) -> PaymentReconciler:
    return PaymentReconciler(
        session,
        build_lifecycle(session, config),
        gateway,
        config.get("PAYMENT_SIGNING_SECRET") or "",
    )

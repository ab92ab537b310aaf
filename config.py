import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as courtslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # wait on SQLite write locks instead of failing immediately
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Schema is normally managed by `flask db upgrade`
    CREATE_TABLES_ON_STARTUP = os.getenv("CREATE_TABLES_ON_STARTUP", "false").lower() == "true"

    # Session cookie written by the identity service
    AUTH_COOKIE_NAME = "courtslot_session"

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    # Daily slot grid (06:00 - 22:00), per-court hours override this
    OPERATING_START_HOUR = int(os.getenv("OPERATING_START_HOUR", "6"))
    OPERATING_END_HOUR = int(os.getenv("OPERATING_END_HOUR", "22"))

    # Cancellation policy
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "2"))

    # PENDING bookings older than this are expired by `flask expire-pending`
    PENDING_BOOKING_TTL_MINUTES = int(os.getenv("PENDING_BOOKING_TTL_MINUTES", "15"))

    # Payments
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    PAYMENT_PUBLIC_KEY = os.getenv("PAYMENT_PUBLIC_KEY")
    PAYMENT_SIGNING_SECRET = os.getenv("PAYMENT_SIGNING_SECRET")
    # Stripe webhook endpoint secret (whsec_...), confirms bookings from payment_intent events
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Basic app settings
    DEBUG = False

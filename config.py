import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as booking.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "booking.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "myr")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # Self-service links (cancel / reschedule). Rotating the secret voids every link.
    SELF_SERVICE_TOKEN_SECRET = os.getenv("SELF_SERVICE_TOKEN_SECRET")
    SELF_SERVICE_TOKEN_TTL_SECONDS = int(os.getenv("SELF_SERVICE_TOKEN_TTL_SECONDS", str(30 * 24 * 60 * 60)))

    # All date/hour arithmetic (today, tomorrow, reminder hour) happens in this zone
    BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "Asia/Kuala_Lumpur")
    DEFAULT_BOOKING_TIME = "10:00"
    AVAILABILITY_WINDOW_DAYS = 30
    RESCHEDULE_WINDOW_DAYS = 90

    # Cancellation policy
    CANCEL_REASON_MIN_LENGTH = 3

    # Simple IP rate limit for booking creation
    BOOKING_RATE_WINDOW_SECONDS = 60    # window size
    BOOKING_RATE_MAX_REQUESTS = 5       # max create requests per IP per window

    # Admin API + cron trigger credentials (set in environment for production)
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")
    CRON_SECRET = os.getenv("CRON_SECRET")

    # Operator inbox and public site (used in emails)
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    SITE_URL = os.getenv("SITE_URL", "http://localhost:3000")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Basic app settings
    DEBUG = False

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kennelnotify.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Shared secret for the external cron trigger (unset = endpoint is open)
CRON_API_KEY = os.getenv("CRON_API_KEY")

# Twilio WhatsApp defaults, overridden per tenant through settings
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_API_BASE_URL = os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01")
TWILIO_TIMEOUT_SECONDS = float(os.getenv("TWILIO_TIMEOUT_SECONDS", "10.0"))

# Phone numbers are stored in national format (e.g. 050-1234567)
PHONE_COUNTRY_CODE = os.getenv("PHONE_COUNTRY_CODE", "972")
PHONE_TRUNK_PREFIX = os.getenv("PHONE_TRUNK_PREFIX", "0")

# Dates and times in message variables are rendered in the kennel's local zone
NOTIFICATION_TIMEZONE = os.getenv("NOTIFICATION_TIMEZONE", "Asia/Jerusalem")

# Delivery worker
NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", "10"))
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
NOTIFICATION_SEND_DELAY_SECONDS = float(os.getenv("NOTIFICATION_SEND_DELAY_SECONDS", "1.0"))
NOTIFICATION_POLL_INTERVAL_SECONDS = int(os.getenv("NOTIFICATION_POLL_INTERVAL_SECONDS", "60"))

# Plan gating
TRIAL_PERIOD_DAYS = int(os.getenv("TRIAL_PERIOD_DAYS", "30"))
DEFAULT_PLAN = os.getenv("DEFAULT_PLAN", "standard")

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = os.getenv("DB_SCHEMA", "booking")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Email sequence
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Bucharest")
SEQUENCE_SEND_HOUR = int(os.getenv("SEQUENCE_SEND_HOUR", "10"))
FOLLOWUP_DELAY_DAYS = int(os.getenv("FOLLOWUP_DELAY_DAYS", "3"))
EMAIL_BATCH_SIZE = int(os.getenv("EMAIL_BATCH_SIZE", "50"))
SCHEDULER_MAX_WORKERS = int(os.getenv("SCHEDULER_MAX_WORKERS", "4"))
EMAIL_CLAIM_LEASE_SECONDS = int(os.getenv("EMAIL_CLAIM_LEASE_SECONDS", "300"))

# Scheduler trigger endpoint
CRON_SECRET = os.getenv("CRON_SECRET") or None
CRON_TRUSTED_HEADER = os.getenv("CRON_TRUSTED_HEADER", "x-vercel-cron").lower()

# Channel manager (Octorate)
OCTORATE_API_BASE_URL = os.getenv("OCTORATE_API_BASE_URL", "https://api.octorate.com")
OCTORATE_CLIENT_ID = os.getenv("OCTORATE_CLIENT_ID", "")
OCTORATE_CLIENT_SECRET = os.getenv("OCTORATE_CLIENT_SECRET", "")
OCTORATE_TIMEOUT_SECONDS = float(os.getenv("OCTORATE_TIMEOUT_SECONDS", "10"))
OCTORATE_WEBHOOK_SECRET = os.getenv("OCTORATE_WEBHOOK_SECRET") or None

WEBHOOK_ALLOWED_IPS: list[str] = [
    ip.strip() for ip in os.getenv("WEBHOOK_ALLOWED_IPS", "").split(",") if ip.strip()
]
TRUST_FORWARDED_FOR = os.getenv("TRUST_FORWARDED_FOR", "false").lower() == "true"
WEBHOOK_MAX_TRANSITION_ATTEMPTS = int(os.getenv("WEBHOOK_MAX_TRANSITION_ATTEMPTS", "3"))
PUSH_LEASE_SECONDS = int(os.getenv("PUSH_LEASE_SECONDS", "120"))

# Outbound email (MailerSend)
MAILER_SEND_API_URL = os.getenv("MAILER_SEND_API_URL", "https://api.mailersend.com/v1/email")
MAILER_SEND_API_KEY = os.getenv("MAILER_SEND_API_KEY") or None
MAILER_SEND_SENDER_EMAIL = os.getenv("MAILER_SEND_SENDER_EMAIL", "no-reply@destexplore.eu")
MAILER_SEND_SENDER_NAME = os.getenv("MAILER_SEND_SENDER_NAME", "Destination Team")
MAILER_SEND_TRIAL_MODE = os.getenv("MAILER_SEND_TRIAL_MODE", "false").lower() == "true"
MAILER_SEND_TRIAL_EMAIL = os.getenv("MAILER_SEND_TRIAL_EMAIL") or None
MAILER_SEND_TIMEOUT_SECONDS = float(os.getenv("MAILER_SEND_TIMEOUT_SECONDS", "10"))

SITE_URL = os.getenv("SITE_URL", "https://destexplore.eu").rstrip("/")
EMAIL_TOKEN_SECRET = os.getenv("EMAIL_TOKEN_SECRET", SITE_URL)

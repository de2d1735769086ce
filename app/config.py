import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./scheduling.db")

# Default zone for guests and availability windows that don't specify one
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Booking concurrency guard
# Upper bound on how long a host lock may be held (auto-released after this)
BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "10"))
# How long a booking attempt waits for another writer on the same host
BOOKING_LOCK_WAIT_SECONDS = float(os.getenv("BOOKING_LOCK_WAIT_SECONDS", "5"))

# Confirmation codes are 8 uppercase hex chars; a repeat collision means a generator defect
CONFIRMATION_CODE_MAX_ATTEMPTS = int(os.getenv("CONFIRMATION_CODE_MAX_ATTEMPTS", "5"))

# Public booking endpoints (per client IP)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
PUBLIC_BOOKING_RATE_LIMIT = int(os.getenv("PUBLIC_BOOKING_RATE_LIMIT", "20"))
PUBLIC_BOOKING_RATE_WINDOW = int(os.getenv("PUBLIC_BOOKING_RATE_WINDOW", "60"))

# Frontend base URL (CORS)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

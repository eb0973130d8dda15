# src/infrastructure/config.py

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# -----------------------------
# Payments
# -----------------------------
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
PAYMENT_SESSION_TTL_MINUTES = int(os.getenv("PAYMENT_SESSION_TTL_MINUTES", "30"))

# -----------------------------
# Booking lifecycle
# -----------------------------
REAPER_DELAY_MINUTES = int(os.getenv("REAPER_DELAY_MINUTES", "10"))
PUBLIC_ORIGIN = os.getenv("PUBLIC_ORIGIN", "http://localhost:5173")

# -----------------------------
# Identity
# -----------------------------
ADMIN_USER_IDS = _env_list("ADMIN_USER_IDS")

# -----------------------------
# Background worker
# -----------------------------
SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
SCHEDULER_POLL_INTERVAL = float(os.getenv("SCHEDULER_POLL_INTERVAL", "5"))
TASK_MAX_ATTEMPTS = int(os.getenv("TASK_MAX_ATTEMPTS", "5"))
TASK_RETRY_DELAY_SECONDS = int(os.getenv("TASK_RETRY_DELAY_SECONDS", "30"))

# -----------------------------
# HTTP server
# -----------------------------
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

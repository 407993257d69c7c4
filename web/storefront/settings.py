"""Django settings for the storefront checkout project.

Every value can be overridden through an environment variable of the same
name. Defaults target local development and the test suite (SQLite, stubbed
payments).
"""

import json
import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def env_json(name: str, default):
    raw = os.getenv(name)
    return json.loads(raw) if raw else default


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "apps.checkout",
]

MIDDLEWARE = []
ROOT_URLCONF = None

DATABASES = {
    "default": {
        "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": os.getenv("DB_USER", ""),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", ""),
        "PORT": os.getenv("DB_PORT", ""),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

# ---- Outbound services ----
USE_HTTP_ADAPTERS = env_bool("USE_HTTP_ADAPTERS", False)
PAYMENTS_BASE_URL = os.getenv("PAYMENTS_BASE_URL", "http://payments:9002")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "5"))
PAYMENTS_CB_FAIL_THRESHOLD = int(os.getenv("PAYMENTS_CB_FAIL_THRESHOLD", "5"))
PAYMENTS_CB_RESET_SECS = float(os.getenv("PAYMENTS_CB_RESET_SECS", "30"))

# ---- Checkout ----
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "USD")
# Keys are COUNTRY or COUNTRY:STATE; the most specific key wins.
CHECKOUT_TAX_RATES = env_json("CHECKOUT_TAX_RATES", {"US": "0.07", "US:CA": "0.0725", "DE": "0.19", "GB": "0.20"})
CHECKOUT_DEFAULT_TAX_RATE = Decimal(os.getenv("CHECKOUT_DEFAULT_TAX_RATE", "0"))
CHECKOUT_SHIPPING_RATES = env_json(
    "CHECKOUT_SHIPPING_RATES",
    {
        "standard": {"cost": "5.99", "days": 5},
        "express": {"cost": "14.99", "days": 2},
        "overnight": {"cost": "29.99", "days": 1},
    },
)
# reprice | reject | flag
CHECKOUT_MIN_PURCHASE_POLICY = os.getenv("CHECKOUT_MIN_PURCHASE_POLICY", "reprice")
CHECKOUT_ALLOW_PARTIAL_CART = env_bool("CHECKOUT_ALLOW_PARTIAL_CART", False)

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(order_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "loggers": {
        "checkout": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": True},
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}

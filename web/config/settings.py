"""Django settings for the storefront order backend.

Values come from environment variables with development defaults. Custom
settings are read with ``getattr(settings, NAME, default)`` at call time,
so tests can override them through pytest-django's ``settings`` fixture.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent  # .../web


def _bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = _bool("DJANGO_DEBUG")
ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.orders",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

def _databases() -> dict:
    """PostgreSQL when DB_HOST is set, SQLite for local runs and tests."""
    if os.getenv("DB_HOST"):
        return {
            "default": {
                "ENGINE": "django.db.backends.postgresql",
                "HOST": os.getenv("DB_HOST"),
                "PORT": os.getenv("DB_PORT", "5432"),
                "NAME": os.getenv("DB_NAME", "orders"),
                "USER": os.getenv("DB_USER", "orders_user"),
                "PASSWORD": os.getenv("DB_PASSWORD", "orders-pass"),
                "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
                # watcher threads reuse a connection after sleeping for the payment window
                "CONN_HEALTH_CHECKS": True,
            }
        }
    return {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }


DATABASES = _databases()

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_THROTTLE_RATES": {
        "orders_initialize": os.getenv("THROTTLE_ORDERS_INITIALIZE", "120/min"),
        "orders_payment": os.getenv("THROTTLE_ORDERS_PAYMENT", "600/min"),
    },
}

# ---- Payment gateway ----
USE_HTTP_ADAPTERS = _bool("USE_HTTP_ADAPTERS", "1")
BARION_BASE_URL = os.getenv("BARION_BASE_URL", "https://api.test.barion.com")
BARION_POS_KEY = os.getenv("BARION_POS_KEY", "")
BARION_PAYEE = os.getenv("BARION_PAYEE", "shop@example.com")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "HUF")
PAYMENT_LOCALE = os.getenv("PAYMENT_LOCALE", "hu-HU")
PAYMENT_UNIT = os.getenv("PAYMENT_UNIT", "piece")
PAYMENT_WINDOW_SECS = int(os.getenv("PAYMENT_WINDOW_SECS", "1800"))
PAYMENT_REDIRECT_URL = os.getenv("PAYMENT_REDIRECT_URL", "http://localhost:3000/payment/result")
PAYMENT_CALLBACK_URL = os.getenv("PAYMENT_CALLBACK_URL", "http://localhost:8000/api/orders/ping/")

HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

# ---- Confirmation watchers ----
CONFIRMATION_DELAY_SECS = float(os.getenv("CONFIRMATION_DELAY_SECS", str(PAYMENT_WINDOW_SECS)))
WATCHER_WORKERS = int(os.getenv("WATCHER_WORKERS", "4"))
WATCHER_QUEUE_MAXSIZE = int(os.getenv("WATCHER_QUEUE_MAXSIZE", "1000"))
WATCHER_ENQUEUE_TIMEOUT_SECS = float(os.getenv("WATCHER_ENQUEUE_TIMEOUT_SECS", "2"))
WATCHER_SHUTDOWN_TIMEOUT_SECS = float(os.getenv("WATCHER_SHUTDOWN_TIMEOUT_SECS", "25"))

# ---- Logging (JSON lines with correlation ids) ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation": {"()": "gateway.logging_filters.CorrelationFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(payment_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["correlation"],
        },
    },
    "loggers": {
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}

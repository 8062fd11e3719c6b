"""Django settings for the checkout gateway.

Every setting is read from the environment with a development default so the
same module serves local runs, tests and containers.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.checkout",
    "apps.orders",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "gateway.urls"
WSGI_APPLICATION = "gateway.wsgi.application"

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "orders_user"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "orders-pass"),
            "HOST": os.getenv("POSTGRES_HOST", "orders-db"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "checkout-gateway"),
    }
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["apps.checkout.auth.BearerIdentityAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "gateway.exceptions.api_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "checkout": os.getenv("THROTTLE_CHECKOUT", "60/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "30/min"),
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "240/min"),
    },
}

# ---- Checkout ----
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "jpy")
# processor minimum chargeable amount in the smallest currency unit
MIN_CHARGE_AMOUNT = int(os.getenv("MIN_CHARGE_AMOUNT", "50"))
RESERVATION_TTL_SECS = int(os.getenv("RESERVATION_TTL_SECS", "1800"))
IDENTITY_TOKEN_MAX_AGE = int(os.getenv("IDENTITY_TOKEN_MAX_AGE", "3600"))

# ---- Payment processor (never logged) ----
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))

# ---- Downstream services ----
USE_HTTP_ADAPTERS = os.getenv("USE_HTTP_ADAPTERS", "1") == "1"
CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "http://catalog:9001")
USER_DIRECTORY_BASE_URL = os.getenv("USER_DIRECTORY_BASE_URL", "")
NOTIFICATIONS_BASE_URL = os.getenv("NOTIFICATIONS_BASE_URL", "")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "3.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30.0"))

DISPLAY_NAME_CACHE_TTL = int(os.getenv("DISPLAY_NAME_CACHE_TTL", "300"))

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
        "redact_secrets": {"()": "gateway.logging_filters.SecretRedactionFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id", "redact_secrets"],
        },
    },
    "loggers": {
        "checkout": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django.request": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}

"""Settings for the fulfillment service.

Every deploy-specific value is read through python-decouple, so ``.env`` or
the process environment is the only place a deployment changes behaviour.
``SECRET_KEY`` has no default and the process refuses to start without it.

Sections, in order: fulfillment policy, Django core, storage (database and
cache), background work (Celery), HTTP API (DRF, JWT, CORS, OpenAPI) and
structured logging.
"""

import re
from datetime import timedelta
from pathlib import Path

import structlog
from decouple import Csv, config
from dj_database_url import parse as db_url

BASE_DIR = Path(__file__).resolve().parent.parent

# ===========================================================================
# Fulfillment policy
# ===========================================================================
# Failed attempts in a row (counted since the order's last status change)
# that move a shipment to ``delivery_failed``.
DELIVERY_FAILURE_THRESHOLD = config("DELIVERY_FAILURE_THRESHOLD", default=3, cast=int)
DELIVERY_MAX_ATTEMPTS = config("DELIVERY_MAX_ATTEMPTS", default=10, cast=int)

# Without a carrier date the estimate is ``created_at + DEFAULT_DELIVERY_DAYS``;
# an order is late once DELIVERY_WINDOW_DAYS have passed after the estimate.
DEFAULT_DELIVERY_DAYS = config("DEFAULT_DELIVERY_DAYS", default=7, cast=int)
DELIVERY_WINDOW_DAYS = config("DELIVERY_WINDOW_DAYS", default=2, cast=int)

# Compare-and-set retries for a single ledger write before giving up with a
# state conflict.
STOCK_WRITE_MAX_RETRIES = config("STOCK_WRITE_MAX_RETRIES", default=3, cast=int)

# Sent by carriers as ``X-Carrier-Token``; empty disables the webhook.
CARRIER_WEBHOOK_TOKEN = config("CARRIER_WEBHOOK_TOKEN", default="")

CARRIER_TRACKING_URL_TEMPLATES = {
    "ups": "https://www.ups.com/track?tracknum={tracking_number}",
    "fedex": "https://www.fedex.com/fedextrack/?trknbr={tracking_number}",
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={tracking_number}",
    "dhl": "https://www.dhl.com/en/express/tracking.html?AWB={tracking_number}",
}

# ===========================================================================
# Django core
# ===========================================================================
SECRET_KEY = config("SECRET_KEY")
DEBUG = config("DEBUG", default=False, cast=bool)
ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="127.0.0.1,localhost", cast=Csv())

_DJANGO_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]
_THIRD_PARTY_APPS = [
    "rest_framework",
    "corsheaders",
    "django_filters",
    "drf_spectacular",
    "drf_standardized_errors",
]
# core first: products, inventory and orders depend on its outbox model.
_FULFILLMENT_APPS = [
    "modules.core",
    "modules.products",
    "modules.inventory",
    "modules.orders",
]
INSTALLED_APPS = _DJANGO_APPS + _THIRD_PARTY_APPS + _FULFILLMENT_APPS

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    # Binds correlation_id before anything below can log.
    "modules.core.middleware.CorrelationIdMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# Only the admin renders templates.
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": f"django.contrib.auth.password_validation.{name}"}
    for name in (
        "UserAttributeSimilarityValidator",
        "MinimumLengthValidator",
        "CommonPasswordValidator",
        "NumericPasswordValidator",
    )
]

# Order timestamps, delivery estimates and lateness are all computed in UTC.
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ===========================================================================
# Storage
# ===========================================================================
# SQLite is enough for a local run; row locks (and the concurrent transition
# tests) need PostgreSQL through DATABASE_URL.
DATABASES = {
    "default": config(
        "DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}", cast=db_url
    )
}

REDIS_URL = config("REDIS_URL", default="redis://localhost:6379/0")

CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": REDIS_URL,
        "OPTIONS": {"CLIENT_CLASS": "django_redis.client.DefaultClient"},
    }
}

# ===========================================================================
# Background work (Celery)
# ===========================================================================
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default=REDIS_URL)
CELERY_RESULT_BACKEND = config("CELERY_RESULT_BACKEND", default=REDIS_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE

_MINUTE = 60.0
_HOUR = 60 * _MINUTE

CELERY_BEAT_SCHEDULE = {
    "publish-outbox-events": {
        "task": "core.publish_outbox_events",
        "schedule": _MINUTE / 2,
    },
    "flag-delayed-deliveries": {
        "task": "orders.flag_delayed_deliveries",
        "schedule": 6 * _HOUR,
    },
    "scan-low-stock": {
        "task": "inventory.scan_low_stock",
        "schedule": _HOUR,
    },
    "verify-ledgers": {
        "task": "inventory.verify_ledgers",
        "schedule": 24 * _HOUR,
    },
}

# ===========================================================================
# HTTP API
# ===========================================================================
# Every endpoint needs a bearer token unless its view says otherwise; the
# carrier webhook and /health are the only exceptions.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
        "rest_framework.throttling.ScopedRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "100/day",
        "user": "1000/hour",
        "checkout": "10/minute",
        "order_listing": "100/minute",
        "carrier_webhook": "600/minute",
    },
    "DEFAULT_PAGINATION_CLASS": "modules.core.pagination.StandardResultsSetPagination",
    "PAGE_SIZE": config("DEFAULT_PAGE_SIZE", default=20, cast=int),
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "modules.core.exception_handler.exception_handler",
}

if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )
    REST_FRAMEWORK["DEFAULT_AUTHENTICATION_CLASSES"].append(
        "rest_framework.authentication.SessionAuthentication"
    )

SIMPLE_JWT = {
    "ALGORITHM": "HS256",
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=15),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
}

_FRONTEND_ORIGINS = "http://localhost:3000"
CORS_ALLOWED_ORIGINS = config(
    "CORS_ALLOWED_ORIGINS", default=_FRONTEND_ORIGINS, cast=Csv()
)
CSRF_TRUSTED_ORIGINS = config(
    "CSRF_TRUSTED_ORIGINS", default=_FRONTEND_ORIGINS, cast=Csv()
)

SPECTACULAR_SETTINGS = {
    "TITLE": "Storefront Fulfillment API",
    "DESCRIPTION": "Order lifecycle, delivery tracking and inventory stock ledger.",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SECURITY": [{"BearerAuth": []}],
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
        }
    },
}

# ===========================================================================
# Structured logging
# ===========================================================================
SENSITIVE_PATTERN = re.compile(
    r"(password|passwd|secret|token|authorization)"
    r"""([=:]\s*["']?)([^\s,}"']+)""",
    re.IGNORECASE,
)
# Delivery contacts are customer phone numbers or emails.
SENSITIVE_KEYS = {"password", "token", "authorization", "carrier_token", "contact"}
MASK = "***MASKED***"


def mask_sensitive_data(_, __, event_dict):
    """structlog processor hiding credentials and delivery contacts."""
    for key, value in list(event_dict.items()):
        if key in SENSITIVE_KEYS and value:
            event_dict[key] = MASK
        elif isinstance(value, str):
            event_dict[key] = SENSITIVE_PATTERN.sub(rf"\1\2{MASK}", value)
    return event_dict


# Run for structlog loggers and, via foreign_pre_chain, for stdlib records
# (Django, Celery) so both come out as the same JSON lines.
_pre_chain = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    mask_sensitive_data,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

structlog.configure(
    processors=[*_pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

LOG_LEVEL = config("LOG_LEVEL", default="INFO")


def _quiet(level):
    return {"handlers": ["console"], "level": level, "propagate": False}


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processors": [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            "foreign_pre_chain": _pre_chain,
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": _quiet("INFO"),
        "django.server": _quiet("WARNING"),
        "celery": _quiet(LOG_LEVEL),
    },
}

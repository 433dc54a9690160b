# core/settings.py
"""
Django settings for the coffee-shop ordering backend.

Everything deploy-specific is read from the environment so the same project
runs both as the central server and as a POS terminal node (which only needs
the outbox app talking to the server over HTTP).
"""

import os
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "common",
    "tenants",
    "customers",
    "menu",
    "discounts",
    "loyalty",
    "orders",
    "pos",
    "outbox",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "common.middleware.TenantContextMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"

# SQLite by default; set DB_ENGINE=postgresql (plus DB_NAME/DB_USER/...) for the server.
if os.environ.get("DB_ENGINE", "sqlite3") == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("DB_NAME", "coffee"),
            "USER": os.environ.get("DB_USER", "coffee"),
            "PASSWORD": os.environ.get("DB_PASSWORD", ""),
            "HOST": os.environ.get("DB_HOST", "localhost"),
            "PORT": os.environ.get("DB_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.environ.get("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "Asia/Riyadh")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=int(os.environ.get("JWT_ACCESS_HOURS", "12"))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.environ.get("JWT_REFRESH_DAYS", "7"))),
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Coffee Shop Ordering API",
    "DESCRIPTION": "Menu, orders, loyalty stamp cards and POS endpoints.",
    "VERSION": "1.0.0",
}

# ---- Celery ----
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)

# ---- Loyalty ----
# One stamp per drink; a free cup every N stamps. Single value for every flow.
LOYALTY_STAMPS_PER_FREE_CUP = int(os.environ.get("LOYALTY_STAMPS_PER_FREE_CUP", "6"))
# Currency units per loyalty point when a tenant has no program configured.
LOYALTY_DEFAULT_EARN_RATE = Decimal(os.environ.get("LOYALTY_DEFAULT_EARN_RATE", "1.00"))

# ---- Orders ----
ORDER_PAYMENT_METHODS = [
    m for m in os.environ.get(
        "ORDER_PAYMENT_METHODS", "cash,card,stc,alinma,ur,barq,rajhi,qahwa-card"
    ).split(",") if m
]

# ---- Outbox (POS terminal side) ----
OUTBOX_SERVER_URL = os.environ.get("OUTBOX_SERVER_URL", "http://localhost:8000")
OUTBOX_API_TOKEN = os.environ.get("OUTBOX_API_TOKEN", "")
OUTBOX_TENANT_CODE = os.environ.get("OUTBOX_TENANT_CODE", "")
OUTBOX_FLUSH_INTERVAL_SECONDS = int(os.environ.get("OUTBOX_FLUSH_INTERVAL_SECONDS", "15"))
OUTBOX_HTTP_TIMEOUT = float(os.environ.get("OUTBOX_HTTP_TIMEOUT", "10"))
OUTBOX_MAX_REJECTIONS = int(os.environ.get("OUTBOX_MAX_REJECTIONS", "5"))
OUTBOX_SYNCED_RETENTION_DAYS = int(os.environ.get("OUTBOX_SYNCED_RETENTION_DAYS", "7"))
OUTBOX_SYNC_STALE_SECONDS = int(os.environ.get("OUTBOX_SYNC_STALE_SECONDS", "300"))

CELERY_BEAT_SCHEDULE = {
    "outbox-flush": {
        "task": "outbox.tasks.flush_outbox_task",
        "schedule": float(OUTBOX_FLUSH_INTERVAL_SECONDS),
    },
}

# ---- Logging ----
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "loyalty": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "pos": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "outbox": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

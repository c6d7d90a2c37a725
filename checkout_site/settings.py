"""
Settings for checkout_site (single-product checkout + attribution).
"""

from pathlib import Path

from django.core.management.utils import get_random_secret_key
import environ
import dj_database_url

# ---------------------------------------------------------------------
# Paths / env
# ---------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(DEBUG=(bool, False))
environ.Env.read_env(BASE_DIR / ".env")

DEBUG = env.bool("DEBUG", False)

SECRET_KEY = env("SECRET_KEY", default=None)
if not SECRET_KEY:
    if DEBUG:
        SECRET_KEY = "django-insecure-" + get_random_secret_key()
    else:
        raise RuntimeError("SECRET_KEY is not set in environment.")

# ---------------------------------------------------------------------
# Hosts / CSRF
# ---------------------------------------------------------------------
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1"])
if DEBUG:
    ALLOWED_HOSTS += ["[::1]", "testserver"]

def _with_scheme(host: str) -> str:
    return host if host.startswith(("http://", "https://")) else f"https://{host}"

CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS", default=[_with_scheme(h) for h in ALLOWED_HOSTS])

# ---------------------------------------------------------------------
# Core Django plumbing
# ---------------------------------------------------------------------
ROOT_URLCONF = "checkout_site.urls"
WSGI_APPLICATION = "checkout_site.wsgi.application"
ASGI_APPLICATION = "checkout_site.asgi.application"

INSTALLED_APPS = [
    # Django core
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",
    "drf_spectacular",

    # Local apps
    "core.apps.CoreConfig",
    "orders.apps.OrdersConfig",
    "payments.apps.PaymentsConfig",
    "events.apps.EventsConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "core.middleware.RequestIDMiddleware",

    # Standard Django stack
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
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

# ---------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------
DATABASES = {
    "default": dj_database_url.parse(
        env("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
        conn_max_age=env.int("DB_CONN_MAX_AGE", default=600),
    )
}

# ---------------------------------------------------------------------
# Static
# ---------------------------------------------------------------------
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ---------------------------------------------------------------------
# Checkout: processor, product, delivery links
# ---------------------------------------------------------------------
SITE_URL = env("SITE_URL", default="http://localhost:8000")

PAYSTACK_PUBLIC_KEY = env("PAYSTACK_PUBLIC_KEY", default="")
PAYSTACK_SECRET_KEY = env("PAYSTACK_SECRET_KEY", default="")
PAYSTACK_WEBHOOK_SECRET = env("PAYSTACK_WEBHOOK_SECRET", default="")
PAYSTACK_BASE_URL = env("PAYSTACK_BASE_URL", default="https://api.paystack.co")

PRODUCT_ID = env("PRODUCT_ID", default="")
PRODUCT_NAME = env("PRODUCT_NAME", default="")
PRODUCT_PRICE_KOBO = env.int("PRODUCT_PRICE_KOBO", default=None)
PRODUCT_PRICE_NGN = env("PRODUCT_PRICE_NGN", default=None)
CURRENCY = env("CURRENCY", default="NGN")
DEFAULT_COUNTRY = env("DEFAULT_COUNTRY", default="NG")

DRIVE_LINK = env("DRIVE_LINK", default="")
WHATSAPP_GROUP_URL = env("WHATSAPP_GROUP_URL", default="")

CHECKOUT_REFERENCE_PREFIX = env("CHECKOUT_REFERENCE_PREFIX", default="GV3")
CHECKOUT_TOKEN_TTL_MINUTES = env.int("CHECKOUT_TOKEN_TTL_MINUTES", default=15)
CHECKOUT_REQUIRE_NAME = env.bool("CHECKOUT_REQUIRE_NAME", default=False)

# ---------------------------------------------------------------------
# Attribution (Meta CAPI) / operator notifications (Telegram)
# ---------------------------------------------------------------------
FB_PIXEL_ID = env("FB_PIXEL_ID", default="")
FB_ACCESS_TOKEN = env("FB_ACCESS_TOKEN", default="")
FB_GRAPH_VERSION = env("FB_GRAPH_VERSION", default="v23.0")
FB_TEST_EVENT_CODE = env("FB_TEST_EVENT_CODE", default="")

TELEGRAM_BOT_TOKEN = env("TELEGRAM_BOT_TOKEN", default="")
TELEGRAM_CHAT_ID = env("TELEGRAM_CHAT_ID", default="")

DISPATCH_MAX_TRIES = env.int("DISPATCH_MAX_TRIES", default=5)
DISPATCH_SWEEP_BATCH = env.int("DISPATCH_SWEEP_BATCH", default=10)
DISPATCH_SWEEP_INTERVAL_SECONDS = env.int("DISPATCH_SWEEP_INTERVAL_SECONDS", default=60)
DISPATCH_CLAIM_SECONDS = env.int("DISPATCH_CLAIM_SECONDS", default=120)
OUTBOUND_HTTP_TIMEOUT = env.float("OUTBOUND_HTTP_TIMEOUT", default=20.0)

# ------------------------ Celery -------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default=None)
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=False)
CELERY_TIMEZONE = "Africa/Lagos"
CELERY_TASK_DEFAULT_QUEUE = env("CELERY_TASK_DEFAULT_QUEUE", default="default")
CELERY_BEAT_SCHEDULE = {
    "attribution-retry-sweep": {
        "task": "events.tasks.retry_pending_attribution",
        "schedule": DISPATCH_SWEEP_INTERVAL_SECONDS,
        "options": {"queue": CELERY_TASK_DEFAULT_QUEUE, "expires": DISPATCH_SWEEP_INTERVAL_SECONDS},
    }
}

# ------------------------- API -------------------------------
REST_FRAMEWORK = {
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": ["rest_framework.throttling.AnonRateThrottle"],
    "DEFAULT_THROTTLE_RATES": {"anon": env("ANON_THROTTLE_RATE", default="120/min")},
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Checkout API",
    "DESCRIPTION": "Single-product checkout, payment confirmation and token-gated delivery.",
    "VERSION": "1.0.0",
}

# ---------------------------------------------------------------------
# I18N / Time
# ---------------------------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Lagos"   # App display timezone
USE_I18N = True
USE_TZ = True                # DB stored in UTC

# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {"request_id": {"()": "core.logging.RequestIDFilter"}},
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["request_id"],
            "formatter": "standard",
        }
    },
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "core": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "orders": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "payments": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "events": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

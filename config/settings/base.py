"""Base settings for all environments.

Common configuration for the settlement service: Django REST Framework,
Celery, structured logging and every tunable of the booking, discount,
payment and job-queue contexts. Environment specific overrides live in
`dev.py`, `prod.py` and `test.py`.
"""

import os
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import structlog
from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / '.env')


def get_env(var_name: str, default=None, required: bool = False):
    value = os.environ.get(var_name, default)
    if required and value in (None, ''):
        raise ImproperlyConfigured(f"Missing required environment variable: {var_name}")
    return value


def get_bool(var_name: str, default: bool = False) -> bool:
    return str(get_env(var_name, str(default))).lower() in ('1', 'true', 'yes')


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'replace-me-in-production')

# Fernet key material for webhook bodies kept for manual review
ENCRYPTION_KEY = get_env('ENCRYPTION_KEY', 'dev-encryption-key-replace-in-production')

DEBUG = False

ALLOWED_HOSTS: list[str] = get_env('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # Third‑party apps
    'rest_framework',
    'django_filters',
    'corsheaders',
    'drf_spectacular',
    'django_celery_beat',
    # Settlement contexts
    'apps.catalog',
    'apps.discounts',
    'apps.pricing',
    'apps.bookings',
    'apps.payments',
    'apps.jobs',
    'apps.notifications',
    'apps.analytics',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': get_env('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': get_env('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': get_env('DB_USER', ''),
        'PASSWORD': get_env('DB_PASSWORD', ''),
        'HOST': get_env('DB_HOST', ''),
        'PORT': get_env('DB_PORT', ''),
    }
}

# SQLite has no row locks: writers take the database lock at BEGIN and wait
# for each other instead of failing mid-transaction.
SQLITE_OPTIONS = {'transaction_mode': 'IMMEDIATE', 'timeout': 20}
if DATABASES['default']['ENGINE'] == 'django.db.backends.sqlite3':
    DATABASES['default']['OPTIONS'] = SQLITE_OPTIONS

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en'

TIME_ZONE = 'Asia/Bangkok'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
STATICFILES_DIRS = []

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

DEFAULT_FROM_EMAIL = get_env('DEFAULT_FROM_EMAIL', 'bookings@phuket-yachts.local')
SITE_URL = get_env('SITE_URL', 'http://localhost:8000')

# Django Rest Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'shared.api.exception_handler.settlement_exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=60),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
}

# Celery configuration (Broker and Result backend handled in environment)
CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'
CELERY_TIMEZONE = TIME_ZONE

CORS_ALLOWED_ORIGINS = get_env(
    'CORS_ALLOWED_ORIGINS',
    'http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000',
).split(',')
CORS_ALLOW_CREDENTIALS = True

CSRF_TRUSTED_ORIGINS = get_env(
    'CSRF_TRUSTED_ORIGINS',
    'http://localhost:8000,http://127.0.0.1:8000',
).split(',')

SPECTACULAR_SETTINGS = {
    'TITLE': 'Booking Settlement API',
    'DESCRIPTION': 'Price quotes, reservations, payments and provider webhooks',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

# ============================================================================
# SETTLEMENT CORE
# ============================================================================

SETTLEMENT_CURRENCY = 'THB'

# Catalog collaborator (dotted path to a CatalogGateway implementation)
CATALOG_GATEWAY = get_env('CATALOG_GATEWAY', 'apps.catalog.gateway.DjangoCatalogGateway')
FULL_DAY_HOURS = int(get_env('FULL_DAY_HOURS', 8))

# Bookings
BOOKING_REFERENCE_PREFIX = get_env('BOOKING_REFERENCE_PREFIX', 'PYT')
BOOKING_PENDING_TTL = timedelta(hours=int(get_env('BOOKING_PENDING_TTL_HOURS', 24)))

# Discounts
CASHBACK_MAX_ORDER_SHARE = Decimal(get_env('CASHBACK_MAX_ORDER_SHARE', '0.5'))
LOYALTY_DEFAULT_CASHBACK_PERCENT = Decimal(get_env('LOYALTY_DEFAULT_CASHBACK_PERCENT', '5'))
GIFT_CARD_VALIDITY_DAYS = int(get_env('GIFT_CARD_VALIDITY_DAYS', 365))
GIFT_CARD_MIN_AMOUNT = Decimal(get_env('GIFT_CARD_MIN_AMOUNT', '1000'))
GIFT_CARD_MAX_AMOUNT = Decimal(get_env('GIFT_CARD_MAX_AMOUNT', '500000'))

# Job queue
JOB_BASE_DELAY = int(get_env('JOB_BASE_DELAY', 60))
JOB_LEASE_TIMEOUT = int(get_env('JOB_LEASE_TIMEOUT', 300))
JOB_MAX_ATTEMPTS = int(get_env('JOB_MAX_ATTEMPTS', 3))
JOB_POLL_INTERVAL = int(get_env('JOB_POLL_INTERVAL', 5))
JOB_BATCH_SIZE = int(get_env('JOB_BATCH_SIZE', 20))

# Payments: "sync" settles inside the webhook request, "queue" defers to the job runner
PAYMENT_WEBHOOK_MODE = get_env('PAYMENT_WEBHOOK_MODE', 'sync')
PAYMENT_PROVIDER_TIMEOUT = int(get_env('PAYMENT_PROVIDER_TIMEOUT', 10))

CARD_API_BASE_URL = get_env('CARD_API_BASE_URL', 'https://api.card-acquirer.example/v1/')
CARD_API_KEY = get_env('CARD_API_KEY', '')
CARD_WEBHOOK_SECRET = get_env('CARD_WEBHOOK_SECRET', '')
CARD_WEBHOOK_TOLERANCE = int(get_env('CARD_WEBHOOK_TOLERANCE', 300))

CRYPTO_API_BASE_URL = get_env('CRYPTO_API_BASE_URL', 'https://api.nowpayments.io/v1/')
CRYPTO_API_KEY = get_env('CRYPTO_API_KEY', '')
CRYPTO_IPN_SECRET = get_env('CRYPTO_IPN_SECRET', '')

TELEGRAM_BOT_TOKEN = get_env('TELEGRAM_BOT_TOKEN', '')
TELEGRAM_WEBHOOK_SECRET = get_env('TELEGRAM_WEBHOOK_SECRET', '')
TELEGRAM_STARS_THB_RATE = Decimal(get_env('TELEGRAM_STARS_THB_RATE', '0.46'))
TELEGRAM_ADMIN_CHAT_ID = get_env('TELEGRAM_ADMIN_CHAT_ID', '')

PROMPTPAY_ID = get_env('PROMPTPAY_ID', '')
PROMPTPAY_WEBHOOK_SECRET = get_env('PROMPTPAY_WEBHOOK_SECRET', '')
PROMPTPAY_MERCHANT_NAME = get_env('PROMPTPAY_MERCHANT_NAME', 'PHUKET YACHTS')
PROMPTPAY_MERCHANT_CITY = get_env('PROMPTPAY_MERCHANT_CITY', 'PHUKET')

REGIONAL_API_BASE_URL = get_env('REGIONAL_API_BASE_URL', 'https://api.yookassa.ru/v3/')
REGIONAL_SHOP_ID = get_env('REGIONAL_SHOP_ID', '')
REGIONAL_SECRET_KEY = get_env('REGIONAL_SECRET_KEY', '')
REGIONAL_THB_RUB_RATE = Decimal(get_env('REGIONAL_THB_RUB_RATE', '2.60'))
REGIONAL_TRUSTED_NETWORKS = get_env(
    'REGIONAL_TRUSTED_NETWORKS',
    '185.71.76.0/27,185.71.77.0/27,77.75.153.0/25,77.75.156.11/32,77.75.156.35/32,77.75.154.128/25,2a02:5180::/32',
).split(',')

# ============================================================================
# LOGGING
# ============================================================================

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOG_LEVEL = get_env('LOG_LEVEL', 'INFO')

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.processors.JSONRenderer(),
            "foreign_pre_chain": [
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
            ],
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": LOG_LEVEL,
        }
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apps": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "shared": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "apps.payments": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

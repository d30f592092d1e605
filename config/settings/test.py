"""Test settings: file-backed SQLite, eager Celery, locmem e-mail and storage."""

import os
import tempfile

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'OPTIONS': SQLITE_OPTIONS,
        # shared-cache memory databases fail lock waits at once; threaded tests need a file
        'TEST': {'NAME': os.path.join(tempfile.gettempdir(), 'pyt-settlement-test.sqlite3')},
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

TELEGRAM_BOT_TOKEN = ''
CARD_WEBHOOK_SECRET = 'card-test-secret'
CRYPTO_IPN_SECRET = 'crypto-test-secret'
TELEGRAM_WEBHOOK_SECRET = 'telegram-test-secret'
PROMPTPAY_WEBHOOK_SECRET = 'promptpay-test-secret'
PROMPTPAY_ID = '0812345678'
REGIONAL_TRUSTED_NETWORKS = ['127.0.0.1/32', '185.71.76.0/27']

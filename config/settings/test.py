"""Test settings for Parkway.

SQLite file database (threads in the concurrency tests need a shared
database, which the in-memory default does not give them), eager
Celery, an emulated payment gateway and retries without delays.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'parkway_test.sqlite3',
        'TEST': {'NAME': BASE_DIR / 'parkway_test.sqlite3'},
        # Writers queue on the database lock instead of failing on upgrade
        'OPTIONS': {'timeout': 20, 'transaction_mode': 'IMMEDIATE'},
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

RETRY_POLICY = {
    'MAX_ATTEMPTS': 3,
    'BASE_DELAY': 0,
    'BACKOFF_FACTOR': 2.0,
    'MAX_DELAY': 0,
}

PAYMENT_GATEWAY = {
    'API_KEY': '',
    'BASE_URL': 'https://gateway.test/v1/',
    'WEBHOOK_SECRET': '',
    'CURRENCY': 'USD',
    'TIMEOUT': 1.0,
}

BOOKING_PRICING = {**BOOKING_PRICING, 'TIME_ZONE': 'UTC', 'MINIMUM_CHARGE_FLOOR': '5.00'}

LOGGING = {
    **LOGGING,
    'loggers': {
        'apps': {'level': 'DEBUG', 'propagate': True},
        'shared': {'level': 'DEBUG', 'propagate': True},
    },
}

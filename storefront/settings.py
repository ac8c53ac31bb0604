"""
Django settings for storefront project.

Every value can be overridden from the environment; defaults are suitable
for local development.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-storefront-dev-key')

DEBUG = _env_bool('DJANGO_DEBUG', False)

ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')

INSTALLED_APPS = [
    'main.apps.MainConfig',
]

MIDDLEWARE = [
    'django.middleware.common.CommonMiddleware',
    'main.api.middleware.RequestLoggingMiddleware',
]

ROOT_URLCONF = 'storefront.urls'
APPEND_SLASH = False

WSGI_APPLICATION = 'storefront.wsgi.application'
ASGI_APPLICATION = 'storefront.asgi.application'

# All state lives in JSON documents; there is no relational database.
DATABASES = {}

USE_TZ = True
TIME_ZONE = 'UTC'
LANGUAGE_CODE = 'en-us'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Storefront
STOREFRONT_DATA_DIR = os.environ.get('STOREFRONT_DATA_DIR', str(BASE_DIR / 'jsonDatabase'))
NOTIFICATION_TTL_DAYS = _env_int('NOTIFICATION_TTL_DAYS', 30)
NOTIFICATIONS_PER_CUSTOMER = _env_int('NOTIFICATIONS_PER_CUSTOMER', 100)
LEDGER_WRITE_RETRIES = _env_int('LEDGER_WRITE_RETRIES', 3)
DEFAULT_SHIPPING = os.environ.get('DEFAULT_SHIPPING', '0.00')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'main.utils.logging.JsonFormatter',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'loggers': {
        'main': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
    },
}

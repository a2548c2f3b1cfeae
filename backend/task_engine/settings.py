"""
Django settings for task_engine project.

Values come from environment variables so the same module serves
development, tests and deployment.
"""

import os
from pathlib import Path

from .logging_config import build_logging_config, configure_structlog

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes', 'on')


def env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-dev-only-change-me')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
    if host.strip()
]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'drf_spectacular',
    'tasks',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'task_engine.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'task_engine.wsgi.application'

# The engine keeps no state server-side; the database only backs Django's
# own bookkeeping and the test runner.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ============================================
# REST FRAMEWORK
# ============================================

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_THROTTLE_RATES': {
        'engine_read': os.environ.get('TASK_ENGINE_READ_RATE', '60/min'),
        'engine_write': os.environ.get('TASK_ENGINE_WRITE_RATE', '30/min'),
    },
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'GTD Task Engine API',
    'DESCRIPTION': 'Task lifecycle, dependency graph, recurrence and priority scoring',
    'VERSION': '1.0.0',
}


# ============================================
# TASK ENGINE
# ============================================

TASK_ENGINE = {
    'STALE_DAYS': env_int('TASK_ENGINE_STALE_DAYS', 14),
    'AGING_DAYS': env_int('TASK_ENGINE_AGING_DAYS', 7),
    'QUICK_TASK_MINUTES': env_int('TASK_ENGINE_QUICK_TASK_MINUTES', 15),
    'DUE_SOON_DAYS': 3,
    'DUE_THIS_WEEK_DAYS': 7,
    'SUGGESTION_COUNT': env_int('TASK_ENGINE_SUGGESTION_COUNT', 3),
}


# ============================================
# LOGGING
# ============================================

configure_structlog()

LOGGING = build_logging_config(
    level=os.environ.get('TASK_ENGINE_LOG_LEVEL', 'INFO'),
    json_output=os.environ.get('TASK_ENGINE_LOG_FORMAT', '').lower() == 'json',
)

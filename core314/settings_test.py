"""
Django Test Settings for Core314

Overrides the main settings for fast, isolated test execution.

Usage:
    pytest --ds=core314.settings_test
"""

from .settings import *  # noqa: F401, F403

# =============================================================================
# TEST ENVIRONMENT CONFIGURATION
# =============================================================================

DEBUG = False
TESTING = True

SECRET_KEY = 'test-secret-key-not-for-production'

# Use a faster password hasher for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# =============================================================================
# CACHING CONFIGURATION
# =============================================================================

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'core314-tests',
    },
}

# =============================================================================
# CELERY CONFIGURATION
# =============================================================================

# Execute tasks synchronously during tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

# Minimal logging during tests
LOGGING = {
    'version': 1,
    'disable_existing_loggers': True,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'CRITICAL',
    },
    'loggers': {
        'django': {
            'handlers': ['null'],
            'level': 'CRITICAL',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['null'],
            'level': 'CRITICAL',
            'propagate': False,
        },
    },
}

# =============================================================================
# REST FRAMEWORK TEST SETTINGS
# =============================================================================

REST_FRAMEWORK['TEST_REQUEST_DEFAULT_FORMAT'] = 'json'
REST_FRAMEWORK['DEFAULT_THROTTLE_CLASSES'] = []  # Disable throttling in tests
REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'] = {}

# Factory Boy settings
FACTORY_BOY_RANDOM_SEED = 12345

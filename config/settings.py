"""
Django settings for the TeamStride team management API.
"""
import os
import re
from pathlib import Path
import environ
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Initialize environment variables
env = environ.Env(
    DEBUG=(bool, False),
    DB_CONN_MAX_AGE=(int, 600),
    RATE_LIMIT_ENABLED=(bool, True),
    JSON_LOGS=(bool, False),
    LOG_LEVEL=(str, 'INFO'),
)

# Read .env file if it exists
environ.Env.read_env(os.path.join(BASE_DIR, '.env'))

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env('SECRET_KEY', default='django-insecure-teamstride-development-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env('DEBUG')

# Teams are served from <subdomain>.<TEAM_BASE_DOMAIN>
TEAM_BASE_DOMAIN = env('TEAM_BASE_DOMAIN', default='teamstride.local')

ALLOWED_HOSTS = env.list(
    'ALLOWED_HOSTS',
    default=['localhost', '127.0.0.1', 'testserver', f'.{TEAM_BASE_DOMAIN}'],
)

USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Application definition
INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'drf_spectacular',
    'corsheaders',
    'django_ratelimit',

    # TeamStride apps
    'apps.core',
    'apps.rbac',
    'apps.teams',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'apps.core.middleware.RequestIDMiddleware',
    'apps.core.rate_limiting.RateLimitMiddleware',
    'apps.teams.middleware.TeamSubdomainMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
DATABASES = {
    'default': env.db('DATABASE_URL', default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")
}
DATABASES['default']['CONN_MAX_AGE'] = env('DB_CONN_MAX_AGE')
DATABASES['default']['ATOMIC_REQUESTS'] = False

# Transient database failures (deadlocks, serialization conflicts) are retried
DB_RETRY_ATTEMPTS = env.int('DB_RETRY_ATTEMPTS', default=3)
DB_RETRY_INITIAL_DELAY = env.float('DB_RETRY_INITIAL_DELAY', default=0.05)
DB_RETRY_MAX_DELAY = env.float('DB_RETRY_MAX_DELAY', default=1.0)

# Custom User Model
AUTH_USER_MODEL = 'rbac.User'

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator', 'OPTIONS': {'min_length': 8}},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST Framework Configuration
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'apps.core.authentication.BearerTokenAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'apps.core.permissions.SubdomainTeamAccess',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'apps.core.exceptions.custom_exception_handler',
}

# OpenAPI Schema Configuration
SPECTACULAR_SETTINGS = {
    'TITLE': 'TeamStride API',
    'DESCRIPTION': '''
Multi-team management API.

## Authentication

Obtain a token from `POST /v1/auth/login` and send it on every request:

```
Authorization: Bearer <token>
```

Tokens carry the team, role and member type the caller acts in. Use
`POST /v1/auth/switch-team` to get a token for another team.

## Teams

Each team is served on its own subdomain (`eagles.teamstride.local`).
Clients that cannot use subdomains send the `X-Subdomain` header instead.
Requests on a team subdomain are only accepted from members of that team.

## Rate Limiting

Requests are counted per client IP, `X-Device-ID`, registration email and
team. Exceeded limits return 429 with a `Retry-After` header.
    ''',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'COMPONENT_SPLIT_REQUEST': True,
    'SCHEMA_PATH_PREFIX': r'/v1',
    'TAGS': [
        {'name': 'System', 'description': 'Health checks'},
        {'name': 'Authentication', 'description': 'Registration, login and team switching'},
        {'name': 'Teams', 'description': 'Team settings and subdomains'},
        {'name': 'Team Members', 'description': 'Team membership management'},
        {'name': 'Ownership Transfers', 'description': 'Token based ownership hand-over'},
        {'name': 'Admin - Teams', 'description': 'Platform administration (global admins only)'},
    ],
    'APPEND_COMPONENTS': {
        'securitySchemes': {
            'BearerAuth': {
                'type': 'http',
                'scheme': 'bearer',
                'bearerFormat': 'JWT',
            },
        },
    },
    'SECURITY': [{'BearerAuth': []}],
}

# ============================================================================
# SECURITY SETTINGS
# ============================================================================

# HTTPS Enforcement (Production Only)
if not DEBUG and env.bool('ENFORCE_HTTPS', default=False):
    SECURE_SSL_REDIRECT = True
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
else:
    SECURE_SSL_REDIRECT = False
    SECURE_HSTS_SECONDS = 0
    SESSION_COOKIE_SECURE = False
    CSRF_COOKIE_SECURE = False

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# CORS Configuration
CORS_ALLOW_ALL_ORIGINS = DEBUG
CORS_ALLOWED_ORIGINS = env.list('CORS_ALLOWED_ORIGINS', default=[])
CORS_ALLOWED_ORIGIN_REGEXES = [
    r"^https?://[a-z0-9-]+\." + re.escape(TEAM_BASE_DOMAIN) + r"$",
]
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_HEADERS = [
    'accept',
    'accept-encoding',
    'authorization',
    'content-type',
    'origin',
    'user-agent',
    'x-requested-with',
    'x-request-id',
    'x-subdomain',
    'x-device-id',
]
CORS_EXPOSE_HEADERS = ['x-request-id', 'retry-after', 'x-ratelimit-limit', 'x-ratelimit-remaining']

# Cache: Redis when configured, process memory otherwise
REDIS_URL = env('REDIS_URL', default=None)

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
                'SOCKET_CONNECT_TIMEOUT': 5,
                'SOCKET_TIMEOUT': 5,
                'CONNECTION_POOL_KWARGS': {
                    'max_connections': 50,
                    'retry_on_timeout': True,
                },
            },
            'KEY_PREFIX': 'teamstride',
            'TIMEOUT': 300,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'teamstride',
        }
    }

# Request rate limiting (apps.core.rate_limiting)
RATE_LIMIT_ENABLED = env('RATE_LIMIT_ENABLED')
RATE_LIMIT_WINDOW_MINUTES = env.int('RATE_LIMIT_WINDOW_MINUTES', default=15)
RATE_LIMIT_MAX_REQUESTS_PER_IP = env.int('RATE_LIMIT_MAX_REQUESTS_PER_IP', default=100)
RATE_LIMIT_MAX_REQUESTS_PER_DEVICE = env.int('RATE_LIMIT_MAX_REQUESTS_PER_DEVICE', default=50)
RATE_LIMIT_MAX_REQUESTS_PER_EMAIL = env.int('RATE_LIMIT_MAX_REQUESTS_PER_EMAIL', default=5)
RATE_LIMIT_MAX_REQUESTS_PER_TEAM = env.int('RATE_LIMIT_MAX_REQUESTS_PER_TEAM', default=200)
RATE_LIMIT_EMAIL_PATHS = ['/v1/auth/register']

# Login attempts per email address (django-ratelimit)
LOGIN_RATE_LIMIT = env('LOGIN_RATE_LIMIT', default='10/h')
LOGIN_RATE_LIMIT_RETRY_AFTER = env.int('LOGIN_RATE_LIMIT_RETRY_AFTER', default=3600)

# Account lockout after consecutive wrong passwords
LOGIN_LOCKOUT_THRESHOLD = env.int('LOGIN_LOCKOUT_THRESHOLD', default=5)
LOGIN_LOCKOUT_MINUTES = env.int('LOGIN_LOCKOUT_MINUTES', default=15)

RATELIMIT_USE_CACHE = 'default'
RATELIMIT_ENABLE = RATE_LIMIT_ENABLED

# The local memory cache is fine for development; production sets REDIS_URL
SILENCED_SYSTEM_CHECKS = ['django_ratelimit.E003', 'django_ratelimit.W001']

# Logging Configuration
LOG_LEVEL = env('LOG_LEVEL')
JSON_LOGS = env('JSON_LOGS')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'apps.core.logging.JSONFormatter',
        },
        'verbose': {
            '()': 'apps.core.log_sanitizer.SanitizingFormatter',
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            '()': 'apps.core.log_sanitizer.SanitizingFormatter',
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'filters': {
        'sanitize': {
            '()': 'apps.core.log_sanitizer.SanitizingFilter',
        },
    },
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'json' if JSON_LOGS else 'verbose',
            'filters': ['sanitize'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Sentry Configuration
SENTRY_DSN = env('SENTRY_DSN', default=None)
SENTRY_ENVIRONMENT = env('SENTRY_ENVIRONMENT', default='development')
SENTRY_RELEASE = env('SENTRY_RELEASE', default=None)

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
        ],
        environment=SENTRY_ENVIRONMENT,
        release=SENTRY_RELEASE,
        traces_sample_rate=0.1 if not DEBUG else 1.0,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

# Email Configuration
EMAIL_BACKEND = env('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = env('EMAIL_HOST', default='localhost')
EMAIL_PORT = env.int('EMAIL_PORT', default=587)
EMAIL_USE_TLS = env.bool('EMAIL_USE_TLS', default=True)
EMAIL_HOST_USER = env('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = env('EMAIL_HOST_PASSWORD', default='')
DEFAULT_FROM_EMAIL = env('DEFAULT_FROM_EMAIL', default='noreply@teamstride.local')

# Frontend Configuration
FRONTEND_URL = env('FRONTEND_URL', default='http://localhost:3000')

# JWT Authentication Configuration
# Validated by apps.core.apps.validate_jwt_secret when serving requests;
# the development default must be replaced in production.
JWT_SECRET_KEY = env('JWT_SECRET_KEY', default='dev-jwt-Q7m2Kx9pLw4Rz8Nv3Tb6Yc1Hd5Fg0Js')
JWT_ALGORITHM = env('JWT_ALGORITHM', default='HS256')
JWT_ISSUER = env('JWT_ISSUER', default='teamstride')
JWT_AUDIENCE = env('JWT_AUDIENCE', default='teamstride-api')
JWT_EXPIRATION_MINUTES = env.int('JWT_EXPIRATION_MINUTES', default=60)

# Teams
MIN_SUBDOMAIN_LENGTH = env.int('MIN_SUBDOMAIN_LENGTH', default=3)
OWNERSHIP_TRANSFER_TTL_DAYS = env.int('OWNERSHIP_TRANSFER_TTL_DAYS', default=7)

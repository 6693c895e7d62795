from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging
import sys

logger = logging.getLogger(__name__)

KEY_HINT = 'Generate a strong key with: python -c "import secrets; print(secrets.token_urlsafe(32))"'


def validate_jwt_secret(jwt_secret, secret_key):
    """
    Reject JWT signing keys that are missing, short, reused or low-entropy.

    Raises:
        ImproperlyConfigured: When the key is unsafe
    """
    if not jwt_secret:
        raise ImproperlyConfigured(f"JWT_SECRET_KEY must be set. {KEY_HINT}")

    if len(jwt_secret) < 32:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY must be at least 32 characters long. "
            f"Current length: {len(jwt_secret)}. {KEY_HINT}"
        )

    if jwt_secret == secret_key:
        raise ImproperlyConfigured(f"JWT_SECRET_KEY must be different from SECRET_KEY. {KEY_HINT}")

    unique_chars = len(set(jwt_secret))
    if unique_chars < 16:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY has insufficient entropy: {unique_chars} unique characters, "
            f"need at least 16. {KEY_HINT}"
        )


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Validate security-critical configuration when serving requests.

        Management commands other than runserver skip the checks so that
        migrations and shells work without production secrets.
        """
        serving = 'runserver' in sys.argv or 'gunicorn' in sys.argv[0]
        if not serving:
            return

        validate_jwt_secret(
            getattr(settings, 'JWT_SECRET_KEY', None),
            getattr(settings, 'SECRET_KEY', None),
        )
        if not settings.DEBUG and not getattr(settings, 'SECURE_SSL_REDIRECT', False):
            logger.warning("SECURE_SSL_REDIRECT is not enabled in production")

        logger.info("Startup security validations passed")

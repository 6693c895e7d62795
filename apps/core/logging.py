"""
Structured logging: PII masking, JSON formatter and security event logging.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone as dt_timezone
from django.utils import timezone
import sentry_sdk


class PIIMasker:
    """
    Mask emails, tokens and secrets before they reach log output.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    SECRET_PATTERN = re.compile(
        r'(token|secret|password|authorization)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE
    )

    # Field names whose values are never logged
    SENSITIVE_FIELDS = {
        'password', 'password_hash',
        'token', 'access_token', 'transfer_token', 'jti',
        'secret', 'secret_key', 'authorization',
    }

    # Field names whose values are partially masked
    PARTIAL_FIELDS = {
        'email', 'user_email', 'new_owner_email',
    }

    @classmethod
    def mask_email(cls, text):
        """Mask the local part of email addresses in text."""
        if not isinstance(text, str):
            return text

        def mask_email_match(match):
            username, _, domain = match.group(0).partition('@')
            if len(username) > 1:
                username = username[0] + '*' * (len(username) - 1)
            return f"{username}@{domain}"

        return cls.EMAIL_PATTERN.sub(mask_email_match, text)

    @classmethod
    def mask_secrets(cls, text):
        if not isinstance(text, str):
            return text
        return cls.SECRET_PATTERN.sub(r'\1: ********', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        return cls.mask_secrets(cls.mask_email(text))

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive values in a dict."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            key_lower = key.lower()
            if key_lower in cls.SENSITIVE_FIELDS:
                masked[key] = '********' if value else value
            elif key_lower in cls.PARTIAL_FIELDS:
                masked[key] = cls.mask_email(value)
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item) for item in value]
            elif isinstance(value, str):
                masked[key] = cls.mask_text(value)
            else:
                masked[key] = value

        return masked


# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRIBUTES = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message',
    'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName', 'request_id', 'team_id', 'user_id',
}


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    request_id, team_id and user_id are promoted to top-level keys when a
    record carries them; all values pass through PIIMasker.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for key in ('request_id', 'team_id', 'user_id'):
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = str(value)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [PIIMasker.mask_text(line) for line in traceback.format_exception(*record.exc_info)],
            }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith('_'):
                continue
            try:
                if isinstance(value, dict):
                    masked_value = PIIMasker.mask_dict(value)
                elif isinstance(value, str):
                    masked_value = PIIMasker.mask_dict({key: value})[key]
                else:
                    masked_value = value
                json.dumps(masked_value)
                log_data[key] = masked_value
            except (TypeError, ValueError):
                log_data[key] = PIIMasker.mask_text(str(value))

        return json.dumps(log_data)


class SecurityLogger:
    """
    Centralized logging for security events on the ``security`` logger.

    Critical events are also sent to Sentry for alerting.
    """

    CRITICAL_EVENTS = {
        'cross_team_access_attempt',
        'suspicious_activity',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Args:
            event_type: Type of security event (e.g., 'failed_login', 'permission_denied')
            level: Log level ('info', 'warning', 'error', 'critical')
            **context: Additional context data (ip_address, user_id, team_id, etc.)

        Example:
            >>> SecurityLogger.log_event(
            ...     'ownership_transfer_completed',
            ...     level='info',
            ...     team_id='123',
            ...     new_owner_id='456'
            ... )
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'event_time': timezone.now().isoformat(),
        }
        log_data.update({key: value for key, value in context.items() if value is not None})
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(f"Security event: {event_type}", extra=log_data)

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
                extras=log_data
            )

    @staticmethod
    def log_failed_login(email: str, ip_address: str, reason: str = None):
        SecurityLogger.log_event(
            'failed_login',
            level='warning',
            user_email=email,
            ip_address=ip_address,
            reason=reason
        )

    @staticmethod
    def log_account_lockout(email: str, ip_address: str, reason: str = 'too_many_failed_attempts'):
        SecurityLogger.log_event(
            'account_lockout',
            level='warning',
            user_email=email,
            ip_address=ip_address,
            reason=reason
        )

    @staticmethod
    def log_permission_denied(context, reason: str, team_id=None):
        """
        Log an authorization failure.

        Args:
            context: RequestContext of the caller
            reason: Reason string returned to the caller
            team_id: Team the caller tried to reach
        """
        SecurityLogger.log_event(
            'permission_denied',
            level='warning',
            user_id=str(context.user_id) if context.user_id else None,
            caller_team_id=str(context.team_id) if context.team_id else None,
            requested_team_id=str(team_id) if team_id else None,
            request_id=context.request_id,
            reason=reason
        )

    @staticmethod
    def log_cross_team_access(context, requested_team_id):
        """Log a caller reaching for a team other than the one in its token."""
        SecurityLogger.log_event(
            'cross_team_access_attempt',
            level='error',
            user_id=str(context.user_id) if context.user_id else None,
            caller_team_id=str(context.team_id) if context.team_id else None,
            requested_team_id=str(requested_team_id),
            request_id=context.request_id
        )

    @staticmethod
    def log_team_not_found(subdomain: str, ip_address: str = None):
        SecurityLogger.log_event(
            'team_not_found',
            level='info',
            subdomain=subdomain,
            ip_address=ip_address
        )

    @staticmethod
    def log_rate_limit_exceeded(
        endpoint: str,
        ip_address: str,
        user_email: str = None,
        team_id: str = None,
        limit: str = None
    ):
        """
        Log a rate limit violation.

        Args:
            endpoint: API endpoint that was rate limited
            ip_address: IP address of the request
            user_email: Registration email (if present)
            team_id: Team id (if the endpoint is team-scoped)
            limit: Dimension or rule that was exceeded
        """
        SecurityLogger.log_event(
            'rate_limit_exceeded',
            level='warning',
            endpoint=endpoint,
            ip_address=ip_address,
            user_email=user_email,
            requested_team_id=team_id,
            limit=limit
        )

    @staticmethod
    def log_ownership_transfer(event: str, transfer, context, **extra):
        """Log an ownership transfer lifecycle event."""
        SecurityLogger.log_event(
            f'ownership_transfer_{event}',
            level='info',
            transfer_id=str(transfer.id),
            requested_team_id=str(transfer.team_id),
            user_id=str(context.user_id) if context and context.user_id else None,
            request_id=context.request_id if context else None,
            **extra
        )

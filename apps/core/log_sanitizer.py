"""
Log sanitization to keep credentials out of log output.

Redacts bearer tokens, JWTs, ownership transfer tokens, passwords and
database URL credentials from log messages.
"""
import re
import logging


class SanitizingFormatter(logging.Formatter):
    """
    Log formatter that redacts sensitive data from the formatted message.
    """

    PATTERNS = [
        # Bearer tokens
        (re.compile(r'Bearer\s+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'Bearer [REDACTED]'),

        # JWT tokens (header.payload.signature format)
        (re.compile(r'eyJ[a-zA-Z0-9_\-]+\.eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+'), r'[REDACTED_JWT]'),

        # Ownership transfer and other opaque tokens
        (re.compile(r'token["\s:=]+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'token=[REDACTED]'),

        # Passwords
        (re.compile(r'password["\s:=]+([^\s,\]}"\']+)', re.IGNORECASE), r'password=[REDACTED]'),

        # Secrets
        (re.compile(r'secret(?:_key)?["\s:=]+([a-zA-Z0-9_\-]{20,})', re.IGNORECASE), r'secret=[REDACTED]'),

        # Database URLs with passwords
        (re.compile(r'://([^:/@\s]+):([^@\s]+)@'), r'://\1:[REDACTED]@'),

        # Authorization headers
        (re.compile(r'Authorization["\s:]+([^\s,\]}"\']+)', re.IGNORECASE), r'Authorization: [REDACTED]'),
    ]

    @classmethod
    def sanitize(cls, text):
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def format(self, record):
        return self.sanitize(super().format(record))


class SanitizingFilter(logging.Filter):
    """
    Logging filter that redacts the message and string args of a record
    before any handler formats it.
    """

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = SanitizingFormatter.sanitize(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                SanitizingFormatter.sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True

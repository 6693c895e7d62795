"""
Tests for PII masking, log sanitization and security event logging.
"""
import json
import logging
from unittest.mock import patch
import pytest
from apps.core.context import RequestContext
from apps.core.log_sanitizer import SanitizingFilter, SanitizingFormatter
from apps.core.logging import JSONFormatter, PIIMasker, SecurityLogger


class CollectingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def security_records():
    handler = CollectingHandler()
    security_logger = logging.getLogger('security')
    security_logger.addHandler(handler)
    previous_level = security_logger.level
    security_logger.setLevel(logging.DEBUG)
    yield handler.records
    security_logger.removeHandler(handler)
    security_logger.setLevel(previous_level)


def make_record(msg, **extra):
    record = logging.LogRecord('apps.test', logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestPIIMasker:

    def test_masks_email_local_part(self):
        assert PIIMasker.mask_email('contact coach@eagles.test now') == 'contact c****@eagles.test now'

    def test_mask_dict_hides_sensitive_fields(self):
        masked = PIIMasker.mask_dict({
            'password': 'hunter22',
            'token': 'abc',
            'new_owner_email': 'next@eagles.test',
            'nested': {'secret': 'shh'},
            'team_id': 'team-1',
        })

        assert masked['password'] == '********'
        assert masked['token'] == '********'
        assert masked['new_owner_email'] == 'n***@eagles.test'
        assert masked['nested'] == {'secret': '********'}
        assert masked['team_id'] == 'team-1'


class TestJSONFormatter:

    def test_promotes_correlation_fields(self):
        record = make_record('Team created', request_id='req-1', team_id='team-1', user_id=None)

        data = json.loads(JSONFormatter().format(record))

        assert data['message'] == 'Team created'
        assert data['request_id'] == 'req-1'
        assert data['team_id'] == 'team-1'
        assert 'user_id' not in data

    def test_masks_message_and_extras(self):
        record = make_record('Invite sent to coach@eagles.test', new_owner_email='next@eagles.test')

        data = json.loads(JSONFormatter().format(record))

        assert 'coach@eagles.test' not in data['message']
        assert data['new_owner_email'] == 'n***@eagles.test'


class TestSanitizer:

    def test_redacts_bearer_token(self):
        text = SanitizingFormatter.sanitize('Authorization header: Bearer abcdefghijklmnopqrstuvwxyz123456')

        assert 'abcdefghijklmnopqrstuvwxyz123456' not in text

    def test_redacts_database_password(self):
        text = SanitizingFormatter.sanitize('connecting to postgres://app:s3cret@db:5432/teamstride')

        assert 's3cret' not in text
        assert 'postgres://app:[REDACTED]@db' in text

    def test_filter_rewrites_record(self):
        record = make_record('password=hunter22 rejected')

        assert SanitizingFilter().filter(record) is True
        assert 'hunter22' not in record.msg


class TestSecurityLogger:

    def test_log_event_masks_and_drops_empty_values(self, security_records):
        SecurityLogger.log_failed_login('coach@eagles.test', '10.0.0.1', reason='invalid_password')

        record = security_records[-1]
        assert record.levelno == logging.WARNING
        assert record.event_type == 'failed_login'
        assert record.user_email == 'c****@eagles.test'
        assert record.reason == 'invalid_password'

    def test_cross_team_access_is_reported_to_sentry(self, security_records):
        context = RequestContext(user_id=None, team_id=None, request_id='req-9')

        with patch('apps.core.logging.sentry_sdk.capture_message') as capture:
            SecurityLogger.log_cross_team_access(context, 'team-2')

        capture.assert_called_once()
        assert security_records[-1].levelno == logging.ERROR
        assert security_records[-1].requested_team_id == 'team-2'

    def test_non_critical_events_skip_sentry(self, security_records):
        with patch('apps.core.logging.sentry_sdk.capture_message') as capture:
            SecurityLogger.log_team_not_found('ghosts', '10.0.0.1')

        capture.assert_not_called()
        assert security_records[-1].subdomain == 'ghosts'

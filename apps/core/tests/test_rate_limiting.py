"""
Tests for the in-memory rate limiter and its middleware.
"""
import threading
import pytest
from rest_framework import status
from apps.core.exceptions import RateLimitExceeded
from apps.core.rate_limiting import (
    DIMENSION_DEVICE, DIMENSION_EMAIL, DIMENSION_IP, DIMENSION_TEAM,
    RateLimiter, RateLimitRule, reset_rate_limiter,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_limiter(clock, ip=3, device=2, email=1, team=5, window=60):
    return RateLimiter(
        {
            DIMENSION_IP: RateLimitRule(ip, window),
            DIMENSION_DEVICE: RateLimitRule(device, window),
            DIMENSION_EMAIL: RateLimitRule(email, window),
            DIMENSION_TEAM: RateLimitRule(team, window),
        },
        clock=clock,
    )


class TestRateLimiter:
    """Test fixed-window counting per dimension."""

    def test_allows_up_to_limit_then_rejects(self):
        limiter = make_limiter(FakeClock())

        decisions = [limiter.hit(DIMENSION_IP, '10.0.0.1') for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]

    def test_rejection_does_not_increment(self):
        limiter = make_limiter(FakeClock())
        for _ in range(5):
            limiter.hit(DIMENSION_IP, '10.0.0.1')

        assert limiter.get_count(DIMENSION_IP, '10.0.0.1') == 3

    def test_retry_after_is_time_left_in_window(self):
        clock = FakeClock()
        limiter = make_limiter(clock, window=60)
        for _ in range(3):
            limiter.hit(DIMENSION_IP, '10.0.0.1')

        clock.now += 20.5
        decision = limiter.hit(DIMENSION_IP, '10.0.0.1')

        assert decision.allowed is False
        assert decision.retry_after == 40

    def test_window_resets_after_expiry(self):
        clock = FakeClock()
        limiter = make_limiter(clock, window=60)
        for _ in range(3):
            limiter.hit(DIMENSION_IP, '10.0.0.1')

        clock.now += 61
        decision = limiter.hit(DIMENSION_IP, '10.0.0.1')

        assert decision.allowed is True
        assert limiter.get_count(DIMENSION_IP, '10.0.0.1') == 1

    def test_dimensions_and_keys_are_independent(self):
        limiter = make_limiter(FakeClock(), email=1)

        assert limiter.hit(DIMENSION_EMAIL, 'a@example.com').allowed
        assert not limiter.hit(DIMENSION_EMAIL, 'a@example.com').allowed
        assert limiter.hit(DIMENSION_EMAIL, 'b@example.com').allowed
        assert limiter.hit(DIMENSION_IP, 'a@example.com').allowed

    def test_evaluate_skips_missing_identifiers(self):
        limiter = make_limiter(FakeClock())

        decisions = limiter.evaluate({DIMENSION_IP: '10.0.0.1', DIMENSION_DEVICE: None})

        assert [d.dimension for d in decisions] == [DIMENSION_IP]

    def test_evaluate_stops_at_first_rejection(self):
        limiter = make_limiter(FakeClock(), ip=1)
        identifiers = {DIMENSION_IP: '10.0.0.1', DIMENSION_DEVICE: 'device-1'}
        limiter.evaluate(identifiers)

        decisions = limiter.evaluate(identifiers)

        assert [d.dimension for d in decisions] == [DIMENSION_IP]
        assert decisions[-1].allowed is False
        assert limiter.get_count(DIMENSION_DEVICE, 'device-1') == 1

    def test_check_raises_with_retry_after(self):
        limiter = make_limiter(FakeClock(), team=1)
        limiter.check({DIMENSION_TEAM: 'team-1'})

        with pytest.raises(RateLimitExceeded) as excinfo:
            limiter.check({DIMENSION_TEAM: 'team-1'})

        assert excinfo.value.retry_after > 0
        assert excinfo.value.details == {'dimension': DIMENSION_TEAM}

    def test_reset_clears_counters(self):
        limiter = make_limiter(FakeClock())
        for _ in range(3):
            limiter.hit(DIMENSION_IP, '10.0.0.1')

        limiter.reset()

        assert limiter.get_count(DIMENSION_IP, '10.0.0.1') == 0
        assert limiter.hit(DIMENSION_IP, '10.0.0.1').allowed

    def test_concurrent_hits_never_exceed_limit(self):
        limiter = make_limiter(FakeClock(), ip=50)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                decision = limiter.hit(DIMENSION_IP, '10.0.0.1')
                if decision.allowed:
                    with lock:
                        allowed.append(decision)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(allowed) == 50
        assert limiter.get_count(DIMENSION_IP, '10.0.0.1') == 50


@pytest.mark.django_db
class TestRateLimitMiddleware:
    """Test limits applied to HTTP requests."""

    AVAILABILITY_URL = '/v1/teams/subdomains/falcons/availability'

    def test_ip_limit_returns_429_with_retry_after(self, api_client, settings):
        settings.RATE_LIMIT_MAX_REQUESTS_PER_IP = 3
        reset_rate_limiter()

        for _ in range(3):
            assert api_client.get(self.AVAILABILITY_URL).status_code == status.HTTP_200_OK
        response = api_client.get(self.AVAILABILITY_URL)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert int(response['Retry-After']) > 0
        assert response.json()['error']['code'] == 'RATE_LIMIT_EXCEEDED'

    def test_successful_response_carries_limit_headers(self, api_client, settings):
        settings.RATE_LIMIT_MAX_REQUESTS_PER_IP = 10
        reset_rate_limiter()

        response = api_client.get(self.AVAILABILITY_URL)

        assert response['X-RateLimit-Limit'] == '10'
        assert response['X-RateLimit-Remaining'] == '9'

    def test_device_limit(self, api_client, settings):
        settings.RATE_LIMIT_MAX_REQUESTS_PER_DEVICE = 2
        reset_rate_limiter()

        for _ in range(2):
            api_client.get(self.AVAILABILITY_URL, HTTP_X_DEVICE_ID='phone-1')
        limited = api_client.get(self.AVAILABILITY_URL, HTTP_X_DEVICE_ID='phone-1')
        other_device = api_client.get(self.AVAILABILITY_URL, HTTP_X_DEVICE_ID='phone-2')

        assert limited.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert other_device.status_code == status.HTTP_200_OK

    def test_registration_email_limit(self, api_client, settings):
        settings.RATE_LIMIT_MAX_REQUESTS_PER_EMAIL = 2
        reset_rate_limiter()
        payload = {
            'email': 'Repeat@Example.com',
            'password': 'Tr4ck-and-Field!',
            'team_name': 'Repeaters',
            'subdomain': 'repeaters',
        }

        first = api_client.post('/v1/auth/register', payload, format='json')
        second = api_client.post('/v1/auth/register', {**payload, 'email': 'repeat@example.com'}, format='json')
        third = api_client.post('/v1/auth/register', payload, format='json')

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_400_BAD_REQUEST
        assert third.status_code == status.HTTP_429_TOO_MANY_REQUESTS

    def test_health_check_is_exempt(self, api_client, settings):
        settings.RATE_LIMIT_MAX_REQUESTS_PER_IP = 1
        reset_rate_limiter()

        responses = [api_client.get('/v1/health') for _ in range(3)]

        assert all(r.status_code == status.HTTP_200_OK for r in responses)

    def test_disabled_limiter_never_rejects(self, api_client, settings):
        settings.RATE_LIMIT_ENABLED = False
        settings.RATE_LIMIT_MAX_REQUESTS_PER_IP = 1
        reset_rate_limiter()

        responses = [api_client.get(self.AVAILABILITY_URL) for _ in range(3)]

        assert all(r.status_code == status.HTTP_200_OK for r in responses)

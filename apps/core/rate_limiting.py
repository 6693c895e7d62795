"""
Rate limiting for API requests.

Fixed-window counters kept in process memory, one independent map per
dimension (client IP, device id, registration email, team id). A request
is checked against every dimension it carries; the first exhausted
dimension rejects it with 429 and a Retry-After header.

Counters are not shared between processes. Each instance enforces its
own limits.
"""
import json
import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, List, Optional
from django.conf import settings
from django.urls import resolve, Resolver404

from apps.core.exceptions import RateLimitExceeded, error_response

logger = logging.getLogger(__name__)


DIMENSION_IP = 'ip'
DIMENSION_DEVICE = 'device'
DIMENSION_EMAIL = 'email'
DIMENSION_TEAM = 'team'

# Evaluation order; the first violated dimension short-circuits the rest
DIMENSIONS = (DIMENSION_IP, DIMENSION_DEVICE, DIMENSION_EMAIL, DIMENSION_TEAM)


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int


@dataclass
class RateLimitCounter:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request against one dimension."""
    dimension: str
    identifier: str
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class RateLimiter:
    """
    In-memory fixed-window rate limiter.

    Each dimension has its own counter map and lock, so increments on the
    same key are atomic while dimensions never contend with each other.
    """

    # Counter maps above this size are swept for expired windows
    MAX_TRACKED_KEYS = 10000

    def __init__(self, rules: Dict[str, RateLimitRule], clock: Callable[[], float] = time.monotonic):
        self._rules = dict(rules)
        self._counters: Dict[str, Dict[str, RateLimitCounter]] = {name: {} for name in self._rules}
        self._locks = {name: threading.Lock() for name in self._rules}
        self._clock = clock

    @classmethod
    def from_settings(cls, clock: Callable[[], float] = time.monotonic):
        """Build a limiter from the RATE_LIMIT_* settings."""
        window = int(getattr(settings, 'RATE_LIMIT_WINDOW_MINUTES', 15)) * 60
        rules = {
            DIMENSION_IP: RateLimitRule(getattr(settings, 'RATE_LIMIT_MAX_REQUESTS_PER_IP', 100), window),
            DIMENSION_DEVICE: RateLimitRule(getattr(settings, 'RATE_LIMIT_MAX_REQUESTS_PER_DEVICE', 50), window),
            DIMENSION_EMAIL: RateLimitRule(getattr(settings, 'RATE_LIMIT_MAX_REQUESTS_PER_EMAIL', 5), window),
            DIMENSION_TEAM: RateLimitRule(getattr(settings, 'RATE_LIMIT_MAX_REQUESTS_PER_TEAM', 200), window),
        }
        return cls(rules, clock=clock)

    def rule(self, dimension: str) -> RateLimitRule:
        return self._rules[dimension]

    def hit(self, dimension: str, identifier: str) -> RateLimitDecision:
        """
        Count one request for ``identifier`` in ``dimension``.

        Args:
            dimension: One of the configured dimensions
            identifier: Key within the dimension (IP, device id, email, team id)

        Returns:
            RateLimitDecision; when not allowed the counter is left unchanged
        """
        rule = self._rules[dimension]
        counters = self._counters[dimension]

        with self._locks[dimension]:
            now = self._clock()
            counter = counters.get(identifier)

            if counter is None:
                if len(counters) >= self.MAX_TRACKED_KEYS:
                    self._purge_expired(counters, rule, now)
                counter = RateLimitCounter(count=0, window_start=now)
                counters[identifier] = counter
            elif now - counter.window_start > rule.window_seconds:
                counter.count = 0
                counter.window_start = now

            if counter.count >= rule.max_requests:
                elapsed = now - counter.window_start
                retry_after = max(1, math.ceil(rule.window_seconds - elapsed))
                return RateLimitDecision(
                    dimension=dimension,
                    identifier=identifier,
                    allowed=False,
                    limit=rule.max_requests,
                    remaining=0,
                    retry_after=retry_after,
                )

            counter.count += 1
            return RateLimitDecision(
                dimension=dimension,
                identifier=identifier,
                allowed=True,
                limit=rule.max_requests,
                remaining=rule.max_requests - counter.count,
                retry_after=0,
            )

    def evaluate(self, identifiers: Dict[str, Optional[str]]) -> List[RateLimitDecision]:
        """
        Check a request against every dimension it carries.

        Dimensions without an identifier are skipped. Evaluation stops at
        the first rejection, which is then the last decision returned.
        """
        decisions = []
        for dimension in DIMENSIONS:
            identifier = identifiers.get(dimension)
            if not identifier or dimension not in self._rules:
                continue
            decision = self.hit(dimension, identifier)
            decisions.append(decision)
            if not decision.allowed:
                break
        return decisions

    def check(self, identifiers: Dict[str, Optional[str]]) -> List[RateLimitDecision]:
        """Like ``evaluate`` but raises RateLimitExceeded on rejection."""
        decisions = self.evaluate(identifiers)
        if decisions and not decisions[-1].allowed:
            rejected = decisions[-1]
            raise RateLimitExceeded(
                f'Rate limit exceeded. Please try again in {rejected.retry_after} seconds.',
                retry_after=rejected.retry_after,
                details={'dimension': rejected.dimension},
            )
        return decisions

    def get_count(self, dimension: str, identifier: str) -> int:
        counter = self._counters[dimension].get(identifier)
        return counter.count if counter else 0

    def reset(self):
        """Drop every counter."""
        for dimension, counters in self._counters.items():
            with self._locks[dimension]:
                counters.clear()

    @staticmethod
    def _purge_expired(counters, rule, now):
        expired = [key for key, counter in counters.items() if now - counter.window_start > rule.window_seconds]
        for key in expired:
            del counters[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired rate limit counters")


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter built from settings."""
    return RateLimiter.from_settings()


def reset_rate_limiter():
    """Forget the process-wide limiter so the next call rebuilds it from settings."""
    get_rate_limiter.cache_clear()


class RateLimitMiddleware:
    """
    Middleware enforcing the per-dimension rate limits.

    Runs before authentication and team resolution; rejected requests
    never reach a view.
    """

    PUBLIC_PATHS = [
        '/v1/health',
        '/schema',
    ]

    def __init__(self, get_response, limiter: Optional[RateLimiter] = None):
        self.get_response = get_response
        self.limiter = limiter

    def __call__(self, request):
        if not getattr(settings, 'RATE_LIMIT_ENABLED', True) or self._is_public_path(request.path):
            return self.get_response(request)

        limiter = self.limiter or get_rate_limiter()
        identifiers = self._collect_identifiers(request)

        try:
            decisions = limiter.check(identifiers)
        except RateLimitExceeded as exc:
            from apps.core.logging import SecurityLogger

            logger.warning(
                f"Rate limit exceeded on {exc.details.get('dimension')} dimension",
                extra={
                    'request_id': getattr(request, 'request_id', None),
                    'path': request.path,
                    'method': request.method,
                    'retry_after': exc.retry_after,
                }
            )
            SecurityLogger.log_rate_limit_exceeded(
                endpoint=request.path,
                ip_address=identifiers.get(DIMENSION_IP),
                user_email=identifiers.get(DIMENSION_EMAIL),
                team_id=identifiers.get(DIMENSION_TEAM),
                limit=exc.details.get('dimension'),
            )
            return error_response(exc, getattr(request, 'request_id', None))

        response = self.get_response(request)

        ip_decision = next((d for d in decisions if d.dimension == DIMENSION_IP), None)
        if ip_decision is not None:
            response['X-RateLimit-Limit'] = str(ip_decision.limit)
            response['X-RateLimit-Remaining'] = str(ip_decision.remaining)

        return response

    def _collect_identifiers(self, request) -> Dict[str, Optional[str]]:
        return {
            DIMENSION_IP: request.META.get('REMOTE_ADDR') or None,
            DIMENSION_DEVICE: request.headers.get('X-Device-ID') or None,
            DIMENSION_EMAIL: self._registration_email(request),
            DIMENSION_TEAM: self._team_id(request),
        }

    def _registration_email(self, request) -> Optional[str]:
        """Email from the body of a registration request."""
        if request.method != 'POST':
            return None
        email_paths = getattr(settings, 'RATE_LIMIT_EMAIL_PATHS', ['/v1/auth/register'])
        if not any(request.path.startswith(path) for path in email_paths):
            return None

        email = None
        if request.content_type == 'application/json':
            try:
                payload = json.loads(request.body or b'{}')
            except (ValueError, UnicodeDecodeError):
                return None
            if isinstance(payload, dict):
                email = payload.get('email')
        else:
            email = request.POST.get('email')

        if not isinstance(email, str) or not email.strip():
            return None
        return email.strip().lower()

    def _team_id(self, request) -> Optional[str]:
        """Team id route value of a team-scoped endpoint."""
        try:
            match = resolve(request.path_info)
        except Resolver404:
            return None
        team_id = match.kwargs.get('team_id')
        return str(team_id) if team_id else None

    def _is_public_path(self, path):
        """Check if path is exempt from rate limiting."""
        return any(path.startswith(public_path) for public_path in self.PUBLIC_PATHS)

"""
Exception taxonomy and DRF exception handler.
"""
import logging
from rest_framework.response import Response
from rest_framework import status
from django.http import JsonResponse

logger = logging.getLogger(__name__)


class TeamStrideException(Exception):
    """Base exception for TeamStride-specific errors."""
    status_code = 400
    code = 'ERROR'

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Error envelope shared by views and middleware."""
        error = {
            'code': self.code,
            'message': self.message,
        }
        if self.details:
            error['details'] = self.details
        return {'error': error}


class AuthenticationError(TeamStrideException):
    """Raised when the caller is not authenticated or the token is invalid."""
    status_code = 401
    code = 'UNAUTHENTICATED'


class PermissionDeniedError(TeamStrideException):
    """Raised when an authenticated caller lacks access."""
    status_code = 403
    code = 'FORBIDDEN'


class NotFoundError(TeamStrideException):
    status_code = 404
    code = 'NOT_FOUND'


class TeamNotFound(NotFoundError):
    """Raised when a team cannot be resolved."""
    code = 'TEAM_NOT_FOUND'


class OwnershipTransferNotFound(NotFoundError):
    code = 'TRANSFER_NOT_FOUND'


class ConflictError(TeamStrideException):
    status_code = 409
    code = 'CONFLICT'


class SubdomainUnavailable(ConflictError):
    """Raised when a subdomain is already claimed by a non-deleted team."""
    code = 'SUBDOMAIN_UNAVAILABLE'


class OwnershipTransferPending(ConflictError):
    """Raised when a team already has a pending ownership transfer."""
    code = 'TRANSFER_PENDING'


class ValidationError(TeamStrideException):
    """Raised when input validation fails."""
    status_code = 400
    code = 'VALIDATION_ERROR'


class OwnershipTransferExpired(ValidationError):
    code = 'TRANSFER_EXPIRED'


class InvalidOwnershipTransferState(ValidationError):
    """Raised when a transfer is no longer pending."""
    code = 'TRANSFER_NOT_PENDING'


class TierLimitExceeded(ValidationError):
    code = 'TIER_LIMIT_EXCEEDED'


class RateLimitExceeded(TeamStrideException):
    """Raised when a rate limit is exceeded."""
    status_code = 429
    code = 'RATE_LIMIT_EXCEEDED'

    def __init__(self, message, retry_after, details=None):
        super().__init__(message, details)
        self.retry_after = retry_after


class TransientPersistenceError(TeamStrideException):
    """Raised when a database operation keeps failing after all retries."""
    status_code = 503
    code = 'SERVICE_UNAVAILABLE'


def error_response(exc, request_id=None):
    """Render a TeamStrideException as a JsonResponse (for middleware)."""
    data = exc.to_dict()
    if request_id:
        data['request_id'] = request_id
    response = JsonResponse(data, status=exc.status_code)
    if isinstance(exc, RateLimitExceeded):
        response['Retry-After'] = str(exc.retry_after)
    return response


def custom_exception_handler(exc, context):
    """
    Exception handler that logs errors and returns a consistent envelope.
    """
    # Imported here: rest_framework.views resolves DEFAULT_AUTHENTICATION_CLASSES,
    # which imports apps.core.authentication and in turn this module.
    from rest_framework.views import exception_handler

    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, TeamStrideException):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"API error {exc.code}: {exc.message}",
            extra={
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
                'status_code': exc.status_code,
            }
        )
        data = exc.to_dict()
        data['request_id'] = request_id
        response = Response(data, status=exc.status_code)
        if isinstance(exc, RateLimitExceeded):
            response['Retry-After'] = str(exc.retry_after)
        return response

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"Unhandled API exception: {exc.__class__.__name__}",
            extra={
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
            exc_info=True
        )
        return Response(
            {
                'error': {
                    'code': 'INTERNAL_ERROR',
                    'message': 'An unexpected error occurred',
                },
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.info(
        f"API exception: {exc.__class__.__name__}",
        extra={
            'request_id': request_id,
            'path': request.path if request else None,
            'status_code': response.status_code,
        }
    )

    codes = {
        401: 'UNAUTHENTICATED',
        403: 'FORBIDDEN',
        404: 'NOT_FOUND',
        405: 'METHOD_NOT_ALLOWED',
    }
    detail = response.data
    if isinstance(detail, dict) and 'detail' in detail:
        envelope = {
            'error': {
                'code': codes.get(response.status_code, 'ERROR'),
                'message': str(detail['detail']),
            }
        }
    else:
        envelope = {
            'error': {
                'code': 'VALIDATION_ERROR',
                'message': 'Invalid request data',
                'details': detail,
            }
        }
    envelope['request_id'] = request_id
    response.data = envelope
    return response

"""
Request id propagation.
"""
import uuid
from django.utils.deprecation import MiddlewareMixin


REQUEST_ID_HEADER = 'X-Request-ID'


class RequestIDMiddleware(MiddlewareMixin):
    """
    Give every request an id and echo it back in ``X-Request-ID``.

    A caller-supplied id is kept so traces can span services. The id is
    carried into the RequestContext and every error envelope.
    """

    def process_request(self, request):
        incoming = (request.headers.get(REQUEST_ID_HEADER) or '').strip()
        request.request_id = incoming[:128] or str(uuid.uuid4())

    def process_response(self, request, response):
        request_id = getattr(request, 'request_id', None)
        if request_id:
            response[REQUEST_ID_HEADER] = request_id
        return response

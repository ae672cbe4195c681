"""Request correlation and payload limits for the API.

``RequestIdMiddleware`` gives every request an identifier: the incoming
``X-Request-Id`` header when the client sent one, a fresh UUIDv4
otherwise. The id is stored on the request, echoed in the response's
``X-Request-ID`` header and kept in ``REQUEST_ID_CTX`` so code without
access to the request (HTTP adapters, log filters, watchers scheduled
from the request) can read it.

``PAYMENT_ID_CTX`` plays the same role for the payment a confirmation
watcher is working on.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
PAYMENT_ID_CTX = contextvars.ContextVar("payment_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(64 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier."""

    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"   # header added to outgoing responses

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject oversized ``/api/`` bodies with 413 before they are parsed."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)

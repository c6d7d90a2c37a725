# core/middleware.py
from __future__ import annotations

import uuid

from .logging import request_id_var


def _set_header(resp, name: str, value: str) -> None:
    try:
        resp.headers[name] = value
    except AttributeError:
        resp[name] = value


class RequestIDMiddleware:
    """Attach a request ID, expose it to log records, and echo it back as X-Request-ID."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = (request.META.get("HTTP_X_REQUEST_ID") or "").strip()[:64] or uuid.uuid4().hex
        request.request_id = rid
        token = request_id_var.set(rid)
        try:
            resp = self.get_response(request)
        finally:
            request_id_var.reset(token)
        _set_header(resp, "X-Request-ID", rid)
        return resp

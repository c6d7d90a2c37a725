# core/http.py
import logging

from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import CheckoutError

logger = logging.getLogger(__name__)


class PublicAPIView(APIView):
    """Storefront endpoints: anonymous buyers, no session or CSRF involvement."""

    authentication_classes = []
    permission_classes = [permissions.AllowAny]


def error_response(exc: CheckoutError) -> Response:
    """JSON body + status for a domain failure. Server-side errors are logged with their context."""
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "checkout.error.%s", exc.code, extra={"status_code": exc.status_code, **exc.extra})
    return Response(exc.as_payload(), status=exc.status_code)

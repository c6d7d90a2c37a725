# payments/views.py
from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response

from core.config import get_config
from core.exceptions import AuthenticityError, CheckoutError
from core.http import PublicAPIView, error_response
from orders.identity import identity_from_request

from .gateways import PaystackClient
from .serializers import (
    CheckoutInitResponseSerializer,
    CheckoutInitSerializer,
    PublicConfigSerializer,
    VerifyQuerySerializer,
    VerifyResponseSerializer,
)
from .services import handle_paystack_webhook, initialize_checkout, verify_on_return

logger = logging.getLogger(__name__)


class PublicConfigView(PublicAPIView):
    @extend_schema(responses=PublicConfigSerializer, summary="Storefront configuration", tags=["Payments"])
    def get(self, request):
        config = get_config()
        return Response(
            {
                "public_key": config.paystack_public_key,
                "product": {
                    "id": config.product.id,
                    "name": config.product.name,
                    "amount_kobo": config.product.price_minor,
                    "currency": config.product.currency,
                },
                "site_url": config.site_url,
            }
        )


class InitializeTransactionView(PublicAPIView):
    @extend_schema(
        request=CheckoutInitSerializer,
        responses=CheckoutInitResponseSerializer,
        summary="Initialize a Paystack transaction for the product",
        tags=["Payments"],
    )
    def post(self, request):
        config = get_config()
        ser = CheckoutInitSerializer(data=request.data, require_name=config.require_name)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            init = initialize_checkout(
                email=data["email"],
                first_name=data.get("first_name", "").strip(),
                last_name=data.get("last_name", "").strip(),
                identity=identity_from_request(request),
                config=config,
                gateway=PaystackClient(config),
            )
        except CheckoutError as exc:
            return error_response(exc)

        return Response(
            {
                "ok": True,
                "reference": init.reference,
                "access_code": init.access_code,
                "authorization_url": init.authorization_url,
                "public_key": init.public_key,
            },
            status=status.HTTP_200_OK,
        )


class VerifyTransactionView(PublicAPIView):
    @extend_schema(
        parameters=[OpenApiParameter("reference", str, required=True)],
        responses=VerifyResponseSerializer,
        summary="Verify a transaction after the buyer returns from checkout",
        tags=["Payments"],
    )
    def get(self, request):
        ser = VerifyQuerySerializer(data=request.query_params)
        if not ser.is_valid():
            return Response(
                {"ok": False, "error": "reference is required"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        config = get_config()
        try:
            outcome = verify_on_return(
                ser.validated_data["reference"],
                config=config,
                gateway=PaystackClient(config),
            )
        except CheckoutError as exc:
            return error_response(exc)

        if not outcome.verified:
            return Response({"ok": False, "verified": False, "status": outcome.status})
        return Response(
            {
                "ok": True,
                "verified": True,
                "status": outcome.status,
                "token": outcome.token,
                "expires_at": outcome.expires_at,
                "redirect": outcome.redirect,
            }
        )


@csrf_exempt
@require_POST
def paystack_webhook(request):
    """Signed processor push. Always 200 once authenticated so Paystack stops retrying."""
    signature = request.META.get("HTTP_X_PAYSTACK_SIGNATURE")
    try:
        outcome = handle_paystack_webhook(request.body, signature, config=get_config())
    except AuthenticityError:
        return HttpResponse("Invalid signature", status=401)
    except ValidationError as exc:
        return JsonResponse({"ok": False, "error": "invalid_payload", "detail": exc.messages}, status=400)
    logger.info("payments.webhook.handled", extra={"outcome": outcome})
    return HttpResponse(status=200)

# orders/views.py
import logging

from django.utils import timezone
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response

from core.config import get_config
from core.exceptions import CheckoutError
from core.http import PublicAPIView, error_response
from events.services import dispatch_order_events, notify_phone_collected

from . import ledger
from .identity import (
    VISITOR_IP_COOKIE,
    VISITOR_UA_COOKIE,
    client_ip,
    remember_click_ids,
    resolve_click_ids,
    set_tracking_cookie,
)
from .serializers import (
    ConfirmResponseSerializer,
    ErrorSerializer,
    IdentifyResponseSerializer,
    IdentifySerializer,
    OrderAccessSerializer,
    PhoneCollectSerializer,
)
from .tokens import validate_token

logger = logging.getLogger(__name__)


class VisitorView(PublicAPIView):
    @extend_schema(request=None, summary="Remember visitor IP and user agent", tags=["Identity"])
    def post(self, request):
        ip = client_ip(request)
        user_agent = request.META.get("HTTP_USER_AGENT", "")
        resp = Response({"ok": True, "ip": ip, "user_agent": user_agent})
        set_tracking_cookie(resp, VISITOR_IP_COOKIE, ip)
        set_tracking_cookie(resp, VISITOR_UA_COOKIE, user_agent)
        return resp


class IdentifyView(PublicAPIView):
    @extend_schema(
        request=IdentifySerializer,
        responses=IdentifyResponseSerializer,
        summary="Resolve and persist Meta click/browser ids",
        tags=["Identity"],
    )
    def post(self, request):
        ser = IdentifySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        ids = resolve_click_ids(
            fbclid=data.get("fbclid"),
            fbc=data.get("fbc"),
            fbp=data.get("fbp"),
            cookies=request.COOKIES,
        )
        resp = Response({"ok": True, "fbc": ids.fbc, "fbp": ids.fbp, "fbclid": ids.fbclid})
        remember_click_ids(resp, ids, fbclid_from_request=bool(data.get("fbclid")))
        return resp


def _authorized_order(data):
    order = ledger.find_by_reference(data["ref"])
    validate_token(order, data["token"])
    return order


class ConfirmOrderView(PublicAPIView):
    @extend_schema(
        parameters=[
            OpenApiParameter("ref", str, required=True),
            OpenApiParameter("token", str, required=True),
        ],
        responses={200: ConfirmResponseSerializer, 403: ErrorSerializer, 404: ErrorSerializer, 409: ErrorSerializer},
        summary="Token-gated delivery of purchase resources",
        tags=["Orders"],
    )
    def get(self, request):
        ser = OrderAccessSerializer(data=request.query_params)
        if not ser.is_valid():
            return Response(
                {"ok": False, "error": "ref and token required", "fields": ser.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            order = _authorized_order(ser.validated_data)
        except CheckoutError as exc:
            return error_response(exc)

        config = get_config()
        outcome = dispatch_order_events(order, config=config)
        logger.info(
            "orders.confirm.ok",
            extra={
                "reference": order.reference,
                "capi_sent": outcome.capi_sent,
                "telegram_sent": outcome.telegram_sent,
            },
        )
        return Response(
            {
                "ok": True,
                "drive": config.drive_link,
                "whatsapp": config.whatsapp_group_url,
                "product": {"id": config.product.id, "name": config.product.name},
                "order": {
                    "reference": order.reference,
                    "email": order.email,
                    "first_name": order.first_name,
                    "amount": order.amount,
                    "currency": order.currency,
                },
                "capi_sent": outcome.capi_sent,
                "telegram_sent": outcome.telegram_sent,
            }
        )


class CollectPhoneView(PublicAPIView):
    @extend_schema(
        request=PhoneCollectSerializer,
        responses={200: None, 403: ErrorSerializer, 404: ErrorSerializer, 409: ErrorSerializer},
        summary="Attach a phone number to a paid order",
        tags=["Orders"],
    )
    def post(self, request):
        ser = PhoneCollectSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            order = _authorized_order(data)
        except CheckoutError as exc:
            return error_response(exc)

        fields = ["phone"]
        order.phone = data["phone"]
        for name in ("first_name", "last_name"):
            if data.get(name):
                setattr(order, name, data[name].strip())
                fields.append(name)
        if order.phone_collected_at is None:
            order.phone_collected_at = timezone.now()
            fields.append("phone_collected_at")
        ledger.save_order(order, fields)

        telegram_sent = notify_phone_collected(order, config=get_config())
        logger.info("orders.phone.saved", extra={"reference": order.reference})
        return Response({"ok": True, "reference": order.reference, "telegram_sent": telegram_sent})

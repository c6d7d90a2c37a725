# payments/services.py
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

from django.core.exceptions import ValidationError
from django.utils import timezone

from core.config import CheckoutConfig
from core.exceptions import AuthenticityError, ConsistencyError, NotFoundError, ProcessorError
from orders import ledger
from orders.enums import OrderStatus
from orders.identity import ClientIdentity
from orders.models import Order
from orders.tokens import issue_token

from .gateways import PaystackClient, VerifyResult, parse_minor_amount
from .models import AuditLog

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"
SUCCESS_PAGE = "/paycomplete.html"


# =========================================================
#                           Helpers
# =========================================================
def compute_hmac_sha512(secret: str, body_bytes: bytes) -> str:
    """Lowercase hex HMAC-SHA512 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha512).hexdigest().lower()


def verify_paystack_signature(body: bytes, signature: str | None, secret: str) -> dict:
    """Check the raw-body signature, then parse. Raises AuthenticityError or ValidationError."""
    received = (signature or "").strip().lower()
    expected = compute_hmac_sha512(secret or "", body or b"")
    if not secret or not received or not hmac.compare_digest(
        expected.encode("utf-8"), received.encode("utf-8", "replace")
    ):
        raise AuthenticityError("Invalid Paystack signature")
    try:
        payload = json.loads((body or b"").decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("Invalid JSON payload")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def new_reference(prefix: str) -> str:
    """Millisecond timestamp plus a random suffix; uniqueness is enforced by the ledger."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**6):06d}"


def success_redirect(reference: str, token: str) -> str:
    return f"{SUCCESS_PAGE}?{urlencode({'ref': reference, 'token': token})}"


# =========================================================
#                        Initialization
# =========================================================
@dataclass(frozen=True)
class CheckoutInit:
    reference: str
    access_code: str
    authorization_url: str
    public_key: str


def initialize_checkout(
    *,
    email: str,
    identity: ClientIdentity,
    config: CheckoutConfig,
    gateway: PaystackClient,
    first_name: str = "",
    last_name: str = "",
    callback_url: str | None = None,
) -> CheckoutInit:
    """Open a processor transaction for the configured product, then record the order.

    The order is only written after the processor accepts, so a rejected
    initialization leaves nothing behind.
    """
    product = config.product
    reference = new_reference(config.reference_prefix)
    buyer_name = f"{first_name or ''} {last_name or ''}".strip()
    metadata = {
        "custom_fields": [
            {"display_name": "Product", "variable_name": "product", "value": product.name},
            {"display_name": "Buyer Name", "variable_name": "buyer_name", "value": buyer_name},
        ],
        "first_name": first_name,
        "last_name": last_name,
        "product_id": product.id,
        "fbclid": identity.fbclid,
        "fbc": identity.fbc,
        "fbp": identity.fbp,
        "ip": identity.ip,
    }

    result = gateway.initialize(
        email=email,
        amount=product.price_minor,
        currency=product.currency,
        reference=reference,
        metadata=metadata,
        callback_url=callback_url,
    )

    order = ledger.create_order(
        ledger.OrderDraft(
            reference=reference,
            email=email,
            first_name=first_name,
            last_name=last_name,
            amount=product.price_minor,
            currency=product.currency,
            country=config.default_country,
            identity=identity,
        )
    )
    AuditLog.log(
        event="PAYMENT_INIT",
        order=order,
        meta={"amount": order.amount, "currency": order.currency},
    )
    logger.info("payments.init.ok", extra={"reference": reference, "amount": order.amount})
    return CheckoutInit(
        reference=reference,
        access_code=result.access_code,
        authorization_url=result.authorization_url,
        public_key=config.paystack_public_key,
    )


# =========================================================
#                      Verify-on-return
# =========================================================
@dataclass(frozen=True)
class VerifyOutcome:
    verified: bool
    status: str
    reference: str
    token: str | None = None
    expires_at: datetime | None = None
    redirect: str | None = None


def _amount_mismatch(order: Order, reported: int | None, *, source: str) -> ConsistencyError:
    meta = {"expected": order.amount, "actual": reported, "source": source}
    logger.error(
        "payments.%s.amount_mismatch", source,
        extra={"reference": order.reference, **meta},
    )
    AuditLog.log(
        event="AMOUNT_MISMATCH",
        order=order,
        message=f"expected {order.amount}, got {reported}",
        meta=meta,
    )
    return ConsistencyError(
        "Amount mismatch",
        extra={"reference": order.reference, **meta},
    )


def verify_on_return(
    reference: str,
    *,
    config: CheckoutConfig,
    gateway: PaystackClient,
    now: datetime | None = None,
) -> VerifyOutcome:
    """Client-initiated verification. Paid + matching amount => success and a fresh token."""
    order = ledger.find_by_reference(reference)
    result = gateway.verify(reference)
    now = now or timezone.now()

    if result.paid:
        if result.amount != order.amount:
            raise _amount_mismatch(order, result.amount, source="verify")
        if order.status == OrderStatus.FAILED:
            logger.warning(
                "payments.verify.paid_after_failed",
                extra={"reference": reference, "provider_status": result.status},
            )
            return VerifyOutcome(verified=False, status=order.status, reference=reference)

        if ledger.mark_success(order, now=now):
            AuditLog.log(event="PAYMENT_SUCCESS", order=order, meta={"source": "verify"})
            logger.info("payments.verify.success", extra={"reference": reference})
        elif order.status != OrderStatus.SUCCESS:
            logger.warning(
                "payments.verify.lost_race",
                extra={"reference": reference, "status": order.status},
            )
            return VerifyOutcome(verified=False, status=order.status, reference=reference)
        token = issue_token(order, ttl=config.token_ttl, now=now)
        return VerifyOutcome(
            verified=True,
            status=order.status,
            reference=reference,
            token=token,
            expires_at=order.token_expires_at,
            redirect=success_redirect(reference, token),
        )

    if result.failed:
        if ledger.mark_failed(order, now=now):
            AuditLog.log(
                event="PAYMENT_FAILED",
                order=order,
                meta={"source": "verify", "provider_status": result.status},
            )
        return VerifyOutcome(verified=False, status=result.status, reference=reference)

    logger.info(
        "payments.verify.pending",
        extra={"reference": reference, "provider_status": result.status},
    )
    return VerifyOutcome(verified=False, status=result.status or "pending", reference=reference)


# =========================================================
#                    Webhook reconciliation
# =========================================================
def handle_paystack_webhook(body: bytes, signature: str | None, *, config: CheckoutConfig) -> str:
    """Apply a signed processor push. Returns a short outcome label for logging/tests.

    Raises AuthenticityError before touching any state when the signature is wrong.
    The webhook never mints an access token: it has no client session to give one to.
    """
    try:
        event = verify_paystack_signature(body, signature, config.webhook_secret)
    except AuthenticityError:
        logger.warning("payments.webhook.invalid_signature")
        AuditLog.log(event="WEBHOOK_SIGNATURE_INVALID", message="invalid signature")
        raise

    if event.get("event") != CHARGE_SUCCESS:
        return "ignored"

    data = event.get("data") or {}
    reference = data.get("reference")
    if not isinstance(reference, str) or not reference.strip():
        AuditLog.log(event="WEBHOOK_MISSING_REFERENCE")
        return "missing_reference"

    try:
        order = ledger.find_by_reference(reference)
    except NotFoundError:
        logger.error("payments.webhook.unknown_reference", extra={"reference": reference})
        AuditLog.log(event="WEBHOOK_UNKNOWN_REFERENCE", reference=reference)
        return "unknown_reference"

    return apply_processor_success(order, data.get("amount"), source="webhook")


def apply_processor_success(order: Order, reported_amount: Any, *, source: str) -> str:
    """Shared success path for processor-originated confirmations (webhook, reconcile)."""
    amount = parse_minor_amount(reported_amount)
    if amount != order.amount:
        # consistency problem, not retried and never auto-corrected
        _amount_mismatch(order, amount if amount is not None else reported_amount, source=source)
        return "amount_mismatch"
    if order.status != OrderStatus.INITIALIZED:
        return "noop"
    if not ledger.mark_success(order):
        return "noop"
    AuditLog.log(event="PAYMENT_SUCCESS", order=order, meta={"source": source})
    logger.info("payments.%s.confirmed", source, extra={"reference": order.reference})
    return "confirmed"


# =========================================================
#                 Stale order reconciliation
# =========================================================
@dataclass
class ReconcileSummary:
    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    pending: int = 0
    errors: int = 0


def reconcile_stale_orders(
    *,
    config: CheckoutConfig,
    gateway: PaystackClient,
    older_than: timedelta = timedelta(minutes=10),
    limit: int = 100,
) -> ReconcileSummary:
    """Ask the processor about initialized orders nobody came back for."""
    cutoff = timezone.now() - older_than
    summary = ReconcileSummary()
    qs = Order.objects.filter(status=OrderStatus.INITIALIZED, created_at__lt=cutoff).order_by(
        "created_at"
    )[:limit]
    for order in qs:
        summary.checked += 1
        try:
            result: VerifyResult = gateway.verify(order.reference)
        except ProcessorError as exc:
            summary.errors += 1
            logger.warning(
                "payments.reconcile.error",
                extra={"reference": order.reference, "code": exc.code},
            )
            continue
        if result.paid:
            outcome = apply_processor_success(order, result.amount, source="reconcile")
            if outcome == "confirmed":
                summary.confirmed += 1
            elif outcome == "amount_mismatch":
                summary.errors += 1
        elif result.failed:
            if ledger.mark_failed(order):
                AuditLog.log(
                    event="PAYMENT_FAILED",
                    order=order,
                    meta={"source": "reconcile", "provider_status": result.status},
                )
            summary.failed += 1
        else:
            summary.pending += 1
    return summary

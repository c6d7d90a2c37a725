# orders/ledger.py
"""Durable record of purchase attempts and their side-effect delivery state.

Every write here is scoped to a single reference. State changes use
conditional updates so replays and races collapse into no-ops instead of
double transitions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from core.exceptions import DuplicateReference, NotFoundError

from .enums import DispatchChannel, OrderStatus
from .identity import ClientIdentity
from .models import DispatchRecord, Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderDraft:
    reference: str
    email: str
    amount: int
    currency: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    country: str = "NG"
    identity: ClientIdentity = ClientIdentity()


@transaction.atomic
def create_order(draft: OrderDraft) -> Order:
    """Persist a new initialized order plus its pending dispatch records."""
    if isinstance(draft.amount, bool) or not isinstance(draft.amount, int) or draft.amount <= 0:
        raise ValueError("amount must be a positive int in minor units")
    ident = draft.identity
    try:
        with transaction.atomic():
            order = Order.objects.create(
                reference=draft.reference,
                email=draft.email,
                first_name=draft.first_name or "",
                last_name=draft.last_name or "",
                phone=draft.phone or "",
                amount=draft.amount,
                currency=draft.currency,
                country=draft.country,
                ip=ident.ip or "",
                user_agent=ident.user_agent or "",
                fbclid=ident.fbclid or "",
                fbc=ident.fbc or "",
                fbp=ident.fbp or "",
                status=OrderStatus.INITIALIZED,
            )
    except IntegrityError as exc:
        logger.warning("orders.ledger.duplicate_reference", extra={"reference": draft.reference})
        raise DuplicateReference(
            f"Reference {draft.reference} already exists",
            extra={"reference": draft.reference},
        ) from exc

    DispatchRecord.objects.bulk_create(
        [
            DispatchRecord(order=order, channel=DispatchChannel.ATTRIBUTION),
            DispatchRecord(order=order, channel=DispatchChannel.NOTIFY_ORDER),
        ]
    )
    return order


def find_by_reference(reference: str) -> Order:
    try:
        return Order.objects.get(reference=reference)
    except Order.DoesNotExist as exc:
        raise NotFoundError("Order not found", extra={"reference": reference}) from exc


def save_order(order: Order, fields: list[str] | None = None) -> Order:
    if fields:
        order.save(update_fields=[*fields, "updated_at"])
    else:
        order.save()
    return order


# ---------------------------------------------------------------------------
# Status transitions (initialized -> success | failed, forward only)
# ---------------------------------------------------------------------------
def mark_success(order: Order, *, now: datetime | None = None) -> bool:
    """Flip an initialized order to success. Returns False when it was already terminal."""
    now = now or timezone.now()
    applied = Order.objects.filter(pk=order.pk, status=OrderStatus.INITIALIZED).update(
        status=OrderStatus.SUCCESS, verified_at=now, updated_at=now
    )
    order.refresh_from_db(fields=["status", "verified_at", "updated_at"])
    return applied == 1


def mark_failed(order: Order, *, now: datetime | None = None) -> bool:
    now = now or timezone.now()
    applied = Order.objects.filter(pk=order.pk, status=OrderStatus.INITIALIZED).update(
        status=OrderStatus.FAILED, updated_at=now
    )
    order.refresh_from_db(fields=["status", "updated_at"])
    return applied == 1


# ---------------------------------------------------------------------------
# Dispatch bookkeeping
# ---------------------------------------------------------------------------
def claim_dispatch(record: DispatchRecord, *, ttl, now: datetime | None = None) -> bool:
    """Take a short lease on an unsent record; only the winner may call out."""
    now = now or timezone.now()
    claimed = (
        DispatchRecord.objects.filter(pk=record.pk, sent=False)
        .filter(Q(claimed_until__isnull=True) | Q(claimed_until__lt=now))
        .update(claimed_until=now + ttl)
    )
    return claimed == 1


def record_attempt(
    record: DispatchRecord,
    *,
    ok: bool,
    response=None,
    error: str = "",
    now: datetime | None = None,
) -> DispatchRecord:
    """Persist one attempt: tries always increments, sent only ever goes False -> True."""
    now = now or timezone.now()
    record.refresh_from_db()
    record.tries += 1
    record.last_tried_at = now
    record.claimed_until = None
    record.response = response
    if ok:
        record.sent = True
        record.sent_at = now
        record.last_error = ""
    else:
        record.last_error = error or ""
    record.save()
    return record


def pending_attribution(*, max_tries: int, limit: int) -> list[DispatchRecord]:
    """Paid orders whose attribution event has not been accepted yet and is still retryable."""
    qs = (
        DispatchRecord.objects.select_related("order")
        .filter(
            channel=DispatchChannel.ATTRIBUTION,
            sent=False,
            tries__lt=max_tries,
            order__status=OrderStatus.SUCCESS,
        )
        .order_by(F("last_tried_at").asc(nulls_first=True), "pk")
    )
    return list(qs[:limit])

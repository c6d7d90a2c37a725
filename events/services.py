# events/services.py
"""Outbound side effects of a paid order.

Each channel has its own DispatchRecord. An attempt is skipped when the
record is already sent, has used up its tries, or is claimed by another
worker; otherwise the outcome is persisted before returning.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.core.exceptions import ValidationError
from django.utils import timezone

from core.config import CheckoutConfig
from core.exceptions import DispatchError
from orders import ledger
from orders.enums import DispatchChannel
from orders.models import DispatchRecord, Order
from payments.models import AuditLog

from .capi import CapiClient, build_purchase_payload
from .telegram import TelegramClient, order_message, phone_message

logger = logging.getLogger(__name__)


def _claimable(record: DispatchRecord, config: CheckoutConfig, now: datetime) -> bool:
    if record.sent:
        return False
    if record.tries >= config.dispatch_max_tries:
        logger.warning(
            "events.dispatch.ceiling_reached",
            extra={"order_id": record.order_id, "channel": record.channel, "tries": record.tries},
        )
        return False
    if not ledger.claim_dispatch(record, ttl=config.claim_ttl, now=now):
        logger.info(
            "events.dispatch.claim_lost",
            extra={"order_id": record.order_id, "channel": record.channel},
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------
def dispatch_attribution(
    order: Order,
    *,
    config: CheckoutConfig,
    client: CapiClient | None = None,
    now: datetime | None = None,
) -> bool:
    """Send the purchase event at most once. Returns whether it is (now or already) delivered.

    Failures are recorded on the DispatchRecord for the sweeper; they never raise.
    """
    if not config.attribution_enabled:
        logger.debug("events.capi.disabled", extra={"reference": order.reference})
        return False

    now = now or timezone.now()
    record = order.attribution
    if record.sent:
        return True
    if not _claimable(record, config, now):
        return False

    try:
        payload = build_purchase_payload(order, config, now=now)
        result = (client or CapiClient(config)).send(payload)
    except ValidationError as exc:
        error = "; ".join(exc.messages)
        ledger.record_attempt(record, ok=False, error=error, now=now)
        _log_attempt(order, record, ok=False, message=error)
        return False
    except DispatchError as exc:
        ledger.record_attempt(record, ok=False, response=exc.detail, error=exc.message, now=now)
        _log_attempt(order, record, ok=False, message=exc.message, meta={"response": exc.detail})
        return False

    ledger.record_attempt(record, ok=True, response=result.raw, now=now)
    _log_attempt(order, record, ok=True, meta={"events_received": result.events_received})
    return True


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
def dispatch_notification(
    order: Order,
    channel: str,
    text: str,
    *,
    config: CheckoutConfig,
    client: TelegramClient | None = None,
    now: datetime | None = None,
) -> bool:
    """Best-effort operator message, sent once per order and channel."""
    if not config.telegram_enabled:
        logger.debug("events.telegram.disabled", extra={"reference": order.reference})
        return False

    now = now or timezone.now()
    record = order.dispatch_record(channel)
    if record.sent:
        return True
    if not _claimable(record, config, now):
        return False

    try:
        response = (client or TelegramClient(config)).send_message(text)
    except DispatchError as exc:
        ledger.record_attempt(record, ok=False, response=exc.detail, error=exc.message, now=now)
        _log_attempt(order, record, ok=False, message=exc.message, meta={"response": exc.detail})
        return False

    ledger.record_attempt(record, ok=True, response=response, now=now)
    _log_attempt(order, record, ok=True)
    return True


def notify_order_placed(order: Order, *, config: CheckoutConfig, attribution_sent: bool, client=None) -> bool:
    return dispatch_notification(
        order,
        DispatchChannel.NOTIFY_ORDER,
        order_message(order, attribution_sent=attribution_sent),
        config=config,
        client=client,
    )


def notify_phone_collected(order: Order, *, config: CheckoutConfig, client=None) -> bool:
    return dispatch_notification(
        order,
        DispatchChannel.NOTIFY_PHONE,
        phone_message(order),
        config=config,
        client=client,
    )


@dataclass(frozen=True)
class OrderDispatch:
    capi_sent: bool
    telegram_sent: bool


def dispatch_order_events(
    order: Order,
    *,
    config: CheckoutConfig,
    capi_client: CapiClient | None = None,
    telegram_client: TelegramClient | None = None,
) -> OrderDispatch:
    """Attribution first so the operator message can report its status."""
    capi_sent = dispatch_attribution(order, config=config, client=capi_client)
    telegram_sent = notify_order_placed(
        order, config=config, attribution_sent=capi_sent, client=telegram_client
    )
    return OrderDispatch(capi_sent=capi_sent, telegram_sent=telegram_sent)


# ---------------------------------------------------------------------------
# Sweeper
# ---------------------------------------------------------------------------
@dataclass
class SweepSummary:
    checked: int = 0
    sent: int = 0
    failed: int = 0


def sweep_pending_attribution(
    *,
    config: CheckoutConfig,
    client: CapiClient | None = None,
    now: datetime | None = None,
) -> SweepSummary:
    """One bounded pass over paid orders whose attribution is still undelivered."""
    summary = SweepSummary()
    if not config.attribution_enabled:
        return summary

    client = client or CapiClient(config)
    records = ledger.pending_attribution(
        max_tries=config.dispatch_max_tries, limit=config.sweep_batch_size
    )
    for record in records:
        summary.checked += 1
        if dispatch_attribution(record.order, config=config, client=client, now=now):
            summary.sent += 1
        else:
            summary.failed += 1

    if summary.checked:
        logger.info(
            "events.sweep.done",
            extra={"checked": summary.checked, "sent": summary.sent, "failed": summary.failed},
        )
    return summary


def _log_attempt(order: Order, record: DispatchRecord, *, ok: bool, message: str = "", meta=None) -> None:
    name = "CAPI" if record.channel == DispatchChannel.ATTRIBUTION else "TELEGRAM"
    outcome = "SENT" if ok else "FAILED"
    extra = {"reference": order.reference, "channel": record.channel, "tries": record.tries}
    if ok:
        logger.info("events.%s.sent", name.lower(), extra=extra)
    else:
        logger.warning("events.%s.failed", name.lower(), extra={**extra, "error": message})
    AuditLog.log(
        event=f"{name}_{outcome}",
        order=order,
        message=message,
        meta={"channel": record.channel, "tries": record.tries, **(meta or {})},
    )

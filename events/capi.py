# events/capi.py
"""Meta Conversions API purchase events.

Identifying fields are normalized (trim + lowercase) and SHA-256 hashed
before they are placed in a payload; raw PII never leaves the process.
Optional fields are only inserted when their source value exists.
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

import requests
from django.core.exceptions import ValidationError
from django.utils import timezone

from core.config import CheckoutConfig
from core.exceptions import DispatchError
from orders.money import to_major_units

logger = logging.getLogger(__name__)

PURCHASE = "Purchase"
ACTION_SOURCE = "website"
_NON_DIGITS = re.compile(r"\D+")


def normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def normalize_phone(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_field(value: str | None) -> str | None:
    norm = normalize(value)
    return sha256_hex(norm) if norm else None


def hash_phone(value: str | None) -> str | None:
    digits = normalize_phone(value)
    return sha256_hex(digits) if digits else None


@dataclass(frozen=True)
class UserData:
    em: str | None = None
    ph: str | None = None
    fn: str | None = None
    ln: str | None = None
    country: str | None = None
    external_id: str | None = None
    client_ip_address: str | None = None
    client_user_agent: str | None = None
    fbc: str | None = None
    fbp: str | None = None

    _HASHED = ("em", "ph", "fn", "ln", "country", "external_id")

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if value is None:
                continue
            out[name] = [value] if name in self._HASHED else value
        return out


@dataclass(frozen=True)
class CustomData:
    currency: str
    value: Decimal
    content_name: str | None = None
    content_ids: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        # Graph API wants a JSON number; the Decimal is exact to 2dp before conversion
        value = float(self.value)
        out: dict[str, Any] = {"currency": self.currency, "value": value}
        if self.content_name:
            out["content_name"] = self.content_name
        if self.content_ids:
            out["content_ids"] = list(self.content_ids)
            out["content_type"] = "product"
            out["contents"] = [
                {"id": cid, "quantity": 1, "item_price": value} for cid in self.content_ids
            ]
        return out


@dataclass(frozen=True)
class ServerEvent:
    event_id: str
    event_time: int
    user_data: UserData
    custom_data: CustomData
    event_source_url: str | None = None
    event_name: str = PURCHASE
    action_source: str = ACTION_SOURCE

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "event_name": self.event_name,
            "event_time": self.event_time,
            "action_source": self.action_source,
            "event_id": self.event_id,
            "user_data": self.user_data.as_dict(),
            "custom_data": self.custom_data.as_dict(),
        }
        if self.event_source_url:
            out["event_source_url"] = self.event_source_url
        return out


@dataclass(frozen=True)
class CapiPayload:
    data: tuple[ServerEvent, ...]
    test_event_code: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"data": [event.as_dict() for event in self.data]}
        if self.test_event_code:
            out["test_event_code"] = self.test_event_code
        return out


def build_purchase_payload(order, config: CheckoutConfig, *, now=None) -> CapiPayload:
    """Purchase event for one paid order; the order reference doubles as the dedup id.

    Raises ValidationError when neither an email nor a phone hash can be produced.
    """
    em = hash_field(order.email)
    ph = hash_phone(order.phone)
    if not em and not ph:
        raise ValidationError("Attribution event needs a hashed email or phone.")

    when = order.verified_at or now or timezone.now()

    source_url = None
    if config.site_url:
        source_url = f"{config.site_url}/paycomplete.html?{urlencode({'ref': order.reference})}"

    user_data = UserData(
        em=em,
        ph=ph,
        fn=hash_field(order.first_name),
        ln=hash_field(order.last_name),
        country=hash_field(order.country),
        external_id=em,
        client_ip_address=order.ip or None,
        client_user_agent=order.user_agent or None,
        fbc=order.fbc or None,
        fbp=order.fbp or None,
    )
    custom_data = CustomData(
        currency=order.currency or config.product.currency,
        value=to_major_units(order.amount),
        content_name=config.product.name or None,
        content_ids=(config.product.id,) if config.product.id else (),
    )
    event = ServerEvent(
        event_id=order.reference,
        event_time=int(when.timestamp()),
        user_data=user_data,
        custom_data=custom_data,
        event_source_url=source_url,
    )
    return CapiPayload(data=(event,), test_event_code=config.fb_test_event_code or None)


@dataclass
class CapiResult:
    events_received: int
    messages: list = field(default_factory=list)
    fbtrace_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class CapiClient:
    def __init__(self, config: CheckoutConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def send(self, payload: CapiPayload) -> CapiResult:
        """POST the payload. A 200 that reports zero events or any messages is still a failure."""
        body = payload.as_dict()
        if payload.test_event_code:
            logger.info("events.capi.test_mode", extra={"test_event_code": payload.test_event_code})
        try:
            resp = self.session.post(
                self.config.graph_events_url,
                params={"access_token": self.config.fb_access_token},
                json=body,
                timeout=self.config.http_timeout,
            )
        except requests.RequestException as exc:
            raise DispatchError(f"CAPI request failed: {exc}", detail={"error": str(exc)}) from exc

        try:
            data = resp.json()
        except ValueError:
            data = {"text": resp.text[:500]}
        if not isinstance(data, dict):
            data = {"body": data}

        if not resp.ok:
            raise DispatchError(f"CAPI responded with status {resp.status_code}", detail=data)

        try:
            received = int(data.get("events_received") or 0)
        except (TypeError, ValueError):
            received = 0
        messages = data.get("messages") or []
        if received < 1 or messages:
            raise DispatchError("CAPI rejected the event", detail=data)

        return CapiResult(
            events_received=received,
            messages=list(messages),
            fbtrace_id=data.get("fbtrace_id"),
            raw=data,
        )

# payments/gateways.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import requests

from core.config import CheckoutConfig
from core.exceptions import ProcessorError

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"success"}
FAILED_STATUSES = {"failed", "abandoned", "reversed"}


@dataclass(frozen=True)
class InitResult:
    access_code: str
    authorization_url: str
    reference: str
    raw: dict[str, Any]


@dataclass(frozen=True)
class VerifyResult:
    status: str
    amount: int | None
    reference: str
    raw: dict[str, Any]

    @property
    def paid(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def failed(self) -> bool:
        return self.status in FAILED_STATUSES


def parse_minor_amount(value) -> int | None:
    """Processor amounts are integer kobo; anything fractional or unparseable is None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        dec = Decimal(str(value))
    except InvalidOperation:
        return None
    if not dec.is_finite() or dec != dec.to_integral_value():
        return None
    return int(dec)


class PaystackClient:
    """Thin wrapper over the two Paystack calls the checkout uses."""

    def __init__(self, config: CheckoutConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.paystack_secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, reference: str, **kwargs) -> dict[str, Any]:
        if not self.config.paystack_secret_key:
            raise ProcessorError(
                "PAYSTACK_SECRET_KEY is not configured.",
                code="paystack_secret_missing",
                status_code=500,
            )
        url = f"{self.config.paystack_base_url}{path}"
        try:
            resp = self.session.request(
                method, url, headers=self._headers, timeout=self.config.http_timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise ProcessorError(
                f"Paystack request failed: {exc}",
                code="paystack_network_error",
                extra={"reference": reference},
            ) from exc
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProcessorError(
                "Paystack returned invalid JSON.",
                code="paystack_invalid_json",
                extra={"reference": reference, "http_status": resp.status_code},
            ) from exc
        if resp.status_code >= 500:
            raise ProcessorError(
                f"Paystack responded with status {resp.status_code}.",
                code="paystack_unavailable",
                extra={"reference": reference, "response": payload},
            )
        return payload if isinstance(payload, dict) else {}

    def initialize(
        self,
        *,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        metadata: dict[str, Any] | None = None,
        callback_url: str | None = None,
    ) -> InitResult:
        body: dict[str, Any] = {
            "email": email,
            "amount": int(amount),
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            body["callback_url"] = callback_url
        payload = self._request("POST", "/transaction/initialize", reference, json=body)
        data = payload.get("data") or {}
        if payload.get("status") is not True or not data.get("access_code"):
            logger.error(
                "payments.paystack.init_rejected",
                extra={"reference": reference, "response": payload},
            )
            raise ProcessorError(
                "Paystack initialization failed",
                code="paystack_init_failed",
                status_code=400,
                extra={"reference": reference, "details": payload},
            )
        return InitResult(
            access_code=data["access_code"],
            authorization_url=data.get("authorization_url", ""),
            reference=data.get("reference") or reference,
            raw=payload,
        )

    def verify(self, reference: str) -> VerifyResult:
        payload = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}", reference)
        data = payload.get("data") or {}
        return VerifyResult(
            status=str(data.get("status") or "").lower(),
            amount=parse_minor_amount(data.get("amount")),
            reference=str(data.get("reference") or reference),
            raw=payload,
        )

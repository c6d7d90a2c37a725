# orders/tokens.py
from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta

from django.utils import timezone

from core.exceptions import ExpiredToken, InvalidToken, NotPaid

from .models import Order

DEFAULT_TTL = timedelta(minutes=15)


def new_token() -> str:
    # 32 bytes -> 43 url-safe chars
    return secrets.token_urlsafe(32)


def issue_token(order: Order, *, ttl: timedelta = DEFAULT_TTL, now: datetime | None = None) -> str:
    """Mint the confirmation token for a paid order and persist it with its expiry."""
    now = now or timezone.now()
    token = new_token()
    order.access_token = token
    order.token_expires_at = now + ttl
    order.save(update_fields=["access_token", "token_expires_at", "updated_at"])
    return token


def validate_token(order: Order, token: str | None, *, now: datetime | None = None) -> None:
    """Raise InvalidToken, ExpiredToken or NotPaid; return None when the token grants access.

    Checks run in that order so a wrong link is never reported as "still processing".
    """
    now = now or timezone.now()
    expected = order.access_token or ""
    supplied = str(token or "").encode("utf-8")
    if not supplied or not expected or not hmac.compare_digest(
        expected.encode("utf-8"), supplied
    ):
        raise InvalidToken("Invalid token", extra={"reference": order.reference})
    if order.token_expires_at is None or now > order.token_expires_at:
        raise ExpiredToken("Token expired", extra={"reference": order.reference})
    if not order.is_paid:
        raise NotPaid("Payment not confirmed yet", extra={"reference": order.reference})

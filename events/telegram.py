# events/telegram.py
from __future__ import annotations

import re
from typing import Any
from zoneinfo import ZoneInfo

import requests
from django.utils import timezone

from core.config import CheckoutConfig
from core.exceptions import DispatchError
from orders.money import format_major

LAGOS = ZoneInfo("Africa/Lagos")
NA = "N/A"
_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def _money(order) -> str:
    return format_major(order.amount, order.currency)


def _or_na(value) -> str:
    return str(value) if value else NA


def _md(value) -> str:
    """Escape buyer-supplied text placed in plain Markdown."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", _or_na(value))


def _code(value) -> str:
    # inline code spans cannot escape a backtick
    return _or_na(value).replace("`", "'")


def order_message(order, *, attribution_sent: bool) -> str:
    when = timezone.localtime(order.verified_at or order.created_at or timezone.now(), LAGOS)
    ua = order.user_agent[:60] if order.user_agent else ""
    status = "✅ Successfully Sent" if attribution_sent else "⏳ Pending/Retrying"
    phone = _md(order.phone) if order.phone else "N/A (not collected)"
    lines = [
        f"🎉 *NEW SALE - {_money(order)}*",
        "",
        "*CUSTOMER DETAILS*",
        f"📧 Email: `{_code(order.email)}`",
        f"👤 Name: {_md(order.first_name)} {_md(order.last_name)}",
        f"📱 Phone: {phone}",
        "",
        "*ORDER INFO*",
        f"🔖 Reference: `{_code(order.reference)}`",
        f"💵 Amount: {_money(order)}",
        f"🕐 Time: {when:%d/%m/%Y, %H:%M:%S}",
        "",
        "*TRACKING DATA*",
        f"🌐 IP: `{_code(order.ip)}`",
        f"🖥️ User-Agent: `{_code(ua)}...`",
        f"🔗 FBC (Click ID): `{_code(order.fbc)}`",
        f"🍪 FBP (Browser ID): `{_code(order.fbp)}`",
        f"🌍 Country: {_md(order.country or 'NG')}",
        "",
        "*META CAPI EVENT*",
        "Event Name: Purchase",
        f"Event ID: `{_code(order.reference)}`",
        f"Status: {status}",
        "",
        "*QUICK ACTIONS*",
        f"• Reply to: {_md(order.email)}",
        f"• View in DB: Reference {_md(order.reference)}",
    ]
    return "\n".join(lines)


def phone_message(order) -> str:
    return "\n".join(
        [
            "📱 *PHONE NUMBER COLLECTED*",
            "",
            f"🔖 Reference: `{_code(order.reference)}`",
            f"📧 Email: `{_code(order.email)}`",
            f"👤 Name: {_md(order.first_name)} {_md(order.last_name)}",
            f"📞 Phone: `{_code(order.phone)}`",
        ]
    )


class TelegramClient:
    def __init__(self, config: CheckoutConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"https://api.telegram.org/bot{self.config.telegram_bot_token}/sendMessage"

    def send_message(self, text: str) -> dict[str, Any]:
        try:
            resp = self.session.post(
                self.url,
                json={
                    "chat_id": self.config.telegram_chat_id,
                    "text": text,
                    "parse_mode": "Markdown",
                },
                timeout=self.config.http_timeout,
            )
        except requests.RequestException as exc:
            raise DispatchError(f"Telegram request failed: {exc}", detail={"error": str(exc)}) from exc
        try:
            data = resp.json()
        except ValueError:
            data = {"text": resp.text[:500]}
        if not resp.ok or not isinstance(data, dict) or data.get("ok") is False:
            raise DispatchError(f"Telegram responded with status {resp.status_code}", detail=data)
        return data

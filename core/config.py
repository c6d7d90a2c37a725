# core/config.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from django.conf import settings as django_settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

from orders.money import to_minor_units


@dataclass(frozen=True)
class ProductConfig:
    id: str
    name: str
    price_minor: int
    currency: str = "NGN"


@dataclass(frozen=True)
class CheckoutConfig:
    """Immutable snapshot of everything the checkout pipeline needs at runtime.

    Built once from Django settings and handed to services and API clients,
    so core logic never reaches for ``django.conf.settings`` itself.
    """

    site_url: str
    product: ProductConfig
    paystack_public_key: str = ""
    paystack_secret_key: str = ""
    paystack_webhook_secret: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    fb_pixel_id: str = ""
    fb_access_token: str = ""
    fb_graph_version: str = "v23.0"
    fb_test_event_code: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    drive_link: str = ""
    whatsapp_group_url: str = ""
    default_country: str = "NG"
    reference_prefix: str = "GV3"
    require_name: bool = False
    token_ttl: timedelta = timedelta(minutes=15)
    dispatch_max_tries: int = 5
    sweep_batch_size: int = 10
    claim_ttl: timedelta = timedelta(minutes=2)
    http_timeout: float = 20.0

    @property
    def webhook_secret(self) -> str:
        return self.paystack_webhook_secret or self.paystack_secret_key

    @property
    def attribution_enabled(self) -> bool:
        return bool(self.fb_pixel_id and self.fb_access_token)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def graph_events_url(self) -> str:
        return f"https://graph.facebook.com/{self.fb_graph_version}/{self.fb_pixel_id}/events"

    @classmethod
    def from_settings(cls, settings=None) -> "CheckoutConfig":
        s = settings or django_settings

        def get(name, default=""):
            value = getattr(s, name, default)
            return default if value is None else value

        price_minor = get("PRODUCT_PRICE_KOBO", None)
        if price_minor in (None, ""):
            major = get("PRODUCT_PRICE_NGN", None)
            if major in (None, ""):
                raise ImproperlyConfigured("Set PRODUCT_PRICE_KOBO or PRODUCT_PRICE_NGN.")
            price_minor = to_minor_units(major)

        currency = str(get("CURRENCY", "NGN") or "NGN").upper()
        return cls(
            site_url=str(get("SITE_URL", "")).rstrip("/"),
            product=ProductConfig(
                id=str(get("PRODUCT_ID", "")),
                name=str(get("PRODUCT_NAME", "")),
                price_minor=int(price_minor),
                currency=currency,
            ),
            paystack_public_key=get("PAYSTACK_PUBLIC_KEY"),
            paystack_secret_key=get("PAYSTACK_SECRET_KEY"),
            paystack_webhook_secret=get("PAYSTACK_WEBHOOK_SECRET"),
            paystack_base_url=str(get("PAYSTACK_BASE_URL", "https://api.paystack.co")).rstrip("/"),
            fb_pixel_id=get("FB_PIXEL_ID"),
            fb_access_token=get("FB_ACCESS_TOKEN"),
            fb_graph_version=get("FB_GRAPH_VERSION", "v23.0") or "v23.0",
            fb_test_event_code=get("FB_TEST_EVENT_CODE"),
            telegram_bot_token=get("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=str(get("TELEGRAM_CHAT_ID", "")),
            drive_link=get("DRIVE_LINK"),
            whatsapp_group_url=get("WHATSAPP_GROUP_URL"),
            default_country=str(get("DEFAULT_COUNTRY", "NG") or "NG").upper(),
            reference_prefix=get("CHECKOUT_REFERENCE_PREFIX", "GV3") or "GV3",
            require_name=bool(get("CHECKOUT_REQUIRE_NAME", False)),
            token_ttl=timedelta(minutes=int(get("CHECKOUT_TOKEN_TTL_MINUTES", 15))),
            dispatch_max_tries=int(get("DISPATCH_MAX_TRIES", 5)),
            sweep_batch_size=int(get("DISPATCH_SWEEP_BATCH", 10)),
            claim_ttl=timedelta(seconds=int(get("DISPATCH_CLAIM_SECONDS", 120))),
            http_timeout=float(get("OUTBOUND_HTTP_TIMEOUT", 20)),
        )


@lru_cache(maxsize=1)
def get_config() -> CheckoutConfig:
    return CheckoutConfig.from_settings()


@receiver(setting_changed)
def _reset_config(**kwargs) -> None:
    get_config.cache_clear()

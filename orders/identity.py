# orders/identity.py
"""Client identity signals used later for ad attribution.

Resolves the Meta click id (``_fbc``), browser id (``_fbp``) and raw
``fbclid`` from request bodies and cookies, and mirrors them back into
first-party cookies so they survive until checkout.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

VISITOR_IP_COOKIE = "_vip"
VISITOR_UA_COOKIE = "_vua"
FBC_COOKIE = "_fbc"
FBP_COOKIE = "_fbp"
FBCLID_COOKIE = "fbclid"

DAY = 24 * 60 * 60
COOKIE_DAYS = {
    VISITOR_IP_COOKIE: 30,
    VISITOR_UA_COOKIE: 30,
    FBC_COOKIE: 90,
    FBP_COOKIE: 90,
    FBCLID_COOKIE: 7,
}


@dataclass(frozen=True)
class ClickIds:
    fbc: str | None = None
    fbp: str | None = None
    fbclid: str | None = None


@dataclass(frozen=True)
class ClientIdentity:
    ip: str = ""
    user_agent: str = ""
    fbc: str | None = None
    fbp: str | None = None
    fbclid: str | None = None


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def client_ip(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.META.get("REMOTE_ADDR", "") or ""


def synthesize_fbc(fbclid: str, now: int | None = None) -> str:
    now = int(time.time()) if now is None else int(now)
    return f"fb.1.{now}.{fbclid}"


def synthesize_fbp(now: int | None = None) -> str:
    now = int(time.time()) if now is None else int(now)
    return f"fb.1.{now}.{secrets.randbelow(10**10):010d}"


def resolve_click_ids(
    *,
    fbclid: str | None = None,
    fbc: str | None = None,
    fbp: str | None = None,
    cookies=None,
    now: int | None = None,
) -> ClickIds:
    """Explicit values win, then existing cookies, then synthesis.

    ``_fbc`` is only synthesized when a click-through id is known and no
    click-id cookie exists; ``_fbp`` is always available afterwards.
    """
    cookies = cookies or {}
    fbclid = _clean(fbclid)

    resolved_fbc = _clean(fbc) or _clean(cookies.get(FBC_COOKIE))
    if resolved_fbc is None and fbclid:
        resolved_fbc = synthesize_fbc(fbclid, now)

    resolved_fbp = _clean(fbp) or _clean(cookies.get(FBP_COOKIE)) or synthesize_fbp(now)

    return ClickIds(
        fbc=resolved_fbc,
        fbp=resolved_fbp,
        fbclid=fbclid or _clean(cookies.get(FBCLID_COOKIE)),
    )


def identity_from_request(request) -> ClientIdentity:
    """Identity snapshot stored on the order at initialization. Nothing is synthesized here."""
    cookies = request.COOKIES
    return ClientIdentity(
        ip=_clean(cookies.get(VISITOR_IP_COOKIE)) or client_ip(request),
        user_agent=_clean(cookies.get(VISITOR_UA_COOKIE)) or request.META.get("HTTP_USER_AGENT", ""),
        fbc=_clean(cookies.get(FBC_COOKIE)),
        fbp=_clean(cookies.get(FBP_COOKIE)),
        fbclid=_clean(cookies.get(FBCLID_COOKIE)),
    )


def set_tracking_cookie(response, name: str, value: str, days: int | None = None) -> None:
    days = COOKIE_DAYS.get(name, 365) if days is None else days
    response.set_cookie(
        name,
        value,
        max_age=days * DAY,
        path="/",
        samesite="Lax",
        httponly=False,
    )


def remember_click_ids(response, ids: ClickIds, *, fbclid_from_request: bool) -> None:
    if ids.fbc:
        set_tracking_cookie(response, FBC_COOKIE, ids.fbc)
    if ids.fbp:
        set_tracking_cookie(response, FBP_COOKIE, ids.fbp)
    if fbclid_from_request and ids.fbclid:
        set_tracking_cookie(response, FBCLID_COOKIE, ids.fbclid)

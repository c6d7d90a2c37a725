from django.db import DatabaseError, connection
from django.http import JsonResponse

from .config import get_config


def _db_ping():
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        return {"ok": True}
    except DatabaseError as e:  # pragma: no cover
        return {"ok": False, "error": str(e)}


def healthz(request):
    return JsonResponse({"status": "ok"})


def readyz(request):
    db = _db_ping()
    config = get_config()
    return JsonResponse({
        "status": "ok" if db.get("ok") else "degraded",
        "database": db,
        "integrations": {
            "paystack": bool(config.paystack_secret_key and config.paystack_public_key),
            "attribution": config.attribution_enabled,
            "attribution_test_mode": bool(config.fb_test_event_code),
            "telegram": config.telegram_enabled,
        },
    }, status=200 if db.get("ok") else 503)

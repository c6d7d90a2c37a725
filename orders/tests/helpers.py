from unittest.mock import Mock

from django.utils import timezone

from orders import ledger
from orders.identity import ClientIdentity
from orders.tokens import issue_token

DEFAULT_IDENTITY = ClientIdentity(
    ip="102.89.1.10",
    user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
    fbc="fb.1.1700000000.abc",
    fbp="fb.1.1700000000.1234567890",
    fbclid="abc",
)


def make_order(reference="GV3-1700000000000-000001", email="a@b.com", amount=390000, **kwargs):
    draft = ledger.OrderDraft(
        reference=reference,
        email=email,
        amount=amount,
        currency=kwargs.pop("currency", "NGN"),
        identity=kwargs.pop("identity", DEFAULT_IDENTITY),
        **kwargs,
    )
    return ledger.create_order(draft)


def make_paid_order(now=None, **kwargs):
    now = now or timezone.now()
    order = make_order(**kwargs)
    ledger.mark_success(order, now=now)
    token = issue_token(order, now=now)
    return order, token


def fake_response(status_code=200, payload=None, text=""):
    resp = Mock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp

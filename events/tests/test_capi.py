import hashlib
from datetime import datetime, timezone as dt_timezone

import pytest
import requests
from django.core.exceptions import ValidationError

from core.config import get_config
from core.exceptions import DispatchError
from events.capi import CapiClient, build_purchase_payload, hash_field, hash_phone, normalize
from orders import ledger
from orders.identity import ClientIdentity
from orders.tests.helpers import fake_response, make_order

pytestmark = pytest.mark.django_db

VERIFIED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt_timezone.utc)


def sha(value):
    return hashlib.sha256(value.encode()).hexdigest()


def test_hashing_is_normalization_invariant():
    assert hash_field("Test@Example.com ") == hash_field("test@example.com")
    assert hash_field("test@example.com") == hash_field("test@example.com")
    assert hash_field("test@example.com") == sha("test@example.com")
    assert normalize("  MiXeD ") == "mixed"


def test_phone_hash_keeps_digits_only():
    assert hash_phone("+234 (801) 234-5678") == sha("2348012345678")
    assert hash_phone("no digits") is None
    assert hash_field("   ") is None


@pytest.fixture
def paid_order():
    order = make_order(first_name=" Ada ", last_name="Obi", phone="+234 801 234 5678")
    ledger.mark_success(order, now=VERIFIED_AT)
    return order


def test_purchase_payload(paid_order):
    payload = build_purchase_payload(paid_order, get_config()).as_dict()
    assert "test_event_code" not in payload
    (event,) = payload["data"]
    assert event["event_name"] == "Purchase"
    assert event["action_source"] == "website"
    assert event["event_id"] == paid_order.reference
    assert event["event_time"] == int(VERIFIED_AT.timestamp())
    assert event["event_source_url"].startswith("https://shop.example.com/paycomplete.html?ref=")

    user = event["user_data"]
    assert user["em"] == [sha("a@b.com")]
    assert user["ph"] == [sha("2348012345678")]
    assert user["fn"] == [sha("ada")]
    assert user["ln"] == [sha("obi")]
    assert user["country"] == [sha("ng")]
    assert user["external_id"] == [sha("a@b.com")]
    # context passes through unhashed
    assert user["client_ip_address"] == "102.89.1.10"
    assert user["client_user_agent"].startswith("Mozilla/5.0")
    assert user["fbc"] == "fb.1.1700000000.abc"
    assert user["fbp"] == "fb.1.1700000000.1234567890"

    custom = event["custom_data"]
    assert custom["value"] == 3900.0
    assert custom["currency"] == "NGN"
    assert custom["content_ids"] == ["guide-v3"]
    assert custom["content_name"] == "Growth Guide v3"


def test_raw_pii_never_in_payload(paid_order):
    text = str(build_purchase_payload(paid_order, get_config()).as_dict())
    for raw in ("a@b.com", "Ada", "Obi", "2348012345678", "+234 801 234 5678"):
        assert raw not in text


def test_optional_fields_are_omitted():
    order = make_order(reference="GV3-bare", identity=ClientIdentity())
    user = build_purchase_payload(order, get_config()).as_dict()["data"][0]["user_data"]
    for key in ("ph", "fn", "ln", "fbc", "fbp", "client_ip_address", "client_user_agent"):
        assert key not in user
    assert "em" in user


def test_event_time_falls_back_to_submission_time():
    order = make_order(reference="GV3-unverified")
    now = datetime(2024, 5, 6, tzinfo=dt_timezone.utc)
    event = build_purchase_payload(order, get_config(), now=now).as_dict()["data"][0]
    assert event["event_time"] == int(now.timestamp())


def test_email_or_phone_is_required(paid_order):
    paid_order.email = "   "
    paid_order.phone = ""
    with pytest.raises(ValidationError):
        build_purchase_payload(paid_order, get_config())

    paid_order.phone = "0801"
    assert "em" not in build_purchase_payload(paid_order, get_config()).as_dict()["data"][0]["user_data"]


def test_test_event_code_is_attached(paid_order, settings):
    settings.FB_TEST_EVENT_CODE = "TEST123"
    assert build_purchase_payload(paid_order, get_config()).as_dict()["test_event_code"] == "TEST123"


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc:
            raise self.exc
        return self.response


def test_client_posts_to_graph_api(paid_order):
    session = FakeSession(fake_response(200, {"events_received": 1, "messages": [], "fbtrace_id": "t"}))
    result = CapiClient(get_config(), session=session).send(build_purchase_payload(paid_order, get_config()))
    assert result.events_received == 1
    url, kwargs = session.calls[0]
    assert url == "https://graph.facebook.com/v23.0/1234567890/events"
    assert kwargs["params"] == {"access_token": "fb-token"}
    assert kwargs["timeout"] == 5.0
    assert kwargs["json"]["data"][0]["event_id"] == paid_order.reference


@pytest.mark.parametrize(
    "status,body",
    [
        (200, {"events_received": 0}),
        (200, {"events_received": 1, "messages": ["user_data missing"]}),
        (200, {}),
        (400, {"error": {"message": "Invalid OAuth access token"}}),
        (502, ValueError("no json")),
    ],
)
def test_logical_and_transport_rejections_raise(paid_order, status, body):
    session = FakeSession(fake_response(status, body, text="bad gateway"))
    with pytest.raises(DispatchError):
        CapiClient(get_config(), session=session).send(build_purchase_payload(paid_order, get_config()))


def test_network_error_raises_dispatch_error(paid_order):
    session = FakeSession(exc=requests.ConnectionError("refused"))
    with pytest.raises(DispatchError) as info:
        CapiClient(get_config(), session=session).send(build_purchase_payload(paid_order, get_config()))
    assert "refused" in info.value.detail["error"]

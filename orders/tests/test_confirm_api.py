from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from core.exceptions import DispatchError
from events.capi import CapiClient, CapiResult
from events.telegram import TelegramClient
from orders.enums import DispatchChannel
from orders.models import DispatchRecord, Order
from payments.models import AuditLog

from .helpers import make_order, make_paid_order

ACCEPTED = CapiResult(events_received=1, fbtrace_id="trace", raw={"events_received": 1, "fbtrace_id": "trace"})


@patch.object(TelegramClient, "send_message", return_value={"ok": True})
@patch.object(CapiClient, "send", return_value=ACCEPTED)
class ConfirmOrderTests(TestCase):
    def setUp(self):
        self.order, self.token = make_paid_order()
        self.url = reverse("orders:confirm")

    def confirm(self, ref=None, token=None):
        return self.client.get(self.url, {"ref": ref or self.order.reference, "token": token or self.token})

    def test_confirm_returns_delivery_links_and_dispatches(self, send, send_message):
        resp = self.confirm()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["drive"], "https://drive.example.com/guide")
        self.assertEqual(body["whatsapp"], "https://chat.whatsapp.com/example")
        self.assertEqual(body["order"]["amount"], 390000)
        self.assertEqual(body["product"], {"id": "guide-v3", "name": "Growth Guide v3"})
        self.assertTrue(body["capi_sent"])
        self.assertTrue(body["telegram_sent"])

        payload = send.call_args.args[0].as_dict()
        event = payload["data"][0]
        self.assertEqual(event["event_id"], self.order.reference)
        self.assertEqual(event["custom_data"]["value"], 3900.0)
        self.assertEqual(event["custom_data"]["currency"], "NGN")

    def test_second_confirm_does_not_resend(self, send, send_message):
        self.assertEqual(self.confirm().status_code, 200)
        resp = self.confirm()
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["capi_sent"])
        self.assertEqual(send.call_count, 1)
        self.assertEqual(send_message.call_count, 1)
        record = DispatchRecord.objects.get(order=self.order, channel=DispatchChannel.ATTRIBUTION)
        self.assertEqual(record.tries, 1)

    def test_wrong_token_is_rejected_without_dispatch(self, send, send_message):
        before = Order.objects.get(pk=self.order.pk).updated_at
        resp = self.confirm(token="not-the-token")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "invalid_token")
        send.assert_not_called()
        send_message.assert_not_called()
        self.assertEqual(Order.objects.get(pk=self.order.pk).updated_at, before)
        self.assertFalse(DispatchRecord.objects.filter(order=self.order, tries__gt=0).exists())

    def test_non_ascii_token_is_rejected_without_dispatch(self, send, send_message):
        resp = self.confirm(token="tökén")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "invalid_token")
        send.assert_not_called()
        send_message.assert_not_called()
        self.assertFalse(DispatchRecord.objects.filter(order=self.order, tries__gt=0).exists())

    def test_expired_token(self, send, send_message):
        Order.objects.filter(pk=self.order.pk).update(token_expires_at=timezone.now() - timedelta(minutes=1))
        resp = self.confirm()
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "token_expired")
        send.assert_not_called()

    def test_unpaid_order_is_conflict(self, send, send_message):
        Order.objects.filter(pk=self.order.pk).update(status="initialized")
        resp = self.confirm()
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "not_paid")

    def test_unknown_reference(self, send, send_message):
        resp = self.confirm(ref="GV3-unknown")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "not_found")

    def test_missing_params(self, send, send_message):
        resp = self.client.get(self.url, {"ref": self.order.reference})
        self.assertEqual(resp.status_code, 400)

    def test_attribution_failure_still_returns_links(self, send, send_message):
        send.side_effect = DispatchError("CAPI rejected the event", detail={"events_received": 0})
        resp = self.confirm()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["drive"], "https://drive.example.com/guide")
        self.assertFalse(body["capi_sent"])
        self.assertTrue(body["telegram_sent"])
        record = DispatchRecord.objects.get(order=self.order, channel=DispatchChannel.ATTRIBUTION)
        self.assertFalse(record.sent)
        self.assertEqual(record.tries, 1)
        self.assertEqual(record.response, {"events_received": 0})
        self.assertTrue(AuditLog.objects.filter(event="CAPI_FAILED", order=self.order).exists())
        self.assertIn("Pending/Retrying", send_message.call_args.args[0])

    def test_notification_failure_is_best_effort(self, send, send_message):
        send_message.side_effect = DispatchError("Telegram responded with status 400")
        resp = self.confirm()
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["capi_sent"])
        self.assertFalse(resp.json()["telegram_sent"])

    @override_settings(TELEGRAM_BOT_TOKEN="", FB_PIXEL_ID="")
    def test_disabled_integrations_are_skipped(self, send, send_message):
        resp = self.confirm()
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["capi_sent"])
        self.assertFalse(resp.json()["telegram_sent"])
        send.assert_not_called()
        send_message.assert_not_called()
        self.assertFalse(DispatchRecord.objects.filter(order=self.order, tries__gt=0).exists())


@patch.object(TelegramClient, "send_message", return_value={"ok": True})
class CollectPhoneTests(TestCase):
    def setUp(self):
        self.order, self.token = make_paid_order()
        self.url = reverse("orders:phone")

    def post(self, **data):
        body = {"ref": self.order.reference, "token": self.token, "phone": "+234 801 234 5678", **data}
        return self.client.post(self.url, body, content_type="application/json")

    def test_phone_is_saved_and_operator_notified_once(self, send_message):
        resp = self.post(first_name="Ada")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["telegram_sent"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.phone, "+234 801 234 5678")
        self.assertEqual(self.order.first_name, "Ada")
        self.assertIsNotNone(self.order.phone_collected_at)
        self.assertIn("PHONE NUMBER COLLECTED", send_message.call_args.args[0])

        first_collected = self.order.phone_collected_at
        self.post(phone="08012345679")
        self.order.refresh_from_db()
        self.assertEqual(self.order.phone, "08012345679")
        self.assertEqual(self.order.phone_collected_at, first_collected)
        self.assertEqual(send_message.call_count, 1)

    def test_phone_requires_valid_token(self, send_message):
        resp = self.post(token="wrong")
        self.assertEqual(resp.status_code, 403)
        self.order.refresh_from_db()
        self.assertEqual(self.order.phone, "")
        send_message.assert_not_called()

    def test_non_ascii_phone_token_is_rejected(self, send_message):
        resp = self.post(token="тoкен")
        self.assertEqual(resp.status_code, 403)
        self.order.refresh_from_db()
        self.assertEqual(self.order.phone, "")
        send_message.assert_not_called()

    def test_phone_must_have_digits(self, send_message):
        resp = self.post(phone="call me")
        self.assertEqual(resp.status_code, 400)

    def test_unpaid_order_cannot_collect_phone(self, send_message):
        order = make_order(reference="GV3-unpaid")
        resp = self.client.post(
            self.url,
            {"ref": order.reference, "token": "anything", "phone": "08012345678"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)

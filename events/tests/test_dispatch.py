from datetime import timedelta
from io import StringIO
from unittest.mock import Mock, patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from core.config import get_config
from core.exceptions import DispatchError
from events.capi import CapiClient, CapiResult
from events.services import (
    dispatch_attribution,
    dispatch_order_events,
    notify_phone_collected,
    sweep_pending_attribution,
)
from events.tasks import retry_pending_attribution
from events.telegram import order_message, phone_message
from orders import ledger
from orders.enums import DispatchChannel
from orders.models import DispatchRecord
from orders.tests.helpers import make_order, make_paid_order
from payments.models import AuditLog

ACCEPTED = CapiResult(events_received=1, raw={"events_received": 1})


def capi_client(side_effect=None):
    client = Mock(spec=CapiClient)
    client.send.return_value = ACCEPTED
    client.send.side_effect = side_effect
    return client


class DispatchAttributionTests(TestCase):
    def setUp(self):
        self.order, _ = make_paid_order()
        self.config = get_config()

    def record(self):
        return DispatchRecord.objects.get(order=self.order, channel=DispatchChannel.ATTRIBUTION)

    def test_success_is_recorded(self):
        client = capi_client()
        self.assertTrue(dispatch_attribution(self.order, config=self.config, client=client))
        record = self.record()
        self.assertTrue(record.sent)
        self.assertEqual(record.tries, 1)
        self.assertEqual(record.response, {"events_received": 1})
        self.assertIsNotNone(record.sent_at)
        self.assertIsNone(record.claimed_until)
        self.assertTrue(AuditLog.objects.filter(event="CAPI_SENT", order=self.order).exists())

    def test_already_sent_short_circuits(self):
        client = capi_client()
        dispatch_attribution(self.order, config=self.config, client=client)
        self.assertTrue(dispatch_attribution(self.order, config=self.config, client=client))
        self.assertEqual(client.send.call_count, 1)
        self.assertEqual(self.record().tries, 1)

    def test_failure_is_recorded_and_not_raised(self):
        client = capi_client(DispatchError("CAPI rejected the event", detail={"messages": ["bad"]}))
        self.assertFalse(dispatch_attribution(self.order, config=self.config, client=client))
        record = self.record()
        self.assertFalse(record.sent)
        self.assertEqual(record.tries, 1)
        self.assertEqual(record.last_error, "CAPI rejected the event")
        self.assertEqual(record.response, {"messages": ["bad"]})
        self.assertIsNone(record.claimed_until)

    def test_missing_identifiers_count_as_failed_attempt(self):
        self.order.email = ""
        client = capi_client()
        self.assertFalse(dispatch_attribution(self.order, config=self.config, client=client))
        client.send.assert_not_called()
        self.assertEqual(self.record().tries, 1)

    def test_live_claim_blocks_concurrent_attempt(self):
        now = timezone.now()
        ledger.claim_dispatch(self.record(), ttl=timedelta(minutes=2), now=now)
        client = capi_client()
        self.assertFalse(dispatch_attribution(self.order, config=self.config, client=client, now=now))
        client.send.assert_not_called()
        self.assertEqual(self.record().tries, 0)

    def test_ceiling_stops_attempts(self):
        DispatchRecord.objects.filter(pk=self.record().pk).update(tries=5)
        client = capi_client()
        self.assertFalse(dispatch_attribution(self.order, config=self.config, client=client))
        client.send.assert_not_called()

    @override_settings(FB_ACCESS_TOKEN="")
    def test_disabled_attribution_is_not_a_failure(self):
        client = capi_client()
        self.assertFalse(dispatch_attribution(self.order, config=get_config(), client=client))
        client.send.assert_not_called()
        self.assertEqual(self.record().tries, 0)


class SweeperTests(TestCase):
    def setUp(self):
        self.config = get_config()

    def test_sweeper_retries_paid_undelivered_orders_only(self):
        paid, _ = make_paid_order(reference="GV3-paid")
        make_order(reference="GV3-unpaid")
        delivered, _ = make_paid_order(reference="GV3-done")
        ledger.record_attempt(delivered.attribution, ok=True, response={})

        client = capi_client()
        summary = sweep_pending_attribution(config=self.config, client=client)
        self.assertEqual((summary.checked, summary.sent, summary.failed), (1, 1, 0))
        self.assertTrue(paid.attribution.sent)

    def test_ceiling_is_never_exceeded(self):
        order, _ = make_paid_order()
        client = capi_client(DispatchError("CAPI responded with status 500"))
        for _ in range(7):
            sweep_pending_attribution(config=self.config, client=client)
        record = order.attribution
        self.assertEqual(client.send.call_count, 5)
        self.assertEqual(record.tries, 5)
        self.assertFalse(record.sent)

    @override_settings(DISPATCH_SWEEP_BATCH=2)
    def test_batch_is_bounded(self):
        for i in range(3):
            make_paid_order(reference=f"GV3-{i}")
        summary = sweep_pending_attribution(config=get_config(), client=capi_client())
        self.assertEqual(summary.checked, 2)

    @patch.object(CapiClient, "send", return_value=ACCEPTED)
    def test_task_and_command_run_one_pass(self, send):
        make_paid_order()
        self.assertEqual(retry_pending_attribution(), {"checked": 1, "sent": 1, "failed": 0})

        make_paid_order(reference="GV3-second")
        out = StringIO()
        call_command("retry_dispatch", "--sync", stdout=out)
        self.assertIn("checked=1 sent=1 failed=0", out.getvalue())
        self.assertEqual(send.call_count, 2)


class NotificationTests(TestCase):
    def setUp(self):
        self.order, _ = make_paid_order()
        self.config = get_config()

    def test_order_events_dispatch_attribution_then_notification(self):
        telegram = Mock()
        telegram.send_message.return_value = {"ok": True}
        outcome = dispatch_order_events(
            self.order, config=self.config, capi_client=capi_client(), telegram_client=telegram
        )
        self.assertTrue(outcome.capi_sent)
        self.assertTrue(outcome.telegram_sent)
        text = telegram.send_message.call_args.args[0]
        self.assertIn("Successfully Sent", text)
        self.assertIn(self.order.reference, text)

    def test_notification_failure_is_recorded_once_per_attempt(self):
        telegram = Mock()
        telegram.send_message.side_effect = DispatchError("Telegram request failed: timeout")
        self.assertFalse(notify_phone_collected(self.order, config=self.config, client=telegram))
        record = DispatchRecord.objects.get(order=self.order, channel=DispatchChannel.NOTIFY_PHONE)
        self.assertEqual(record.tries, 1)
        self.assertFalse(record.sent)

        telegram.send_message.side_effect = None
        telegram.send_message.return_value = {"ok": True}
        self.assertTrue(notify_phone_collected(self.order, config=self.config, client=telegram))
        self.assertTrue(notify_phone_collected(self.order, config=self.config, client=telegram))
        self.assertEqual(telegram.send_message.call_count, 2)

    def test_order_message_content(self):
        self.order.user_agent = "x" * 100
        text = order_message(self.order, attribution_sent=False)
        self.assertIn("NGN 3,900.00", text)
        self.assertIn("`" + "x" * 60 + "...`", text)
        self.assertIn("Phone: N/A (not collected)", text)
        self.assertIn("Pending/Retrying", text)

    def test_buyer_text_is_escaped_for_markdown(self):
        self.order.email = "john_doe@x.com"
        self.order.first_name = "Ada*"
        self.order.last_name = "[Love]"
        self.order.phone = "+234_801"
        text = order_message(self.order, attribution_sent=True)
        self.assertIn("Reply to: john\\_doe@x.com", text)
        self.assertIn("Name: Ada\\* \\[Love]", text)
        self.assertIn("Email: `john_doe@x.com`", text)
        self.assertIn("Phone: +234\\_801", text)

        text = phone_message(self.order)
        self.assertIn("Name: Ada\\* \\[Love]", text)
        self.assertIn("Phone: `+234_801`", text)

# payments/management/commands/replay_paystack.py
import json
import time

from django.core.management.base import BaseCommand, CommandError
from django.test import Client
from django.urls import reverse

from core.config import get_config
from orders.models import Order
from payments.services import compute_hmac_sha512


class Command(BaseCommand):
    help = "Replay a signed Paystack webhook locally through the real endpoint."

    def add_arguments(self, parser):
        parser.add_argument("--reference", required=True, help="Order reference")
        parser.add_argument("--status", default="success", choices=["success", "failed"])
        parser.add_argument("--amount", type=int, help="Override the reported amount (kobo)")
        parser.add_argument(
            "--verbose-json", action="store_true", help="Print payload and signature"
        )

    def handle(self, *args, **options):
        reference = options["reference"]
        try:
            order = Order.objects.get(reference=reference)
        except Order.DoesNotExist:
            raise CommandError("Order not found")

        secret = get_config().webhook_secret
        if not secret:
            raise CommandError("PAYSTACK_WEBHOOK_SECRET / PAYSTACK_SECRET_KEY not set.")

        status = options["status"]
        amount = options["amount"] if options["amount"] is not None else order.amount
        payload = {
            "event": f"charge.{status}",
            "data": {
                "id": int(time.time()),
                "reference": reference,
                "status": status,
                "amount": amount,
                "currency": order.currency,
            },
        }
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        signature = compute_hmac_sha512(secret, body)

        if options["verbose_json"]:
            self.stdout.write(self.style.NOTICE(f"Payload: {body.decode()}"))
            self.stdout.write(self.style.NOTICE(f"Signature: {signature}"))

        resp = Client().post(
            reverse("payments:paystack-webhook"),
            data=body,
            content_type="application/json",
            HTTP_X_PAYSTACK_SIGNATURE=signature,
        )
        self.stdout.write(f"Webhook POST -> {resp.status_code}")

        order.refresh_from_db()
        self.stdout.write(f"Order {order.reference}: status={order.status}, verified_at={order.verified_at}")

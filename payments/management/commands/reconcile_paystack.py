# payments/management/commands/reconcile_paystack.py
from datetime import timedelta

from django.core.management.base import BaseCommand

from core.config import get_config
from payments.gateways import PaystackClient
from payments.services import reconcile_stale_orders


class Command(BaseCommand):
    help = "Verify stale initialized orders with Paystack and apply the result."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=10,
            help="Only reconcile orders older than this many minutes (default: 10)",
        )
        parser.add_argument("--limit", type=int, default=100)

    def handle(self, *args, **options):
        config = get_config()
        summary = reconcile_stale_orders(
            config=config,
            gateway=PaystackClient(config),
            older_than=timedelta(minutes=options["minutes"]),
            limit=options["limit"],
        )
        if not summary.checked:
            self.stdout.write("No stale Paystack orders to reconcile.")
            return
        self.stdout.write(
            self.style.SUCCESS(
                f"checked={summary.checked} confirmed={summary.confirmed} "
                f"failed={summary.failed} pending={summary.pending} errors={summary.errors}"
            )
        )

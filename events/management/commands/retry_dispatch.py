from django.core.management.base import BaseCommand
from kombu.exceptions import OperationalError

from events.tasks import retry_pending_attribution


class Command(BaseCommand):
    help = "Run one retry pass over undelivered attribution events."

    def add_arguments(self, parser):
        parser.add_argument("--sync", action="store_true")  # bypass Celery

    def handle(self, *args, **opts):
        if opts["sync"]:
            self._run_inline()
            return
        try:
            retry_pending_attribution.delay()
            self.stdout.write(self.style.SUCCESS("Retry task queued"))
        except OperationalError:
            self.stdout.write("Celery broker unreachable, running synchronously")
            self._run_inline()

    def _run_inline(self):
        summary = retry_pending_attribution()
        self.stdout.write(
            self.style.SUCCESS(
                f"checked={summary['checked']} sent={summary['sent']} failed={summary['failed']}"
            )
        )

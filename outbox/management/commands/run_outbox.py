"""
Run the outbox flush loop without Celery.

Usage:
    python manage.py run_outbox
    python manage.py run_outbox --once
    python manage.py run_outbox --interval 30
"""
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from outbox.services import flush


class Command(BaseCommand):
    help = "Replay pending offline orders to the order server"

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single cycle and exit",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between cycles (default: OUTBOX_FLUSH_INTERVAL_SECONDS)",
        )

    def handle(self, *args, **options):
        interval = options.get("interval") or getattr(settings, "OUTBOX_FLUSH_INTERVAL_SECONDS", 15)

        while True:
            report = flush()
            if report.skipped:
                self.stdout.write(f"Cycle skipped: {report.skipped}")
            elif report.attempted:
                self.stdout.write(
                    f"Attempted {report.attempted}: synced {report.synced}, "
                    f"retrying {report.retried}, failed {report.failed}"
                )
                if report.failed:
                    self.stdout.write(self.style.ERROR(
                        "Some orders were parked as failed; see `manage.py outbox_status --failed`."
                    ))
            if options.get("once"):
                return
            try:
                time.sleep(interval)
            except KeyboardInterrupt:
                self.stdout.write("Stopped.")
                return

"""
Show the state of the offline order outbox.

Usage:
    python manage.py outbox_status
    python manage.py outbox_status --failed
    python manage.py outbox_status --requeue OFF-20260101120000-ABCD1234
"""
from django.core.management.base import BaseCommand, CommandError

from outbox.models import OutboxEntry, OutboxStatus, OutboxSyncState
from outbox.services import outbox_counts, requeue


class Command(BaseCommand):
    help = "Show outbox counts, list failed entries or requeue one"

    def add_arguments(self, parser):
        parser.add_argument("--failed", action="store_true", help="List failed entries with their last error")
        parser.add_argument("--requeue", metavar="TEMP_ID", help="Move a failed entry back to pending")

    def handle(self, *args, **options):
        temp_id = options.get("requeue")
        if temp_id:
            try:
                requeue(temp_id)
            except OutboxEntry.DoesNotExist:
                raise CommandError(f"No outbox entry {temp_id}")
            except ValueError as exc:
                raise CommandError(str(exc))
            self.stdout.write(self.style.SUCCESS(f"Requeued {temp_id}"))
            return

        counts = outbox_counts()
        self.stdout.write("Outbox:")
        for status in OutboxStatus.values:
            self.stdout.write(f"  {status:<12} {counts.get(status, 0)}")

        state = OutboxSyncState.objects.filter(pk=1).first()
        if state is not None:
            self.stdout.write(
                f"Sync: {'running since ' + str(state.started_at) if state.is_syncing else 'idle'}"
                f"; last finished {state.last_finished_at or '-'}"
            )

        if options.get("failed"):
            self.stdout.write("")
            for entry in OutboxEntry.objects.filter(status=OutboxStatus.FAILED).order_by("created_at"):
                self.stdout.write(self.style.ERROR(
                    f"  {entry.temp_id}  attempts={entry.retry_count}  HTTP {entry.last_status_code}: {entry.last_error}"
                ))

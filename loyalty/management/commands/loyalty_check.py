"""
Management command to validate loyalty card counters against the ledger.

Recomputes stamps, free cups, points and lifetime spend of every card from
its LoyaltyTransaction rows and compares them with the stored counters.

Usage:
    python manage.py loyalty_check
    python manage.py loyalty_check --tenant <tenant_id>
    python manage.py loyalty_check --card <card_number>
    python manage.py loyalty_check --verbose
    python manage.py loyalty_check --fix

Exit codes:
    0 - All cards match their ledger (clean)
    1 - One or more mismatches found
"""

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from loyalty.models import LoyaltyCard
from loyalty.services import rebuild_counters
from tenants.models import Tenant


class Command(BaseCommand):
    help = "Validate loyalty card counters by recomputing them from the transaction log"

    def add_arguments(self, parser):
        parser.add_argument(
            "--tenant",
            type=int,
            help="Check cards of a specific tenant only",
        )
        parser.add_argument(
            "--card",
            help="Check a single card by card number",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show a line for every card checked",
        )
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Overwrite mismatched counters with the values rebuilt from the ledger",
        )

    def handle(self, *args, **options):
        tenant_id = options.get("tenant")
        card_number = options.get("card")
        verbose = options.get("verbose", False)
        fix = options.get("fix", False)

        cards = LoyaltyCard.objects.select_related("tenant").order_by("id")
        if tenant_id:
            try:
                tenant = Tenant.objects.get(id=tenant_id)
            except Tenant.DoesNotExist:
                raise CommandError(f"Tenant with id {tenant_id} does not exist")
            self.stdout.write(f"Checking loyalty cards for tenant: {tenant.name} ({tenant.code})")
            cards = cards.filter(tenant=tenant)
        if card_number:
            cards = cards.filter(card_number=card_number)

        if not cards.exists():
            self.stdout.write(self.style.WARNING("No loyalty cards found to check"))
            return

        self.stdout.write(f"Checking {cards.count()} loyalty cards...")

        reports = []
        checked = 0
        for card in cards.iterator():
            checked += 1
            report = rebuild_counters(card)
            if verbose:
                line = f"{card.card_number}: stamps={card.stamps} redeemed={card.free_cups_redeemed}"
                self.stdout.write(line if report.ok else self.style.ERROR(f"MISMATCH {line}"))
            if not report.ok:
                reports.append(report)

        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(f"Checked: {checked} cards")
        self.stdout.write(f"Mismatches: {len(reports)}")

        if not reports:
            self.stdout.write("")
            self.stdout.write(self.style.SUCCESS("All loyalty cards match ledger (clean)"))
            return

        self.stdout.write("")
        self.stdout.write(self.style.ERROR("MISMATCHES FOUND:"))
        for report in reports:
            for name, (stored, expected) in report.mismatches.items():
                self.stdout.write(
                    self.style.ERROR(
                        f"  - {report.card.card_number} (Tenant: {report.card.tenant.code}): "
                        f"{name} stored {stored}, ledger {expected}"
                    )
                )

        if fix:
            fixed = 0
            for report in reports:
                expected = report.expected
                if expected["free_cups_redeemed"] < 0 or expected["free_cups_redeemed"] > expected["free_cups_earned"]:
                    self.stdout.write(self.style.WARNING(
                        f"  ! {report.card.card_number}: ledger itself is inconsistent, left untouched"
                    ))
                    continue
                with transaction.atomic():
                    LoyaltyCard.objects.filter(pk=report.card.pk).update(**expected)
                fixed += 1
            self.stdout.write(self.style.SUCCESS(f"Rewrote counters on {fixed} card(s)"))
            return

        raise CommandError(
            "Action required: review the transaction log for the above cards.",
            returncode=1,
        )

from django.core.management.base import BaseCommand
from services.disputes import flag_overdue_disputes


class Command(BaseCommand):
    help = "Flag disputes that missed their first-reply or resolution deadline."

    def handle(self, *args, **options):
        flagged = flag_overdue_disputes()

        self.stdout.write(
            self.style.SUCCESS(f"Flagged {flagged} SLA breach(es).")
        )

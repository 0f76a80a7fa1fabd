from django.core.management.base import BaseCommand
from services.match_management import expire_stale_match_requests


class Command(BaseCommand):
    help = "Expire pending match requests that were not answered within their 24 hour window."

    def handle(self, *args, **options):
        expired_count = expire_stale_match_requests()

        self.stdout.write(
            self.style.SUCCESS(f"Expired {expired_count} match request(s).")
        )

from django.core.management.base import BaseCommand
from django.utils import timezone

from core.services.access import purge_expired


class Command(BaseCommand):
    help = "Delete expired patient access grants."

    def handle(self, *args, **options):
        now = timezone.now()
        deleted = purge_expired(now)
        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} expired access grant(s) at {now:%Y-%m-%d %H:%M:%S}"))

from django.core.management.base import BaseCommand
from backend.campaigns.status import close_expired_campaigns


class Command(BaseCommand):
    help = 'Closes ACTIVE campaigns whose deadline has passed (run from cron)'

    def handle(self, *args, **options):
        closed = close_expired_campaigns()
        if closed:
            self.stdout.write(self.style.SUCCESS(f"Closed {closed} expired campaign(s)"))
        else:
            self.stdout.write("No expired campaigns to close")

from django.core.management.base import BaseCommand
from backend.orders.services import cleanup_empty_orders, get_empty_orders_stats


class Command(BaseCommand):
    help = 'Deletes orders without items older than the given age in ACTIVE campaigns'

    def add_arguments(self, parser):
        parser.add_argument(
            '--hours',
            type=int,
            default=24,
            help='Minimum age in hours of the empty orders to delete (default: 24)',
        )
        parser.add_argument(
            '--stats',
            action='store_true',
            help='Only print empty order statistics',
        )

    def handle(self, *args, **options):
        if options['stats']:
            stats = get_empty_orders_stats()
            self.stdout.write(
                f"Empty orders: {stats['total']} total, {stats['older_than_1h']} older than 1h, "
                f"{stats['older_than_24h']} older than 24h"
            )
            return

        deleted = cleanup_empty_orders(options['hours'])
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} empty order(s) older than {options['hours']} hours"))

from django.core.management.base import BaseCommand, CommandError
from backend.campaigns.models import Campaign
from backend.campaigns.shipping import check_campaign_integrity

CHECKS = ['shipping_match', 'total_match', 'paid_unpaid_match', 'orders_match']


class Command(BaseCommand):
    help = 'Verifies shipping, totals and paid/unpaid invariants for every campaign'

    def add_arguments(self, parser):
        parser.add_argument('--campaign', type=int, help='Campaign ID (default: all campaigns)')
        parser.add_argument(
            '--fail-on-error',
            action='store_true',
            help='Exit with an error if any campaign is inconsistent',
        )

    def handle(self, *args, **options):
        campaigns = Campaign.objects.all().order_by('id')
        if options.get('campaign'):
            campaigns = campaigns.filter(pk=options['campaign'])

        failures = 0
        for campaign in campaigns:
            result = check_campaign_integrity(campaign)
            failed = [check for check in CHECKS if not result[check]]
            if failed:
                failures += 1
                self.stdout.write(self.style.ERROR(
                    f"Campaign {campaign.id} ({campaign.name}): FAILED {', '.join(failed)} "
                    f"[shipping {result['sum_shipping_fees']}/{result['shipping_cost']}, "
                    f"totals {result['sum_totals']}, paid {result['sum_paid']}, unpaid {result['sum_unpaid']}]"
                ))
            else:
                self.stdout.write(f"Campaign {campaign.id} ({campaign.name}): OK ({result['orders']} orders)")

        if failures:
            message = f"{failures} campaign(s) with inconsistent financial data"
            if options['fail_on_error']:
                raise CommandError(message)
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS("All campaigns are consistent."))

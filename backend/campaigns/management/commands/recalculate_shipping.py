from django.core.management.base import BaseCommand, CommandError
from backend.campaigns.models import Campaign
from backend.campaigns.shipping import distribute_shipping


class Command(BaseCommand):
    help = 'Redistributes shipping costs and recomputes order totals for one or all campaigns'

    def add_arguments(self, parser):
        parser.add_argument('--campaign', type=int, help='Campaign ID (default: all campaigns)')

    def handle(self, *args, **options):
        campaigns = Campaign.objects.all()
        if options.get('campaign'):
            campaigns = campaigns.filter(pk=options['campaign'])
            if not campaigns.exists():
                raise CommandError(f"Campaign {options['campaign']} not found")

        for campaign in campaigns.order_by('id'):
            allocation = distribute_shipping(campaign.id)
            self.stdout.write(f"Campaign {campaign.id} ({campaign.name}): {len(allocation)} order(s) recalculated")

        self.stdout.write(self.style.SUCCESS("Shipping recalculation complete."))

"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.campaigns.models import Campaign, Product
from backend.campaigns.utils import generate_unique_slug
from backend.campaign_messages.models import CampaignMessage
from backend.orders.models import Order
from backend.orders import services as order_services
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', name=None,
                    role=User.ROLE_CUSTOMER, is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            name=name or username,
            role=role,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_creator(**kwargs):
        kwargs.setdefault('role', User.ROLE_CAMPAIGN_CREATOR)
        return TestDataFactory.create_user(**kwargs)

    @staticmethod
    def create_campaign(creator=None, name=None, status=Campaign.STATUS_ACTIVE,
                        shipping_cost=Decimal('0.00'), **kwargs):
        """Create a test campaign"""
        if creator is None:
            creator = TestDataFactory.create_creator()
        if not name:
            name = f'Campaign {TestDataFactory.random_string(6)}'
        return Campaign.objects.create(
            creator=creator,
            name=name,
            slug=generate_unique_slug(name),
            status=status,
            shipping_cost=shipping_cost,
            **kwargs
        )

    @staticmethod
    def create_product(campaign, name=None, price=Decimal('10.00'), weight=Decimal('100.000')):
        """Create a test product"""
        if not name:
            name = f'Product {TestDataFactory.random_string(6)}'
        return Product.objects.create(campaign=campaign, name=name, price=price, weight=weight)

    @staticmethod
    def create_order(campaign, customer=None, items=None, customer_name=None, is_paid=False):
        """
        Create an order through the order service so totals and shipping are consistent.
        items: list of (product, quantity) tuples
        """
        if customer is None:
            customer = TestDataFactory.create_user()
        if items is None:
            items = [(TestDataFactory.create_product(campaign), 1)]

        # Orders can only be placed while the campaign is active
        original_status = campaign.status
        if original_status != Campaign.STATUS_ACTIVE:
            Campaign.objects.filter(pk=campaign.pk).update(status=Campaign.STATUS_ACTIVE)
            campaign.status = Campaign.STATUS_ACTIVE

        order = order_services.create_order(
            campaign,
            customer,
            [{'product': product, 'quantity': quantity} for product, quantity in items],
            customer_name=customer_name
        )

        if original_status != Campaign.STATUS_ACTIVE:
            Campaign.objects.filter(pk=campaign.pk).update(status=original_status)
            campaign.status = original_status
        if is_paid:
            Order.objects.filter(pk=order.pk).update(is_paid=True)
            order.is_paid = True
        return order

    @staticmethod
    def create_question(campaign, sender=None, question='Is the delivery included?', **kwargs):
        """Create a campaign question"""
        if sender is None:
            sender = TestDataFactory.create_user()
        return CampaignMessage.objects.create(campaign=campaign, sender=sender, question=question, **kwargs)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()

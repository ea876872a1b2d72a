"""
Test suite for the campaigns app
Tests: shipping allocation, status lifecycle and automation, slugs, clone,
summary, analytics, geocoding/distance and the campaign and product endpoints
"""
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch, MagicMock
import requests

from backend.core.models import User, AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.campaigns.models import Campaign, Product
from backend.campaigns.shipping import distribute_shipping, check_campaign_integrity
from backend.campaigns.status import (
    change_status, check_and_archive, check_and_unarchive, close_expired_campaigns,
    InvalidStatusTransition, can_transition
)
from backend.campaigns.utils import make_slug, generate_unique_slug, get_campaign_by_id_or_slug, is_valid_slug
from backend.campaigns.summary import generate_orders_summary, sanitize_text
from backend.campaigns.analytics import compute_campaign_analytics, get_campaign_analytics
from backend.campaigns import geocoding
from backend.notifications.models import Notification
from backend.orders.models import Order


def _mock_response(json_data, status_code=200):
    response = MagicMock()
    response.json.return_value = json_data
    response.status_code = status_code
    return response


class ShippingAllocationTests(TestCase):
    """Test proportional shipping split and order total recomputation"""

    def setUp(self):
        self.campaign = TestDataFactory.create_campaign(shipping_cost=Decimal('30.00'))
        self.light = TestDataFactory.create_product(self.campaign, price=Decimal('10.00'), weight=Decimal('100'))
        self.heavy = TestDataFactory.create_product(self.campaign, price=Decimal('5.00'), weight=Decimal('200'))

    def test_fees_proportional_to_weight(self):
        """Test shipping fees follow order weight"""
        first = TestDataFactory.create_order(self.campaign, items=[(self.light, 1)])
        second = TestDataFactory.create_order(self.campaign, items=[(self.heavy, 1)])
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.shipping_fee, Decimal('10.00'))
        self.assertEqual(second.shipping_fee, Decimal('20.00'))
        self.assertEqual(first.total, Decimal('20.00'))
        self.assertEqual(second.total, Decimal('25.00'))

    def test_remainder_goes_to_last_order(self):
        """Test the rounding remainder lands on the last weighted order"""
        self.campaign.shipping_cost = Decimal('10.00')
        self.campaign.save()
        orders = [TestDataFactory.create_order(self.campaign, items=[(self.light, 1)]) for _ in range(3)]
        fees = [Order.objects.get(pk=o.pk).shipping_fee for o in orders]
        self.assertEqual(fees, [Decimal('3.33'), Decimal('3.33'), Decimal('3.34')])

    def test_fee_sum_matches_shipping_cost(self):
        """Test fees always add up to the campaign shipping cost"""
        for quantity in (1, 3, 7):
            TestDataFactory.create_order(self.campaign, items=[(self.light, quantity), (self.heavy, 1)])
        self.campaign.shipping_cost = Decimal('47.19')
        self.campaign.save()
        distribute_shipping(self.campaign.id)
        orders = Order.objects.filter(campaign=self.campaign)
        self.assertEqual(sum(o.shipping_fee for o in orders), Decimal('47.19'))
        for order in orders:
            self.assertEqual(order.total, order.subtotal + order.shipping_fee)

    def test_zero_weight_orders_pay_no_shipping(self):
        """Test weightless orders pay no shipping"""
        weightless = TestDataFactory.create_product(self.campaign, weight=Decimal('0'))
        order = TestDataFactory.create_order(self.campaign, items=[(weightless, 2)])
        order.refresh_from_db()
        self.assertEqual(order.shipping_fee, Decimal('0.00'))
        self.assertEqual(order.total, Decimal('20.00'))

    def test_no_orders_returns_empty_allocation(self):
        """Test distributing shipping over no orders"""
        self.assertEqual(distribute_shipping(self.campaign.id), {})

    def test_integrity_check_passes(self):
        """Test financial integrity check on consistent orders"""
        TestDataFactory.create_order(self.campaign, items=[(self.light, 2)])
        TestDataFactory.create_order(self.campaign, items=[(self.heavy, 1)], is_paid=True)
        result = check_campaign_integrity(self.campaign)
        self.assertTrue(result['shipping_match'])
        self.assertTrue(result['total_match'])
        self.assertTrue(result['paid_unpaid_match'])
        self.assertTrue(result['orders_match'])

    def test_validate_financial_integrity_command(self):
        """Test financial integrity management command"""
        TestDataFactory.create_order(self.campaign, items=[(self.light, 1)])
        Order.objects.filter(campaign=self.campaign).update(shipping_fee=Decimal('1.00'))
        out = StringIO()
        call_command('validate_financial_integrity', campaign=self.campaign.id, stdout=out)
        self.assertIn('shipping_match', out.getvalue())

    def test_recalculate_shipping_command_repairs_fees(self):
        """Test shipping recalculation command fixes drifted fees"""
        order = TestDataFactory.create_order(self.campaign, items=[(self.light, 1)])
        Order.objects.filter(pk=order.pk).update(shipping_fee=Decimal('1.00'), total=Decimal('11.00'))
        call_command('recalculate_shipping', campaign=self.campaign.id, stdout=StringIO())
        order.refresh_from_db()
        self.assertEqual(order.shipping_fee, Decimal('30.00'))
        self.assertEqual(order.total, Decimal('40.00'))


class CampaignStatusTests(TestCase):
    """Test manual transitions and status automation"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator)
        self.customer = TestDataFactory.create_user()

    def test_allowed_transitions(self):
        """Test the allowed status transitions"""
        self.assertTrue(can_transition(Campaign.STATUS_ACTIVE, Campaign.STATUS_CLOSED))
        self.assertTrue(can_transition(Campaign.STATUS_CLOSED, Campaign.STATUS_ACTIVE))
        self.assertTrue(can_transition(Campaign.STATUS_SENT, Campaign.STATUS_ARCHIVED))
        self.assertFalse(can_transition(Campaign.STATUS_ACTIVE, Campaign.STATUS_SENT))
        self.assertFalse(can_transition(Campaign.STATUS_ARCHIVED, Campaign.STATUS_ACTIVE))

    def test_invalid_transition_raises(self):
        """Test an invalid transition raises"""
        with self.assertRaises(InvalidStatusTransition):
            change_status(self.campaign, Campaign.STATUS_SENT)

    def test_same_status_is_noop(self):
        """Test setting the current status changes nothing"""
        result = change_status(self.campaign, Campaign.STATUS_ACTIVE)
        self.assertFalse(result.changed)

    def test_status_change_notifies_customers(self):
        """Test customers are notified of status changes"""
        TestDataFactory.create_order(self.campaign, customer=self.customer)
        change_status(self.campaign, Campaign.STATUS_CLOSED)
        notification = Notification.objects.get(user=self.customer)
        self.assertEqual(notification.type, Notification.TYPE_CAMPAIGN_STATUS_CHANGED)
        self.assertEqual(notification.metadata['campaign_id'], self.campaign.id)
        self.assertFalse(Notification.objects.filter(user=self.creator,
                                                     type=Notification.TYPE_CAMPAIGN_STATUS_CHANGED).exists())

    def test_closing_fully_paid_campaign_notifies_ready_to_send(self):
        """Test closing a fully paid campaign notifies ready to send"""
        TestDataFactory.create_order(self.campaign, customer=self.customer, is_paid=True)
        change_status(self.campaign, Campaign.STATUS_CLOSED)
        self.assertTrue(Notification.objects.filter(
            user=self.creator, type=Notification.TYPE_CAMPAIGN_READY_TO_SEND).exists())

    def test_sending_fully_paid_campaign_archives_it(self):
        """Test sending a fully paid campaign archives it"""
        TestDataFactory.create_order(self.campaign, customer=self.customer, is_paid=True)
        change_status(self.campaign, Campaign.STATUS_CLOSED)
        change_status(self.campaign, Campaign.STATUS_SENT)
        self.campaign.refresh_from_db()
        self.assertEqual(self.campaign.status, Campaign.STATUS_ARCHIVED)
        self.assertTrue(Notification.objects.filter(
            user=self.creator, type=Notification.TYPE_CAMPAIGN_ARCHIVED).exists())

    def test_archive_requires_orders(self):
        """Test a campaign without orders is not archived"""
        self.campaign.status = Campaign.STATUS_SENT
        self.campaign.save()
        result = check_and_archive(self.campaign)
        self.assertFalse(result.changed)
        self.assertEqual(result.reason, 'Campaign has no orders')

    def test_archive_requires_all_paid(self):
        """Test a campaign with unpaid orders is not archived"""
        TestDataFactory.create_order(self.campaign, is_paid=True)
        TestDataFactory.create_order(self.campaign)
        self.campaign.status = Campaign.STATUS_SENT
        self.campaign.save()
        result = check_and_archive(self.campaign)
        self.assertFalse(result.changed)
        self.assertIn('1 unpaid', result.reason)

    def test_unarchive_when_order_unpaid(self):
        """Test an unpaid order moves an archived campaign back to sent"""
        order = TestDataFactory.create_order(self.campaign, is_paid=True)
        self.campaign.status = Campaign.STATUS_ARCHIVED
        self.campaign.save()
        Order.objects.filter(pk=order.pk).update(is_paid=False)
        result = check_and_unarchive(self.campaign)
        self.assertTrue(result.changed)
        self.campaign.refresh_from_db()
        self.assertEqual(self.campaign.status, Campaign.STATUS_SENT)

    def test_unarchive_ignores_non_archived(self):
        """Test unarchive leaves other statuses alone"""
        result = check_and_unarchive(self.campaign)
        self.assertFalse(result.changed)

    def test_close_expired_campaigns(self):
        """Test active campaigns past their deadline are closed"""
        now = timezone.now()
        expired = TestDataFactory.create_campaign(deadline=now - timedelta(hours=1))
        future = TestDataFactory.create_campaign(deadline=now + timedelta(days=1))
        no_deadline = TestDataFactory.create_campaign()
        self.assertEqual(close_expired_campaigns(now), 1)
        expired.refresh_from_db()
        future.refresh_from_db()
        no_deadline.refresh_from_db()
        self.assertEqual(expired.status, Campaign.STATUS_CLOSED)
        self.assertEqual(future.status, Campaign.STATUS_ACTIVE)
        self.assertEqual(no_deadline.status, Campaign.STATUS_ACTIVE)

    def test_close_expired_campaigns_command(self):
        """Test the close expired campaigns command"""
        TestDataFactory.create_campaign(deadline=timezone.now() - timedelta(minutes=5))
        out = StringIO()
        call_command('close_expired_campaigns', stdout=out)
        self.assertIn('1', out.getvalue())


class SlugTests(TestCase):
    """Test slug generation and lookup"""

    def test_make_slug_strips_accents(self):
        """Test slugs drop accents and collapse separators"""
        self.assertEqual(make_slug('Açaí do Pará'), 'acai-do-para')
        self.assertEqual(make_slug('Café__Especial  2024'), 'cafe-especial-2024')
        self.assertEqual(make_slug('!!!'), 'campaign')

    def test_unique_slug_appends_counter(self):
        """Test colliding slugs get a numeric suffix"""
        TestDataFactory.create_campaign(name='Queijo Minas')
        self.assertEqual(generate_unique_slug('Queijo Minas'), 'queijo-minas-1')
        TestDataFactory.create_campaign(name='Queijo Minas')
        self.assertEqual(generate_unique_slug('Queijo Minas'), 'queijo-minas-2')

    def test_unique_slug_ignores_own_campaign(self):
        """Test a campaign does not collide with its own slug"""
        campaign = TestDataFactory.create_campaign(name='Queijo Minas')
        self.assertEqual(generate_unique_slug('Queijo Minas', campaign.id), 'queijo-minas')

    def test_is_valid_slug(self):
        """Test slug format validation"""
        self.assertTrue(is_valid_slug('queijo-minas-1'))
        self.assertFalse(is_valid_slug('Queijo Minas'))
        self.assertFalse(is_valid_slug('-queijo'))

    def test_lookup_by_slug_or_id(self):
        """Test campaign lookup by slug or id"""
        campaign = TestDataFactory.create_campaign(name='Mel Silvestre')
        self.assertEqual(get_campaign_by_id_or_slug('mel-silvestre'), campaign)
        self.assertEqual(get_campaign_by_id_or_slug(str(campaign.id)), campaign)
        self.assertIsNone(get_campaign_by_id_or_slug('missing'))

    def test_numeric_name_does_not_shadow_ids(self):
        """Test a campaign named after another campaign's id keeps that id reachable"""
        first = TestDataFactory.create_campaign(name='Mel Silvestre')
        second = TestDataFactory.create_campaign(name=str(first.id))
        self.assertEqual(make_slug('2024'), 'campaign-2024')
        self.assertEqual(second.slug, f'campaign-{first.id}')
        self.assertEqual(get_campaign_by_id_or_slug(str(first.id)), first)
        self.assertEqual(get_campaign_by_id_or_slug(second.slug), second)

        response = APIClient().get(f'/api/v1/campaigns/{first.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], first.id)


class OrdersSummaryTests(TestCase):
    """Test shareable orders summary text"""

    def setUp(self):
        self.campaign = TestDataFactory.create_campaign(name='Queijos da Serra')
        self.brie = TestDataFactory.create_product(self.campaign, name='Brie', price=Decimal('20.00'))
        self.azul = TestDataFactory.create_product(self.campaign, name='Azul', price=Decimal('15.00'))

    def test_sanitize_text(self):
        """Test summary text sanitizing"""
        self.assertEqual(sanitize_text('  <b>Ana</b>\n Maria '), 'bAna/b Maria')
        self.assertEqual(sanitize_text(''), 'No information')
        self.assertEqual(sanitize_text('<>'), 'No information')

    def test_empty_summary(self):
        """Test summary of a campaign without orders"""
        summary = generate_orders_summary(self.campaign)
        self.assertEqual(summary['orders_count'], 0)
        self.assertEqual(summary['total_amount'], Decimal('0.00'))
        self.assertIn('No orders have come in yet.', summary['summary_text'])

    def test_orders_sorted_by_customer_name(self):
        """Test summary lists customers alphabetically"""
        TestDataFactory.create_order(self.campaign, customer_name='Zeca', items=[(self.brie, 1)])
        TestDataFactory.create_order(self.campaign, customer_name='Ágata', items=[(self.brie, 2), (self.azul, 1)])
        summary = generate_orders_summary(self.campaign)
        lines = summary['summary_text'].split('\n')
        self.assertEqual(lines[0], 'Hi everyone, here is the order summary for Queijos da Serra:')
        self.assertEqual(lines[1], '1. Ágata: 1x Azul, 2x Brie.')
        self.assertEqual(lines[2], '2. Zeca: 1x Brie.')
        self.assertEqual(lines[-1], 'If anything in your order looks wrong, let me know.')
        self.assertEqual(summary['orders_count'], 2)
        self.assertEqual(summary['total_amount'], Decimal('75.00'))


class AnalyticsTests(TestCase):
    """Test campaign analytics and caching"""

    def setUp(self):
        cache.clear()
        self.campaign = TestDataFactory.create_campaign(shipping_cost=Decimal('10.00'))
        self.product = TestDataFactory.create_product(self.campaign, name='Mel', price=Decimal('25.00'))

    def test_totals_and_breakdown(self):
        """Test analytics totals and per product and customer breakdowns"""
        TestDataFactory.create_order(self.campaign, customer_name='Ana', items=[(self.product, 2)], is_paid=True)
        TestDataFactory.create_order(self.campaign, customer_name='Bia', items=[(self.product, 1)])
        data = compute_campaign_analytics(self.campaign)
        self.assertEqual(data['total_quantity'], 3)
        self.assertEqual(data['total_without_shipping'], 75.0)
        self.assertEqual(data['total_with_shipping'], 85.0)
        self.assertAlmostEqual(data['total_paid'] + data['total_unpaid'], 85.0)
        self.assertEqual(data['by_product'][0]['quantity'], 3)
        by_customer = {c['customer_name']: c for c in data['by_customer']}
        self.assertTrue(by_customer['Ana']['is_paid'])
        self.assertFalse(by_customer['Bia']['is_paid'])

    def test_customer_with_unpaid_order_is_not_paid(self):
        """Test a customer with any unpaid order counts as unpaid"""
        customer = TestDataFactory.create_user()
        TestDataFactory.create_order(self.campaign, customer=customer, customer_name='Ana', is_paid=True,
                                     items=[(self.product, 1)])
        TestDataFactory.create_order(self.campaign, customer=customer, customer_name='Ana',
                                     items=[(self.product, 1)])
        data = compute_campaign_analytics(self.campaign)
        self.assertEqual(len(data['by_customer']), 1)
        self.assertFalse(data['by_customer'][0]['is_paid'])

    def test_cache_invalidated_when_orders_change(self):
        """Test cached analytics refresh when orders change"""
        TestDataFactory.create_order(self.campaign, items=[(self.product, 1)])
        first = get_campaign_analytics(self.campaign)
        self.assertEqual(first['total_quantity'], 1)
        TestDataFactory.create_order(self.campaign, items=[(self.product, 2)])
        second = get_campaign_analytics(self.campaign)
        self.assertEqual(second['total_quantity'], 3)

    def test_analytics_endpoint_is_public(self):
        """Test analytics endpoint needs no token"""
        response = APIClient().get(f'/api/v1/analytics/campaign/{self.campaign.slug}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_quantity'], 0)


class GeocodingTests(TestCase):
    """Test CEP lookup, coordinates and distance helpers with mocked HTTP"""

    def setUp(self):
        cache.clear()

    def test_normalize_and_format_cep(self):
        """Test CEP normalization and formatting"""
        self.assertEqual(geocoding.normalize_cep('01310-100'), '01310100')
        self.assertEqual(geocoding.format_cep('01310100'), '01310-100')

    def test_invalid_cep(self):
        """Test malformed CEPs are rejected before any lookup"""
        with self.assertRaises(geocoding.GeocodingError):
            geocoding.get_address_from_cep('123')

    @patch('backend.campaigns.geocoding.requests.get')
    def test_address_from_viacep(self, mock_get):
        """Test address lookup through ViaCEP"""
        mock_get.return_value = _mock_response({
            'logradouro': 'Avenida Paulista', 'bairro': 'Bela Vista', 'localidade': 'São Paulo', 'uf': 'SP'
        })
        address = geocoding.get_address_from_cep('01310100')
        self.assertEqual(address['zip_code'], '01310-100')
        self.assertEqual(address['city'], 'São Paulo')
        self.assertEqual(mock_get.call_count, 1)

        # Second lookup is served from the cache
        geocoding.get_address_from_cep('01310-100')
        self.assertEqual(mock_get.call_count, 1)

    @patch('backend.campaigns.geocoding.requests.get')
    def test_address_falls_back_to_brasilapi(self, mock_get):
        """Test BrasilAPI fallback when ViaCEP has no match"""
        mock_get.side_effect = [
            _mock_response({'erro': True}),
            _mock_response({'street': 'Rua Augusta', 'neighborhood': 'Consolação', 'city': 'São Paulo',
                            'state': 'SP'}),
        ]
        address = geocoding.get_address_from_cep('01305000')
        self.assertEqual(address['street'], 'Rua Augusta')

    @patch('backend.campaigns.geocoding.requests.get')
    def test_address_not_found_anywhere(self, mock_get):
        """Test a CEP unknown to both providers"""
        mock_get.side_effect = [
            _mock_response({'erro': True}),
            _mock_response({}, status_code=404),
        ]
        with self.assertRaises(geocoding.GeocodingError):
            geocoding.get_address_from_cep('99999999')

    @patch('backend.campaigns.geocoding.requests.get')
    def test_coordinates_retry_without_number(self, mock_get):
        """Test coordinate lookup retries without the street number"""
        mock_get.side_effect = [
            _mock_response([]),
            _mock_response([{'lat': '-23.561', 'lon': '-46.656'}]),
        ]
        self.assertEqual(geocoding.get_coordinates('Avenida Paulista', '1000', 'São Paulo', 'SP'),
                         (-23.561, -46.656))
        self.assertEqual(mock_get.call_count, 2)

    @patch('backend.campaigns.geocoding.requests.get')
    def test_coordinates_network_error(self, mock_get):
        """Test network errors become geocoding errors"""
        mock_get.side_effect = requests.exceptions.Timeout('timed out')
        with self.assertRaises(geocoding.GeocodingError):
            geocoding.get_coordinates('Rua X', '', 'Cidade', 'SP')

    @patch('backend.campaigns.geocoding.requests.get')
    def test_geocode_campaign_pickup_failure_is_ignored(self, mock_get):
        """Test a failed pickup geocode leaves the campaign untouched"""
        mock_get.side_effect = requests.exceptions.ConnectionError('offline')
        campaign = TestDataFactory.create_campaign(pickup_zip_code='01310-100', pickup_address='Av. Paulista')
        self.assertFalse(geocoding.geocode_campaign_pickup(campaign))
        campaign.refresh_from_db()
        self.assertIsNone(campaign.pickup_latitude)

    def test_haversine(self):
        """Test great circle distance"""
        # São Paulo (Sé) to Rio de Janeiro (Centro)
        distance = geocoding.haversine_km(-23.5505, -46.6333, -22.9068, -43.1729)
        self.assertGreater(distance, 350)
        self.assertLess(distance, 365)
        self.assertEqual(geocoding.haversine_km(-23.5, -46.6, -23.5, -46.6), 0.0)

    def test_format_distance(self):
        """Test distance display in meters and kilometers"""
        self.assertEqual(geocoding.format_distance(0.4), '400 m')
        self.assertEqual(geocoding.format_distance(12.34), '12.3 km')


class CampaignAPITests(TestCase):
    """Test campaign endpoints"""

    def setUp(self):
        cache.clear()
        self.creator = TestDataFactory.create_creator()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.creator)

    def test_list_is_public_and_paginated(self):
        """Test campaign listing is public and paginated"""
        for i in range(3):
            TestDataFactory.create_campaign(creator=self.creator, name=f'Campaign {i}')
        response = APIClient().get('/api/v1/campaigns/?limit=2')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['next'], 2)
        self.assertEqual(response.data['total_pages'], 2)

    def test_list_search_by_product_name(self):
        """Test search matches product names"""
        campaign = TestDataFactory.create_campaign(name='Feira')
        TestDataFactory.create_product(campaign, name='Doce de leite')
        TestDataFactory.create_campaign(name='Outra')
        response = APIClient().get('/api/v1/campaigns/?search=leite')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], campaign.id)

    def test_list_filter_status_and_mine(self):
        """Test status and own-campaign filters"""
        TestDataFactory.create_campaign(creator=self.creator)
        TestDataFactory.create_campaign(status=Campaign.STATUS_CLOSED)
        response = self.client.get('/api/v1/campaigns/?status=CLOSED')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/campaigns/?mine=true')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['creator']['id'], self.creator.id)

    def test_create_requires_authentication(self):
        """Test creating a campaign needs a token"""
        response = APIClient().post('/api/v1/campaigns/', {'name': 'Anon'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_upgrades_customer_to_creator(self):
        """Test a customer becomes a creator on first campaign"""
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.other)
        response = client.post('/api/v1/campaigns/', {
            'name': 'Café Especial',
            'shipping_cost': '25.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'cafe-especial')
        self.assertEqual(response.data['status'], Campaign.STATUS_ACTIVE)
        self.other.refresh_from_db()
        self.assertEqual(self.other.role, User.ROLE_CAMPAIGN_CREATOR)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Campaign').exists())

    def test_create_rejects_negative_shipping(self):
        """Test negative shipping cost is rejected"""
        response = self.client.post('/api/v1/campaigns/', {'name': 'X', 'shipping_cost': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('shipping_cost', response.data)

    @patch('backend.campaigns.geocoding.requests.get')
    def test_create_geocodes_pickup(self, mock_get):
        """Test pickup address is geocoded on create"""
        mock_get.side_effect = [
            _mock_response({'logradouro': 'Avenida Paulista', 'bairro': 'Bela Vista',
                            'localidade': 'São Paulo', 'uf': 'SP'}),
            _mock_response([{'lat': '-23.561', 'lon': '-46.656'}]),
        ]
        response = self.client.post('/api/v1/campaigns/', {
            'name': 'Retirada',
            'pickup_zip_code': '01310-100',
            'pickup_address': 'Avenida Paulista',
            'pickup_address_number': '1000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        campaign = Campaign.objects.get(pk=response.data['id'])
        self.assertEqual(campaign.pickup_latitude, -23.561)
        self.assertEqual(campaign.pickup_city, 'São Paulo')

    @patch('backend.campaigns.geocoding.requests.get')
    def test_update_number_only_regeocodes_pickup(self, mock_get):
        """Test changing only the address number refreshes the pickup coordinates"""
        mock_get.side_effect = [
            _mock_response({'logradouro': 'Avenida Paulista', 'bairro': 'Bela Vista',
                            'localidade': 'São Paulo', 'uf': 'SP'}),
            _mock_response([{'lat': '-23.565', 'lon': '-46.652'}]),
        ]
        campaign = TestDataFactory.create_campaign(
            creator=self.creator, pickup_zip_code='01310-100', pickup_address='Avenida Paulista',
            pickup_address_number='1000', pickup_latitude=1.0, pickup_longitude=1.0
        )
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/',
                                     {'pickup_address_number': '1500'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(mock_get.call_count, 2)
        campaign.refresh_from_db()
        self.assertEqual(campaign.pickup_latitude, -23.565)
        self.assertEqual(campaign.pickup_longitude, -46.652)

    def test_clearing_pickup_cep_drops_coordinates(self):
        """Test clearing the pickup CEP removes coordinates so distance is unavailable"""
        campaign = TestDataFactory.create_campaign(
            creator=self.creator, pickup_zip_code='01310-100', pickup_address='Avenida Paulista',
            pickup_latitude=-23.5505, pickup_longitude=-46.6333
        )
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/',
                                     {'pickup_zip_code': None, 'pickup_address': None}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        campaign.refresh_from_db()
        self.assertIsNone(campaign.pickup_latitude)
        self.assertIsNone(campaign.pickup_longitude)

        distance = APIClient().get(f'/api/v1/campaigns/{campaign.id}/distance/?from_lat=-23.5&from_lng=-46.6')
        self.assertEqual(distance.status_code, status.HTTP_400_BAD_REQUEST)

    def test_retrieve_by_slug_and_id(self):
        """Test retrieval by slug and by id"""
        campaign = TestDataFactory.create_campaign(name='Azeite')
        self.assertEqual(APIClient().get(f'/api/v1/campaigns/{campaign.slug}/').data['id'], campaign.id)
        self.assertEqual(APIClient().get(f'/api/v1/campaigns/{campaign.id}/').data['slug'], 'azeite')
        self.assertEqual(APIClient().get('/api/v1/campaigns/nope/').status_code, status.HTTP_404_NOT_FOUND)

    def test_pix_hidden_until_visible_status(self):
        """Test PIX details stay hidden until the configured status"""
        campaign = TestDataFactory.create_campaign(
            creator=self.creator, pix_key='chave@pix.com', pix_type='EMAIL',
            pix_visible_at_status=Campaign.STATUS_CLOSED
        )
        public = APIClient().get(f'/api/v1/campaigns/{campaign.slug}/')
        self.assertIsNone(public.data['pix_key'])
        owner = self.client.get(f'/api/v1/campaigns/{campaign.slug}/')
        self.assertEqual(owner.data['pix_key'], 'chave@pix.com')
        Campaign.objects.filter(pk=campaign.pk).update(status=Campaign.STATUS_CLOSED)
        public = APIClient().get(f'/api/v1/campaigns/{campaign.slug}/')
        self.assertEqual(public.data['pix_key'], 'chave@pix.com')

    def test_update_requires_owner(self):
        """Test only the creator can update a campaign"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.other)
        response = client.patch(f'/api/v1/campaigns/{campaign.id}/', {'name': 'Hijack'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_can_update_any_campaign(self):
        """Test admins can update any campaign"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        admin = TestDataFactory.create_user(role=User.ROLE_ADMIN)
        client = AuthenticatedAPIClient()
        client.authenticate_user(admin)
        response = client.patch(f'/api/v1/campaigns/{campaign.id}/', {'description': 'Edited'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_rename_regenerates_slug(self):
        """Test renaming a campaign regenerates its slug"""
        campaign = TestDataFactory.create_campaign(creator=self.creator, name='Velho')
        response = self.client.patch(f'/api/v1/campaigns/{campaign.slug}/', {'name': 'Novo Nome'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['slug'], 'novo-nome')

    def test_shipping_change_redistributes(self):
        """Test a shipping cost change redistributes fees"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        product = TestDataFactory.create_product(campaign, price=Decimal('10.00'))
        first = TestDataFactory.create_order(campaign, items=[(product, 1)])
        second = TestDataFactory.create_order(campaign, items=[(product, 1)])
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/', {'shipping_cost': '15.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.shipping_fee, Decimal('7.50'))
        self.assertEqual(second.total, Decimal('17.50'))
        self.assertTrue(AuditLog.objects.filter(action='shipping_change', object_id=str(campaign.id)).exists())

    def test_delete_campaign(self):
        """Test deleting a campaign"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        response = self.client.delete(f'/api/v1/campaigns/{campaign.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Campaign.objects.filter(pk=campaign.pk).exists())

    def test_status_endpoint(self):
        """Test the status endpoint"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/status/', {'status': 'CLOSED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CLOSED')
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/status/', {'status': 'ACTIVE'}, format='json')
        self.assertEqual(response.data['status'], 'ACTIVE')
        self.assertTrue(AuditLog.objects.filter(action='status_change').exists())

    def test_status_endpoint_rejects_invalid_transition(self):
        """Test the status endpoint rejects invalid transitions"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/status/', {'status': 'SENT'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_archived_is_terminal(self):
        """Test archived campaigns cannot be moved manually"""
        campaign = TestDataFactory.create_campaign(creator=self.creator, status=Campaign.STATUS_ARCHIVED)
        response = self.client.patch(f'/api/v1/campaigns/{campaign.id}/status/', {'status': 'SENT'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_clone_campaign(self):
        """Test cloning copies products into a fresh active campaign"""
        original = TestDataFactory.create_campaign(
            creator=self.creator, name='Original', shipping_cost=Decimal('40.00'),
            status=Campaign.STATUS_SENT, deadline=timezone.now()
        )
        original.description = 'Same description'
        original.save()
        TestDataFactory.create_product(original, name='A', price=Decimal('1.00'))
        TestDataFactory.create_product(original, name='B', price=Decimal('2.00'))

        response = self.client.post(f'/api/v1/campaigns/{original.slug}/clone/', {'name': 'Original'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'original-1')
        self.assertEqual(response.data['status'], Campaign.STATUS_ACTIVE)
        self.assertEqual(response.data['shipping_cost'], '0.00')
        self.assertIsNone(response.data['deadline'])
        self.assertEqual(response.data['description'], 'Same description')
        self.assertEqual(sorted(p['name'] for p in response.data['products']), ['A', 'B'])

    def test_clone_requires_owner(self):
        """Test only the creator can clone a campaign"""
        original = TestDataFactory.create_campaign(creator=self.creator)
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.other)
        response = client.post(f'/api/v1/campaigns/{original.id}/clone/', {'name': 'Copy'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_orders_summary_endpoint(self):
        """Test the orders summary endpoint is creator only"""
        campaign = TestDataFactory.create_campaign(creator=self.creator)
        TestDataFactory.create_order(campaign, customer_name='Ana')
        response = self.client.get(f'/api/v1/campaigns/{campaign.id}/orders-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['orders_count'], 1)
        self.assertIn('Ana', response.data['summary_text'])

        client = AuthenticatedAPIClient()
        client.authenticate_user(self.other)
        response = client.get(f'/api/v1/campaigns/{campaign.id}/orders-summary/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_distance_without_pickup_coordinates(self):
        """Test distance needs pickup coordinates"""
        campaign = TestDataFactory.create_campaign()
        response = APIClient().get(f'/api/v1/campaigns/{campaign.id}/distance/?from_lat=-23.5&from_lng=-46.6')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_distance_from_coordinates(self):
        """Test distance from explicit coordinates"""
        campaign = TestDataFactory.create_campaign(pickup_latitude=-23.5505, pickup_longitude=-46.6333)
        response = APIClient().get(f'/api/v1/campaigns/{campaign.id}/distance/?from_lat=-23.5505&from_lng=-46.6333')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['distance_km'], 0.0)
        self.assertEqual(response.data['distance_display'], '0 m')

    def test_distance_requires_origin(self):
        """Test distance needs an origin"""
        campaign = TestDataFactory.create_campaign(pickup_latitude=-23.5505, pickup_longitude=-46.6333)
        response = APIClient().get(f'/api/v1/campaigns/{campaign.id}/distance/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @patch('backend.campaigns.geocoding.requests.get')
    def test_distance_from_cep(self, mock_get):
        """Test distance from an origin CEP"""
        mock_get.side_effect = [
            _mock_response({'logradouro': 'Praça da Sé', 'bairro': 'Sé', 'localidade': 'São Paulo', 'uf': 'SP'}),
            _mock_response([{'lat': '-23.5505', 'lon': '-46.6333'}]),
        ]
        campaign = TestDataFactory.create_campaign(pickup_latitude=-22.9068, pickup_longitude=-43.1729)
        response = APIClient().get(f'/api/v1/campaigns/{campaign.id}/distance/?from_zip_code=01001-000')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['from']['city'], 'São Paulo')
        self.assertGreater(response.data['distance_km'], 350)


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator, shipping_cost=Decimal('20.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.creator)

    def test_list_requires_campaign(self):
        """Test product listing needs a campaign filter"""
        response = APIClient().get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_products_of_campaign(self):
        """Test listing the products of a campaign"""
        TestDataFactory.create_product(self.campaign)
        TestDataFactory.create_product(TestDataFactory.create_campaign())
        response = APIClient().get(f'/api/v1/products/?campaign={self.campaign.slug}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_create_product(self):
        """Test adding a product"""
        response = self.client.post('/api/v1/products/', {
            'campaign': self.campaign.id, 'name': 'Mel 500g', 'price': '32.90', 'weight': '500'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['price'], '32.90')

    def test_create_product_negative_price(self):
        """Test negative prices are rejected"""
        response = self.client.post('/api/v1/products/', {
            'campaign': self.campaign.id, 'name': 'Mel', 'price': '-1.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_product_requires_owner(self):
        """Test only the creator can add products"""
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user())
        response = client.post('/api/v1/products/', {
            'campaign': self.campaign.id, 'name': 'Mel', 'price': '1.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_product_in_closed_campaign(self):
        """Test products cannot be added to a closed campaign"""
        self.campaign.status = Campaign.STATUS_CLOSED
        self.campaign.save()
        response = self.client.post('/api/v1/products/', {
            'campaign': self.campaign.id, 'name': 'Mel', 'price': '1.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Cannot add products to a campaign that is not active')

    def test_weight_change_redistributes_shipping(self):
        """Test a weight change redistributes shipping"""
        light = TestDataFactory.create_product(self.campaign, weight=Decimal('100'))
        heavy = TestDataFactory.create_product(self.campaign, weight=Decimal('100'))
        first = TestDataFactory.create_order(self.campaign, items=[(light, 1)])
        second = TestDataFactory.create_order(self.campaign, items=[(heavy, 1)])
        response = self.client.patch(f'/api/v1/products/{heavy.id}/', {'weight': '300'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.shipping_fee, Decimal('5.00'))
        self.assertEqual(second.shipping_fee, Decimal('15.00'))

    def test_price_change_keeps_order_snapshot(self):
        """Test price changes do not reprice existing orders"""
        product = TestDataFactory.create_product(self.campaign, price=Decimal('10.00'))
        order = TestDataFactory.create_order(self.campaign, items=[(product, 2)])
        self.client.patch(f'/api/v1/products/{product.id}/', {'price': '99.00'}, format='json')
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('20.00'))

    def test_cannot_move_product_to_other_campaign(self):
        """Test a product cannot move to another campaign"""
        product = TestDataFactory.create_product(self.campaign)
        other = TestDataFactory.create_campaign(creator=self.creator)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'campaign': other.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_product_refreshes_orders(self):
        """Test deleting a product refreshes affected orders"""
        kept = TestDataFactory.create_product(self.campaign, price=Decimal('10.00'))
        removed = TestDataFactory.create_product(self.campaign, price=Decimal('5.00'))
        order = TestDataFactory.create_order(self.campaign, items=[(kept, 1), (removed, 2)])
        response = self.client.delete(f'/api/v1/products/{removed.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=removed.pk).exists())
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('10.00'))
        self.assertEqual(order.shipping_fee, Decimal('20.00'))
        self.assertEqual(order.total, Decimal('30.00'))

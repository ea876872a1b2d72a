"""
Test suite for the core app
Tests: money helpers, registration, login and the current user endpoint
"""
from django.test import TestCase, RequestFactory
from rest_framework import status
from rest_framework.test import APIClient
from decimal import Decimal
from backend.core.models import User, AuditLog
from backend.core.money import distribute_proportionally, round_money, money_sum, format_brl, to_decimal
from backend.core.utils import create_audit_log, audit_instance, snapshot, diff_snapshot, get_client_ip
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class MoneyTests(TestCase):
    """Test Decimal money helpers"""

    def test_round_money_half_up(self):
        """Test money rounding goes half up to two places"""
        self.assertEqual(round_money(Decimal('2.345')), Decimal('2.35'))
        self.assertEqual(round_money(Decimal('2.344')), Decimal('2.34'))
        self.assertEqual(round_money('0.005'), Decimal('0.01'))

    def test_to_decimal_avoids_float_noise(self):
        """Test float inputs convert without binary noise"""
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        self.assertEqual(to_decimal(None), Decimal('0.00'))

    def test_money_sum(self):
        """Test summing money values"""
        self.assertEqual(money_sum([Decimal('1.10'), '2.20', 3]), Decimal('6.30'))
        self.assertEqual(money_sum([]), Decimal('0.00'))

    def test_distribute_equal_weights_sums_exactly(self):
        """Test equal shares add back up to the exact total"""
        parts = distribute_proportionally(Decimal('10.00'), [1, 1, 1])
        self.assertEqual(parts, [Decimal('3.33'), Decimal('3.33'), Decimal('3.34')])
        self.assertEqual(sum(parts), Decimal('10.00'))

    def test_distribute_proportional_weights(self):
        """Test proportional split by weight"""
        parts = distribute_proportionally(Decimal('30.00'), [100, 200])
        self.assertEqual(parts, [Decimal('10.00'), Decimal('20.00')])

    def test_distribute_zero_weight_gets_nothing(self):
        """Test zero-weight entries get no share"""
        parts = distribute_proportionally(Decimal('10.00'), [1, 0, 1, 0])
        self.assertEqual(parts, [Decimal('5.00'), Decimal('0.00'), Decimal('5.00'), Decimal('0.00')])
        self.assertEqual(sum(parts), Decimal('10.00'))

    def test_distribute_all_zero_weights(self):
        """Test nothing is allocated when every weight is zero"""
        parts = distribute_proportionally(Decimal('10.00'), [0, 0])
        self.assertEqual(parts, [Decimal('0.00'), Decimal('0.00')])

    def test_distribute_empty(self):
        """Test distributing over no entries"""
        self.assertEqual(distribute_proportionally(Decimal('10.00'), []), [])

    def test_distribute_many_uneven_weights(self):
        """Test remainder handling across many uneven weights"""
        weights = [Decimal('333.333'), Decimal('1'), Decimal('72.5'), Decimal('999')]
        parts = distribute_proportionally(Decimal('47.19'), weights)
        self.assertEqual(sum(parts), Decimal('47.19'))
        for part in parts:
            self.assertEqual(part, part.quantize(Decimal('0.01')))

    def test_format_brl(self):
        """Test Brazilian real formatting"""
        self.assertEqual(format_brl(Decimal('1234.5')), 'R$ 1.234,50')
        self.assertEqual(format_brl(Decimal('-3')), '-R$ 3,00')


class AuditLogTests(TestCase):
    """Test audit log helper"""

    def test_create_audit_log_with_user(self):
        """Test audit entry with an explicit user"""
        user = TestDataFactory.create_user()
        log = create_audit_log(action='create', model_name='Campaign', object_id=1, user=user,
                               object_reference='my-campaign')
        self.assertIsNotNone(log)
        self.assertEqual(log.user, user)
        self.assertEqual(log.object_id, '1')

    def test_create_audit_log_skips_missing_fields(self):
        """Test audit entry is skipped without an object id"""
        self.assertIsNone(create_audit_log(action='create', model_name='Campaign'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_diff_snapshot_reports_only_changed_fields(self):
        """Test field diff keeps only changed values"""
        campaign = TestDataFactory.create_campaign(shipping_cost=Decimal('10.00'))
        before = snapshot(campaign, ['name', 'shipping_cost', 'deadline'])
        campaign.shipping_cost = Decimal('12.50')
        changes = diff_snapshot(before, campaign)
        self.assertEqual(changes, {'shipping_cost': {'old': '10.00', 'new': '12.50'}})

    def test_audit_instance_derives_fields(self):
        """Test audit entry fields derived from the instance"""
        campaign = TestDataFactory.create_campaign(name='Bulk Coffee')
        log = audit_instance(None, 'update', campaign, campaign.slug, {'a': 1})
        self.assertEqual(log.model_name, 'Campaign')
        self.assertEqual(log.object_id, str(campaign.id))
        self.assertEqual(log.object_name, 'Bulk Coffee')
        self.assertEqual(log.object_reference, campaign.slug)
        self.assertIsNone(log.user)

    def test_get_client_ip_prefers_forwarded_header(self):
        """Test client IP taken from the first forwarded hop"""
        request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')
        self.assertEqual(get_client_ip(request), '10.0.0.1')
        self.assertIsNone(get_client_ip(None))


class AuthAPITests(TestCase):
    """Test registration, login and profile endpoints"""

    def setUp(self):
        self.client = APIClient()

    def test_register_returns_tokens(self):
        """Test registration returns the user and a token pair"""
        data = {
            'email': 'maria@example.com',
            'name': '  Maria   Silva ',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['name'], 'Maria Silva')
        self.assertEqual(response.data['user']['role'], User.ROLE_CUSTOMER)

    def test_register_password_mismatch(self):
        """Test registration rejects mismatched passwords"""
        data = {
            'email': 'joao@example.com',
            'name': 'Joao',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'other-pass-456',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_register_cannot_claim_admin_role(self):
        """Test registration cannot grant the admin role"""
        data = {
            'email': 'eve@example.com',
            'name': 'Eve',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
            'role': User.ROLE_ADMIN,
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_with_email(self):
        """Test login by email"""
        TestDataFactory.create_user(email='ana@example.com', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'ana@example.com',
            'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['email'], 'ana@example.com')

    def test_login_wrong_password(self):
        """Test login with a wrong password"""
        TestDataFactory.create_user(email='ana@example.com', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'ana@example.com',
            'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        """Test profile endpoint needs a token"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_returns_flags(self):
        """Test profile includes admin and creator flags"""
        user = TestDataFactory.create_creator()
        client = AuthenticatedAPIClient()
        client.authenticate_user(user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['can_create_campaigns'])
        self.assertFalse(response.data['is_admin'])

    def test_me_cannot_change_role(self):
        """Test users cannot change their own role"""
        user = TestDataFactory.create_user()
        client = AuthenticatedAPIClient()
        client.authenticate_user(user)
        response = client.patch('/api/v1/auth/me/', {'role': User.ROLE_ADMIN, 'phone': '11999999999'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.role, User.ROLE_CUSTOMER)
        self.assertEqual(user.phone, '11999999999')

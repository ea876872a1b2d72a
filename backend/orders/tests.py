"""
Test suite for the orders app
Tests: order creation, item replacement, payment automation, items, deletion,
order chat and empty order cleanup
"""
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.campaigns.models import Campaign
from backend.notifications.models import Notification
from backend.orders.models import Order, OrderItem, OrderMessage
from backend.orders import services


class OrderServiceTests(TestCase):
    """Test order write operations"""

    def setUp(self):
        self.campaign = TestDataFactory.create_campaign(shipping_cost=Decimal('12.00'))
        self.product = TestDataFactory.create_product(self.campaign, price=Decimal('7.50'), weight=Decimal('250'))
        self.customer = TestDataFactory.create_user(name='Carla Souza')

    def test_create_order_snapshots_price(self):
        """Test item prices are frozen at order time"""
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 2}])
        item = order.items.get()
        self.assertEqual(item.unit_price, Decimal('7.50'))
        self.assertEqual(item.subtotal, Decimal('15.00'))
        self.assertEqual(order.subtotal, Decimal('15.00'))
        self.assertEqual(order.shipping_fee, Decimal('12.00'))
        self.assertEqual(order.total, Decimal('27.00'))
        self.assertEqual(order.customer_name, 'Carla Souza')

        self.product.price = Decimal('100.00')
        self.product.save()
        item.refresh_from_db()
        self.assertEqual(item.unit_price, Decimal('7.50'))

    def test_create_order_requires_items(self):
        """Test an order cannot be created empty"""
        with self.assertRaises(services.OrderError):
            services.create_order(self.campaign, self.customer, [])

    def test_create_order_rejects_foreign_product(self):
        """Test products from another campaign are rejected"""
        foreign = TestDataFactory.create_product(TestDataFactory.create_campaign())
        with self.assertRaises(services.OrderError):
            services.create_order(self.campaign, self.customer, [{'product': foreign, 'quantity': 1}])
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_in_closed_campaign(self):
        """Test orders cannot be created in a closed campaign"""
        self.campaign.status = Campaign.STATUS_CLOSED
        self.campaign.save()
        with self.assertRaisesMessage(services.OrderError, 'Cannot create orders in a campaign that is not active'):
            services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])

    def test_add_item_subtotal_overflow(self):
        """Test adding an item cannot push the order subtotal past the column limit"""
        expensive = TestDataFactory.create_product(self.campaign, price=Decimal('60000000.00'))
        order = services.create_order(self.campaign, self.customer, [{'product': expensive, 'quantity': 1}])
        with self.assertRaises(services.OrderError):
            services.add_item(order, expensive, 1)
        self.assertEqual(order.items.count(), 1)
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('60000000.00'))

    def test_replace_items(self):
        """Test replacing the full item list"""
        other = TestDataFactory.create_product(self.campaign, price=Decimal('3.00'), weight=Decimal('0'))
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        order = services.replace_order_items(order, items=[{'product': other, 'quantity': 4}])
        self.assertEqual(list(order.items.values_list('product_id', flat=True)), [other.id])
        self.assertEqual(order.subtotal, Decimal('12.00'))
        # Only weightless items left, so no shipping
        self.assertEqual(order.shipping_fee, Decimal('0.00'))
        self.assertEqual(order.total, Decimal('12.00'))

    def test_replace_items_failure_keeps_old_items(self):
        """Test a failed replacement leaves the old items"""
        foreign = TestDataFactory.create_product(TestDataFactory.create_campaign())
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        with self.assertRaises(services.OrderError):
            services.replace_order_items(order, items=[{'product': foreign, 'quantity': 1}])
        self.assertEqual(order.items.count(), 1)

    def test_add_and_remove_item(self):
        """Test adding and removing single items"""
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        order = services.add_item(order, self.product, 3)
        self.assertEqual(order.subtotal, Decimal('30.00'))
        item = order.items.order_by('id').first()
        order = services.remove_item(order, item)
        self.assertEqual(order.subtotal, Decimal('22.50'))
        self.assertEqual(order.total, Decimal('34.50'))

    def test_delete_order_redistributes(self):
        """Test deleting an order redistributes shipping"""
        first = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        second = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        first.refresh_from_db()
        self.assertEqual(first.shipping_fee, Decimal('6.00'))
        services.delete_order(second)
        first.refresh_from_db()
        self.assertEqual(first.shipping_fee, Decimal('12.00'))

    def test_payment_allowed_in_any_status(self):
        """Test payment flag can change in any campaign status"""
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        self.campaign.status = Campaign.STATUS_CLOSED
        self.campaign.save()
        order.campaign.refresh_from_db()
        self.assertTrue(services.update_payment_status(order, True))
        self.assertFalse(services.update_payment_status(order, True))

    def test_payment_archives_sent_campaign(self):
        """Test paying the last order archives a sent campaign"""
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        Campaign.objects.filter(pk=self.campaign.pk).update(status=Campaign.STATUS_SENT)
        services.update_payment_status(order, True)
        self.campaign.refresh_from_db()
        self.assertEqual(self.campaign.status, Campaign.STATUS_ARCHIVED)

        services.update_payment_status(order, False)
        self.campaign.refresh_from_db()
        self.assertEqual(self.campaign.status, Campaign.STATUS_SENT)

    def test_payment_in_closed_campaign_notifies_ready_to_send(self):
        """Test paying the last order of a closed campaign notifies the creator"""
        order = services.create_order(self.campaign, self.customer, [{'product': self.product, 'quantity': 1}])
        Campaign.objects.filter(pk=self.campaign.pk).update(status=Campaign.STATUS_CLOSED)
        order.campaign.refresh_from_db()
        services.update_payment_status(order, True)
        notifications = Notification.objects.filter(
            user=self.campaign.creator, type=Notification.TYPE_CAMPAIGN_READY_TO_SEND)
        self.assertEqual(notifications.count(), 1)

        # An unread notification suppresses duplicates
        services.update_payment_status(order, False)
        services.update_payment_status(order, True)
        self.assertEqual(notifications.count(), 1)


class EmptyOrderCleanupTests(TestCase):
    """Test cleanup of orders without items"""

    def setUp(self):
        self.campaign = TestDataFactory.create_campaign(shipping_cost=Decimal('10.00'))
        self.customer = TestDataFactory.create_user()

    def _empty_order(self, campaign, hours_old):
        order = Order.objects.create(campaign=campaign, customer=self.customer, customer_name='Empty')
        Order.objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(hours=hours_old))
        return order

    def test_cleanup_deletes_only_old_empty_orders_in_active_campaigns(self):
        """Test cleanup removes only stale empty orders of active campaigns"""
        old = self._empty_order(self.campaign, 30)
        recent = self._empty_order(self.campaign, 1)
        closed = TestDataFactory.create_campaign(status=Campaign.STATUS_CLOSED)
        closed_old = self._empty_order(closed, 30)
        with_items = TestDataFactory.create_order(self.campaign)
        Order.objects.filter(pk=with_items.pk).update(created_at=timezone.now() - timedelta(hours=48))

        self.assertEqual(services.cleanup_empty_orders(24), 1)
        self.assertFalse(Order.objects.filter(pk=old.pk).exists())
        self.assertTrue(Order.objects.filter(pk=recent.pk).exists())
        self.assertTrue(Order.objects.filter(pk=closed_old.pk).exists())
        self.assertTrue(Order.objects.filter(pk=with_items.pk).exists())

    def test_stats(self):
        """Test empty order statistics"""
        self._empty_order(self.campaign, 30)
        self._empty_order(self.campaign, 2)
        stats = services.get_empty_orders_stats()
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['older_than_24h'], 1)
        self.assertEqual(stats['older_than_1h'], 2)

    def test_cleanup_command(self):
        """Test cleanup management command"""
        self._empty_order(self.campaign, 5)
        out = StringIO()
        call_command('cleanup_empty_orders', hours=4, stdout=out)
        self.assertIn('Deleted 1 empty order(s)', out.getvalue())


class OrderAPITests(TestCase):
    """Test order endpoints"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator, shipping_cost=Decimal('10.00'))
        self.product = TestDataFactory.create_product(self.campaign, price=Decimal('20.00'))
        self.customer = TestDataFactory.create_user(name='Davi')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)

    def test_create_order(self):
        """Test placing an order"""
        response = self.client.post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': self.product.id, 'quantity': 2}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['customer_name'], 'Davi')
        self.assertEqual(response.data['subtotal'], '40.00')
        self.assertEqual(response.data['shipping_fee'], '10.00')
        self.assertEqual(response.data['total'], '50.00')
        self.assertEqual(response.data['campaign_slug'], self.campaign.slug)
        self.assertEqual(len(response.data['items']), 1)
        self.assertTrue(AuditLog.objects.filter(action='order_create').exists())

    def test_create_order_requires_authentication(self):
        """Test placing an order needs a token"""
        response = APIClient().post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': self.product.id, 'quantity': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_order_without_items(self):
        """Test an order without items is rejected"""
        response = self.client.post('/api/v1/orders/', {'campaign': self.campaign.id, 'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_create_order_zero_quantity(self):
        """Test zero quantity is rejected"""
        response = self.client.post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': self.product.id, 'quantity': 0}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_order_quantity_above_limit(self):
        """Test quantities above the per-item limit are rejected by validation"""
        response = self.client.post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': self.product.id, 'quantity': 10 ** 9}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_subtotal_overflow(self):
        """Test an order whose subtotal does not fit the money columns is rejected"""
        expensive = TestDataFactory.create_product(self.campaign, price=Decimal('60000000.00'))
        response = self.client.post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': expensive.id, 'quantity': 2}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('cannot exceed', response.data['error'])
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_in_closed_campaign(self):
        """Test ordering from a closed campaign"""
        Campaign.objects.filter(pk=self.campaign.pk).update(status=Campaign.STATUS_CLOSED)
        response = self.client.post('/api/v1/orders/', {
            'campaign': self.campaign.id,
            'items': [{'product': self.product.id, 'quantity': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('not active', response.data['error'])

    def test_list_requires_campaign(self):
        """Test listing needs a campaign filter"""
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_visibility(self):
        """Test which orders each user can see"""
        TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        TestDataFactory.create_order(self.campaign, items=[(self.product, 1)])

        own = self.client.get(f'/api/v1/orders/?campaign={self.campaign.slug}')
        self.assertEqual(len(own.data), 1)

        creator_client = AuthenticatedAPIClient()
        creator_client.authenticate_user(self.creator)
        self.assertEqual(len(creator_client.get(f'/api/v1/orders/?campaign={self.campaign.id}').data), 2)

        self.assertEqual(len(APIClient().get(f'/api/v1/orders/?campaign={self.campaign.id}').data), 2)

    def test_put_replaces_items(self):
        """Test PUT replaces the item list"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        other = TestDataFactory.create_product(self.campaign, price=Decimal('5.00'))
        response = self.client.put(f'/api/v1/orders/{order.id}/', {
            'customer_name': 'Davi Lima',
            'items': [{'product': other.id, 'quantity': 3}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['customer_name'], 'Davi Lima')
        self.assertEqual(response.data['subtotal'], '15.00')
        self.assertEqual([i['product'] for i in response.data['items']], [other.id])

    def test_patch_payment_by_creator(self):
        """Test the campaign creator marks an order paid"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        creator_client = AuthenticatedAPIClient()
        creator_client.authenticate_user(self.creator)
        response = creator_client.patch(f'/api/v1/orders/{order.id}/', {'is_paid': True, 'is_separated': True},
                                        format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_paid'])
        self.assertTrue(response.data['is_separated'])
        self.assertTrue(AuditLog.objects.filter(action='payment_change', object_id=str(order.id)).exists())

    def test_patch_requires_permission(self):
        """Test outsiders cannot patch an order"""
        order = TestDataFactory.create_order(self.campaign, items=[(self.product, 1)])
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'is_paid': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patch_blank_customer_name(self):
        """Test a blank customer name is rejected"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'customer_name': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_add_and_remove_item(self):
        """Test item endpoints"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        response = self.client.post(f'/api/v1/orders/{order.id}/items/',
                                    {'product': self.product.id, 'quantity': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['subtotal'], '60.00')

        item_id = response.data['items'][0]['id']
        response = self.client.delete(f'/api/v1/orders/{order.id}/items/{item_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('40.00'))
        self.assertEqual(order.total, Decimal('50.00'))

    def test_delete_order(self):
        """Test deleting an order"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        response = self.client.delete(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Order.objects.filter(pk=order.pk).exists())
        self.assertTrue(AuditLog.objects.filter(action='order_delete', object_id=str(order.id)).exists())

    def test_delete_order_in_closed_campaign(self):
        """Test orders of a closed campaign cannot be deleted"""
        order = TestDataFactory.create_order(self.campaign, customer=self.customer, items=[(self.product, 1)])
        Campaign.objects.filter(pk=self.campaign.pk).update(status=Campaign.STATUS_CLOSED)
        response = self.client.delete(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(OrderItem.objects.filter(order=order).exists())


class OrderChatTests(TestCase):
    """Test private order messages"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.customer = TestDataFactory.create_user()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator)
        self.order = TestDataFactory.create_order(self.campaign, customer=self.customer)
        self.customer_client = AuthenticatedAPIClient()
        self.customer_client.authenticate_user(self.customer)
        self.creator_client = AuthenticatedAPIClient()
        self.creator_client.authenticate_user(self.creator)

    def test_customer_message_notifies_creator(self):
        """Test a customer message notifies the campaign creator"""
        response = self.customer_client.post('/api/v1/messages/', {
            'order': self.order.id, 'message': '  When can I pick it up?  '
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sender_type'], 'CUSTOMER')
        self.assertEqual(response.data['message'], 'When can I pick it up?')
        notification = Notification.objects.get(user=self.creator, type=Notification.TYPE_NEW_MESSAGE)
        self.assertEqual(notification.metadata['order_id'], self.order.id)

    def test_creator_message_is_admin_side(self):
        """Test creator messages are flagged as admin side"""
        response = self.creator_client.post('/api/v1/messages/', {
            'order': self.order.id, 'message': 'Saturday morning'
        }, format='json')
        self.assertEqual(response.data['sender_type'], 'ADMIN')
        self.assertTrue(Notification.objects.filter(user=self.customer, type=Notification.TYPE_NEW_MESSAGE).exists())

    def test_outsider_cannot_read_or_post(self):
        """Test outsiders cannot use an order chat"""
        outsider = AuthenticatedAPIClient()
        outsider.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(outsider.get(f'/api/v1/messages/?order={self.order.id}').status_code,
                         status.HTTP_403_FORBIDDEN)
        response = outsider.post('/api/v1/messages/', {'order': self.order.id, 'message': 'hi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_empty_message_rejected(self):
        """Test empty chat messages are rejected"""
        response = self.customer_client.post('/api/v1/messages/', {'order': self.order.id, 'message': '   '},
                                             format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_listing_marks_other_party_messages_read(self):
        """Test listing marks the other side's messages read"""
        OrderMessage.objects.create(order=self.order, sender=self.creator, sender_type='ADMIN', message='Hi')
        OrderMessage.objects.create(order=self.order, sender=self.customer, sender_type='CUSTOMER', message='Hello')

        self.assertEqual(self.customer_client.get('/api/v1/messages/unread-count/').data['count'], 1)
        self.assertEqual(self.creator_client.get('/api/v1/messages/unread-count/').data['count'], 1)

        response = self.customer_client.get(f'/api/v1/messages/?order={self.order.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

        self.assertEqual(self.customer_client.get('/api/v1/messages/unread-count/').data['count'], 0)
        # The customer's own message is still unread for the creator
        self.assertEqual(self.creator_client.get('/api/v1/messages/unread-count/').data['count'], 1)

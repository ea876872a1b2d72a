"""
Test suite for notifications
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.campaigns.models import Campaign
from backend.notifications.models import Notification
from backend.notifications import services


class NotificationServiceTests(TestCase):
    """Test notification service functions"""

    def setUp(self):
        self.creator = TestDataFactory.create_creator()
        self.campaign = TestDataFactory.create_campaign(creator=self.creator)

    def test_ready_to_send_requires_closed_campaign(self):
        """Test no ready-to-send notice while the campaign is active"""
        TestDataFactory.create_order(self.campaign, is_paid=True)
        self.assertFalse(services.check_and_create_ready_to_send(self.campaign))

    def test_ready_to_send_requires_all_paid(self):
        """Test no ready-to-send notice while an order is unpaid"""
        TestDataFactory.create_order(self.campaign, is_paid=True)
        TestDataFactory.create_order(self.campaign)
        self.campaign.status = Campaign.STATUS_CLOSED
        self.assertFalse(services.check_and_create_ready_to_send(self.campaign))

    def test_ready_to_send_requires_orders(self):
        """Test no ready-to-send notice for a campaign without orders"""
        self.campaign.status = Campaign.STATUS_CLOSED
        self.assertFalse(services.check_and_create_ready_to_send(self.campaign))

    def test_ready_to_send_created_once_while_unread(self):
        """Test ready-to-send notice is not duplicated while unread"""
        TestDataFactory.create_order(self.campaign, is_paid=True)
        self.campaign.status = Campaign.STATUS_CLOSED
        self.assertTrue(services.check_and_create_ready_to_send(self.campaign))
        self.assertFalse(services.check_and_create_ready_to_send(self.campaign))

        notification = Notification.objects.get(user=self.creator)
        self.assertEqual(notification.metadata['campaign_slug'], self.campaign.slug)

        # Once read, a new one can be created
        services.mark_as_read(notification.id, self.creator)
        self.assertTrue(services.check_and_create_ready_to_send(self.campaign))

    def test_mark_and_delete_only_own(self):
        """Test users can only read or delete their own notifications"""
        other = TestDataFactory.create_user()
        notification = services.create_notification(self.creator, Notification.TYPE_NEW_MESSAGE, 'Hi', 'Hello')
        self.assertFalse(services.mark_as_read(notification.id, other))
        self.assertFalse(services.delete_notification(notification.id, other))
        self.assertEqual(services.unread_count(self.creator), 1)
        self.assertTrue(services.mark_as_read(notification.id, self.creator))
        self.assertEqual(services.unread_count(self.creator), 0)
        self.assertTrue(services.delete_notification(notification.id, self.creator))


class NotificationAPITests(TestCase):
    """Test notification endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.first = services.create_notification(self.user, Notification.TYPE_NEW_MESSAGE, 'One', 'First')
        self.second = services.create_notification(self.user, Notification.TYPE_CAMPAIGN_ARCHIVED, 'Two', 'Second')
        services.create_notification(TestDataFactory.create_user(), Notification.TYPE_NEW_MESSAGE, 'X', 'Other user')

    def test_requires_authentication(self):
        """Test notifications need a token"""
        response = APIClient().get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list(self):
        """Test listing with totals and newest first"""
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['unread_count'], 2)
        # Newest first
        self.assertEqual(response.data['notifications'][0]['id'], self.second.id)

    def test_list_unread_only(self):
        """Test unread filter"""
        services.mark_as_read(self.first.id, self.user)
        response = self.client.get('/api/v1/notifications/?unread=true')
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['unread_count'], 1)

    def test_mark_read(self):
        """Test marking one notification read"""
        response = self.client.patch(f'/api/v1/notifications/{self.first.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.first.refresh_from_db()
        self.assertTrue(self.first.is_read)

    def test_mark_read_missing(self):
        """Test marking a missing notification"""
        response = self.client.patch('/api/v1/notifications/999999/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_mark_all_read(self):
        """Test marking all notifications read"""
        response = self.client.patch('/api/v1/notifications/read-all/')
        self.assertEqual(response.data['updated'], 2)
        self.assertEqual(services.unread_count(self.user), 0)

    def test_delete(self):
        """Test deleting a notification"""
        response = self.client.delete(f'/api/v1/notifications/{self.first.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Notification.objects.filter(pk=self.first.pk).exists())

"""Recording and querying user notifications"""
import logging

from .models import Notification

logger = logging.getLogger(__name__)


def create_notification(user, type, title, message, metadata=None):
    """Create a notification for a user"""
    notification = Notification.objects.create(
        user=user,
        type=type,
        title=title,
        message=message,
        metadata=metadata or {}
    )
    logger.info(f"Created notification for user {user.id}: {type}")
    return notification


def check_and_create_ready_to_send(campaign):
    """
    Notify the creator when a CLOSED campaign has all of its orders paid.

    Returns True if a notification was created. An unread notification for
    the same campaign suppresses duplicates.
    """
    from backend.campaigns.models import Campaign

    if campaign.status != Campaign.STATUS_CLOSED or not campaign.creator_id:
        return False

    paid_flags = list(campaign.orders.values_list('is_paid', flat=True))
    if not paid_flags or not all(paid_flags):
        return False

    already_notified = Notification.objects.filter(
        user_id=campaign.creator_id,
        type=Notification.TYPE_CAMPAIGN_READY_TO_SEND,
        metadata__campaign_id=campaign.id,
        is_read=False
    ).exists()
    if already_notified:
        return False

    create_notification(
        campaign.creator,
        Notification.TYPE_CAMPAIGN_READY_TO_SEND,
        'Campaign ready to send',
        f'All orders in "{campaign.name}" are paid. Change the status to SENT once you place the order with the supplier.',
        {'campaign_id': campaign.id, 'campaign_name': campaign.name, 'campaign_slug': campaign.slug}
    )
    logger.info(f"Created READY_TO_SEND notification for campaign {campaign.id}")
    return True


def mark_as_read(notification_id, user):
    """Mark one of the user's notifications as read. Returns False if not found"""
    return Notification.objects.filter(id=notification_id, user=user).update(is_read=True) > 0


def mark_all_as_read(user):
    return Notification.objects.filter(user=user, is_read=False).update(is_read=True)


def delete_notification(notification_id, user):
    """Delete one of the user's notifications. Returns False if not found"""
    deleted, _ = Notification.objects.filter(id=notification_id, user=user).delete()
    return deleted > 0


def unread_count(user):
    return Notification.objects.filter(user=user, is_read=False).count()

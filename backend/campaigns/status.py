"""
Campaign status lifecycle.

Manual transitions are limited to ALLOWED_TRANSITIONS; ARCHIVED is terminal for
people. The system archives a SENT campaign once every order is paid, and
brings it back to SENT if an order is marked unpaid again.
"""
import logging
from collections import namedtuple
from django.db import transaction
from django.utils import timezone

from backend.notifications.models import Notification
from backend.notifications.services import create_notification
from .models import Campaign

logger = logging.getLogger(__name__)

StatusChangeResult = namedtuple('StatusChangeResult', ['changed', 'previous_status', 'new_status', 'reason'])

ALLOWED_TRANSITIONS = {
    Campaign.STATUS_ACTIVE: {Campaign.STATUS_CLOSED},
    Campaign.STATUS_CLOSED: {Campaign.STATUS_ACTIVE, Campaign.STATUS_SENT},
    Campaign.STATUS_SENT: {Campaign.STATUS_CLOSED, Campaign.STATUS_ARCHIVED},
    Campaign.STATUS_ARCHIVED: set(),
}


class InvalidStatusTransition(Exception):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change campaign status from {current} to {target}")


def can_transition(current, target):
    return current == target or target in ALLOWED_TRANSITIONS.get(current, set())


def change_status(campaign, new_status, notify_customers=True):
    """
    Apply a manual status change.

    Raises InvalidStatusTransition for transitions outside ALLOWED_TRANSITIONS.
    Customers with orders get a CAMPAIGN_STATUS_CHANGED notification.
    """
    previous = campaign.status
    if previous == new_status:
        return StatusChangeResult(False, previous, new_status, 'Status unchanged')
    if not can_transition(previous, new_status):
        raise InvalidStatusTransition(previous, new_status)

    campaign.status = new_status
    campaign.save(update_fields=['status', 'updated_at'])
    logger.info(f"Campaign {campaign.id} status changed {previous} -> {new_status}")

    if notify_customers:
        _notify_customers_of_status(campaign, previous)

    if new_status == Campaign.STATUS_CLOSED:
        from backend.notifications.services import check_and_create_ready_to_send
        check_and_create_ready_to_send(campaign)
    elif new_status == Campaign.STATUS_SENT:
        check_and_archive(campaign)

    return StatusChangeResult(True, previous, new_status, None)


def _notify_customers_of_status(campaign, previous):
    from backend.core.models import User

    customers = User.objects.filter(orders__campaign=campaign).exclude(pk=campaign.creator_id).distinct()
    for customer in customers:
        create_notification(
            customer,
            Notification.TYPE_CAMPAIGN_STATUS_CHANGED,
            'Campaign status changed',
            f'"{campaign.name}" changed from {previous} to {campaign.status}.',
            {'campaign_id': campaign.id, 'campaign_name': campaign.name, 'campaign_slug': campaign.slug,
             'previous_status': previous, 'new_status': campaign.status}
        )


def check_and_archive(campaign):
    """
    Archive a SENT campaign when it has at least one order and every order is paid.
    """
    campaign.refresh_from_db(fields=['status'])
    if campaign.status != Campaign.STATUS_SENT:
        return StatusChangeResult(False, campaign.status, None, f'Campaign status is {campaign.status}, not SENT')

    paid_flags = list(campaign.orders.values_list('is_paid', flat=True))
    if not paid_flags:
        return StatusChangeResult(False, campaign.status, None, 'Campaign has no orders')

    unpaid = paid_flags.count(False)
    if unpaid:
        return StatusChangeResult(
            False, campaign.status, None,
            f'Campaign has {unpaid} unpaid order(s) out of {len(paid_flags)}'
        )

    campaign.status = Campaign.STATUS_ARCHIVED
    campaign.save(update_fields=['status', 'updated_at'])
    logger.info(f"Auto-archived campaign {campaign.id} - all {len(paid_flags)} order(s) are paid")

    if campaign.creator_id:
        create_notification(
            campaign.creator,
            Notification.TYPE_CAMPAIGN_ARCHIVED,
            'Campaign archived',
            f'Every order in "{campaign.name}" is paid, so the campaign was archived.',
            {'campaign_id': campaign.id, 'campaign_name': campaign.name, 'campaign_slug': campaign.slug,
             'reason': 'all_orders_paid'}
        )

    return StatusChangeResult(True, Campaign.STATUS_SENT, Campaign.STATUS_ARCHIVED, None)


def check_and_unarchive(campaign):
    """
    Move an ARCHIVED campaign back to SENT when any of its orders is unpaid.
    """
    campaign.refresh_from_db(fields=['status'])
    if campaign.status != Campaign.STATUS_ARCHIVED:
        return StatusChangeResult(False, campaign.status, None, f'Campaign status is {campaign.status}, not ARCHIVED')

    paid_flags = list(campaign.orders.values_list('is_paid', flat=True))
    if not paid_flags:
        return StatusChangeResult(False, campaign.status, None, 'Campaign has no orders')

    unpaid = paid_flags.count(False)
    if not unpaid:
        return StatusChangeResult(False, campaign.status, None, 'All orders are still paid')

    campaign.status = Campaign.STATUS_SENT
    campaign.save(update_fields=['status', 'updated_at'])
    logger.info(f"Auto-unarchived campaign {campaign.id} - {unpaid} unpaid order(s) detected")

    return StatusChangeResult(True, Campaign.STATUS_ARCHIVED, Campaign.STATUS_SENT, None)


def close_expired_campaigns(now=None):
    """Close ACTIVE campaigns whose deadline has passed. Returns the number closed"""
    now = now or timezone.now()
    with transaction.atomic():
        closed = Campaign.objects.filter(
            status=Campaign.STATUS_ACTIVE,
            deadline__isnull=False,
            deadline__lte=now
        ).update(status=Campaign.STATUS_CLOSED, updated_at=now)

    if closed:
        logger.info(f"Closed {closed} expired campaign(s)")
    return closed

"""
Order write operations.

Every change that touches items goes through here so that subtotals, the
campaign shipping split and order totals stay consistent.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from django.db import transaction
from django.utils import timezone

from backend.campaigns.models import Campaign
from backend.campaigns.shipping import distribute_shipping, recalculate_order_subtotal
from backend.campaigns.status import check_and_archive, check_and_unarchive
from backend.core.money import round_money
from backend.notifications.services import check_and_create_ready_to_send
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

# Largest amount the 10-digit money columns can hold
MAX_ORDER_SUBTOTAL = Decimal('99999999.99')


class OrderError(Exception):
    """Business rule violation on an order operation"""
    pass


def ensure_campaign_active(campaign, action='modify orders in'):
    if campaign.status != Campaign.STATUS_ACTIVE:
        raise OrderError(f"Cannot {action} a campaign that is not active")


def _build_items(order, items):
    """
    Snapshot product prices into unsaved OrderItems.
    items: iterable of {'product': Product, 'quantity': int}
    """
    built = []
    for item in items:
        product = item['product']
        if product.campaign_id != order.campaign_id:
            raise OrderError(f"Product {product.id} does not belong to this campaign")
        built.append(OrderItem(
            order=order,
            product=product,
            quantity=item['quantity'],
            unit_price=product.price,
            subtotal=round_money(product.price * item['quantity'])
        ))
    _ensure_amount_fits(sum((item.subtotal for item in built), Decimal('0.00')))
    return built


def _ensure_amount_fits(amount):
    if amount > MAX_ORDER_SUBTOTAL:
        raise OrderError(f"Order subtotal cannot exceed {MAX_ORDER_SUBTOTAL}")


def create_order(campaign, customer, items, customer_name=None):
    """Create an order with its items and redistribute the campaign shipping"""
    ensure_campaign_active(campaign, 'create orders in')
    if not items:
        raise OrderError('An order needs at least one item')

    with transaction.atomic():
        order = Order.objects.create(
            campaign=campaign,
            customer=customer,
            customer_name=customer_name or customer.get_display_name()
        )
        OrderItem.objects.bulk_create(_build_items(order, items))
        recalculate_order_subtotal(order)

    logger.info(f"Order {order.id} created in campaign {campaign.id} by user {customer.id}")
    order.refresh_from_db()
    return order


def replace_order_items(order, items=None, customer_name=None):
    """Replace all items of an order atomically (PUT semantics)"""
    ensure_campaign_active(order.campaign, 'update orders in')

    with transaction.atomic():
        if customer_name:
            order.customer_name = customer_name
            order.save(update_fields=['customer_name', 'updated_at'])
        if items is not None:
            if not items:
                raise OrderError('An order needs at least one item')
            new_items = _build_items(order, items)
            order.items.all().delete()
            OrderItem.objects.bulk_create(new_items)
            recalculate_order_subtotal(order)

    logger.info(f"Order {order.id} items replaced")
    order.refresh_from_db()
    return order


def add_item(order, product, quantity):
    ensure_campaign_active(order.campaign, 'add items to orders in')
    with transaction.atomic():
        item = _build_items(order, [{'product': product, 'quantity': quantity}])[0]
        _ensure_amount_fits(order.subtotal + item.subtotal)
        item.save()
        recalculate_order_subtotal(order)
    order.refresh_from_db()
    return order


def remove_item(order, item):
    ensure_campaign_active(order.campaign, 'remove items from orders in')
    with transaction.atomic():
        item.delete()
        recalculate_order_subtotal(order)
    order.refresh_from_db()
    return order


def delete_order(order):
    ensure_campaign_active(order.campaign, 'delete orders from')
    campaign_id = order.campaign_id
    order_id = order.id
    with transaction.atomic():
        order.delete()
        distribute_shipping(campaign_id)
    logger.info(f"Order {order_id} deleted from campaign {campaign_id}")


def update_payment_status(order, is_paid):
    """
    Set the paid flag and run the campaign automation that depends on it.
    Returns True if the flag changed.
    """
    if order.is_paid == is_paid:
        return False

    order.is_paid = is_paid
    order.save(update_fields=['is_paid', 'updated_at'])
    logger.info(f"Order {order.id} marked as {'paid' if is_paid else 'unpaid'}")

    campaign = order.campaign
    if is_paid:
        check_and_archive(campaign)
        check_and_create_ready_to_send(campaign)
    else:
        check_and_unarchive(campaign)
    return True


def cleanup_empty_orders(age_in_hours=24):
    """Delete item-less orders older than age_in_hours in ACTIVE campaigns"""
    cutoff = timezone.now() - timedelta(hours=age_in_hours)
    queryset = Order.objects.filter(
        created_at__lt=cutoff,
        items__isnull=True,
        campaign__status=Campaign.STATUS_ACTIVE
    )
    campaign_ids = set(queryset.values_list('campaign_id', flat=True))
    _, per_model = Order.objects.filter(pk__in=list(queryset.values_list('pk', flat=True))).delete()
    deleted = per_model.get('orders.Order', 0)

    for campaign_id in campaign_ids:
        distribute_shipping(campaign_id)

    logger.info(f"Deleted {deleted} empty orders older than {age_in_hours} hours")
    return deleted


def get_empty_orders_stats():
    now = timezone.now()
    base = Order.objects.filter(items__isnull=True, campaign__status=Campaign.STATUS_ACTIVE)
    return {
        'total': base.count(),
        'older_than_24h': base.filter(created_at__lt=now - timedelta(hours=24)).count(),
        'older_than_1h': base.filter(created_at__lt=now - timedelta(hours=1)).count(),
    }

"""
Shipping allocation engine.

A campaign's shipping cost is split across its orders in proportion to each
order's weight (product weight x quantity). Order totals are recomputed in the
same pass so that, per campaign:

    sum(order.shipping_fee) == campaign.shipping_cost   (when any weight > 0)
    order.total == order.subtotal + order.shipping_fee
"""
import logging
from django.db import transaction

from backend.core.cache_signals import suspend_cache_signals
from backend.core.cache_utils import invalidate_campaign_analytics
from backend.core.money import distribute_proportionally, money_sum, round_money
from .models import Campaign

logger = logging.getLogger(__name__)


def distribute_shipping(campaign_id):
    """
    Redistribute the campaign shipping cost across all of its orders.

    Returns a dict mapping order id to the allocated shipping fee.
    """
    from backend.orders.models import Order

    with transaction.atomic():
        # Lock the campaign so concurrent order writes allocate one at a time
        campaign = Campaign.objects.select_for_update().get(pk=campaign_id)
        orders = list(
            Order.objects.filter(campaign=campaign)
            .prefetch_related('items', 'items__product')
            .order_by('created_at', 'id')
        )

        weights = [order.get_weight() for order in orders]
        fees = distribute_proportionally(campaign.shipping_cost, weights)

        allocation = {}
        updated = 0
        with suspend_cache_signals():
            for order, fee in zip(orders, fees):
                subtotal = money_sum(item.subtotal for item in order.items.all())
                total = round_money(subtotal + fee)
                allocation[order.id] = fee

                if (order.subtotal, order.shipping_fee, order.total) == (subtotal, fee, total):
                    continue
                order.subtotal = subtotal
                order.shipping_fee = fee
                order.total = total
                order.save(update_fields=['subtotal', 'shipping_fee', 'total', 'updated_at'])
                updated += 1

    invalidate_campaign_analytics(campaign_id)
    logger.info(
        f"Distributed shipping {campaign.shipping_cost} for campaign {campaign_id} "
        f"across {len(orders)} order(s), {updated} updated"
    )
    return allocation


def recalculate_order_subtotal(order):
    """Recompute an order's subtotal from its items, then redistribute campaign shipping"""
    from backend.orders.models import OrderItem

    # Query items directly; a prefetched order.items cache may be stale here
    order.subtotal = money_sum(OrderItem.objects.filter(order_id=order.id).values_list('subtotal', flat=True))
    with suspend_cache_signals():
        order.save(update_fields=['subtotal', 'updated_at'])
    return distribute_shipping(order.campaign_id)


def check_campaign_integrity(campaign):
    """
    Verify the financial invariants of a campaign.

    Returns a dict with the aggregated sums and one boolean per check.
    """
    orders = list(campaign.orders.prefetch_related('items', 'items__product'))
    sum_subtotals = money_sum(o.subtotal for o in orders)
    sum_shipping = money_sum(o.shipping_fee for o in orders)
    sum_totals = money_sum(o.total for o in orders)
    sum_paid = money_sum(o.total for o in orders if o.is_paid)
    sum_unpaid = money_sum(o.total for o in orders if not o.is_paid)
    has_weight = any(o.get_weight() > 0 for o in orders)

    expected_shipping = round_money(campaign.shipping_cost) if has_weight else round_money(0)

    return {
        'orders': len(orders),
        'shipping_cost': round_money(campaign.shipping_cost),
        'sum_shipping_fees': sum_shipping,
        'sum_subtotals': sum_subtotals,
        'sum_totals': sum_totals,
        'sum_paid': sum_paid,
        'sum_unpaid': sum_unpaid,
        'shipping_match': sum_shipping == expected_shipping,
        'total_match': sum_totals == round_money(sum_subtotals + sum_shipping),
        'paid_unpaid_match': sum_totals == round_money(sum_paid + sum_unpaid),
        'orders_match': all(o.total == round_money(o.subtotal + o.shipping_fee) for o in orders),
    }

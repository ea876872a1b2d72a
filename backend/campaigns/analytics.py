import logging

from backend.core.cache_utils import get_cached_campaign_analytics, cache_campaign_analytics
from backend.core.money import ZERO, round_money

logger = logging.getLogger(__name__)


def compute_campaign_analytics(campaign):
    """Totals for a campaign, broken down by product and by customer"""
    total_quantity = 0
    total_without_shipping = ZERO
    total_with_shipping = ZERO
    total_paid = ZERO
    total_unpaid = ZERO
    by_product = {}
    by_customer = {}

    for order in campaign.orders.prefetch_related('items', 'items__product'):
        total_without_shipping += order.subtotal
        total_with_shipping += order.total
        if order.is_paid:
            total_paid += order.total
        else:
            total_unpaid += order.total

        customer = by_customer.setdefault(order.customer_name, {
            'customer_name': order.customer_name,
            'total': ZERO,
            'is_paid': order.is_paid,
        })
        customer['total'] += order.total
        # A customer with several orders is paid only when all of them are
        customer['is_paid'] = customer['is_paid'] and order.is_paid

        for item in order.items.all():
            total_quantity += item.quantity
            product = by_product.setdefault(item.product_id, {
                'product_id': item.product_id,
                'product_name': item.product.name,
                'quantity': 0,
            })
            product['quantity'] += item.quantity

    for customer in by_customer.values():
        customer['total'] = float(round_money(customer['total']))

    return {
        'total_quantity': total_quantity,
        'total_without_shipping': float(round_money(total_without_shipping)),
        'total_with_shipping': float(round_money(total_with_shipping)),
        'total_paid': float(round_money(total_paid)),
        'total_unpaid': float(round_money(total_unpaid)),
        'by_product': list(by_product.values()),
        'by_customer': list(by_customer.values()),
    }


def get_campaign_analytics(campaign):
    """Cached analytics; invalidated by cache signals when orders or products change"""
    cached_data, cache_key = get_cached_campaign_analytics(campaign.id)
    if cached_data is not None:
        return cached_data

    data = compute_campaign_analytics(campaign)
    cache_campaign_analytics(cache_key, data)
    logger.debug(f"Computed analytics for campaign {campaign.id}")
    return data

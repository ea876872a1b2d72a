"""Plain-text order summary for sharing in group chats"""
import re
import unicodedata
from django.utils import timezone

from backend.core.money import money_sum

EMPTY_TEXT = 'No information'


def sanitize_text(value):
    """Collapse whitespace and strip angle brackets"""
    if not value:
        return EMPTY_TEXT
    sanitized = re.sub(r'\s+', ' ', value)
    sanitized = sanitized.replace('<', '').replace('>', '').strip()
    return sanitized or EMPTY_TEXT


def _sort_key(text):
    # Accent-insensitive so 'Ágata' sorts next to 'Agata'
    normalized = unicodedata.normalize('NFKD', text)
    return ''.join(c for c in normalized if not unicodedata.combining(c)).casefold()


def generate_orders_summary(campaign):
    """
    Build the shareable summary of a campaign's orders.

    Orders are sorted by customer name and items by product name.
    """
    orders = []
    for order in campaign.orders.prefetch_related('items', 'items__product'):
        items = sorted(
            ((item.quantity, sanitize_text(item.product.name)) for item in order.items.all()),
            key=lambda item: _sort_key(item[1])
        )
        orders.append({
            'customer_name': sanitize_text(order.customer_name),
            'total': order.total,
            'items': items,
        })
    orders.sort(key=lambda order: _sort_key(order['customer_name']))

    campaign_name = sanitize_text(campaign.name)
    lines = [f"Hi everyone, here is the order summary for {campaign_name}:"]

    if not orders:
        lines.append('No orders have come in yet.')
    else:
        for index, order in enumerate(orders, start=1):
            if order['items']:
                items_text = ', '.join(f"{quantity}x {name}" for quantity, name in order['items'])
            else:
                items_text = 'no products in this order'
            lines.append(f"{index}. {order['customer_name']}: {items_text}.")

    lines.append('If anything in your order looks wrong, let me know.')

    return {
        'campaign_id': campaign.id,
        'campaign_name': campaign_name,
        'campaign_slug': campaign.slug,
        'generated_at': timezone.now().isoformat(),
        'orders_count': len(orders),
        'total_amount': money_sum(order['total'] for order in orders),
        'summary_text': '\n'.join(lines).strip(),
    }

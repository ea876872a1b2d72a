"""
Cache invalidation signals
Automatically invalidate cached campaign aggregates when orders or products change
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_campaign_analytics

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

WATCHED_MODELS = ['Campaign', 'Product', 'Order', 'OrderItem']


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def _campaign_id_for(model_name, instance):
    if model_name == 'Campaign':
        return instance.pk
    if model_name in ('Product', 'Order'):
        return instance.campaign_id
    if model_name == 'OrderItem':
        # The order may already be gone when items are cascade-deleted
        from backend.orders.models import Order
        return Order.objects.filter(pk=instance.order_id).values_list('campaign_id', flat=True).first()
    return None


@receiver([post_save, post_delete])
def invalidate_campaign_cache(sender, instance, **kwargs):
    """Invalidate campaign analytics when campaigns, products, orders or items change"""
    if is_suspended():
        return

    model_name = sender.__name__
    if model_name not in WATCHED_MODELS:
        return

    try:
        invalidate_campaign_analytics(_campaign_id_for(model_name, instance))
    except Exception as e:
        logger.warning(f"Error invalidating campaign cache for {model_name}: {e}")

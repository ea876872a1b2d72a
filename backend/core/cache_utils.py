"""
Caching utilities for expensive campaign aggregates
Uses the configured cache backend (Redis in production)
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
CAMPAIGN_ANALYTICS_CACHE_TTL = 300  # 5 minutes


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_cached_campaign_analytics(campaign_id):
    """
    Get cached analytics for a campaign
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key("campaign_analytics", str(campaign_id))
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache HIT for campaign_analytics: {cache_key}")
    return cached_data, cache_key


def cache_campaign_analytics(cache_key, data, ttl=CAMPAIGN_ANALYTICS_CACHE_TTL):
    """Cache campaign analytics data"""
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached campaign analytics: {cache_key}")


def invalidate_campaign_analytics(campaign_id):
    """Drop cached analytics for one campaign"""
    if campaign_id is None:
        return
    try:
        cache.delete(make_cache_key("campaign_analytics", str(campaign_id)))
        logger.debug(f"Invalidated analytics cache for campaign {campaign_id}")
    except Exception as e:
        logger.warning(f"Could not invalidate analytics cache for campaign {campaign_id}: {str(e)}")

from django.utils.text import slugify
from django.http import Http404
import re

from .models import Campaign

SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def make_slug(text):
    """URL-friendly slug with accents stripped: 'Açaí do Pará' -> 'acai-do-para'"""
    slug = slugify(text or '')
    # Django keeps underscores; collapse them like other separators
    slug = re.sub(r'[_-]+', '-', slug).strip('-')
    if not slug:
        return 'campaign'
    # All-digit slugs would shadow numeric ids in id-or-slug lookups
    if slug.isdigit():
        return f"campaign-{slug}"
    return slug


def generate_unique_slug(name, campaign_id=None):
    """
    Generate a unique campaign slug, appending -1, -2, ... on collision.
    The campaign being updated (campaign_id) does not collide with itself.
    """
    base_slug = make_slug(name)[:240]
    slug = base_slug
    counter = 1

    while True:
        existing = Campaign.objects.filter(slug=slug)
        if campaign_id:
            existing = existing.exclude(pk=campaign_id)
        if not existing.exists():
            return slug
        slug = f"{base_slug}-{counter}"
        counter += 1


def is_valid_slug(slug):
    return bool(SLUG_PATTERN.match(slug or ''))


def get_campaign_by_id_or_slug(id_or_slug, queryset=None):
    """Look a campaign up by numeric id or by slug. Returns None if missing"""
    queryset = queryset if queryset is not None else Campaign.objects.all()
    if str(id_or_slug).isdigit():
        return queryset.filter(pk=int(id_or_slug)).first()
    return queryset.filter(slug=id_or_slug).first()


def get_campaign_or_404(id_or_slug, queryset=None):
    campaign = get_campaign_by_id_or_slug(id_or_slug, queryset)
    if campaign is None:
        raise Http404('Campaign not found')
    return campaign

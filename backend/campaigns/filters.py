import django_filters
from django.db.models import Q
from .models import Campaign


class CampaignFilter(django_filters.FilterSet):
    """Filter for Campaign list using django-filter"""

    # Searches across campaign name, description and product names
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.ChoiceFilter(choices=Campaign.STATUS_CHOICES)
    creator = django_filters.NumberFilter(field_name='creator_id', lookup_expr='exact')
    mine = django_filters.BooleanFilter(method='filter_mine', label='Only my campaigns')

    class Meta:
        model = Campaign
        fields = ['search', 'status', 'creator', 'mine']

    def filter_search(self, queryset, name, value):
        term = (value or '').strip()
        if not term:
            return queryset
        return queryset.filter(
            Q(name__icontains=term) |
            Q(description__icontains=term) |
            Q(products__name__icontains=term)
        ).distinct()

    def filter_mine(self, queryset, name, value):
        user = getattr(self.request, 'user', None)
        if not value or not user or not user.is_authenticated:
            return queryset
        return queryset.filter(creator=user)

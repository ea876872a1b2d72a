from rest_framework import serializers
from decimal import Decimal
from backend.core.serializers import UserSummarySerializer
from .models import Campaign, Product

# Order in which a campaign moves through its lifecycle
STATUS_SEQUENCE = [Campaign.STATUS_ACTIVE, Campaign.STATUS_CLOSED, Campaign.STATUS_SENT, Campaign.STATUS_ARCHIVED]
PIX_FIELDS = ['pix_key', 'pix_type', 'pix_name']


class ProductSerializer(serializers.ModelSerializer):
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))
    weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=Decimal('0'), required=False)

    class Meta:
        model = Product
        fields = ['id', 'campaign', 'name', 'price', 'weight', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Product name is required")
        return value

    def validate_campaign(self, value):
        # Products cannot move between campaigns
        if self.instance and self.instance.campaign_id != value.id:
            raise serializers.ValidationError("Product campaign cannot be changed")
        return value


class CampaignProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'weight']


class CampaignSerializer(serializers.ModelSerializer):
    creator = UserSummarySerializer(read_only=True)
    products = CampaignProductSerializer(many=True, read_only=True)
    shipping_cost = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False
    )
    product_count = serializers.SerializerMethodField()
    order_count = serializers.SerializerMethodField()

    class Meta:
        model = Campaign
        fields = [
            'id', 'slug', 'name', 'description', 'status', 'deadline', 'shipping_cost',
            'creator', 'products', 'product_count', 'order_count',
            'pix_key', 'pix_type', 'pix_name', 'pix_visible_at_status',
            'pickup_zip_code', 'pickup_address', 'pickup_address_number', 'pickup_complement',
            'pickup_neighborhood', 'pickup_city', 'pickup_state', 'pickup_latitude', 'pickup_longitude',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'status', 'pickup_latitude', 'pickup_longitude', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        if hasattr(obj, 'product_count'):
            return obj.product_count
        return obj.products.count()

    def get_order_count(self, obj):
        if hasattr(obj, 'order_count'):
            return obj.order_count
        return obj.orders.count()

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Campaign name is required")
        return value

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if not instance.is_owned_by(user) and not pix_visible(instance):
            for field in PIX_FIELDS:
                data[field] = None
        return data


class CampaignListSerializer(CampaignSerializer):
    """Lighter campaign payload for list views (no nested products)"""
    class Meta(CampaignSerializer.Meta):
        fields = [
            'id', 'slug', 'name', 'description', 'status', 'deadline', 'shipping_cost',
            'creator', 'product_count', 'order_count',
            'pickup_city', 'pickup_state', 'created_at', 'updated_at'
        ]

    def to_representation(self, instance):
        return serializers.ModelSerializer.to_representation(self, instance)


class CampaignStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Campaign.STATUS_CHOICES)


class CampaignCloneSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Campaign name is required")
        return value


class DistanceQuerySerializer(serializers.Serializer):
    from_zip_code = serializers.CharField(required=False)
    from_lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
    from_lng = serializers.FloatField(required=False, min_value=-180, max_value=180)

    def validate(self, attrs):
        has_coords = attrs.get('from_lat') is not None and attrs.get('from_lng') is not None
        if not attrs.get('from_zip_code') and not has_coords:
            raise serializers.ValidationError("Provide from_zip_code or both from_lat and from_lng")
        return attrs


def pix_visible(campaign):
    """PIX details are shown once the campaign reaches pix_visible_at_status"""
    visible_at = campaign.pix_visible_at_status or Campaign.STATUS_ACTIVE
    return STATUS_SEQUENCE.index(campaign.status) >= STATUS_SEQUENCE.index(visible_at)

from rest_framework import serializers
from backend.campaigns.models import Campaign, Product
from backend.core.serializers import UserSummarySerializer
from .models import Order, OrderItem, OrderMessage

MAX_MESSAGE_LENGTH = 2000
MAX_ITEM_QUANTITY = 100000


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_weight = serializers.DecimalField(source='product.weight', max_digits=10, decimal_places=3, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'product_weight', 'quantity', 'unit_price', 'subtotal']
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_ITEM_QUANTITY)


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    campaign_slug = serializers.CharField(source='campaign.slug', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'campaign', 'campaign_slug', 'customer', 'customer_name', 'subtotal', 'shipping_fee', 'total',
            'is_paid', 'is_separated', 'items', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    campaign = serializers.PrimaryKeyRelatedField(queryset=Campaign.objects.all())
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    items = OrderItemInputSerializer(many=True, allow_empty=False)

    def validate_customer_name(self, value):
        return ' '.join(value.split())


class OrderUpdateSerializer(serializers.Serializer):
    """PATCH: simple fields only"""
    customer_name = serializers.CharField(max_length=200, required=False)
    is_paid = serializers.BooleanField(required=False)
    is_separated = serializers.BooleanField(required=False)

    def validate_customer_name(self, value):
        value = ' '.join(value.split())
        if not value:
            raise serializers.ValidationError("Customer name cannot be blank")
        return value


class OrderReplaceSerializer(serializers.Serializer):
    """PUT: customer name and/or the complete item list"""
    customer_name = serializers.CharField(max_length=200, required=False)
    items = OrderItemInputSerializer(many=True, required=False, allow_empty=False)

    def validate_customer_name(self, value):
        value = ' '.join(value.split())
        if not value:
            raise serializers.ValidationError("Customer name cannot be blank")
        return value


class OrderMessageSerializer(serializers.ModelSerializer):
    sender = UserSummarySerializer(read_only=True)

    class Meta:
        model = OrderMessage
        fields = ['id', 'order', 'sender', 'sender_type', 'message', 'is_read', 'created_at']
        read_only_fields = fields


class OrderMessageCreateSerializer(serializers.Serializer):
    order = serializers.PrimaryKeyRelatedField(queryset=Order.objects.select_related('campaign'))
    message = serializers.CharField(max_length=MAX_MESSAGE_LENGTH)

    def validate_message(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Message cannot be empty")
        return value

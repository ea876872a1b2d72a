from django.db import models
from decimal import Decimal
from backend.campaigns.models import Campaign, Product
from backend.core.models import User


class Order(models.Model):
    """One participant's order within a campaign"""
    campaign = models.ForeignKey(Campaign, on_delete=models.CASCADE, related_name='orders')
    customer = models.ForeignKey(User, on_delete=models.CASCADE, related_name='orders')
    customer_name = models.CharField(max_length=200)
    # Derived: subtotal = sum(items), total = subtotal + shipping_fee
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    shipping_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    is_paid = models.BooleanField(default=False)
    is_separated = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Order {self.id} - {self.customer_name}"

    def get_subtotal(self):
        """Calculate subtotal from all items"""
        return sum((item.subtotal for item in self.items.all()), Decimal('0.00'))

    def get_weight(self):
        """Total weight of the order (product weight x quantity)"""
        return sum((item.product.weight * item.quantity for item in self.items.all()), Decimal('0'))

    def can_be_managed_by(self, user):
        """Order owner, campaign creator or platform admin"""
        if not user or not user.is_authenticated:
            return False
        return self.customer_id == user.id or self.campaign.is_owned_by(user)

    class Meta:
        db_table = 'orders'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['campaign', 'created_at'], name='idx_order_campaign_created'),
            models.Index(fields=['customer'], name='idx_order_customer'),
        ]


class OrderItem(models.Model):
    """Order line: snapshot of the product price at order time"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='order_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2)

    def get_line_total(self):
        """Calculate line total"""
        return self.unit_price * self.quantity

    class Meta:
        db_table = 'order_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['order', 'product'], name='idx_orderitem_order_product'),
        ]


class OrderMessage(models.Model):
    """Private chat between a customer and the campaign creator about an order"""
    SENDER_TYPE_CHOICES = [
        ('ADMIN', 'Campaign Admin'),
        ('CUSTOMER', 'Customer'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='order_messages')
    sender_type = models.CharField(max_length=10, choices=SENDER_TYPE_CHOICES)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'order_messages'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['order', 'is_read'], name='idx_ordermsg_order_read'),
        ]

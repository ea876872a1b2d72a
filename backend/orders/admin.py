from django.contrib import admin
from .models import Order, OrderItem, OrderMessage


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['unit_price', 'subtotal']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'campaign', 'customer_name', 'subtotal', 'shipping_fee', 'total', 'is_paid', 'is_separated', 'created_at']
    list_filter = ['is_paid', 'is_separated', 'campaign__status', 'created_at']
    search_fields = ['customer_name', 'customer__email', 'campaign__name']
    readonly_fields = ['subtotal', 'shipping_fee', 'total', 'created_at', 'updated_at']
    inlines = [OrderItemInline]


@admin.register(OrderMessage)
class OrderMessageAdmin(admin.ModelAdmin):
    list_display = ['order', 'sender', 'sender_type', 'is_read', 'created_at']
    list_filter = ['sender_type', 'is_read']
    search_fields = ['message', 'sender__email']

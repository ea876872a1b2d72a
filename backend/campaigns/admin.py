from django.contrib import admin
from .models import Campaign, Product


class ProductInline(admin.TabularInline):
    model = Product
    extra = 0
    fields = ['name', 'price', 'weight']


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'status', 'creator', 'deadline', 'shipping_cost', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'slug', 'description', 'creator__email', 'creator__name']
    readonly_fields = ['slug', 'pickup_latitude', 'pickup_longitude', 'created_at', 'updated_at']
    ordering = ['-created_at']
    inlines = [ProductInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'campaign', 'price', 'weight', 'created_at']
    search_fields = ['name', 'campaign__name']
    ordering = ['campaign', 'name']

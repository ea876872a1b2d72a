from django.urls import path
from .views import (
    campaign_list_create, campaign_detail, campaign_status, campaign_clone,
    campaign_orders_summary, campaign_distance, campaign_analytics,
    product_list_create, product_detail
)

urlpatterns = [
    path('campaigns/', campaign_list_create, name='campaign-list-create'),
    path('campaigns/<str:id_or_slug>/', campaign_detail, name='campaign-detail'),
    path('campaigns/<str:id_or_slug>/status/', campaign_status, name='campaign-status'),
    path('campaigns/<str:id_or_slug>/clone/', campaign_clone, name='campaign-clone'),
    path('campaigns/<str:id_or_slug>/orders-summary/', campaign_orders_summary, name='campaign-orders-summary'),
    path('campaigns/<str:id_or_slug>/distance/', campaign_distance, name='campaign-distance'),
    path('analytics/campaign/<str:id_or_slug>/', campaign_analytics, name='campaign-analytics'),
    path('products/', product_list_create, name='product-list-create'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
]

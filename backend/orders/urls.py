from django.urls import path
from .views import (
    order_list_create, order_detail, order_item_add, order_item_remove,
    order_message_list_create, order_message_unread_count
)

urlpatterns = [
    path('orders/', order_list_create, name='order-list-create'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/items/', order_item_add, name='order-item-add'),
    path('orders/<int:pk>/items/<int:item_id>/', order_item_remove, name='order-item-remove'),
    path('messages/', order_message_list_create, name='order-message-list-create'),
    path('messages/unread-count/', order_message_unread_count, name='order-message-unread-count'),
]

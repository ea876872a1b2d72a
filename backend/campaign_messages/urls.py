from django.urls import path
from .views import (
    campaign_message_list_create, campaign_message_mine, campaign_message_unanswered,
    campaign_message_detail, campaign_message_answer
)

urlpatterns = [
    path('campaign-messages/', campaign_message_list_create, name='campaign-message-list-create'),
    path('campaign-messages/mine/', campaign_message_mine, name='campaign-message-mine'),
    path('campaign-messages/unanswered/', campaign_message_unanswered, name='campaign-message-unanswered'),
    path('campaign-messages/<int:pk>/', campaign_message_detail, name='campaign-message-detail'),
    path('campaign-messages/<int:pk>/answer/', campaign_message_answer, name='campaign-message-answer'),
]

from django.apps import AppConfig


class CampaignMessagesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.campaign_messages'

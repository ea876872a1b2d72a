from django.contrib import admin
from .models import CampaignMessage


@admin.register(CampaignMessage)
class CampaignMessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'campaign', 'sender', 'spam_score', 'is_public', 'is_edited', 'answered_at', 'created_at']
    list_filter = ['is_public', 'is_edited', 'created_at']
    search_fields = ['question', 'answer', 'sender__email', 'campaign__name']
    readonly_fields = ['spam_score', 'metadata', 'created_at', 'updated_at']
    ordering = ['-created_at']

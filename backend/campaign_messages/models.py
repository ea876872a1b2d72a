from django.db import models
from backend.campaigns.models import Campaign
from backend.core.models import User


class CampaignMessage(models.Model):
    """Public question about a campaign, published once the creator answers it"""
    campaign = models.ForeignKey(Campaign, on_delete=models.CASCADE, related_name='questions')
    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sent_campaign_messages')
    question = models.TextField()
    answer = models.TextField(null=True, blank=True)
    answered_at = models.DateTimeField(null=True, blank=True)
    answered_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='answered_campaign_messages'
    )
    spam_score = models.FloatField(default=0)
    is_public = models.BooleanField(default=False)
    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(null=True, blank=True)
    # Spam factors recorded at creation time
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Question {self.id} on campaign {self.campaign_id}"

    @property
    def is_answered(self):
        return self.answer is not None

    class Meta:
        db_table = 'campaign_messages'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['campaign', 'is_public', 'created_at'], name='idx_cmsg_campaign_public'),
            models.Index(fields=['sender', 'created_at'], name='idx_cmsg_sender_created'),
            models.Index(fields=['campaign', 'sender', 'created_at'], name='idx_cmsg_campaign_sender'),
        ]

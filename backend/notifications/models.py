from django.db import models
from backend.core.models import User


class Notification(models.Model):
    """Per-user notification with a navigation payload in metadata"""
    TYPE_CAMPAIGN_READY_TO_SEND = 'CAMPAIGN_READY_TO_SEND'
    TYPE_CAMPAIGN_STATUS_CHANGED = 'CAMPAIGN_STATUS_CHANGED'
    TYPE_CAMPAIGN_ARCHIVED = 'CAMPAIGN_ARCHIVED'
    TYPE_NEW_MESSAGE = 'NEW_MESSAGE'
    TYPE_CHOICES = [
        (TYPE_CAMPAIGN_READY_TO_SEND, 'Campaign Ready To Send'),
        (TYPE_CAMPAIGN_STATUS_CHANGED, 'Campaign Status Changed'),
        (TYPE_CAMPAIGN_ARCHIVED, 'Campaign Archived'),
        (TYPE_NEW_MESSAGE, 'New Message'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.type} for {self.user_id}"

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='idx_notification_user_read'),
        ]

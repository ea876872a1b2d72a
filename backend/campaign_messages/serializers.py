from rest_framework import serializers
import re
from backend.campaigns.models import Campaign
from backend.core.serializers import UserSummarySerializer
from .models import CampaignMessage
from .spam import URL_PATTERN, spam_factors_summary

MAX_QUESTION_LENGTH = 1000
MIN_QUESTION_LENGTH = 3
MAX_ANSWER_LENGTH = 2000
MAX_LINKS = 2
FLOOD_PATTERN = re.compile(r'(.)\1{10,}')


def validate_question_text(value):
    stripped = value.strip()
    if not stripped:
        raise serializers.ValidationError("Question cannot be empty")
    if len(stripped) < MIN_QUESTION_LENGTH:
        raise serializers.ValidationError("Question is too short")
    if FLOOD_PATTERN.search(value):
        raise serializers.ValidationError("Repeated characters detected")
    if len(URL_PATTERN.findall(value)) > MAX_LINKS:
        raise serializers.ValidationError("Too many links in the message")
    return stripped


class CampaignMessageSerializer(serializers.ModelSerializer):
    """Public view of a question and its answer"""
    sender = UserSummarySerializer(read_only=True)
    answered_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = CampaignMessage
        fields = [
            'id', 'campaign', 'sender', 'question', 'answer', 'answered_at', 'answered_by',
            'is_public', 'is_edited', 'edited_at', 'created_at'
        ]
        read_only_fields = fields


class CampaignMessageModerationSerializer(CampaignMessageSerializer):
    """Adds the spam analysis for the campaign creator"""
    spam_factors = serializers.SerializerMethodField()
    spam_summary = serializers.SerializerMethodField()

    class Meta(CampaignMessageSerializer.Meta):
        fields = CampaignMessageSerializer.Meta.fields + ['spam_score', 'spam_factors', 'spam_summary']
        read_only_fields = fields

    def get_spam_factors(self, obj):
        return (obj.metadata or {}).get('factors', [])

    def get_spam_summary(self, obj):
        return spam_factors_summary(self.get_spam_factors(obj))


class QuestionCreateSerializer(serializers.Serializer):
    campaign = serializers.PrimaryKeyRelatedField(queryset=Campaign.objects.all())
    question = serializers.CharField(max_length=MAX_QUESTION_LENGTH, trim_whitespace=False)

    def validate_question(self, value):
        return validate_question_text(value)


class QuestionEditSerializer(serializers.Serializer):
    question = serializers.CharField(max_length=MAX_QUESTION_LENGTH, trim_whitespace=False)

    def validate_question(self, value):
        return validate_question_text(value)


class AnswerSerializer(serializers.Serializer):
    answer = serializers.CharField(max_length=MAX_ANSWER_LENGTH)

import logging
import math
from datetime import timedelta
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from django.db.models import F
from django.shortcuts import get_object_or_404
from django.utils import timezone

from backend.campaigns.utils import get_campaign_or_404
from backend.core.utils import audit_instance
from .models import CampaignMessage
from .serializers import (
    CampaignMessageSerializer, CampaignMessageModerationSerializer,
    QuestionCreateSerializer, QuestionEditSerializer, AnswerSerializer
)
from . import spam

logger = logging.getLogger(__name__)

EDIT_WINDOW = timedelta(minutes=15)
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
SPAM_DELETE_THRESHOLD = 50


def _message_queryset():
    return CampaignMessage.objects.select_related('campaign', 'sender', 'answered_by')


def _campaign_from_query(request):
    campaign_ref = request.query_params.get('campaign')
    if not campaign_ref:
        return None
    return get_campaign_or_404(campaign_ref)


def _is_campaign_creator(campaign, user):
    return campaign.creator_id is not None and campaign.creator_id == user.id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly])
def campaign_message_list_create(request):
    """Public answered questions of a campaign, or ask a new question"""
    if request.method == 'GET':
        campaign = _campaign_from_query(request)
        if campaign is None:
            return Response({'error': 'campaign is required'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            limit = int(request.query_params.get('limit', DEFAULT_LIMIT))
            offset = int(request.query_params.get('offset', 0))
        except ValueError:
            return Response({'error': 'Invalid pagination parameters'}, status=status.HTTP_400_BAD_REQUEST)
        if limit < 1 or limit > MAX_LIMIT or offset < 0:
            return Response({'error': 'Invalid pagination parameters'}, status=status.HTTP_400_BAD_REQUEST)

        queryset = _message_queryset().filter(campaign=campaign, is_public=True).order_by('-created_at', '-id')
        total = queryset.count()
        messages = list(queryset[offset:offset + limit])
        return Response({
            'messages': CampaignMessageSerializer(messages, many=True).data,
            'total': total,
            'has_more': offset + len(messages) < total,
        })

    serializer = QuestionCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    campaign = serializer.validated_data['campaign']
    question = serializer.validated_data['question']

    rate_limit = spam.check_rate_limit(user, campaign)
    if not rate_limit['allowed']:
        retry_after = rate_limit['retry_after']
        error_message = 'Question limit exceeded.'
        if retry_after:
            error_message += f" Try again in {math.ceil(retry_after / 60)} minute(s)."
        logger.warning(f"Rate limit hit for user {user.id} on campaign {campaign.id}")
        return Response(
            {'error': error_message, 'retry_after': retry_after, 'limits': rate_limit},
            status=status.HTTP_429_TOO_MANY_REQUESTS
        )

    analysis = spam.calculate_spam_score(user, question, campaign)
    message = CampaignMessage.objects.create(
        campaign=campaign,
        sender=user,
        question=question,
        spam_score=analysis['score'],
        metadata={'factors': analysis['factors']},
        is_public=False
    )
    user.last_message_at = timezone.now()
    user.save(update_fields=['last_message_at', 'updated_at'])

    logger.info(f"User {user.id} asked question {message.id} on campaign {campaign.id} (spam score {analysis['score']})")
    return Response({
        'message': CampaignMessageModerationSerializer(message).data,
        'can_edit_until': message.created_at + EDIT_WINDOW,
        'spam_score': analysis['score'],
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def campaign_message_mine(request):
    """The current user's questions in a campaign, answered or not"""
    campaign = _campaign_from_query(request)
    if campaign is None:
        return Response({'error': 'campaign is required'}, status=status.HTTP_400_BAD_REQUEST)
    messages = _message_queryset().filter(campaign=campaign, sender=request.user).order_by('-created_at', '-id')
    return Response(CampaignMessageSerializer(messages, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def campaign_message_unanswered(request):
    """Unanswered questions with their spam analysis, for the campaign creator"""
    campaign = _campaign_from_query(request)
    if campaign is None:
        return Response({'error': 'campaign is required'}, status=status.HTTP_400_BAD_REQUEST)
    if not _is_campaign_creator(campaign, request.user):
        return Response({'error': 'Only the campaign creator can see unanswered questions'},
                        status=status.HTTP_403_FORBIDDEN)

    messages = _message_queryset().filter(campaign=campaign, answer__isnull=True).order_by('created_at', 'id')
    return Response(CampaignMessageModerationSerializer(messages, many=True).data)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def campaign_message_detail(request, pk):
    """Edit your own question (PATCH) or remove a question as the campaign creator (DELETE)"""
    message = get_object_or_404(_message_queryset(), pk=pk)
    user = request.user

    if request.method == 'DELETE':
        if not _is_campaign_creator(message.campaign, user):
            return Response({'error': 'Only the campaign creator can delete questions'},
                            status=status.HTTP_403_FORBIDDEN)

        if message.spam_score > SPAM_DELETE_THRESHOLD:
            spam.penalize_user(message.sender)
        message_id = message.id
        message.delete()
        audit_instance(request, 'question_delete', message, message.campaign.slug,
                       {'spam_score': message.spam_score}, object_id=message_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    if message.sender_id != user.id:
        return Response({'error': 'You cannot edit this question'}, status=status.HTTP_403_FORBIDDEN)
    if message.is_answered:
        return Response({'error': 'Cannot edit a question that was already answered'},
                        status=status.HTTP_400_BAD_REQUEST)
    if timezone.now() - message.created_at > EDIT_WINDOW:
        return Response({'error': 'The edit window has expired (15 minutes)'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = QuestionEditSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    message.question = serializer.validated_data['question']
    message.is_edited = True
    message.edited_at = timezone.now()
    message.save(update_fields=['question', 'is_edited', 'edited_at', 'updated_at'])
    return Response(CampaignMessageSerializer(message).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def campaign_message_answer(request, pk):
    """Answer a question, which publishes it"""
    message = get_object_or_404(_message_queryset(), pk=pk)
    user = request.user

    if not _is_campaign_creator(message.campaign, user):
        return Response({'error': 'Only the campaign creator can answer questions'},
                        status=status.HTTP_403_FORBIDDEN)
    if message.is_answered:
        return Response({'error': 'This question was already answered'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = AnswerSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    message.answer = serializer.validated_data['answer']
    message.answered_at = timezone.now()
    message.answered_by = user
    message.is_public = True
    message.save(update_fields=['answer', 'answered_at', 'answered_by', 'is_public', 'updated_at'])

    spam.update_user_reputation(message.sender)
    type(user).objects.filter(pk=user.pk).update(answered_count=F('answered_count') + 1)

    audit_instance(request, 'question_answer', message, message.campaign.slug)
    return Response(CampaignMessageSerializer(message).data)

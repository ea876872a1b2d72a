from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from .models import Notification
from .serializers import NotificationSerializer
from . import services


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """List the current user's notifications"""
    queryset = Notification.objects.filter(user=request.user)

    unread_only = request.query_params.get('unread', None)
    if unread_only in ('true', '1'):
        queryset = queryset.filter(is_read=False)

    serializer = NotificationSerializer(queryset, many=True)
    return Response({
        'notifications': serializer.data,
        'total': len(serializer.data),
        'unread_count': services.unread_count(request.user),
    })


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def notification_mark_read(request, pk):
    """Mark a notification as read"""
    if not services.mark_as_read(pk, request.user):
        return Response({'error': 'Notification not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response({'success': True})


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    """Mark all of the current user's notifications as read"""
    updated = services.mark_all_as_read(request.user)
    return Response({'success': True, 'updated': updated})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def notification_delete(request, pk):
    """Delete a notification"""
    if not services.delete_notification(pk, request.user):
        return Response({'error': 'Notification not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(status=status.HTTP_204_NO_CONTENT)

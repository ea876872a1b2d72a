import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from django.db.models import Q
from django.shortcuts import get_object_or_404

from backend.campaigns.utils import get_campaign_or_404
from backend.core.utils import audit_instance
from backend.notifications.models import Notification
from backend.notifications.services import create_notification
from .models import Order, OrderItem, OrderMessage
from .serializers import (
    OrderSerializer, OrderCreateSerializer, OrderUpdateSerializer, OrderReplaceSerializer,
    OrderItemInputSerializer, OrderMessageSerializer, OrderMessageCreateSerializer
)
from . import services

logger = logging.getLogger(__name__)


def _order_queryset():
    return Order.objects.select_related('campaign').prefetch_related('items', 'items__product')


def _serialize(order):
    return OrderSerializer(_order_queryset().get(pk=order.pk)).data


def _forbidden(message='You do not have permission to manage this order'):
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


def _audit(request, action, order, changes=None, object_id=None):
    audit_instance(request, action, order, order.campaign.slug, changes, object_id=object_id)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly])
def order_list_create(request):
    """List the orders of a campaign or place a new order"""
    if request.method == 'GET':
        campaign_ref = request.query_params.get('campaign')
        if not campaign_ref:
            return Response({'error': 'campaign is required'}, status=status.HTTP_400_BAD_REQUEST)
        campaign = get_campaign_or_404(campaign_ref)

        orders = _order_queryset().filter(campaign=campaign).order_by('created_at', 'id')
        user = request.user
        # Anonymous visitors see the public list; participants only see their own orders
        if user.is_authenticated and not campaign.is_owned_by(user):
            orders = orders.filter(customer=user)

        return Response(OrderSerializer(orders, many=True).data)

    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        order = services.create_order(
            data['campaign'], request.user, data['items'], customer_name=data.get('customer_name')
        )
    except services.OrderError as e:
        logger.warning(f"Order creation rejected for user {request.user.id}: {str(e)}")
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    _audit(request, 'order_create', order, {'items': len(data['items']), 'total': str(order.total)})
    return Response(_serialize(order), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticatedOrReadOnly])
def order_detail(request, pk):
    """Retrieve, update (PATCH flags / PUT items) or delete an order"""
    order = get_object_or_404(Order.objects.select_related('campaign'), pk=pk)

    if request.method == 'GET':
        return Response(_serialize(order))

    if not order.can_be_managed_by(request.user):
        logger.warning(f"User {request.user.id} attempted to modify order {order.id} without permission")
        return _forbidden()

    if request.method == 'DELETE':
        order_id = order.id
        try:
            services.delete_order(order)
        except services.OrderError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        _audit(request, 'order_delete', order, object_id=order_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    if request.method == 'PUT':
        serializer = OrderReplaceSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            order = services.replace_order_items(order, items=data.get('items'), customer_name=data.get('customer_name'))
        except services.OrderError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        _audit(request, 'order_update', order, {'items_replaced': 'items' in data, 'total': str(order.total)})
        return Response(_serialize(order))

    serializer = OrderUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    changes = {}
    update_fields = []
    for field in ('customer_name', 'is_separated'):
        if field in data and getattr(order, field) != data[field]:
            changes[field] = {'old': getattr(order, field), 'new': data[field]}
            setattr(order, field, data[field])
            update_fields.append(field)
    if update_fields:
        order.save(update_fields=update_fields + ['updated_at'])

    if 'is_paid' in data:
        was_paid = order.is_paid
        if services.update_payment_status(order, data['is_paid']):
            _audit(request, 'payment_change', order, {'is_paid': {'old': was_paid, 'new': data['is_paid']}})

    if changes:
        _audit(request, 'order_update', order, changes)
    return Response(_serialize(order))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_item_add(request, pk):
    """Add an item to an order"""
    order = get_object_or_404(Order.objects.select_related('campaign'), pk=pk)
    if not order.can_be_managed_by(request.user):
        return _forbidden()

    serializer = OrderItemInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = services.add_item(order, serializer.validated_data['product'], serializer.validated_data['quantity'])
    except services.OrderError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    _audit(request, 'order_update', order, {'added_product': serializer.validated_data['product'].id})
    return Response(_serialize(order))


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def order_item_remove(request, pk, item_id):
    """Remove an item from an order"""
    order = get_object_or_404(Order.objects.select_related('campaign'), pk=pk)
    if not order.can_be_managed_by(request.user):
        return _forbidden()
    item = get_object_or_404(OrderItem, pk=item_id, order=order)

    try:
        services.remove_item(order, item)
    except services.OrderError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    _audit(request, 'order_update', order, {'removed_item': item_id})
    return Response(status=status.HTTP_204_NO_CONTENT)


# Order chat views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_message_list_create(request):
    """List the private messages of an order or send a new one"""
    user = request.user

    if request.method == 'GET':
        order_id = request.query_params.get('order')
        if not order_id:
            return Response({'error': 'order is required'}, status=status.HTTP_400_BAD_REQUEST)
        order = get_object_or_404(Order.objects.select_related('campaign'), pk=order_id)
        if not order.can_be_managed_by(user):
            return _forbidden('You do not have access to these messages')

        messages = list(order.messages.select_related('sender'))
        unread_ids = [m.id for m in messages if m.sender_id and m.sender_id != user.id and not m.is_read]
        if unread_ids:
            OrderMessage.objects.filter(id__in=unread_ids).update(is_read=True)
        # Serialized before the update, so the caller still sees what was unread
        return Response(OrderMessageSerializer(messages, many=True).data)

    serializer = OrderMessageCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order = serializer.validated_data['order']
    if not order.can_be_managed_by(user):
        return _forbidden('You do not have access to these messages')

    from_campaign_side = order.campaign.is_owned_by(user)
    message = OrderMessage.objects.create(
        order=order,
        sender=user,
        sender_type='ADMIN' if from_campaign_side else 'CUSTOMER',
        message=serializer.validated_data['message']
    )

    recipient = order.customer if from_campaign_side else order.campaign.creator
    if recipient is not None and recipient.id != user.id:
        create_notification(
            recipient,
            Notification.TYPE_NEW_MESSAGE,
            'New message',
            f'{user.get_display_name()} sent a message about order #{order.id}.',
            {'order_id': order.id, 'campaign_id': order.campaign_id, 'campaign_name': order.campaign.name,
             'campaign_slug': order.campaign.slug}
        )

    logger.info(f"User {user.id} sent a message on order {order.id}")
    return Response(OrderMessageSerializer(message).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_message_unread_count(request):
    """Unread messages across the user's orders and the orders of their campaigns"""
    user = request.user
    count = OrderMessage.objects.filter(
        Q(order__customer=user) | Q(order__campaign__creator=user),
        is_read=False
    ).exclude(sender=user).count()
    return Response({'count': count})

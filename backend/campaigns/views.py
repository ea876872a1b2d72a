import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly, AllowAny
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404

from backend.core.models import User
from backend.core.utils import create_audit_log, audit_instance, snapshot, diff_snapshot
from .models import Campaign, Product
from .serializers import (
    CampaignSerializer, CampaignListSerializer, CampaignStatusSerializer,
    CampaignCloneSerializer, DistanceQuerySerializer, ProductSerializer
)
from .filters import CampaignFilter
from .utils import generate_unique_slug, get_campaign_or_404
from .shipping import distribute_shipping
from .status import change_status, InvalidStatusTransition
from .summary import generate_orders_summary
from .analytics import get_campaign_analytics
from . import geocoding

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
PICKUP_FIELDS = ['pickup_zip_code', 'pickup_address', 'pickup_address_number']
AUDITED_CAMPAIGN_FIELDS = ['name', 'description', 'deadline', 'shipping_cost', 'pix_key', 'pix_type', 'pix_name',
                           'pix_visible_at_status'] + PICKUP_FIELDS


def _campaign_queryset():
    return Campaign.objects.select_related('creator').annotate(
        product_count=Count('products', distinct=True),
        order_count=Count('orders', distinct=True)
    )


def _forbidden(message):
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


def _should_geocode(data):
    return bool(data.get('pickup_zip_code') and data.get('pickup_address'))


def _refresh_pickup_coordinates(campaign):
    """Re-geocode from the stored pickup fields, or drop coordinates once the CEP is cleared"""
    if _should_geocode({'pickup_zip_code': campaign.pickup_zip_code, 'pickup_address': campaign.pickup_address}):
        geocoding.geocode_campaign_pickup(campaign)
    elif not campaign.pickup_zip_code and campaign.pickup_latitude is not None:
        campaign.pickup_latitude = None
        campaign.pickup_longitude = None
        campaign.save(update_fields=['pickup_latitude', 'pickup_longitude', 'updated_at'])


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly])
def campaign_list_create(request):
    """List campaigns (public) or create a new one"""
    if request.method == 'GET':
        queryset = _campaign_queryset()
        queryset = CampaignFilter(request.query_params, queryset=queryset, request=request).qs
        queryset = queryset.order_by('-created_at', '-id')

        try:
            page = max(int(request.query_params.get('page', 1)), 1)
            limit = min(max(int(request.query_params.get('limit', 20)), 1), MAX_PAGE_SIZE)
        except ValueError:
            return Response({'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)

        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)
        serializer = CampaignListSerializer(page_obj, many=True, context={'request': request})
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page_obj.number,
            'page_size': limit,
            'total_pages': paginator.num_pages,
        })

    serializer = CampaignSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        logger.warning(f"Campaign creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    with transaction.atomic():
        if user.role == User.ROLE_CUSTOMER:
            user.role = User.ROLE_CAMPAIGN_CREATOR
            user.save(update_fields=['role', 'updated_at'])
            logger.info(f"User {user.id} upgraded to campaign creator")
        campaign = serializer.save(
            creator=user,
            slug=generate_unique_slug(serializer.validated_data['name'])
        )

    if _should_geocode(serializer.validated_data):
        geocoding.geocode_campaign_pickup(campaign)

    create_audit_log(
        request=request,
        action='create',
        model_name='Campaign',
        object_id=str(campaign.id),
        object_name=campaign.name,
        object_reference=campaign.slug,
        changes={'name': campaign.name, 'shipping_cost': str(campaign.shipping_cost)}
    )
    logger.info(f"Campaign '{campaign.name}' ({campaign.slug}) created by user {user.id}")
    return Response(
        CampaignSerializer(_campaign_queryset().get(pk=campaign.pk), context={'request': request}).data,
        status=status.HTTP_201_CREATED
    )


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticatedOrReadOnly])
def campaign_detail(request, id_or_slug):
    """Retrieve, update or delete a campaign by id or slug"""
    campaign = get_campaign_or_404(id_or_slug, _campaign_queryset().prefetch_related('products'))

    if request.method == 'GET':
        return Response(CampaignSerializer(campaign, context={'request': request}).data)

    if not campaign.is_owned_by(request.user):
        logger.warning(f"User {request.user.id} attempted to modify campaign {campaign.id} without ownership")
        return _forbidden('Only the campaign creator can modify this campaign')

    if request.method == 'DELETE':
        campaign_id, campaign_name, campaign_slug = campaign.id, campaign.name, campaign.slug
        campaign.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Campaign',
            object_id=str(campaign_id),
            object_name=campaign_name,
            object_reference=campaign_slug
        )
        logger.info(f"Campaign {campaign_id} deleted by user {request.user.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    before = snapshot(campaign, AUDITED_CAMPAIGN_FIELDS)
    serializer = CampaignSerializer(campaign, data=request.data, partial=True, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    extra = {}
    new_name = serializer.validated_data.get('name')
    if new_name and new_name != campaign.name:
        extra['slug'] = generate_unique_slug(new_name, campaign.id)
    campaign = serializer.save(**extra)

    changes = diff_snapshot(before, campaign)

    if 'shipping_cost' in changes:
        distribute_shipping(campaign.id)
        create_audit_log(
            request=request,
            action='shipping_change',
            model_name='Campaign',
            object_id=str(campaign.id),
            object_name=campaign.name,
            object_reference=campaign.slug,
            changes=changes['shipping_cost']
        )

    if any(field in changes for field in PICKUP_FIELDS):
        _refresh_pickup_coordinates(campaign)

    if changes:
        create_audit_log(
            request=request,
            action='update',
            model_name='Campaign',
            object_id=str(campaign.id),
            object_name=campaign.name,
            object_reference=campaign.slug,
            changes=changes
        )

    campaign = _campaign_queryset().prefetch_related('products').get(pk=campaign.pk)
    return Response(CampaignSerializer(campaign, context={'request': request}).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def campaign_status(request, id_or_slug):
    """Change the campaign status following the allowed lifecycle transitions"""
    campaign = get_campaign_or_404(id_or_slug)
    if not campaign.is_owned_by(request.user):
        return _forbidden('Only the campaign creator can change its status')

    serializer = CampaignStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = change_status(campaign, serializer.validated_data['status'])
    except InvalidStatusTransition as e:
        logger.warning(f"Rejected status change for campaign {campaign.id}: {str(e)}")
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    if result.changed:
        create_audit_log(
            request=request,
            action='status_change',
            model_name='Campaign',
            object_id=str(campaign.id),
            object_name=campaign.name,
            object_reference=campaign.slug,
            changes={'status': {'old': result.previous_status, 'new': result.new_status}}
        )

    campaign = _campaign_queryset().prefetch_related('products').get(pk=campaign.pk)
    return Response(CampaignSerializer(campaign, context={'request': request}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def campaign_clone(request, id_or_slug):
    """Clone a campaign with all of its products into a new ACTIVE campaign"""
    original = get_campaign_or_404(id_or_slug, Campaign.objects.prefetch_related('products'))
    if not original.is_owned_by(request.user):
        return _forbidden('Only the campaign creator can clone this campaign')

    serializer = CampaignCloneSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    name = serializer.validated_data['name']
    with transaction.atomic():
        if user.role == User.ROLE_CUSTOMER:
            user.role = User.ROLE_CAMPAIGN_CREATOR
            user.save(update_fields=['role', 'updated_at'])
        campaign = Campaign.objects.create(
            name=name,
            slug=generate_unique_slug(name),
            description=serializer.validated_data.get('description') or original.description,
            status=Campaign.STATUS_ACTIVE,
            shipping_cost=0,
            creator=user
        )
        Product.objects.bulk_create([
            Product(campaign=campaign, name=product.name, price=product.price, weight=product.weight)
            for product in original.products.all()
        ])

    create_audit_log(
        request=request,
        action='create',
        model_name='Campaign',
        object_id=str(campaign.id),
        object_name=campaign.name,
        object_reference=campaign.slug,
        changes={'cloned_from': original.id}
    )
    logger.info(f"Campaign {original.id} cloned into {campaign.id} by user {user.id}")
    campaign = _campaign_queryset().prefetch_related('products').get(pk=campaign.pk)
    return Response(CampaignSerializer(campaign, context={'request': request}).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def campaign_orders_summary(request, id_or_slug):
    """Shareable plain-text summary of the campaign orders"""
    campaign = get_campaign_or_404(id_or_slug)
    if not campaign.is_owned_by(request.user):
        return _forbidden('Only the campaign creator can generate the orders summary')
    return Response(generate_orders_summary(campaign))


@api_view(['GET'])
@permission_classes([AllowAny])
def campaign_distance(request, id_or_slug):
    """Straight-line distance from a CEP or coordinates to the campaign pickup point"""
    campaign = get_campaign_or_404(id_or_slug)
    if campaign.pickup_latitude is None or campaign.pickup_longitude is None:
        return Response({'error': 'Campaign has no pickup address with coordinates'},
                        status=status.HTTP_400_BAD_REQUEST)

    query = DistanceQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

    params = query.validated_data
    if params.get('from_zip_code'):
        try:
            origin = geocoding.geocode_cep(params['from_zip_code'])
        except geocoding.GeocodingError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    else:
        origin = {'zip_code': '', 'city': '', 'state': '',
                  'latitude': params['from_lat'], 'longitude': params['from_lng']}

    distance_km = geocoding.haversine_km(
        origin['latitude'], origin['longitude'], campaign.pickup_latitude, campaign.pickup_longitude
    )
    return Response({
        'campaign_id': campaign.id,
        'from': {
            'zip_code': origin.get('zip_code', ''),
            'city': origin.get('city', ''),
            'state': origin.get('state', ''),
            'latitude': origin['latitude'],
            'longitude': origin['longitude'],
        },
        'to': {
            'zip_code': campaign.pickup_zip_code,
            'address': campaign.pickup_address,
            'number': campaign.pickup_address_number,
            'city': campaign.pickup_city,
            'state': campaign.pickup_state,
            'latitude': campaign.pickup_latitude,
            'longitude': campaign.pickup_longitude,
        },
        'distance_km': distance_km,
        'distance_display': geocoding.format_distance(distance_km),
    })


@api_view(['GET'])
@permission_classes([AllowAny])
def campaign_analytics(request, id_or_slug):
    """Order totals and per-product/per-customer breakdown of a campaign"""
    campaign = get_campaign_or_404(id_or_slug)
    return Response(get_campaign_analytics(campaign))


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticatedOrReadOnly])
def product_list_create(request):
    """List the products of a campaign or add a product to one"""
    if request.method == 'GET':
        campaign_id = request.query_params.get('campaign')
        if not campaign_id:
            return Response({'error': 'campaign is required'}, status=status.HTTP_400_BAD_REQUEST)
        campaign = get_campaign_or_404(campaign_id)
        serializer = ProductSerializer(campaign.products.all(), many=True)
        return Response(serializer.data)

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    campaign = serializer.validated_data['campaign']
    if not campaign.is_owned_by(request.user):
        return _forbidden('You cannot add products to this campaign')
    if not campaign.is_active:
        return Response({'error': 'Cannot add products to a campaign that is not active'},
                        status=status.HTTP_400_BAD_REQUEST)

    product = serializer.save()
    create_audit_log(
        request=request,
        action='create',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        object_reference=campaign.slug,
        changes={'price': str(product.price), 'weight': str(product.weight)}
    )
    return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticatedOrReadOnly])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('campaign'), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)

    campaign = product.campaign
    if not campaign.is_owned_by(request.user):
        return _forbidden('You cannot modify this product')
    if not campaign.is_active:
        return Response({'error': 'Cannot change products of a campaign that is not active'},
                        status=status.HTTP_400_BAD_REQUEST)

    if request.method == 'DELETE':
        product_id, product_name = product.id, product.name
        affected_order_ids = list(product.order_items.values_list('order_id', flat=True).distinct())
        with transaction.atomic():
            product.delete()
            _refresh_orders(affected_order_ids)
        distribute_shipping(campaign.id)
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=str(product_id),
            object_name=product_name,
            object_reference=campaign.slug
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    before = snapshot(product, ['price', 'weight'])
    serializer = ProductSerializer(product, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    product = serializer.save()

    changes = diff_snapshot(before, product)
    if changes:
        distribute_shipping(campaign.id)
        audit_instance(request, 'update', product, campaign.slug, changes)
    return Response(ProductSerializer(product).data)


def _refresh_orders(order_ids):
    """Recompute subtotals of orders that lost items"""
    from backend.orders.models import Order
    from backend.core.money import money_sum

    for order in Order.objects.filter(pk__in=order_ids).prefetch_related('items'):
        order.subtotal = money_sum(item.subtotal for item in order.items.all())
        order.save(update_fields=['subtotal', 'updated_at'])

# apps/resources/views.py

import logging

from django.db.models import Q
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.permissions import IsStaffMember
from .models import Resource, ResourceRequest
from .serializers import (
    BlockActionSerializer, BorrowDecisionSerializer, BorrowRequestCreateSerializer,
    BorrowRequestSerializer, FulfillSerializer, MarkAvailableSerializer, ResourceCreateSerializer,
    ResourceListSerializer, ResourceRequestSerializer, ResourceSerializer,
    ResourceStatsQuerySerializer, ResourceUpdateSerializer
)
from .services import ResourceRequestService, ResourceService

logger = logging.getLogger(__name__)

RESOURCE_ORDERING = ('created_at', 'updated_at', 'name', 'average_rating', 'total_borrows', 'view_count')


def _ordering(params, allowed, default='-created_at'):
    ordering = params.get('ordering', default)
    if ordering.lstrip('-') not in allowed:
        return default
    return ordering


class ResourceViewSet(viewsets.ModelViewSet):
    """
    Shared resources and their borrow lifecycle.

    Listing shows public resources only; a single resource is also visible to
    its owner, its current borrower and staff.
    """
    serializer_class = ResourceSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('block', 'stats'):
            return [permissions.IsAuthenticated(), IsStaffMember()]
        return super().get_permissions()

    def get_queryset(self):
        user = self.request.user
        queryset = Resource.objects.select_related('owner', 'current_borrower')

        if self.action != 'list':
            if user.is_staff_member:
                return queryset
            return queryset.filter(Q(is_public=True) | Q(owner=user) | Q(current_borrower=user))

        queryset = queryset.public()
        params = self.request.query_params
        for field in ('category', 'condition', 'availability', 'hostel_block', 'room_number'):
            value = params.get(field)
            if value:
                queryset = queryset.filter(**{field: value})
        search = params.get('search')
        if search:
            queryset = queryset.search(search)
        return queryset.order_by(_ordering(params, RESOURCE_ORDERING))

    def get_serializer_class(self):
        if self.action in ('list', 'mine'):
            return ResourceListSerializer
        return ResourceSerializer

    def _detail(self, resource, status_code=status.HTTP_200_OK):
        resource = self.get_queryset().get(pk=resource.pk)
        return Response(ResourceSerializer(resource, context=self.get_serializer_context()).data, status=status_code)

    def retrieve(self, request, pk=None):
        resource = ResourceService.view(request.user, self.get_object())
        return Response(self.get_serializer(resource).data)

    def create(self, request):
        serializer = ResourceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource = ResourceService.create(request.user, **serializer.validated_data)
        return self._detail(resource, status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        resource = self.get_object()
        serializer = ResourceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource = ResourceService.update(request.user, resource, **serializer.validated_data)
        return self._detail(resource)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        ResourceService.delete(request.user, self.get_object())
        return Response({'message': 'Resource deleted successfully'})

    @action(detail=True, methods=['post'], url_path='request')
    def request_borrow(self, request, pk=None):
        """Ask the owner to lend this resource."""
        resource = self.get_object()
        serializer = BorrowRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        borrow_request = ResourceService.request_borrow(request.user, resource, **serializer.validated_data)
        return Response({
            'message': 'Request submitted',
            'request': BorrowRequestSerializer(borrow_request).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        resource = self.get_object()
        serializer = BorrowDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource = ResourceService.approve_request(
            request.user,
            resource,
            serializer.validated_data['request_id'],
            duration=serializer.validated_data.get('duration'),
        )
        return self._detail(resource)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        resource = self.get_object()
        serializer = BorrowDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource = ResourceService.reject_request(request.user, resource, serializer.validated_data['request_id'])
        return self._detail(resource)

    @action(detail=True, methods=['post', 'put'], url_path='mark-available')
    def mark_available(self, request, pk=None):
        """Record a return (optionally rating the borrower) and free the resource."""
        resource = self.get_object()
        serializer = MarkAvailableSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource = ResourceService.mark_available(request.user, resource, **serializer.validated_data)
        return self._detail(resource)

    @action(detail=True, methods=['post'], url_path='request-return')
    def request_return(self, request, pk=None):
        ResourceService.request_return(request.user, self.get_object())
        return Response({'message': 'Return request sent'})

    @action(detail=True, methods=['post', 'delete'])
    def wishlist(self, request, pk=None):
        resource = self.get_object()
        if request.method == 'DELETE':
            ResourceService.remove_from_wishlist(request.user, resource)
            return Response({'message': 'Removed from wishlist successfully', 'is_in_wishlist': False})

        ResourceService.add_to_wishlist(request.user, resource)
        return Response({'message': 'Added to wishlist successfully', 'is_in_wishlist': True})

    @action(detail=True, methods=['put', 'post'])
    def block(self, request, pk=None):
        """Block or unblock a resource (wardens and admins)."""
        resource = self.get_object()
        serializer = BlockActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        action_name = serializer.validated_data['action']
        resource = ResourceService.set_blocked(request.user, resource, action_name)
        return Response({
            'message': f'Resource {action_name}ed successfully',
            'resource': ResourceSerializer(resource, context=self.get_serializer_context()).data,
        })

    @action(detail=False, methods=['get'], url_path='my')
    def mine(self, request):
        """The caller's owned, borrowed or wishlisted resources (?type=)."""
        queryset = ResourceService.mine(request.user, request.query_params.get('type', 'owned'))
        queryset = queryset.select_related('owner').order_by('-created_at')
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        serializer = ResourceStatsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = ResourceService.stats(
            request.user,
            hostel_block=serializer.validated_data.get('hostel_block'),
            time_range_days=serializer.validated_data['time_range'],
        )
        return Response(data)


class ResourceRequestViewSet(mixins.ListModelMixin,
                             mixins.RetrieveModelMixin,
                             mixins.CreateModelMixin,
                             viewsets.GenericViewSet):
    """
    Standing requests for items nobody lists yet, and their fulfillment.
    """
    serializer_class = ResourceRequestSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = ResourceRequest.objects.select_related(
            'requested_by', 'fulfilled_by', 'fulfilled_resource__owner'
        )
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        request_status = params.get('status', ResourceRequest.Status.OPEN)
        if request_status != 'all':
            queryset = queryset.filter(status=request_status)
        category = params.get('category')
        if category:
            queryset = queryset.filter(category=category)
        search = params.get('search')
        if search:
            queryset = queryset.filter(Q(title__icontains=search) | Q(description__icontains=search))
        return queryset.order_by(_ordering(params, ('created_at', 'updated_at', 'title')))

    def perform_create(self, serializer):
        serializer.instance = ResourceRequestService.create(self.request.user, **serializer.validated_data)

    @action(detail=True, methods=['post', 'put'])
    def cancel(self, request, pk=None):
        resource_request = ResourceRequestService.cancel(request.user, self.get_object())
        return Response(self.get_serializer(resource_request).data)

    @action(detail=True, methods=['post'])
    def fulfill(self, request, pk=None):
        """Offer an item for this request; creates the matching resource."""
        resource_request = self.get_object()
        serializer = FulfillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource_request = ResourceRequestService.fulfill(request.user, resource_request, **serializer.validated_data)
        return Response({
            'message': 'Request fulfilled and resource created successfully',
            'request': self.get_serializer(resource_request).data,
        })

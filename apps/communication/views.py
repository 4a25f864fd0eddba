# apps/communication/views.py

import logging

from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.exceptions import Forbidden
from apps.core.permissions import IsStaffMember
from .models import Notification
from .serializers import (
    NotificationSerializer, NotificationCreateSerializer, NotificationBroadcastSerializer
)
from .services import NotificationService

logger = logging.getLogger(__name__)


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    The signed-in user's notifications, plus staff-only create and broadcast.
    """
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('create', 'broadcast'):
            return [permissions.IsAuthenticated(), IsStaffMember()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = Notification.objects.filter(
            recipient=self.request.user
        ).active().select_related('sender')

        params = self.request.query_params
        is_read = params.get('is_read')
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() in ('true', '1'))
        notification_type = params.get('type')
        if notification_type:
            queryset = queryset.filter(notification_type=notification_type)
        category = params.get('category')
        if category:
            queryset = queryset.filter(category=category)

        ordering = params.get('ordering', '-created_at')
        if ordering.lstrip('-') not in ('created_at', 'priority', 'is_read'):
            ordering = '-created_at'
        return queryset.order_by(ordering)

    def create(self, request):
        serializer = NotificationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        recipient = data.pop('recipient')
        if request.user.is_warden and recipient.hostel_block != request.user.hostel_block:
            raise Forbidden('Wardens can only notify residents of their own block.')

        notification = NotificationService.create_notification(recipient, sender=request.user, **data)
        return Response(NotificationSerializer(notification).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def broadcast(self, request):
        """Send one notification to a list of users or to a role/block audience."""
        serializer = NotificationBroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        from django.contrib.auth import get_user_model
        User = get_user_model()

        explicit = data.pop('recipients', None)
        role = data.pop('role', None)
        hostel_block = data.pop('hostel_block', None)

        if explicit:
            recipients = User.objects.filter(pk__in=[user.pk for user in explicit])
        else:
            recipients = User.objects.filter(is_active=True)
            if role:
                recipients = recipients.filter(role=role)
            if hostel_block:
                recipients = recipients.filter(hostel_block=hostel_block)

        if request.user.is_warden:
            recipients = recipients.filter(hostel_block=request.user.hostel_block)

        results = NotificationService.broadcast(
            recipients.exclude(pk=request.user.pk), sender=request.user, **data
        )
        return Response({
            'message': f"Notification broadcast to {results['created']} users",
            'sent_count': results['created'],
            'failed_count': results['failed'],
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return Response({'unread_count': Notification.get_unread_count(request.user)})

    @action(detail=True, methods=['put', 'post'])
    def read(self, request, pk=None):
        notification = self.get_object()
        notification.mark_as_read()
        return Response(self.get_serializer(notification).data)

    @action(detail=True, methods=['put', 'post'])
    def unread(self, request, pk=None):
        notification = self.get_object()
        notification.mark_as_unread()
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=['put', 'post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        updated = Notification.mark_all_read(request.user)
        return Response({'message': 'All notifications marked as read', 'updated_count': updated})

    @action(detail=False, methods=['delete'], url_path='read')
    def delete_read(self, request):
        """Delete every notification the user has already read."""
        deleted, _ = Notification.objects.filter(recipient=request.user, is_read=True).delete()
        return Response({'message': f'{deleted} read notifications deleted', 'deleted_count': deleted})

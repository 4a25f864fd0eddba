# apps/complaints/views.py

import logging

from django.db.models import F
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.permissions import IsStaffMember
from .models import Complaint
from .serializers import (
    ComplaintCreateSerializer, ComplaintFeedbackSerializer, ComplaintListSerializer,
    ComplaintSerializer, ComplaintStatsQuerySerializer, ComplaintStatusSerializer,
    ComplaintUpdateSerializer
)
from .services import ComplaintService

logger = logging.getLogger(__name__)

ORDERING_FIELDS = {
    'created_at': 'created_at',
    'updated_at': 'updated_at',
    'priority': 'priority_rank',
    'upvote_count': 'num_upvotes',
}


class ComplaintViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       viewsets.GenericViewSet):
    """
    Complaints visible to the signed-in user, with reporter edits, staff
    triage, upvotes and reporter feedback as separate endpoints.
    """
    serializer_class = ComplaintSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('set_status', 'stats'):
            return [permissions.IsAuthenticated(), IsStaffMember()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = ComplaintService.visible_complaints(self.request.user).select_related(
            'reported_by', 'assigned_to'
        ).with_upvote_count()

        if self.action != 'list':
            return queryset

        params = self.request.query_params
        for field in ('status', 'category', 'priority', 'hostel_block', 'room_number'):
            value = params.get(field)
            if value:
                queryset = queryset.filter(**{field: value})

        ordering = params.get('ordering', '-created_at')
        descending = ordering.startswith('-')
        key = ORDERING_FIELDS.get(ordering.lstrip('-'))
        if key is None:
            key, descending = 'created_at', True
        if key == 'priority_rank':
            queryset = queryset.with_priority_rank()
        expression = F(key).desc() if descending else F(key).asc()
        return queryset.order_by(expression, '-created_at')

    def get_serializer_class(self):
        if self.action == 'list':
            return ComplaintListSerializer
        return ComplaintSerializer

    def _detail(self, complaint, status_code=status.HTTP_200_OK):
        complaint = self.get_queryset().get(pk=complaint.pk)
        return Response(self.get_serializer(complaint).data, status=status_code)

    def create(self, request):
        serializer = ComplaintCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        complaint = ComplaintService.create(request.user, **serializer.validated_data)
        return self._detail(complaint, status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        complaint = self.get_object()
        serializer = ComplaintUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        complaint = ComplaintService.update(request.user, complaint, **serializer.validated_data)
        return self._detail(complaint)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    @action(detail=True, methods=['put', 'patch'], url_path='status')
    def set_status(self, request, pk=None):
        """Move a complaint through its lifecycle, optionally assigning it."""
        complaint = self.get_object()
        serializer = ComplaintStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        complaint = ComplaintService.set_status(request.user, complaint, **serializer.validated_data)
        return self._detail(complaint)

    @action(detail=True, methods=['post', 'delete'])
    def upvote(self, request, pk=None):
        complaint = self.get_object()
        if request.method == 'DELETE':
            count = ComplaintService.remove_upvote(request.user, complaint)
            return Response({'message': 'Upvote removed', 'upvote_count': count, 'has_upvoted': False})

        count = ComplaintService.upvote(request.user, complaint)
        return Response({'message': 'Complaint upvoted', 'upvote_count': count, 'has_upvoted': True})

    @action(detail=True, methods=['post'])
    def feedback(self, request, pk=None):
        complaint = self.get_object()
        serializer = ComplaintFeedbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        complaint = ComplaintService.add_feedback(request.user, complaint, **serializer.validated_data)
        return self._detail(complaint)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        serializer = ComplaintStatsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = ComplaintService.stats(
            request.user,
            hostel_block=serializer.validated_data.get('hostel_block'),
            time_range_days=serializer.validated_data['time_range'],
        )
        return Response(data)

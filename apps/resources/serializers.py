# apps/resources/serializers.py

from rest_framework import serializers

from apps.core.models import HostelBlock
from apps.core.validators import image_url_validator, room_number_validator
from apps.users.serializers import UserSummarySerializer
from .models import BorrowRecord, BorrowRequest, Resource, ResourceCategory, ResourceRequest


class BorrowRequestSerializer(serializers.ModelSerializer):
    requester = UserSummarySerializer(read_only=True)
    requested_at = serializers.DateTimeField(read_only=True)

    class Meta:
        model = BorrowRequest
        fields = ['id', 'requester', 'status', 'message', 'requested_at', 'decision_at']
        read_only_fields = fields


class BorrowRecordSerializer(serializers.ModelSerializer):
    borrower = UserSummarySerializer(read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = BorrowRecord
        fields = [
            'id', 'borrower', 'borrowed_at', 'due_date', 'status', 'returned_at',
            'rating', 'feedback', 'is_overdue'
        ]
        read_only_fields = fields


class ResourceListSerializer(serializers.ModelSerializer):
    """
    Compact resource representation for listings and dashboards.
    """
    owner = UserSummarySerializer(read_only=True)
    time_since_created = serializers.CharField(read_only=True)

    class Meta:
        model = Resource
        fields = [
            'id', 'name', 'category', 'condition', 'availability', 'hostel_block',
            'room_number', 'owner', 'images', 'tags', 'average_rating',
            'total_borrows', 'created_at', 'time_since_created'
        ]
        read_only_fields = fields


class ResourceSerializer(ResourceListSerializer):
    """
    Full resource detail. Pending requests and borrow history are only shown
    to the owner and staff.
    """
    current_borrower = UserSummarySerializer(read_only=True)
    current_due_date = serializers.DateTimeField(read_only=True)
    days_overdue = serializers.IntegerField(read_only=True)
    wishlist_count = serializers.SerializerMethodField()
    is_in_wishlist = serializers.SerializerMethodField()
    borrow_requests = serializers.SerializerMethodField()
    borrow_history = serializers.SerializerMethodField()

    class Meta(ResourceListSerializer.Meta):
        fields = ResourceListSerializer.Meta.fields + [
            'description', 'max_borrow_duration', 'deposit_required', 'deposit_amount',
            'borrowing_rules', 'is_public', 'view_count', 'current_borrower',
            'current_due_date', 'days_overdue', 'wishlist_count', 'is_in_wishlist',
            'borrow_requests', 'borrow_history', 'updated_at'
        ]
        read_only_fields = fields

    def _viewer(self):
        request = self.context.get('request')
        return getattr(request, 'user', None)

    def _can_manage(self, obj):
        viewer = self._viewer()
        return viewer is not None and (viewer.pk == obj.owner_id or getattr(viewer, 'is_staff_member', False))

    def get_wishlist_count(self, obj):
        return obj.wishlist_entries.count()

    def get_is_in_wishlist(self, obj):
        return obj.is_in_wishlist(self._viewer())

    def get_borrow_requests(self, obj):
        viewer = self._viewer()
        requests = obj.borrow_requests.select_related('requester')
        if not self._can_manage(obj):
            if viewer is None:
                return []
            requests = requests.filter(requester=viewer)
        return BorrowRequestSerializer(requests, many=True).data

    def get_borrow_history(self, obj):
        if not self._can_manage(obj):
            return []
        return BorrowRecordSerializer(obj.borrow_records.select_related('borrower'), many=True).data


class ResourceCreateSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=3, max_length=100)
    description = serializers.CharField(min_length=10, max_length=500)
    category = serializers.ChoiceField(choices=ResourceCategory.choices)
    condition = serializers.ChoiceField(choices=Resource.Condition.choices, default=Resource.Condition.GOOD)
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)
    room_number = serializers.CharField(max_length=4, required=False, validators=[room_number_validator])
    max_borrow_duration = serializers.IntegerField(min_value=1, max_value=30, required=False)
    deposit_required = serializers.BooleanField(default=False)
    deposit_amount = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, default=0)
    borrowing_rules = serializers.CharField(max_length=300, required=False, allow_blank=True, default='')
    tags = serializers.ListField(child=serializers.CharField(max_length=30), required=False, default=list)
    images = serializers.ListField(
        child=serializers.CharField(max_length=500, validators=[image_url_validator]),
        required=False,
        default=list
    )
    is_public = serializers.BooleanField(default=True)


class ResourceUpdateSerializer(serializers.Serializer):
    """Owner edits; every field optional."""
    name = serializers.CharField(min_length=3, max_length=100, required=False)
    description = serializers.CharField(min_length=10, max_length=500, required=False)
    category = serializers.ChoiceField(choices=ResourceCategory.choices, required=False)
    condition = serializers.ChoiceField(choices=Resource.Condition.choices, required=False)
    availability = serializers.ChoiceField(choices=Resource.Availability.choices, required=False)
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)
    room_number = serializers.CharField(max_length=4, required=False, validators=[room_number_validator])
    max_borrow_duration = serializers.IntegerField(min_value=1, max_value=30, required=False)
    deposit_required = serializers.BooleanField(required=False)
    deposit_amount = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    borrowing_rules = serializers.CharField(max_length=300, required=False, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=30), required=False)
    images = serializers.ListField(
        child=serializers.CharField(max_length=500, validators=[image_url_validator]),
        required=False
    )
    is_public = serializers.BooleanField(required=False)


class BorrowRequestCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')


class BorrowDecisionSerializer(serializers.Serializer):
    request_id = serializers.UUIDField()
    duration = serializers.IntegerField(min_value=1, max_value=30, required=False)


class MarkAvailableSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    feedback = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')


class BlockActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[('block', 'Block'), ('unblock', 'Unblock')])


class ResourceStatsQuerySerializer(serializers.Serializer):
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)
    time_range = serializers.IntegerField(min_value=1, max_value=365, default=30)


class ResourceRequestSerializer(serializers.ModelSerializer):
    requested_by = UserSummarySerializer(read_only=True)
    fulfilled_by = UserSummarySerializer(read_only=True)
    fulfilled_resource = ResourceListSerializer(read_only=True)

    class Meta:
        model = ResourceRequest
        fields = [
            'id', 'title', 'description', 'category', 'status', 'requested_by',
            'fulfilled_by', 'fulfilled_resource', 'fulfilled_at', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'status', 'requested_by', 'fulfilled_by', 'fulfilled_resource',
            'fulfilled_at', 'created_at', 'updated_at'
        ]
        extra_kwargs = {
            'title': {'min_length': 5},
            'description': {'min_length': 10},
        }


class FulfillSerializer(serializers.Serializer):
    condition = serializers.ChoiceField(choices=Resource.Condition.choices)
    title = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    image_url = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default='', validators=[image_url_validator]
    )

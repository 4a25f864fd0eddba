# apps/complaints/serializers.py

from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.core.models import HostelBlock
from apps.core.validators import image_url_validator, room_number_validator
from apps.users.serializers import UserSummarySerializer
from .models import Complaint

User = get_user_model()

ANONYMOUS_REPORTER = {'id': None, 'name': 'Anonymous'}


class ReporterField(serializers.Field):
    """
    Reporter summary, masked for anonymous complaints unless the viewer filed
    the complaint.
    """

    def __init__(self, **kwargs):
        kwargs['source'] = '*'
        kwargs['read_only'] = True
        super().__init__(**kwargs)

    def to_representation(self, complaint):
        request = self.context.get('request')
        viewer = getattr(request, 'user', None)
        if complaint.is_anonymous:
            if viewer is None or viewer.pk != complaint.reported_by_id:
                return ANONYMOUS_REPORTER
        return UserSummarySerializer(complaint.reported_by).data


class ComplaintListSerializer(serializers.ModelSerializer):
    """
    Compact complaint representation for listings and dashboards.
    """
    reported_by = ReporterField()
    priority = serializers.SerializerMethodField()
    upvote_count = serializers.SerializerMethodField()
    time_since_created = serializers.CharField(read_only=True)

    class Meta:
        model = Complaint
        fields = [
            'id', 'title', 'category', 'priority', 'status', 'hostel_block',
            'room_number', 'is_anonymous', 'reported_by', 'upvote_count',
            'created_at', 'time_since_created'
        ]
        read_only_fields = fields

    def get_priority(self, obj):
        return obj.current_priority()

    def get_upvote_count(self, obj):
        count = getattr(obj, 'num_upvotes', None)
        if count is None:
            count = obj.upvotes.count()
        return count


class ComplaintSerializer(ComplaintListSerializer):
    """
    Full complaint detail.
    """
    assigned_to = UserSummarySerializer(read_only=True)
    has_upvoted = serializers.SerializerMethodField()
    resolution_duration = serializers.DurationField(read_only=True)

    class Meta(ComplaintListSerializer.Meta):
        fields = ComplaintListSerializer.Meta.fields + [
            'description', 'tags', 'images', 'assigned_to', 'has_upvoted',
            'resolution_notes', 'estimated_resolution_time', 'actual_resolution_time',
            'resolution_duration', 'feedback_resolved', 'feedback_rating',
            'feedback_comment', 'feedback_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_has_upvoted(self, obj):
        request = self.context.get('request')
        if not request or not request.user.is_authenticated:
            return False
        return obj.upvotes.filter(user=request.user).exists()


class ComplaintCreateSerializer(serializers.Serializer):
    title = serializers.CharField(min_length=5, max_length=100)
    description = serializers.CharField(min_length=10, max_length=1000)
    category = serializers.ChoiceField(choices=Complaint.Category.choices)
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)
    room_number = serializers.CharField(max_length=4, required=False, validators=[room_number_validator])
    is_anonymous = serializers.BooleanField(default=False)
    tags = serializers.ListField(
        child=serializers.CharField(max_length=30), required=False, default=list
    )
    images = serializers.ListField(
        child=serializers.CharField(max_length=500, validators=[image_url_validator]),
        required=False,
        default=list
    )


class ComplaintUpdateSerializer(serializers.Serializer):
    """Reporter edits; every field optional."""
    title = serializers.CharField(min_length=5, max_length=100, required=False)
    description = serializers.CharField(min_length=10, max_length=1000, required=False)
    category = serializers.ChoiceField(choices=Complaint.Category.choices, required=False)
    is_anonymous = serializers.BooleanField(required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=30), required=False)
    images = serializers.ListField(
        child=serializers.CharField(max_length=500, validators=[image_url_validator]),
        required=False
    )


class ComplaintStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Complaint.Status.choices)
    assigned_to = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), required=False)
    resolution_notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    estimated_resolution_time = serializers.DateTimeField(required=False)


class ComplaintFeedbackSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    comment = serializers.CharField(max_length=300, required=False, allow_blank=True, default='')
    resolved = serializers.BooleanField(required=False, allow_null=True, default=None)


class ComplaintStatsQuerySerializer(serializers.Serializer):
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)
    time_range = serializers.IntegerField(min_value=1, max_value=365, default=30)

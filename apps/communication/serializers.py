# apps/communication/serializers.py

from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.core.models import HostelBlock
from apps.users.serializers import UserSummarySerializer
from .models import Notification

User = get_user_model()


class NotificationSerializer(serializers.ModelSerializer):
    """
    Serializer for Notification model.
    """
    sender = UserSummarySerializer(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    time_since_created = serializers.CharField(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'title', 'message', 'notification_type', 'category', 'priority',
            'sender', 'related_entity_type', 'related_entity_id', 'is_read', 'read_at',
            'expires_at', 'is_expired', 'action_url', 'action_text', 'metadata',
            'created_at', 'time_since_created'
        ]
        read_only_fields = fields


class NotificationContentSerializer(serializers.Serializer):
    """Fields shared by staff-authored notifications."""
    title = serializers.CharField(max_length=100)
    message = serializers.CharField(max_length=300)
    notification_type = serializers.ChoiceField(choices=Notification.Type.choices, default=Notification.Type.SYSTEM)
    category = serializers.ChoiceField(choices=Notification.Category.choices, default=Notification.Category.OTHER)
    priority = serializers.ChoiceField(choices=Notification.Priority.choices, default=Notification.Priority.MEDIUM)
    action_url = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    action_text = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    metadata = serializers.DictField(required=False, default=dict)


class NotificationCreateSerializer(NotificationContentSerializer):
    recipient = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True))


class NotificationBroadcastSerializer(NotificationContentSerializer):
    """
    Target either an explicit list of users or everyone matching role/block.
    """
    recipients = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True), many=True, required=False
    )
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)
    hostel_block = serializers.ChoiceField(choices=HostelBlock.choices, required=False)

    def validate(self, attrs):
        if not attrs.get('recipients') and not attrs.get('role') and not attrs.get('hostel_block'):
            raise serializers.ValidationError(
                {'recipients': 'Provide recipients, a role or a hostel block to broadcast to.'}
            )
        return attrs

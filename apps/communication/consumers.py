import json
from channels.generic.websocket import AsyncWebsocketConsumer
from channels.db import database_sync_to_async
from django.contrib.auth.models import AnonymousUser

from .models import Notification
from .services import notification_group_name, serialize_for_push


class NotificationConsumer(AsyncWebsocketConsumer):
    """
    WebSocket consumer for real-time notifications.
    """

    async def connect(self):
        """Handle WebSocket connection."""
        self.user = self.scope.get('user')

        # Check if user is authenticated
        if self.user is None or isinstance(self.user, AnonymousUser):
            await self.close()
            return

        # Join user's notification group
        self.notification_group_name = notification_group_name(self.user.id)
        await self.channel_layer.group_add(
            self.notification_group_name,
            self.channel_name
        )

        await self.accept()

        await self.send_unread_count()
        await self.send_recent_notifications()

    async def disconnect(self, close_code):
        """Handle WebSocket disconnection."""
        if hasattr(self, 'notification_group_name'):
            await self.channel_layer.group_discard(
                self.notification_group_name,
                self.channel_name
            )

    async def receive(self, text_data=None, bytes_data=None):
        """Handle incoming WebSocket messages."""
        try:
            data = json.loads(text_data or '')
        except json.JSONDecodeError:
            await self.send_json({'type': 'error', 'message': 'Invalid JSON format'})
            return

        message_type = data.get('type')
        if message_type == 'mark_read':
            notification_ids = data.get('notification_ids', [])
            if notification_ids:
                await self.mark_notifications_read(notification_ids)
            await self.send_unread_count()
        elif message_type == 'mark_all_read':
            await self.mark_all_notifications_read()
            await self.send_unread_count()
        elif message_type == 'get_unread_count':
            await self.send_unread_count()
        else:
            await self.send_json({'type': 'error', 'message': f'Unknown message type: {message_type}'})

    # Event handlers for group messages
    async def send_notification(self, event):
        """Send notification to WebSocket."""
        await self.send_json({
            'type': 'notification',
            'notification': event['notification']
        })
        await self.send_unread_count()

    async def send_json(self, payload):
        await self.send(text_data=json.dumps(payload))

    async def send_unread_count(self):
        count = await self.get_unread_count()
        await self.send_json({'type': 'unread_count', 'count': count})

    async def send_recent_notifications(self):
        """Send the ten most recent unread notifications."""
        for notification in await self.get_recent_notifications():
            await self.send_json({'type': 'notification', 'notification': notification})

    # Database operations
    @database_sync_to_async
    def get_unread_count(self):
        return Notification.get_unread_count(self.user)

    @database_sync_to_async
    def get_recent_notifications(self):
        notifications = Notification.objects.filter(
            recipient=self.user
        ).unread().active().order_by('-created_at')[:10]
        return [serialize_for_push(notification) for notification in notifications]

    @database_sync_to_async
    def mark_notifications_read(self, notification_ids):
        """Mark specific notifications as read."""
        for notification in Notification.objects.filter(id__in=notification_ids, recipient=self.user):
            notification.mark_as_read()

    @database_sync_to_async
    def mark_all_notifications_read(self):
        """Mark all notifications as read for user."""
        Notification.mark_all_read(self.user)

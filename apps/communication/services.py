"""
Notification services for the communication app.

Lifecycle services never create notifications inline. They collect them in a
``NotificationBatch`` while their transaction is open and hand the batch to
``transaction.on_commit``; the batch then creates each notification in its
own savepoint so one failing recipient cannot affect the others or the
operation that triggered it.
"""

import logging
from typing import Dict, Iterable, List, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


def notification_group_name(user_id) -> str:
    """Channel-layer group every websocket of one user joins."""
    return f'notifications_{user_id}'


def serialize_for_push(notification: Notification) -> Dict:
    """Format notification for WebSocket transmission."""
    return {
        'id': str(notification.id),
        'type': notification.notification_type,
        'category': notification.category,
        'title': notification.title,
        'message': notification.message,
        'priority': notification.priority,
        'created_at': notification.created_at.isoformat(),
        'action_url': notification.action_url,
        'action_text': notification.action_text,
        'related_entity_type': notification.related_entity_type,
        'related_entity_id': str(notification.related_entity_id) if notification.related_entity_id else None,
        'metadata': notification.metadata,
    }


class NotificationService:
    """
    Service class for creating and delivering notifications.
    """

    @staticmethod
    def create_notification(
        recipient,
        title: str,
        message: str,
        notification_type: str = Notification.Type.SYSTEM,
        category: str = Notification.Category.OTHER,
        priority: str = Notification.Priority.MEDIUM,
        sender=None,
        related_entity=None,
        related_entity_type: str = '',
        action_url: str = '',
        action_text: str = '',
        metadata: Optional[Dict] = None,
        expires_at=None,
    ) -> Optional[Notification]:
        """
        Create one notification and push it to the recipient's websocket group.

        Args:
            recipient: User receiving the notification
            title: Short headline (at most 100 characters, longer input is cut)
            message: Body text (at most 300 characters, longer input is cut)
            notification_type: One of Notification.Type
            category: One of Notification.Category
            priority: One of Notification.Priority
            sender: User that caused the notification (optional)
            related_entity: Complaint, Resource or User instance (optional)
            related_entity_type: One of Notification.EntityType, required with related_entity
            action_url: Client route to open (optional)
            action_text: Button label (optional)
            metadata: Free-form JSON payload (optional)
            expires_at: Expiry override; defaults to NOTIFICATION_EXPIRY_DAYS from now

        Returns:
            The created Notification, or None when it could not be stored
        """
        fields = {
            'recipient': recipient,
            'sender': sender,
            'title': title[:100],
            'message': message[:300],
            'notification_type': notification_type,
            'category': category,
            'priority': priority,
            'related_entity_type': related_entity_type if related_entity is not None else '',
            'related_entity_id': related_entity.pk if related_entity is not None else None,
            'action_url': action_url,
            'action_text': action_text[:30],
            'metadata': metadata or {},
        }
        if expires_at is not None:
            fields['expires_at'] = expires_at

        try:
            with transaction.atomic():
                notification = Notification.objects.create(**fields)
        except Exception as e:
            logger.error(f"Failed to create notification '{title}' for {recipient}: {e}")
            return None

        NotificationService.push(notification)
        return notification

    @staticmethod
    def push(notification: Notification) -> bool:
        """
        Send a stored notification to the recipient's open websockets.

        Returns:
            True if the message was handed to the channel layer
        """
        if not getattr(settings, 'NOTIFICATION_PUSH_ENABLED', True) or not notification.is_push:
            return False

        try:
            channel_layer = get_channel_layer()
            if channel_layer is None:
                return False
            async_to_sync(channel_layer.group_send)(
                notification_group_name(notification.recipient_id),
                {
                    'type': 'send_notification',
                    'notification': serialize_for_push(notification),
                }
            )
            return True
        except Exception as e:
            logger.error(f"Failed to push notification {notification.id}: {e}")
            return False

    @staticmethod
    def broadcast(recipients: Iterable, title: str, message: str, **fields) -> Dict:
        """
        Send the same notification to many users.

        Args:
            recipients: Iterable of users
            title: Notification title
            message: Notification message
            **fields: Any other create_notification argument

        Returns:
            Dictionary with 'created' and 'failed' counts
        """
        results = {'created': 0, 'failed': 0}
        for recipient in recipients:
            if NotificationService.create_notification(recipient, title, message, **fields):
                results['created'] += 1
            else:
                results['failed'] += 1

        logger.info(f"Broadcast '{title}': {results['created']} created, {results['failed']} failed")
        return results

    @staticmethod
    def cleanup_expired() -> int:
        """
        Delete notifications past their expiry time.

        Returns:
            Number of deleted notifications
        """
        deleted, _ = Notification.objects.expired().delete()
        logger.info(f"Deleted {deleted} expired notifications")
        return deleted


class NotificationBatch:
    """
    Notifications gathered while a lifecycle operation runs.

    Nothing is written until ``dispatch`` is called, normally through
    ``dispatch_on_commit`` once the operation's transaction has committed.
    """

    def __init__(self):
        self._pending: List[Dict] = []

    def __len__(self):
        return len(self._pending)

    def __iter__(self):
        return iter(self._pending)

    def add(self, recipient, title: str, message: str, **fields):
        """Queue one notification; accepts every create_notification argument."""
        if recipient is None:
            return
        self._pending.append({'recipient': recipient, 'title': title, 'message': message, **fields})

    def dispatch(self) -> int:
        """
        Create every queued notification. Failures are logged per recipient.

        Returns:
            Number of notifications created
        """
        pending, self._pending = self._pending, []
        created = 0
        for item in pending:
            if NotificationService.create_notification(**item):
                created += 1
        return created

    def dispatch_on_commit(self):
        """Dispatch once the surrounding transaction commits (immediately in autocommit)."""
        if self._pending:
            transaction.on_commit(self.dispatch)

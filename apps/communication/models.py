from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import CoreBaseModel


def default_expiry():
    """Notifications expire NOTIFICATION_EXPIRY_DAYS after creation."""
    return timezone.now() + timedelta(days=getattr(settings, 'NOTIFICATION_EXPIRY_DAYS', 30))


class NotificationQuerySet(models.QuerySet):

    def active(self):
        """Exclude notifications past their expiry time."""
        return self.exclude(
            models.Q(expires_at__isnull=False) &
            models.Q(expires_at__lt=timezone.now())
        )

    def expired(self):
        return self.filter(expires_at__isnull=False, expires_at__lt=timezone.now())

    def unread(self):
        return self.filter(is_read=False)


class Notification(CoreBaseModel):
    """
    In-app notification, pushed over the websocket layer when it is created.
    """
    class Type(models.TextChoices):
        COMPLAINT = 'complaint', _('Complaint')
        RESOURCE = 'resource', _('Resource')
        SYSTEM = 'system', _('System')
        REMINDER = 'reminder', _('Reminder')
        WARNING = 'warning', _('Warning')
        SUCCESS = 'success', _('Success')

    class Category(models.TextChoices):
        NEW = 'new', _('New')
        UPDATE = 'update', _('Update')
        RESOLVED = 'resolved', _('Resolved')
        BORROWED = 'borrowed', _('Borrowed')
        RETURNED = 'returned', _('Returned')
        OVERDUE = 'overdue', _('Overdue')
        MAINTENANCE = 'maintenance', _('Maintenance')
        BORROW_REQUEST = 'borrow-request', _('Borrow Request')
        BORROW_APPROVAL = 'borrow-approval', _('Borrow Approval')
        BORROW_REJECTION = 'borrow-rejection', _('Borrow Rejection')
        OTHER = 'other', _('Other')

    class Priority(models.TextChoices):
        LOW = 'low', _('Low')
        MEDIUM = 'medium', _('Medium')
        HIGH = 'high', _('High')

    class EntityType(models.TextChoices):
        COMPLAINT = 'complaint', _('Complaint')
        RESOURCE = 'resource', _('Resource')
        USER = 'user', _('User')

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
        verbose_name=_('recipient')
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_notifications',
        verbose_name=_('sender')
    )
    title = models.CharField(_('title'), max_length=100)
    message = models.CharField(_('message'), max_length=300)
    notification_type = models.CharField(
        _('notification type'),
        max_length=20,
        choices=Type.choices,
        default=Type.SYSTEM
    )
    category = models.CharField(
        _('category'),
        max_length=20,
        choices=Category.choices,
        default=Category.OTHER
    )
    priority = models.CharField(
        _('priority'),
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM
    )

    # Related entity
    related_entity_type = models.CharField(
        _('related entity type'),
        max_length=20,
        choices=EntityType.choices,
        blank=True
    )
    related_entity_id = models.UUIDField(_('related entity id'), null=True, blank=True)

    # Read state
    is_read = models.BooleanField(_('is read'), default=False)
    read_at = models.DateTimeField(_('read at'), null=True, blank=True)
    expires_at = models.DateTimeField(_('expires at'), default=default_expiry, null=True, blank=True)

    # Actions
    action_url = models.CharField(_('action URL'), max_length=200, blank=True)
    action_text = models.CharField(_('action text'), max_length=30, blank=True)
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)

    # Delivery channels
    is_push = models.BooleanField(_('push notification'), default=True)
    is_email = models.BooleanField(_('email notification'), default=False)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Notification')
        verbose_name_plural = _('Notifications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read', 'created_at'], name='notif_recipient_read_idx'),
            models.Index(fields=['recipient', 'notification_type'], name='notif_recipient_type_idx'),
            models.Index(fields=['expires_at'], name='notif_expires_idx'),
        ]

    def __str__(self):
        return f"{self.notification_type}: {self.title} -> {self.recipient}"

    @property
    def is_expired(self):
        """Check if notification has expired."""
        if self.expires_at:
            return timezone.now() > self.expires_at
        return False

    def mark_as_read(self):
        """Mark notification as read."""
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at', 'updated_at'])

    def mark_as_unread(self):
        if self.is_read:
            self.is_read = False
            self.read_at = None
            self.save(update_fields=['is_read', 'read_at', 'updated_at'])

    @classmethod
    def get_unread_count(cls, user):
        """Get count of unread, unexpired notifications for a user."""
        return cls.objects.filter(recipient=user).unread().active().count()

    @classmethod
    def mark_all_read(cls, user):
        """Mark all notifications as read for a user. Returns the number updated."""
        return cls.objects.filter(recipient=user, is_read=False).update(
            is_read=True,
            read_at=timezone.now()
        )

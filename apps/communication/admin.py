# apps/communication/admin.py

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """
    Admin interface for Notification model.
    """
    list_display = ['title', 'recipient', 'notification_type', 'category', 'priority', 'is_read', 'created_at']
    list_filter = ['notification_type', 'category', 'priority', 'is_read', 'created_at']
    search_fields = ['title', 'message', 'recipient__email', 'recipient__first_name']
    readonly_fields = ['created_at', 'updated_at', 'read_at']
    raw_id_fields = ['recipient', 'sender']
    actions = ['mark_as_read', 'mark_as_unread']

    fieldsets = (
        (_('Content'), {
            'fields': ('recipient', 'sender', 'title', 'message', 'notification_type', 'category', 'priority')
        }),
        (_('Related Entity'), {
            'fields': ('related_entity_type', 'related_entity_id', 'action_url', 'action_text', 'metadata'),
            'classes': ('collapse',)
        }),
        (_('Delivery'), {
            'fields': ('is_read', 'read_at', 'expires_at', 'is_push', 'is_email')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    @admin.action(description=_('Mark selected notifications as read'))
    def mark_as_read(self, request, queryset):
        from django.utils import timezone
        updated = queryset.filter(is_read=False).update(is_read=True, read_at=timezone.now())
        self.message_user(request, _('%(count)d notifications marked as read.') % {'count': updated})

    @admin.action(description=_('Mark selected notifications as unread'))
    def mark_as_unread(self, request, queryset):
        updated = queryset.filter(is_read=True).update(is_read=False, read_at=None)
        self.message_user(request, _('%(count)d notifications marked as unread.') % {'count': updated})

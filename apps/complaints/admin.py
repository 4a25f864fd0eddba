# apps/complaints/admin.py

from django.contrib import admin
from django.db.models import Count
from django.utils.translation import gettext_lazy as _

from .models import Complaint, ComplaintUpvote


class ComplaintUpvoteInline(admin.TabularInline):
    model = ComplaintUpvote
    extra = 0
    raw_id_fields = ['user']
    readonly_fields = ['created_at']


@admin.register(Complaint)
class ComplaintAdmin(admin.ModelAdmin):
    """
    Admin interface for Complaint model.
    """
    list_display = [
        'title', 'category', 'priority', 'status', 'hostel_block', 'room_number',
        'reported_by', 'assigned_to', 'upvote_count', 'created_at'
    ]
    list_filter = ['status', 'priority', 'category', 'hostel_block', 'is_anonymous', 'created_at']
    search_fields = ['title', 'description', 'room_number', 'reported_by__email', 'assigned_to__email']
    readonly_fields = ['priority', 'created_at', 'updated_at', 'actual_resolution_time', 'feedback_at']
    raw_id_fields = ['reported_by', 'assigned_to']
    inlines = [ComplaintUpvoteInline]

    fieldsets = (
        (_('Complaint'), {
            'fields': ('title', 'description', 'category', 'priority', 'status', 'tags', 'images')
        }),
        (_('Location'), {
            'fields': ('hostel_block', 'room_number', 'reported_by', 'is_anonymous')
        }),
        (_('Resolution'), {
            'fields': ('assigned_to', 'resolution_notes', 'estimated_resolution_time', 'actual_resolution_time')
        }),
        (_('Feedback'), {
            'fields': ('feedback_resolved', 'feedback_rating', 'feedback_comment', 'feedback_at'),
            'classes': ('collapse',)
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(num_upvotes=Count('upvotes'))

    @admin.display(description=_('Upvotes'), ordering='num_upvotes')
    def upvote_count(self, obj):
        return obj.num_upvotes

    def save_model(self, request, obj, form, change):
        obj.refresh_priority()
        super().save_model(request, obj, form, change)

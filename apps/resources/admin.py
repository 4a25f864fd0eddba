# apps/resources/admin.py

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from .models import BorrowRecord, BorrowRequest, Resource, ResourceRequest, WishlistEntry


class BorrowRequestInline(admin.TabularInline):
    model = BorrowRequest
    extra = 0
    raw_id_fields = ['requester']
    readonly_fields = ['created_at', 'decision_at']


class BorrowRecordInline(admin.TabularInline):
    model = BorrowRecord
    extra = 0
    raw_id_fields = ['borrower', 'request']
    readonly_fields = ['borrowed_at', 'returned_at']


@admin.register(Resource)
class ResourceAdmin(admin.ModelAdmin):
    """
    Admin interface for Resource model.
    """
    list_display = [
        'name', 'category', 'condition', 'availability', 'owner', 'current_borrower',
        'hostel_block', 'total_borrows', 'average_rating', 'created_at'
    ]
    list_filter = ['availability', 'category', 'condition', 'hostel_block', 'is_public']
    search_fields = ['name', 'description', 'owner__email', 'owner__first_name']
    readonly_fields = ['total_borrows', 'average_rating', 'view_count', 'created_at', 'updated_at']
    raw_id_fields = ['owner', 'current_borrower']
    inlines = [BorrowRequestInline, BorrowRecordInline]

    fieldsets = (
        (_('Resource'), {
            'fields': ('name', 'description', 'category', 'condition', 'availability', 'tags', 'images', 'is_public')
        }),
        (_('Ownership'), {
            'fields': ('owner', 'current_borrower', 'hostel_block', 'room_number')
        }),
        (_('Lending Terms'), {
            'fields': ('max_borrow_duration', 'deposit_required', 'deposit_amount', 'borrowing_rules')
        }),
        (_('Statistics'), {
            'fields': ('total_borrows', 'average_rating', 'view_count', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(BorrowRequest)
class BorrowRequestAdmin(admin.ModelAdmin):
    list_display = ['resource', 'requester', 'status', 'created_at', 'decision_at']
    list_filter = ['status', 'created_at']
    search_fields = ['resource__name', 'requester__email']
    raw_id_fields = ['resource', 'requester']


@admin.register(BorrowRecord)
class BorrowRecordAdmin(admin.ModelAdmin):
    list_display = ['resource', 'borrower', 'status', 'borrowed_at', 'due_date', 'returned_at', 'rating']
    list_filter = ['status', 'borrowed_at']
    search_fields = ['resource__name', 'borrower__email']
    raw_id_fields = ['resource', 'borrower', 'request']


@admin.register(WishlistEntry)
class WishlistEntryAdmin(admin.ModelAdmin):
    list_display = ['resource', 'user', 'created_at']
    raw_id_fields = ['resource', 'user']


@admin.register(ResourceRequest)
class ResourceRequestAdmin(admin.ModelAdmin):
    list_display = ['title', 'category', 'status', 'requested_by', 'fulfilled_by', 'created_at']
    list_filter = ['status', 'category', 'created_at']
    search_fields = ['title', 'description', 'requested_by__email']
    raw_id_fields = ['requested_by', 'fulfilled_by', 'fulfilled_resource']
    readonly_fields = ['fulfilled_at', 'created_at', 'updated_at']

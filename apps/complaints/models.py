from django.conf import settings
from django.core.validators import MinLengthValidator, MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Case, Count, IntegerField, Q, Value, When
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import CoreBaseModel, HostelBlock
from apps.core.validators import room_number_validator, validate_image_list, validate_tag_list
from .priority import (
    ESCALATE_TO_HIGH_AFTER, ESCALATE_TO_URGENT_AFTER, HIGH_SEVERITY_CATEGORIES,
    PRIORITY_ORDER, compute_priority
)


class ComplaintQuerySet(models.QuerySet):

    def visible_to(self, user):
        """
        Complaints a user may see: admins see all, wardens their own block,
        students their own plus every non-anonymous complaint.
        """
        if user.is_admin:
            return self
        if user.is_warden:
            return self.filter(Q(hostel_block=user.hostel_block) | Q(reported_by=user))
        return self.filter(Q(reported_by=user) | Q(is_anonymous=False))

    def with_upvote_count(self):
        return self.annotate(num_upvotes=Count('upvotes', distinct=True))

    def with_priority_rank(self):
        """Annotate a numeric rank so ordering follows low < medium < high < urgent."""
        return self.annotate(priority_rank=Case(
            *[When(priority=value, then=Value(rank)) for rank, value in enumerate(PRIORITY_ORDER)],
            output_field=IntegerField(),
        ))

    def sync_priorities(self, now=None):
        """
        Bring stored priorities in line with compute_priority using a handful of
        conditional updates. Returns the number of rows changed.
        """
        now = now or timezone.now()
        high = list(HIGH_SEVERITY_CATEGORIES)
        urgent_before = now - ESCALATE_TO_URGENT_AFTER
        high_before = now - ESCALATE_TO_HIGH_AFTER

        resolved = self.filter(status=Complaint.Status.RESOLVED)
        open_complaints = self.exclude(status=Complaint.Status.RESOLVED)

        updated = 0
        updated += resolved.filter(category__in=high).exclude(priority='high').update(priority='high')
        updated += resolved.exclude(category__in=high).exclude(priority='medium').update(priority='medium')
        updated += open_complaints.filter(created_at__lt=urgent_before).exclude(priority='urgent').update(priority='urgent')
        updated += open_complaints.filter(
            created_at__gte=urgent_before, category__in=high
        ).exclude(priority='high').update(priority='high')
        updated += open_complaints.filter(
            created_at__gte=urgent_before, created_at__lt=high_before
        ).exclude(category__in=high).exclude(priority='high').update(priority='high')
        updated += open_complaints.filter(
            created_at__gte=high_before
        ).exclude(category__in=high).exclude(priority='medium').update(priority='medium')
        return updated


class Complaint(CoreBaseModel):
    """
    Maintenance complaint filed by a resident and triaged by wardens.
    """
    class Category(models.TextChoices):
        ELECTRICAL = 'electrical', _('Electrical')
        PLUMBING = 'plumbing', _('Plumbing')
        FURNITURE = 'furniture', _('Furniture')
        CLEANLINESS = 'cleanliness', _('Cleanliness')
        NOISE = 'noise', _('Noise')
        SECURITY = 'security', _('Security')
        OTHER = 'other', _('Other')

    class Priority(models.TextChoices):
        LOW = 'low', _('Low')
        MEDIUM = 'medium', _('Medium')
        HIGH = 'high', _('High')
        URGENT = 'urgent', _('Urgent')

    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        IN_PROGRESS = 'in-progress', _('In Progress')
        AWAITING_APPROVAL = 'awaiting-approval', _('Awaiting Approval')
        RESOLVED = 'resolved', _('Resolved')
        REJECTED = 'rejected', _('Rejected')

    # Allowed status moves; resolved and rejected are terminal
    TRANSITIONS = {
        Status.PENDING: {Status.IN_PROGRESS, Status.AWAITING_APPROVAL, Status.RESOLVED, Status.REJECTED},
        Status.IN_PROGRESS: {Status.PENDING, Status.AWAITING_APPROVAL, Status.RESOLVED, Status.REJECTED},
        Status.AWAITING_APPROVAL: {Status.IN_PROGRESS, Status.RESOLVED, Status.REJECTED},
        Status.RESOLVED: set(),
        Status.REJECTED: set(),
    }

    title = models.CharField(_('title'), max_length=100, validators=[MinLengthValidator(5)])
    description = models.CharField(_('description'), max_length=1000, validators=[MinLengthValidator(10)])
    category = models.CharField(_('category'), max_length=20, choices=Category.choices)
    priority = models.CharField(
        _('priority'),
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
        editable=False,
        help_text=_('Derived from category, age and status')
    )
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='complaints',
        verbose_name=_('reported by')
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_complaints',
        verbose_name=_('assigned to')
    )

    # Location
    hostel_block = models.CharField(_('hostel block'), max_length=1, choices=HostelBlock.choices)
    room_number = models.CharField(_('room number'), max_length=4, validators=[room_number_validator])

    is_anonymous = models.BooleanField(_('anonymous'), default=False)
    tags = models.JSONField(_('tags'), default=list, blank=True, validators=[validate_tag_list])
    images = models.JSONField(_('images'), default=list, blank=True, validators=[validate_image_list])

    # Resolution
    resolution_notes = models.CharField(_('resolution notes'), max_length=500, blank=True)
    estimated_resolution_time = models.DateTimeField(_('estimated resolution time'), null=True, blank=True)
    actual_resolution_time = models.DateTimeField(_('actual resolution time'), null=True, blank=True)

    # Reporter feedback
    feedback_resolved = models.BooleanField(_('confirmed resolved'), null=True, blank=True)
    feedback_rating = models.PositiveSmallIntegerField(
        _('feedback rating'),
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    feedback_comment = models.CharField(_('feedback comment'), max_length=300, blank=True)
    feedback_at = models.DateTimeField(_('feedback at'), null=True, blank=True)

    objects = ComplaintQuerySet.as_manager()

    class Meta:
        verbose_name = _('Complaint')
        verbose_name_plural = _('Complaints')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['hostel_block', 'status'], name='complaint_block_status_idx'),
            models.Index(fields=['reported_by', 'created_at'], name='complaint_reporter_idx'),
            models.Index(fields=['priority', 'status'], name='complaint_priority_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

    @property
    def is_terminal(self):
        return not self.TRANSITIONS[self.status]

    @property
    def has_feedback(self):
        return self.feedback_rating is not None

    @property
    def resolution_duration(self):
        """Time from filing to resolution, or None while unresolved."""
        if not self.actual_resolution_time:
            return None
        return self.actual_resolution_time - self.created_at

    def can_transition_to(self, status):
        """Check a status move against the transition table; re-asserting a live status is allowed."""
        if status == self.status:
            return not self.is_terminal
        return status in self.TRANSITIONS[self.status]

    def current_priority(self, now=None):
        """Priority this complaint should have right now."""
        return compute_priority(self.category, self.created_at or timezone.now(), self.status, now=now)

    def refresh_priority(self, now=None):
        """Recompute priority in memory. Returns True if it changed."""
        priority = self.current_priority(now=now)
        changed = priority != self.priority
        self.priority = priority
        return changed


class ComplaintUpvote(CoreBaseModel):
    """
    One user's upvote on one complaint; the unique constraint makes upvoting idempotent.
    """
    complaint = models.ForeignKey(
        Complaint,
        on_delete=models.CASCADE,
        related_name='upvotes',
        verbose_name=_('complaint')
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='complaint_upvotes',
        verbose_name=_('user')
    )

    class Meta:
        verbose_name = _('Complaint Upvote')
        verbose_name_plural = _('Complaint Upvotes')
        constraints = [
            models.UniqueConstraint(fields=['complaint', 'user'], name='unique_complaint_upvote'),
        ]

    def __str__(self):
        return f"{self.user} upvoted {self.complaint_id}"

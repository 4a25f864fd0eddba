from django.conf import settings
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models
from django.db.models import Avg, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.models import CoreBaseModel, HostelBlock
from apps.core.validators import room_number_validator, validate_image_list, validate_tag_list


def default_borrow_duration():
    """Borrow window in days used when an owner does not set one."""
    return getattr(settings, 'HOSTEL_MAX_BORROW_DAYS', 7)


class ResourceCategory(models.TextChoices):
    ELECTRONICS = 'electronics', _('Electronics')
    BOOKS = 'books', _('Books')
    SPORTS = 'sports', _('Sports')
    KITCHEN = 'kitchen', _('Kitchen')
    TOOLS = 'tools', _('Tools')
    STUDY_MATERIALS = 'study-materials', _('Study Materials')
    OTHER = 'other', _('Other')


class ResourceQuerySet(models.QuerySet):

    def public(self):
        return self.filter(is_public=True)

    def search(self, term):
        """Case-insensitive match on name, description or tags."""
        return self.filter(
            Q(name__icontains=term) |
            Q(description__icontains=term) |
            Q(tags__icontains=term)
        )


class Resource(CoreBaseModel):
    """
    Item a resident lends to others, with its borrow state.
    """
    Category = ResourceCategory

    class Condition(models.TextChoices):
        EXCELLENT = 'excellent', _('Excellent')
        GOOD = 'good', _('Good')
        FAIR = 'fair', _('Fair')
        POOR = 'poor', _('Poor')

    class Availability(models.TextChoices):
        AVAILABLE = 'available', _('Available')
        REQUESTED = 'requested', _('Requested')
        BORROWED = 'borrowed', _('Borrowed')
        MAINTENANCE = 'maintenance', _('Maintenance')
        UNAVAILABLE = 'unavailable', _('Unavailable')

    TRANSITIONS = {
        Availability.AVAILABLE: {Availability.REQUESTED, Availability.MAINTENANCE, Availability.UNAVAILABLE},
        Availability.REQUESTED: {Availability.BORROWED, Availability.AVAILABLE, Availability.UNAVAILABLE},
        Availability.BORROWED: {Availability.AVAILABLE},
        Availability.MAINTENANCE: {Availability.AVAILABLE, Availability.UNAVAILABLE},
        Availability.UNAVAILABLE: {Availability.AVAILABLE},
    }

    name = models.CharField(_('name'), max_length=100, validators=[MinLengthValidator(3)])
    description = models.CharField(_('description'), max_length=500, validators=[MinLengthValidator(10)])
    category = models.CharField(_('category'), max_length=20, choices=ResourceCategory.choices)
    condition = models.CharField(_('condition'), max_length=10, choices=Condition.choices, default=Condition.GOOD)
    availability = models.CharField(
        _('availability'),
        max_length=15,
        choices=Availability.choices,
        default=Availability.AVAILABLE,
        db_index=True
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='resources',
        verbose_name=_('owner')
    )
    current_borrower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='borrowed_resources',
        verbose_name=_('current borrower')
    )
    wishlist = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='WishlistEntry',
        related_name='wishlisted_resources',
        blank=True,
        verbose_name=_('wishlist')
    )

    # Location
    hostel_block = models.CharField(_('hostel block'), max_length=1, choices=HostelBlock.choices)
    room_number = models.CharField(_('room number'), max_length=4, validators=[room_number_validator])

    # Lending terms
    max_borrow_duration = models.PositiveSmallIntegerField(
        _('max borrow duration (days)'),
        default=default_borrow_duration,
        validators=[MinValueValidator(1), MaxValueValidator(30)]
    )
    deposit_required = models.BooleanField(_('deposit required'), default=False)
    deposit_amount = models.DecimalField(
        _('deposit amount'),
        max_digits=8,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)]
    )
    borrowing_rules = models.CharField(_('borrowing rules'), max_length=300, blank=True)

    tags = models.JSONField(_('tags'), default=list, blank=True, validators=[validate_tag_list])
    images = models.JSONField(_('images'), default=list, blank=True, validators=[validate_image_list])
    is_public = models.BooleanField(_('public'), default=True)

    # Store-maintained statistics
    total_borrows = models.PositiveIntegerField(_('total borrows'), default=0)
    average_rating = models.FloatField(
        _('average rating'),
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    view_count = models.PositiveIntegerField(_('view count'), default=0)

    objects = ResourceQuerySet.as_manager()

    class Meta:
        verbose_name = _('Resource')
        verbose_name_plural = _('Resources')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['hostel_block', 'availability'], name='resource_block_avail_idx'),
            models.Index(fields=['category', 'availability'], name='resource_category_idx'),
            models.Index(fields=['owner', 'created_at'], name='resource_owner_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_availability_display()})"

    @property
    def active_borrow(self):
        return self.borrow_records.filter(status=BorrowRecord.Status.ACTIVE).first()

    @property
    def current_due_date(self):
        record = self.active_borrow
        return record.due_date if record else None

    @property
    def days_overdue(self):
        """Whole days past the due date of the active borrow, 0 when not overdue."""
        due_date = self.current_due_date
        if not due_date or timezone.now() <= due_date:
            return 0
        return (timezone.now() - due_date).days

    def can_transition_to(self, availability):
        return availability in self.TRANSITIONS[self.availability]

    def is_in_wishlist(self, user):
        if not user or not user.is_authenticated:
            return False
        return WishlistEntry.objects.filter(resource=self, user=user).exists()

    def pending_requests(self):
        return self.borrow_requests.filter(status=BorrowRequest.Status.PENDING)

    def recompute_average_rating(self):
        """
        Plain mean of every rating left on a returned borrow, 0 when none.
        Updates the instance only; callers save.
        """
        average = self.borrow_records.filter(
            status=BorrowRecord.Status.RETURNED, rating__isnull=False
        ).aggregate(average=Avg('rating'))['average']
        self.average_rating = average if average is not None else 0
        return self.average_rating


class WishlistEntry(CoreBaseModel):
    resource = models.ForeignKey(Resource, on_delete=models.CASCADE, related_name='wishlist_entries')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='wishlist_entries')

    class Meta:
        verbose_name = _('Wishlist Entry')
        verbose_name_plural = _('Wishlist Entries')
        constraints = [
            models.UniqueConstraint(fields=['resource', 'user'], name='unique_wishlist_entry'),
        ]

    def __str__(self):
        return f"{self.user} wants {self.resource}"


class BorrowRequest(CoreBaseModel):
    """
    A non-owner's request to borrow one resource.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        APPROVED = 'approved', _('Approved')
        REJECTED = 'rejected', _('Rejected')

    resource = models.ForeignKey(
        Resource,
        on_delete=models.CASCADE,
        related_name='borrow_requests',
        verbose_name=_('resource')
    )
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='borrow_requests',
        verbose_name=_('requester')
    )
    status = models.CharField(_('status'), max_length=10, choices=Status.choices, default=Status.PENDING)
    message = models.CharField(_('message'), max_length=200, blank=True)
    decision_at = models.DateTimeField(_('decision at'), null=True, blank=True)

    class Meta:
        verbose_name = _('Borrow Request')
        verbose_name_plural = _('Borrow Requests')
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['resource', 'status'], name='borrow_request_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['resource', 'requester'],
                condition=Q(status='pending'),
                name='unique_pending_borrow_request'
            ),
        ]

    def __str__(self):
        return f"{self.requester} -> {self.resource} ({self.status})"

    @property
    def requested_at(self):
        return self.created_at


class BorrowRecord(CoreBaseModel):
    """
    One borrow of a resource, from approval until it is returned.
    """
    class Status(models.TextChoices):
        ACTIVE = 'active', _('Active')
        RETURNED = 'returned', _('Returned')
        OVERDUE = 'overdue', _('Overdue')

    resource = models.ForeignKey(
        Resource,
        on_delete=models.CASCADE,
        related_name='borrow_records',
        verbose_name=_('resource')
    )
    borrower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='borrow_records',
        verbose_name=_('borrower')
    )
    request = models.ForeignKey(
        BorrowRequest,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='borrow_records',
        verbose_name=_('request')
    )
    borrowed_at = models.DateTimeField(_('borrowed at'), default=timezone.now)
    due_date = models.DateTimeField(_('due date'))
    status = models.CharField(_('status'), max_length=10, choices=Status.choices, default=Status.ACTIVE)
    returned_at = models.DateTimeField(_('returned at'), null=True, blank=True)
    rating = models.PositiveSmallIntegerField(
        _('rating'),
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    feedback = models.CharField(_('feedback'), max_length=200, blank=True)

    class Meta:
        verbose_name = _('Borrow Record')
        verbose_name_plural = _('Borrow Records')
        ordering = ['-borrowed_at']
        indexes = [
            models.Index(fields=['borrower', 'status'], name='borrow_record_borrower_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['resource'],
                condition=Q(status='active'),
                name='unique_active_borrow'
            ),
        ]

    def __str__(self):
        return f"{self.borrower} borrowed {self.resource} ({self.status})"

    @property
    def is_overdue(self):
        return self.status == self.Status.ACTIVE and timezone.now() > self.due_date


class ResourceRequest(CoreBaseModel):
    """
    Standing request for a kind of item nobody has listed yet.
    """
    class Status(models.TextChoices):
        OPEN = 'open', _('Open')
        FULFILLED = 'fulfilled', _('Fulfilled')
        CANCELLED = 'cancelled', _('Cancelled')

    title = models.CharField(_('title'), max_length=100, validators=[MinLengthValidator(5)])
    description = models.CharField(_('description'), max_length=1000, validators=[MinLengthValidator(10)])
    category = models.CharField(_('category'), max_length=20, choices=ResourceCategory.choices)
    status = models.CharField(_('status'), max_length=10, choices=Status.choices, default=Status.OPEN)

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='resource_requests',
        verbose_name=_('requested by')
    )
    fulfilled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fulfilled_resource_requests',
        verbose_name=_('fulfilled by')
    )
    fulfilled_resource = models.ForeignKey(
        Resource,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fulfilled_requests',
        verbose_name=_('fulfilled resource')
    )
    fulfilled_at = models.DateTimeField(_('fulfilled at'), null=True, blank=True)

    class Meta:
        verbose_name = _('Resource Request')
        verbose_name_plural = _('Resource Requests')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='resource_request_status_idx'),
            models.Index(fields=['category', 'status'], name='resource_request_cat_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

# apps/core/models.py
import uuid
from django.db import models
from django.utils.translation import gettext_lazy as _


class HostelBlock(models.TextChoices):
    """Residential zones; wardens are scoped to exactly one."""
    A = 'A', _('Block A')
    B = 'B', _('Block B')
    C = 'C', _('Block C')
    D = 'D', _('Block D')


class CoreBaseModel(models.Model):
    """
    Base model shared by every hostel record:
    - UUID primary key
    - Created/updated timestamps
    """

    # UUID Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamp fields
    created_at = models.DateTimeField(_('created at'), auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        abstract = True
        ordering = ['-created_at']

    @property
    def time_since_created(self):
        """Human readable age of the record, e.g. '3 days ago'."""
        from django.utils import timezone

        delta = timezone.now() - self.created_at
        days = delta.days
        hours = delta.seconds // 3600
        if days > 0:
            return f"{days} day{'s' if days > 1 else ''} ago"
        if hours > 0:
            return f"{hours} hour{'s' if hours > 1 else ''} ago"
        return 'Just now'

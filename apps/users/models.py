import uuid
from django.db import models
from django.db.models import F
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils.translation import gettext_lazy as _

from apps.core.models import HostelBlock
from apps.core.validators import room_number_validator, phone_number_validator


class UserManager(BaseUserManager):
    """
    Custom user manager for email-based authentication.
    """
    def staff_members(self):
        """Active wardens and admins."""
        return self.filter(is_active=True, role__in=[User.Role.WARDEN, User.Role.ADMIN])

    def wardens_for_block(self, hostel_block):
        """Active wardens of one block plus every active admin."""
        return self.filter(is_active=True).filter(
            models.Q(role=User.Role.ADMIN) |
            models.Q(role=User.Role.WARDEN, hostel_block=hostel_block)
        )

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and return a regular user with an email and password.
        """
        if not email:
            raise ValueError(_('The Email field must be set'))

        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create and return a superuser; superusers are hostel admins.
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_verified', True)
        extra_fields.setdefault('role', User.Role.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_('Superuser must have is_staff=True.'))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_('Superuser must have is_superuser=True.'))

        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Hostel resident or staff member, identified by email.
    """
    class Role(models.TextChoices):
        STUDENT = 'student', _('Student')
        WARDEN = 'warden', _('Warden')
        ADMIN = 'admin', _('Admin')

    id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        primary_key=True,
    )
    # Remove username field, use email instead
    username = None
    email = models.EmailField(
        _('email address'),
        unique=True,
        db_index=True,
        help_text=_('Primary email address for communication')
    )

    # Override AbstractUser fields; the name is required at registration
    first_name = models.CharField(_('first name'), max_length=50)
    last_name = models.CharField(_('last name'), max_length=50, blank=True)

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=Role.choices,
        default=Role.STUDENT,
        db_index=True
    )

    # Residence
    hostel_block = models.CharField(
        _('hostel block'),
        max_length=1,
        choices=HostelBlock.choices,
        blank=True,
        help_text=_('Required for students and wardens')
    )
    room_number = models.CharField(
        _('room number'),
        max_length=4,
        validators=[room_number_validator],
        blank=True
    )
    phone_number = models.CharField(
        _('phone number'),
        max_length=10,
        validators=[phone_number_validator],
        blank=True
    )

    # Verification
    is_verified = models.BooleanField(
        _('verified'),
        default=False,
        help_text=_('Designates whether the user has verified their email address')
    )

    # Community standing and sharing counters
    reputation = models.PositiveSmallIntegerField(
        _('reputation'),
        default=5,
        validators=[MinValueValidator(0), MaxValueValidator(10)]
    )
    total_borrowed = models.PositiveIntegerField(_('total borrowed'), default=0)
    total_lent = models.PositiveIntegerField(_('total lent'), default=0)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = _('User')
        verbose_name_plural = _('Users')
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role', 'hostel_block'], name='user_role_block_idx'),
            models.Index(fields=['is_active', 'is_verified'], name='user_active_verified_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        """Return the full name of the user."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def full_address(self):
        if not self.hostel_block or not self.room_number:
            return ''
        return f"{self.hostel_block} Block, Room {self.room_number}"

    @property
    def is_student(self):
        return self.role == self.Role.STUDENT

    @property
    def is_warden(self):
        return self.role == self.Role.WARDEN

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    @property
    def is_staff_member(self):
        """Wardens and admins triage complaints and moderate resources."""
        return self.role in (self.Role.WARDEN, self.Role.ADMIN)

    @property
    def has_residence(self):
        return bool(self.hostel_block and self.room_number)

    def can_manage_block(self, hostel_block):
        """Admins manage every block, wardens only their own."""
        if self.is_admin:
            return True
        return self.is_warden and self.hostel_block == hostel_block

    def adjust_counter(self, field, delta):
        """
        Atomically add ``delta`` to one of the sharing counters.

        Decrements never take a counter below zero.
        """
        if field not in ('total_borrowed', 'total_lent'):
            raise ValueError(f"Unknown counter: {field}")
        queryset = type(self).objects.filter(pk=self.pk)
        if delta < 0:
            queryset = queryset.filter(**{f'{field}__gte': -delta})
        queryset.update(**{field: F(field) + delta})

"""
User Model for the enrollment engine.

The identity collaborator owns these rows; enrollment code only reads them.

- UserRole: USER, INSTRUCTOR, ADMIN, SUPER_ADMIN
- UserStatus: PENDING, ACTIVE, SUSPENDED, DELETED
- Email is unique regardless of case.
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.db.models.functions import Lower
from django.utils import timezone


# =============================================================================
# ENUMERATIONS
# =============================================================================

class UserRole(models.TextChoices):
    USER = 'USER', 'User'
    INSTRUCTOR = 'INSTRUCTOR', 'Instructor'
    ADMIN = 'ADMIN', 'Administrator'
    SUPER_ADMIN = 'SUPER_ADMIN', 'Super administrator'


class UserStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACTIVE = 'ACTIVE', 'Active'
    SUSPENDED = 'SUSPENDED', 'Suspended'
    DELETED = 'DELETED', 'Deleted'


ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


# =============================================================================
# USER MANAGER
# =============================================================================

class UserQuerySet(models.QuerySet):

    def students(self):
        """Everyone who can hold an enrollment (administrators cannot)."""
        return self.exclude(role__in=ADMIN_ROLES)


class UserManager(BaseUserManager.from_queryset(UserQuerySet)):
    """
    Custom user manager supporting UUID primary keys.
    """

    def create_user(self, email, password=None, **extra_fields):
        """Create and save a regular user."""
        if not email:
            raise ValueError('An email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('role', UserRole.USER)
        extra_fields.setdefault('status', UserStatus.ACTIVE)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create and save a superuser."""
        extra_fields.setdefault('role', UserRole.SUPER_ADMIN)
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)

    def get_by_natural_key(self, username):
        return self.get(email__iexact=username)

    def get_student_by_email(self, email):
        """
        Resolve an email to a non-administrator user, ignoring case and
        surrounding whitespace.

        Raises:
            User.DoesNotExist: if no such student exists.
        """
        return self.get_queryset().students().get(email__iexact=(email or '').strip())


# =============================================================================
# USER MODEL
# =============================================================================

class User(AbstractBaseUser, PermissionsMixin):
    """
    Platform user.

    Uses a UUID primary key; bearer tokens carry it in their ``sub`` claim.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    email = models.EmailField('Email address', unique=True)

    first_name = models.CharField('First name', max_length=150, blank=True)
    last_name = models.CharField('Last name', max_length=150, blank=True)

    role = models.CharField(
        'Role',
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.USER,
        db_index=True,
    )
    status = models.CharField(
        'Status',
        max_length=20,
        choices=UserStatus.choices,
        default=UserStatus.ACTIVE,
        db_index=True,
    )

    is_staff = models.BooleanField(
        'Staff access',
        default=False,
        help_text='Grants access to the Django admin site.',
    )
    is_active = models.BooleanField(
        'Active',
        default=True,
        help_text='Inactive users cannot authenticate.',
    )

    # Student growth analytics bucket users by this timestamp
    date_joined = models.DateTimeField('Date joined', default=timezone.now, db_index=True)
    updated_at = models.DateTimeField('Last modified', auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        ordering = ['-date_joined']
        constraints = [
            models.UniqueConstraint(
                Lower('email'), name='users_user_email_ci_unique',
            ),
        ]
        indexes = [
            models.Index(fields=['role', 'status'], name='users_role_status_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        """Return full name or the email's local part if no name is set."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name if full_name else self.email.split('@')[0]

    @property
    def is_admin(self):
        """Check if user has admin privileges."""
        return self.role in ADMIN_ROLES

    def get_short_name(self):
        return self.first_name or self.email.split('@')[0]

    def get_full_name(self):
        return self.full_name

"""
Enrollment Module Models

Covers: Courses (read-mostly, with derived counters), the Enrollment
ledger and the append-only Activity feed.

Course.enrollment_count / Course.total_revenue are derived from the
Enrollment rows of the course and are only ever written inside the
enrollment transaction (see services/ledger_service.py).
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.text import slugify


# =============================================================================
# COURSE
# =============================================================================

class Course(models.Model):
    """
    Course as seen by the enrollment engine.

    Title, description and price are managed by the catalog; this module
    reads them and owns the two counters.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    title = models.CharField('Title', max_length=300)
    slug = models.SlugField(max_length=320, unique=True, db_index=True)
    description = models.TextField('Description', blank=True)
    price = models.DecimalField(
        'Price',
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    instructor_name = models.CharField(max_length=200, blank=True)
    thumbnail = models.URLField(max_length=500, blank=True)

    # --- Derived counters ---
    enrollment_count = models.PositiveIntegerField(default=0)
    total_revenue = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal('0.00'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Course'
        verbose_name_plural = 'Courses'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gte=0), name='course_price_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(total_revenue__gte=0), name='course_revenue_non_negative',
            ),
        ]

    def __str__(self):
        return self.title or '(untitled)'

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.title) or str(self.id)[:8]
        super().save(*args, **kwargs)

    @property
    def is_free(self):
        return self.price == 0


# =============================================================================
# ENROLLMENT
# =============================================================================

class EnrollmentSource(models.TextChoices):
    SELF_SERVICE = 'self_service', 'Self-service'
    PAYMENT = 'payment', 'Payment checkout'
    MANUAL = 'manual', 'Manual (administrator)'


class Enrollment(models.Model):
    """
    Ledger entry granting a user access to a course.

    At most one row per (user, course): the database constraint is the
    only authority on duplicates.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        related_name='enrollments',
    )
    course = models.ForeignKey(
        Course, on_delete=models.PROTECT, related_name='enrollments',
    )
    amount_paid = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    payment_reference = models.CharField(
        'Payment reference', max_length=255, null=True, blank=True,
        help_text='Processor payment id; empty for free and manual enrollments',
    )
    source = models.CharField(
        max_length=20, choices=EnrollmentSource.choices,
        default=EnrollmentSource.SELF_SERVICE,
    )

    # Owned by the learning-progress collaborator
    progress = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Overall completion percentage 0-100',
    )
    completed_lectures = models.JSONField(
        default=list, blank=True,
        help_text='["<lecture-id>", ...]',
    )

    enrolled_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Enrollment'
        verbose_name_plural = 'Enrollments'
        ordering = ['-enrolled_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'course'], name='enrollment_unique_user_course',
            ),
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0), name='enrollment_amount_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(progress__lte=100), name='enrollment_progress_max_100',
            ),
        ]
        indexes = [
            models.Index(fields=['course', 'enrolled_at'], name='enrollment_course_date_idx'),
        ]

    def __str__(self):
        return f'{self.user} -> {self.course}'


# =============================================================================
# ACTIVITY
# =============================================================================

class ActivityType(models.TextChoices):
    ENROLLMENT = 'enrollment', 'Enrollment'
    COURSE_CREATION = 'course_creation', 'Course creation'
    USER_REGISTRATION = 'user_registration', 'User registration'
    PAYMENT = 'payment', 'Payment'
    COMPLETION = 'completion', 'Completion'


class ImmutableRecord(Exception):
    pass


class Activity(models.Model):
    """
    Append-only audit entry for the dashboard "recent activity" feed.

    The actor is denormalized at write time so entries keep reading the
    same even if the user is renamed later.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor_id = models.UUIDField(db_index=True)
    actor_name = models.CharField(max_length=300)
    actor_email = models.EmailField(blank=True)
    action = models.CharField(max_length=500)
    type = models.CharField(
        max_length=30, choices=ActivityType.choices,
        default=ActivityType.ENROLLMENT, db_index=True,
    )
    course_id = models.UUIDField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = 'Activity'
        verbose_name_plural = 'Activities'
        ordering = ['-timestamp']

    def __str__(self):
        return f'{self.actor_name} {self.action}'

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecord('Activity entries cannot be modified.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecord('Activity entries cannot be deleted.')

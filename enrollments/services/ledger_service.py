"""
Enrollment Ledger: persistence of (user, course) access grants.

The ``enrollment_unique_user_course`` constraint is the only duplicate
check: inserts never query first.
"""

import logging

from django.db import IntegrityError, transaction

from enrollments.exceptions import DuplicateEnrollment, TransactionFailed
from enrollments.models import Enrollment, EnrollmentSource

logger = logging.getLogger(__name__)


def insert(user, course, amount_paid, payment_reference=None,
           source=EnrollmentSource.SELF_SERVICE) -> Enrollment:
    """
    Insert a new ledger row.

    Runs in its own savepoint so a constraint violation leaves the caller's
    transaction usable.

    Raises:
        DuplicateEnrollment: if the user already holds an enrollment for
            the course.
        TransactionFailed: any other integrity violation, such as a user or
            course removed before the insert.
    """
    try:
        with transaction.atomic():
            return Enrollment.objects.create(
                user=user,
                course=course,
                amount_paid=amount_paid,
                payment_reference=payment_reference or None,
                source=source,
            )
    except IntegrityError as e:
        if Enrollment.objects.filter(user=user, course=course).exists():
            raise DuplicateEnrollment() from e
        logger.error(
            'Enrollment insert rejected user=%s course=%s: %s', user.pk, course.pk, e,
        )
        raise TransactionFailed() from e


def find_by_user_and_course(user_id, course_id):
    return (
        Enrollment.objects
        .select_related('course', 'user')
        .filter(user_id=user_id, course_id=course_id)
        .first()
    )


def list_by_user(user_id):
    """Enrollments of a user with their course, newest first."""
    return (
        Enrollment.objects
        .filter(user_id=user_id)
        .select_related('course')
        .order_by('-enrolled_at', '-id')
    )

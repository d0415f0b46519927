"""
Enrollment Intake Gateway: the single entry point that creates enrollments.

Self-service, payment checkout and manual grants all come through
``enroll()``. One transaction covers the ledger insert, the course counter
update and the activity entry, so either all three are written or none.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from enrollments.exceptions import (
    DuplicateEnrollment, EnrollmentConflict, EnrollmentValidationError,
    InvalidAmount, NotFound, TransactionFailed,
)
from enrollments.models import Course, Enrollment, EnrollmentSource
from enrollments.services import activity_service, counters_service, ledger_service
from enrollments.transactions import run_atomic
from users.models import User

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


@dataclass(frozen=True)
class EnrollmentResult:
    enrollment: Enrollment
    created: bool


# ─── Lookups ────────────────────────────────────────────────────────────────

def parse_id(value):
    """Return ``value`` as a UUID, or None if it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def get_course(course_id) -> Course:
    pk = parse_id(course_id)
    course = Course.objects.filter(pk=pk).first() if pk else None
    if course is None:
        raise NotFound('Course not found.')
    return course


def get_student(user_id) -> User:
    """Administrators cannot hold enrollments and are reported as not found."""
    pk = parse_id(user_id)
    user = User.objects.filter(pk=pk).first() if pk else None
    if user is None or user.is_admin:
        raise NotFound('User not found.')
    return user


# ─── Validation ─────────────────────────────────────────────────────────────

def normalize_amount(amount_paid) -> Decimal:
    """
    Coerce an amount to a 2-place Decimal. Missing means zero.

    Raises:
        InvalidAmount: if the value is not a number, is negative or has
            more than two decimal places.
    """
    if amount_paid is None or amount_paid == '':
        return Decimal('0.00')
    try:
        amount = Decimal(str(amount_paid))
    except (InvalidOperation, ValueError):
        raise InvalidAmount('Amount must be a number.')
    if not amount.is_finite():
        raise InvalidAmount('Amount must be a number.')
    if amount < 0:
        raise InvalidAmount('Amount cannot be negative.')
    if amount != amount.quantize(CENT):
        raise InvalidAmount('Amount cannot have more than two decimal places.')
    return amount.quantize(CENT)


def validate_amount(amount: Decimal, course: Course, source) -> None:
    if source == EnrollmentSource.MANUAL:
        if amount != 0:
            raise InvalidAmount('Manual enrollments are free; amount must be 0.')
        return
    if amount != course.price:
        raise InvalidAmount(
            f'Amount {amount} does not match the course price {course.price}.'
        )


# ─── Transaction body ───────────────────────────────────────────────────────

def _record_enrollment(user, course, amount, payment_reference, source, actor):
    enrollment = ledger_service.insert(
        user, course, amount, payment_reference=payment_reference, source=source,
    )
    counters_service.apply_enrollment(course.pk, amount)

    metadata = {
        'enrollment_id': str(enrollment.pk),
        'amount_paid': str(amount),
        'source': source,
    }
    if payment_reference:
        metadata['payment_reference'] = payment_reference
    if actor is not None:
        metadata['granted_by'] = str(actor.pk)

    activity_service.record(
        user.pk, user.full_name, f'enrolled in {course.title}', course.pk,
        user_email=user.email, metadata=metadata,
    )
    return enrollment


# ─── Gateway ────────────────────────────────────────────────────────────────

def enroll(user_id, course_id, amount_paid=None, payment_reference=None, *,
           source=EnrollmentSource.SELF_SERVICE, actor=None) -> EnrollmentResult:
    """
    Grant ``user_id`` access to ``course_id`` exactly once.

    A repeated request for the same pair returns the existing enrollment
    with ``created=False``. Only a self-service resubmission whose amount
    differs from the stored one is refused.

    Raises:
        NotFound: unknown course, unknown user or administrator user.
        InvalidAmount: malformed amount, or one that does not fit the path.
        EnrollmentValidationError: a paid course on the self-service path.
            Only a processor-verified session can record a payment.
        EnrollmentConflict: conflicting self-service resubmission.
        TransactionFailed: transient storage errors exhausted the retries.
    """
    course = get_course(course_id)
    user = get_student(user_id)
    amount = normalize_amount(amount_paid)

    if source == EnrollmentSource.SELF_SERVICE and not course.is_free:
        raise EnrollmentValidationError(
            'Paid courses are enrolled through checkout and payment verification.'
        )
    validate_amount(amount, course, source)

    try:
        enrollment = run_atomic(
            _record_enrollment, user, course, amount, payment_reference, source, actor,
        )
    except DuplicateEnrollment:
        existing = ledger_service.find_by_user_and_course(user.pk, course.pk)
        if existing is None:
            # The conflicting row must be committed before the violation is raised.
            raise TransactionFailed()
        if source == EnrollmentSource.SELF_SERVICE and existing.amount_paid != amount:
            logger.warning(
                'Conflicting enrollment resubmission user=%s course=%s stored=%s submitted=%s',
                user.pk, course.pk, existing.amount_paid, amount,
            )
            raise EnrollmentConflict()
        logger.info(
            'Enrollment already exists user=%s course=%s source=%s',
            user.pk, course.pk, source,
        )
        return EnrollmentResult(enrollment=existing, created=False)

    logger.info(
        'Enrollment created id=%s user=%s course=%s amount=%s source=%s',
        enrollment.pk, user.pk, course.pk, amount, source,
    )
    return EnrollmentResult(enrollment=enrollment, created=True)


def manual_enroll(student_email, course_id, *, actor=None) -> EnrollmentResult:
    """
    Administrator grant: resolve the student by email and enroll for free.

    Raises:
        NotFound: no non-administrator user with that email, or no course.
    """
    course = get_course(course_id)
    try:
        student = User.objects.get_student_by_email(student_email)
    except User.DoesNotExist:
        raise NotFound('Student not found.')

    return enroll(
        student.pk, course.pk, Decimal('0.00'), None,
        source=EnrollmentSource.MANUAL, actor=actor,
    )

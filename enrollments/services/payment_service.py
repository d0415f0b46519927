"""
Payment Verification Adapter.

Turns a completed processor checkout into an enrollment. The amount
recorded always comes from the processor session, never from the client.
Verification may run twice for the same session (success redirect and
webhook); the intake gateway makes the second call a no-op.
"""

import logging

from django.conf import settings

from enrollments.exceptions import (
    EnrollmentValidationError, NotFound, PaymentMismatch, PaymentNotConfirmed,
)
from enrollments.models import EnrollmentSource
from enrollments.providers import get_payment_processor
from enrollments.services import intake_service, ledger_service

logger = logging.getLogger(__name__)


def _same_id(a, b):
    left, right = intake_service.parse_id(a), intake_service.parse_id(b)
    return left is not None and left == right


def create_checkout(user, course_id, *, processor=None):
    """
    Start a processor checkout for a paid course, priced from the course.

    Raises:
        NotFound: unknown course.
        EnrollmentValidationError: free course, or the user is already enrolled.
    """
    processor = processor or get_payment_processor()
    course = intake_service.get_course(course_id)

    if course.is_free:
        raise EnrollmentValidationError('This course is free; enroll directly.')
    if ledger_service.find_by_user_and_course(user.pk, course.pk) is not None:
        raise EnrollmentValidationError('Already enrolled in this course.')

    base_url = settings.FRONTEND_URL.rstrip('/')
    return processor.create_session(
        course=course,
        user=user,
        amount=course.price,
        success_url=f'{base_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&course_id={course.pk}',
        cancel_url=f'{base_url}/courses/{course.slug}',
    )


def complete_session(session, *, expected_user_id=None, expected_course_id=None):
    """
    Enroll the buyer of a completed session.

    Raises:
        PaymentNotConfirmed: the session is not paid yet.
        PaymentMismatch: course, user or amount differ from what was bought.
    """
    if not session.is_completed:
        logger.info('Payment session %s not completed (status=%s)', session.id, session.status)
        raise PaymentNotConfirmed()

    if expected_course_id is not None and not _same_id(session.course_id, expected_course_id):
        logger.warning(
            'Payment session %s is for course %s, not %s',
            session.id, session.course_id, expected_course_id,
        )
        raise PaymentMismatch('Payment was made for a different course.')

    if session.user_id and expected_user_id is not None and not _same_id(session.user_id, expected_user_id):
        logger.warning(
            'Payment session %s belongs to user %s, not %s',
            session.id, session.user_id, expected_user_id,
        )
        raise PaymentMismatch('Payment was made by a different user.')

    user_id = session.user_id or expected_user_id
    if user_id is None:
        raise PaymentMismatch('Payment session does not identify a user.')

    course = intake_service.get_course(session.course_id)
    if session.amount is None or session.amount != course.price:
        logger.warning(
            'Payment session %s amount %s does not match course price %s',
            session.id, session.amount, course.price,
        )
        raise PaymentMismatch('Amount paid does not match the course price.')

    result = intake_service.enroll(
        user_id, course.pk, session.amount,
        session.payment_reference or session.id,
        source=EnrollmentSource.PAYMENT,
    )
    logger.info(
        'Payment session %s verified: enrollment=%s created=%s',
        session.id, result.enrollment.pk, result.created,
    )
    return result


def verify(user_id, session_id, course_id, *, processor=None):
    """
    Verify a checkout session on behalf of ``user_id`` and enroll them.

    Raises:
        NotFound: the processor has no such session.
        PaymentNotConfirmed / PaymentMismatch: see ``complete_session``.
        PaymentProviderError: the processor could not be reached.
    """
    processor = processor or get_payment_processor()
    session = processor.get_session(session_id)
    if session is None:
        raise NotFound('Payment session not found.')

    return complete_session(session, expected_user_id=user_id, expected_course_id=course_id)


def handle_webhook(payload, signature, *, processor=None):
    """
    Process a processor webhook delivery.

    Returns the EnrollmentResult for checkout completions, None for events
    that are acknowledged but ignored.
    """
    processor = processor or get_payment_processor()
    session = processor.parse_event(payload, signature)
    if session is None:
        return None

    logger.info('Webhook completed checkout for session %s', session.id)
    return complete_session(session)

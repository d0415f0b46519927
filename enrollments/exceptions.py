"""
Enrollment exceptions.

Services raise these; views translate them into ``{'detail', 'code'}``
responses using ``status_code`` / ``code``.
"""

from rest_framework import status


class EnrollmentError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'enrollment_error'
    default_detail = 'Enrollment failed.'

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(EnrollmentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'
    default_detail = 'Not found.'


class EnrollmentValidationError(EnrollmentError):
    code = 'invalid'
    default_detail = 'Invalid enrollment request.'


class InvalidAmount(EnrollmentValidationError):
    code = 'invalid_amount'
    default_detail = 'Invalid payment amount.'


class PaymentNotConfirmed(EnrollmentError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = 'payment_not_confirmed'
    default_detail = 'Payment has not been completed yet.'


class PaymentMismatch(EnrollmentError):
    code = 'payment_mismatch'
    default_detail = 'Payment does not match this enrollment.'


class EnrollmentConflict(EnrollmentError):
    status_code = status.HTTP_409_CONFLICT
    code = 'conflict'
    default_detail = 'An enrollment with different details already exists.'


class DuplicateEnrollment(EnrollmentError):
    """Raised by the ledger only; the intake gateway always resolves it."""
    status_code = status.HTTP_409_CONFLICT
    code = 'duplicate'
    default_detail = 'User is already enrolled in this course.'


class TransactionFailed(EnrollmentError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 'transaction_failed'
    default_detail = 'The enrollment could not be saved. Please retry.'


class PaymentProviderError(EnrollmentError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = 'payment_provider_error'
    default_detail = 'The payment provider could not be reached.'


class WebhookSignatureError(EnrollmentValidationError):
    code = 'invalid_signature'
    default_detail = 'Invalid webhook payload or signature.'

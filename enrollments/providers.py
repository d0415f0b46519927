"""
Payment processor adapters.

``PaymentProcessor`` is the interface the payment service talks to; the
concrete class is chosen by ``settings.PAYMENT_PROCESSOR`` so tests (or a
different gateway) can swap it without touching the services.

The Stripe implementation carries the enrollment intent (course, user,
amount) in the Checkout Session metadata and reads it back on
verification and in the webhook.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import stripe
from django.conf import settings
from django.utils.module_loading import import_string

from enrollments.exceptions import PaymentProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)

COMPLETED = 'completed'
PENDING = 'pending'


@dataclass(frozen=True)
class PaymentSession:
    """Processor session as seen by the enrollment engine."""
    id: str
    status: str
    course_id: Optional[str]
    user_id: Optional[str]
    amount: Optional[Decimal]
    payment_reference: Optional[str] = None

    @property
    def is_completed(self):
        return self.status == COMPLETED


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class PaymentProcessor:

    def create_session(self, *, course, user, amount, success_url, cancel_url) -> CheckoutSession:
        raise NotImplementedError

    def get_session(self, session_id) -> Optional[PaymentSession]:
        """Return the session, or None if the processor does not know it."""
        raise NotImplementedError

    def parse_event(self, payload, signature) -> Optional[PaymentSession]:
        """
        Verify a webhook delivery and return the completed session it
        carries, or None for events that do not complete a checkout.
        """
        raise NotImplementedError


def get_payment_processor() -> PaymentProcessor:
    return import_string(settings.PAYMENT_PROCESSOR)()


# =============================================================================
# STRIPE
# =============================================================================

def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value) -> Optional[Decimal]:
    if value is None:
        return None
    return (Decimal(value) / 100).quantize(Decimal('0.01'))


def _field(obj, name):
    if obj is None:
        return None
    return getattr(obj, name, None)


class StripePaymentProcessor(PaymentProcessor):
    """Stripe Checkout, one-off card payment per course."""

    COMPLETED_EVENT = 'checkout.session.completed'

    def __init__(self, secret_key=None, webhook_secret=None, currency=None):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.currency = (currency or settings.PAYMENT_CURRENCY).lower()
        if not self.secret_key:
            logger.warning('STRIPE_SECRET_KEY not configured')

    def create_session(self, *, course, user, amount, success_url, cancel_url) -> CheckoutSession:
        logger.info(
            'Creating Stripe checkout session: user=%s course=%s amount=%s',
            user.pk, course.pk, amount,
        )
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode='payment',
                payment_method_types=['card'],
                line_items=[{
                    'price_data': {
                        'currency': self.currency,
                        'unit_amount': to_minor_units(amount),
                        'product_data': {'name': course.title},
                    },
                    'quantity': 1,
                }],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=user.email,
                client_reference_id=str(user.pk),
                metadata={
                    'course_id': str(course.pk),
                    'user_id': str(user.pk),
                    'amount': str(amount),
                },
            )
        except stripe.StripeError as e:
            logger.error('Stripe checkout session creation failed: %s', e)
            raise PaymentProviderError() from e

        logger.info('Stripe checkout session created: session_id=%s', session.id)
        return CheckoutSession(id=session.id, url=session.url)

    def get_session(self, session_id) -> Optional[PaymentSession]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.InvalidRequestError:
            logger.info('Stripe session %s not found', session_id)
            return None
        except stripe.StripeError as e:
            logger.error('Stripe session retrieval failed for %s: %s', session_id, e)
            raise PaymentProviderError() from e
        return self.to_payment_session(session)

    def parse_event(self, payload, signature) -> Optional[PaymentSession]:
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning('Rejected Stripe webhook: %s', e)
            raise WebhookSignatureError()

        if _field(event, 'type') != self.COMPLETED_EVENT:
            logger.info('Ignoring Stripe event %s', _field(event, 'type'))
            return None
        return self.to_payment_session(_field(_field(event, 'data'), 'object'))

    def to_payment_session(self, session) -> PaymentSession:
        metadata = _field(session, 'metadata')
        payment_status = _field(session, 'payment_status')

        payment_intent = _field(session, 'payment_intent')
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = _field(payment_intent, 'id')

        return PaymentSession(
            id=_field(session, 'id'),
            status=COMPLETED if payment_status == 'paid' else (payment_status or PENDING),
            course_id=_field(metadata, 'course_id'),
            user_id=_field(metadata, 'user_id') or _field(session, 'client_reference_id'),
            amount=from_minor_units(_field(session, 'amount_total')),
            payment_reference=payment_intent or _field(session, 'id'),
        )

"""
In-memory payment processor for tests.

Mix ``FakeProcessorMixin`` into a TestCase to route payments to a fresh
processor for every test, then register sessions with
``FakePaymentProcessor.add_session()``. Webhook
payloads are JSON ``{"type": ..., "session_id": ...}`` signed with
``FakePaymentProcessor.VALID_SIGNATURE``.
"""

import json
from decimal import Decimal

from django.test import override_settings

from enrollments.exceptions import WebhookSignatureError
from enrollments.providers import (
    COMPLETED, CheckoutSession, PaymentProcessor, PaymentSession,
)


class FakePaymentProcessor(PaymentProcessor):
    VALID_SIGNATURE = 'test-signature'

    # Class-level state, read by every instance get_payment_processor() builds.
    sessions = {}
    checkouts = []

    @classmethod
    def reset(cls):
        cls.sessions = {}
        cls.checkouts = []

    @classmethod
    def add_session(cls, session_id, *, course, user=None, amount=None,
                    status=COMPLETED, payment_reference=None):
        session = PaymentSession(
            id=session_id,
            status=status,
            course_id=str(course.pk),
            user_id=str(user.pk) if user is not None else None,
            amount=Decimal(course.price if amount is None else amount),
            payment_reference=payment_reference,
        )
        cls.sessions[session_id] = session
        return session

    def create_session(self, *, course, user, amount, success_url, cancel_url):
        session_id = f'cs_test_{len(self.checkouts) + 1}'
        self.checkouts.append({
            'id': session_id,
            'course': course,
            'user': user,
            'amount': amount,
            'success_url': success_url,
            'cancel_url': cancel_url,
        })
        return CheckoutSession(id=session_id, url=f'https://checkout.test/pay/{session_id}')

    def get_session(self, session_id):
        return self.sessions.get(session_id)

    def parse_event(self, payload, signature):
        if signature != self.VALID_SIGNATURE:
            raise WebhookSignatureError()
        event = json.loads(payload)
        if event.get('type') != 'checkout.session.completed':
            return None
        return self.sessions.get(event.get('session_id'))


class FakeProcessorMixin:
    """
    TestCase mixin: selects FakePaymentProcessor and clears its sessions and
    checkouts before and after every test.
    """

    def setUp(self):
        super().setUp()
        FakePaymentProcessor.reset()
        self.addCleanup(FakePaymentProcessor.reset)

        settings_override = override_settings(
            PAYMENT_PROCESSOR='enrollments.testing.FakePaymentProcessor',
        )
        settings_override.enable()
        self.addCleanup(settings_override.disable)

        self.processor = FakePaymentProcessor()

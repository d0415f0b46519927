"""
Enrollment Tests — service-level tests for the enrollment engine.

Covers:
1. Ledger (unique pair, listing order)
2. Intake gateway (validation, idempotency, counters, activity)
3. Transaction retry
4. Payment verification (session checks, double verification, webhook)
5. Stripe processor adapter
6. Growth analytics
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import stripe
from django.db import DatabaseError, IntegrityError, OperationalError
from django.test import TestCase, override_settings
from django.utils import timezone

from enrollments.exceptions import (
    DuplicateEnrollment, EnrollmentConflict, EnrollmentValidationError,
    InvalidAmount, NotFound, PaymentMismatch, PaymentNotConfirmed,
    PaymentProviderError, TransactionFailed, WebhookSignatureError,
)
from enrollments.models import (
    Activity, ActivityType, Course, Enrollment, EnrollmentSource, ImmutableRecord,
)
from enrollments.providers import COMPLETED, StripePaymentProcessor, get_payment_processor
from enrollments.services import (
    activity_service, analytics_service, intake_service, ledger_service,
    payment_service,
)
from enrollments.services.analytics_service import growth
from enrollments.testing import FakePaymentProcessor, FakeProcessorMixin
from enrollments.transactions import run_atomic
from users.models import User, UserRole


class EnrollmentTestBase(TestCase):
    """Shared setup: one student, one admin, a free and a paid course."""

    def setUp(self):
        self.student = User.objects.create_user(
            email='student@test.com', password='testpass123',
            first_name='Amina', last_name='Raza',
        )
        self.admin = User.objects.create_user(
            email='admin@test.com', password='testpass123',
            role=UserRole.ADMIN, is_staff=True,
        )
        self.free_course = Course.objects.create(
            title='Intro to Python', slug='intro-python', price=Decimal('0.00'),
        )
        self.paid_course = Course.objects.create(
            title='Advanced Django', slug='advanced-django', price=Decimal('4999.00'),
        )

    def assertCounters(self, course, count, revenue):
        course.refresh_from_db()
        self.assertEqual(course.enrollment_count, count)
        self.assertEqual(course.total_revenue, Decimal(revenue))


# ═════════════════════════════════════════════════════════════════════════════
# 1. LEDGER
# ═════════════════════════════════════════════════════════════════════════════

class LedgerTests(EnrollmentTestBase):

    def test_insert_creates_row(self):
        enrollment = ledger_service.insert(self.student, self.free_course, Decimal('0.00'))
        self.assertEqual(enrollment.source, EnrollmentSource.SELF_SERVICE)
        self.assertIsNone(enrollment.payment_reference)

    def test_second_insert_for_pair_is_duplicate(self):
        ledger_service.insert(self.student, self.free_course, Decimal('0.00'))
        with self.assertRaises(DuplicateEnrollment):
            ledger_service.insert(self.student, self.free_course, Decimal('0.00'))
        self.assertEqual(Enrollment.objects.count(), 1)

    def test_other_integrity_error_is_transaction_failed(self):
        with mock.patch.object(
            Enrollment.objects, 'create',
            side_effect=IntegrityError('FOREIGN KEY constraint failed'),
        ), self.assertLogs('enrollments.services.ledger_service', level='ERROR'):
            with self.assertRaises(TransactionFailed):
                ledger_service.insert(self.student, self.free_course, Decimal('0.00'))

    def test_find_missing_pair_returns_none(self):
        self.assertIsNone(
            ledger_service.find_by_user_and_course(self.student.pk, self.free_course.pk)
        )

    def test_list_by_user_newest_first(self):
        older = ledger_service.insert(self.student, self.free_course, Decimal('0.00'))
        newer = ledger_service.insert(
            self.student, self.paid_course, Decimal('4999.00'), payment_reference='pi_1',
        )
        Enrollment.objects.filter(pk=older.pk).update(
            enrolled_at=timezone.now() - timedelta(days=3),
        )
        ids = [e.pk for e in ledger_service.list_by_user(self.student.pk)]
        self.assertEqual(ids, [newer.pk, older.pk])


# ═════════════════════════════════════════════════════════════════════════════
# 2. INTAKE GATEWAY
# ═════════════════════════════════════════════════════════════════════════════

class IntakeGatewayTests(EnrollmentTestBase):

    def test_free_enrollment_updates_counters_and_activity(self):
        result = intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertTrue(result.created)
        self.assertEqual(result.enrollment.amount_paid, Decimal('0.00'))
        self.assertCounters(self.free_course, 1, '0.00')

        activity = Activity.objects.get()
        self.assertEqual(activity.actor_id, self.student.pk)
        self.assertEqual(activity.actor_name, 'Amina Raza')
        self.assertEqual(activity.type, ActivityType.ENROLLMENT)
        self.assertEqual(activity.course_id, self.free_course.pk)
        self.assertIn('Intro to Python', activity.action)

    def test_repeat_enrollment_is_idempotent(self):
        first = intake_service.enroll(self.student.pk, self.free_course.pk)
        second = intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertFalse(second.created)
        self.assertEqual(first.enrollment.pk, second.enrollment.pk)
        self.assertCounters(self.free_course, 1, '0.00')
        self.assertEqual(Activity.objects.count(), 1)

    def test_lost_race_returns_existing_row_without_touching_counters(self):
        existing = Enrollment.objects.create(
            user=self.student, course=self.free_course, amount_paid=Decimal('0.00'),
        )
        result = intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertFalse(result.created)
        self.assertEqual(result.enrollment.pk, existing.pk)
        self.assertCounters(self.free_course, 0, '0.00')
        self.assertFalse(Activity.objects.exists())

    def test_paid_course_rejected_on_self_service_path(self):
        for reference in [None, 'made-up-ref']:
            with self.subTest(reference=reference):
                with self.assertRaises(EnrollmentValidationError):
                    intake_service.enroll(
                        self.student.pk, self.paid_course.pk, '4999.00', reference,
                    )
        self.assertFalse(Enrollment.objects.exists())
        self.assertFalse(Activity.objects.exists())
        self.assertCounters(self.paid_course, 0, '0.00')

    def test_payment_source_records_amount(self):
        result = intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_123',
            source=EnrollmentSource.PAYMENT,
        )
        self.assertTrue(result.created)
        self.assertEqual(result.enrollment.payment_reference, 'pi_123')
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_amount_must_match_price(self):
        with self.assertRaises(InvalidAmount):
            intake_service.enroll(
                self.student.pk, self.paid_course.pk, '10.00', 'pi_1',
                source=EnrollmentSource.PAYMENT,
            )
        with self.assertRaises(InvalidAmount):
            intake_service.enroll(self.student.pk, self.free_course.pk, '5.00')
        self.assertCounters(self.paid_course, 0, '0.00')

    def test_malformed_amounts_rejected(self):
        for amount in ['-1', '0.001', 'abc', 'NaN']:
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmount):
                    intake_service.enroll(self.student.pk, self.free_course.pk, amount)

    def test_equivalent_amount_representations_accepted(self):
        result = intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.000', 'pi_1',
            source=EnrollmentSource.PAYMENT,
        )
        self.assertEqual(result.enrollment.amount_paid, Decimal('4999.00'))

    def test_unknown_or_malformed_ids_not_found(self):
        with self.assertRaises(NotFound):
            intake_service.enroll(self.student.pk, '00000000-0000-0000-0000-000000000000')
        with self.assertRaises(NotFound):
            intake_service.enroll(self.student.pk, 'not-a-uuid')
        with self.assertRaises(NotFound):
            intake_service.enroll('not-a-uuid', self.free_course.pk)

    def test_admin_cannot_enroll(self):
        with self.assertRaises(NotFound):
            intake_service.enroll(self.admin.pk, self.free_course.pk)
        self.assertFalse(Enrollment.objects.exists())

    def test_conflicting_self_service_resubmission(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1',
            source=EnrollmentSource.PAYMENT,
        )
        Course.objects.filter(pk=self.paid_course.pk).update(price=Decimal('0.00'))

        with self.assertRaises(EnrollmentConflict):
            intake_service.enroll(self.student.pk, self.paid_course.pk)
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_broken_reference_leaves_no_partial_state(self):
        with mock.patch.object(
            Enrollment.objects, 'create',
            side_effect=IntegrityError('FOREIGN KEY constraint failed'),
        ):
            with self.assertRaises(TransactionFailed):
                intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertCounters(self.free_course, 0, '0.00')
        self.assertFalse(Activity.objects.exists())

    def test_activity_failure_does_not_fail_enrollment(self):
        with mock.patch.object(
            Activity.objects, 'create', side_effect=DatabaseError('activity table locked'),
        ), self.assertLogs('enrollments.services.activity_service', level='ERROR'):
            result = intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertTrue(result.created)
        self.assertCounters(self.free_course, 1, '0.00')
        self.assertFalse(Activity.objects.exists())


class ManualEnrollmentTests(EnrollmentTestBase):

    def test_manual_enrollment_is_free(self):
        result = intake_service.manual_enroll('student@test.com', self.paid_course.pk, actor=self.admin)

        self.assertTrue(result.created)
        self.assertEqual(result.enrollment.amount_paid, Decimal('0.00'))
        self.assertEqual(result.enrollment.source, EnrollmentSource.MANUAL)
        self.assertCounters(self.paid_course, 1, '0.00')
        self.assertEqual(Activity.objects.get().metadata['granted_by'], str(self.admin.pk))

    def test_email_lookup_ignores_case_and_whitespace(self):
        result = intake_service.manual_enroll('  STUDENT@Test.com ', self.free_course.pk)
        self.assertEqual(result.enrollment.user, self.student)

    def test_admin_email_not_found(self):
        with self.assertRaises(NotFound):
            intake_service.manual_enroll('admin@test.com', self.free_course.pk)

    def test_unknown_email_not_found(self):
        with self.assertRaises(NotFound):
            intake_service.manual_enroll('ghost@test.com', self.free_course.pk)

    def test_manual_after_paid_enrollment_keeps_paid_record(self):
        paid = intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        result = intake_service.manual_enroll(self.student.email, self.paid_course.pk)

        self.assertFalse(result.created)
        self.assertEqual(result.enrollment.pk, paid.enrollment.pk)
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_free_and_manual_scenario(self):
        intake_service.enroll(self.student.pk, self.free_course.pk)
        intake_service.enroll(self.student.pk, self.free_course.pk)
        self.assertCounters(self.free_course, 1, '0.00')

        intake_service.manual_enroll(self.student.email, self.paid_course.pk)
        self.assertCounters(self.paid_course, 1, '0.00')


class ActivityTests(EnrollmentTestBase):

    def test_recent_is_newest_first_and_bounded(self):
        now = timezone.now()
        for i in range(5):
            Activity.objects.create(
                actor_id=self.student.pk, actor_name='Amina', action=f'action {i}',
                timestamp=now - timedelta(minutes=i),
            )
        entries = activity_service.recent(3)
        self.assertEqual([e.action for e in entries], ['action 0', 'action 1', 'action 2'])
        self.assertEqual(len(activity_service.recent(1000)), 5)

    def test_entries_are_append_only(self):
        entry = activity_service.record(self.student.pk, 'Amina', 'did something')
        entry.action = 'rewritten'
        with self.assertRaises(ImmutableRecord):
            entry.save()
        with self.assertRaises(ImmutableRecord):
            entry.delete()


# ═════════════════════════════════════════════════════════════════════════════
# 3. TRANSACTION RETRY
# ═════════════════════════════════════════════════════════════════════════════

@override_settings(ENROLLMENT_RETRY_BACKOFF=0)
class TransactionRetryTests(EnrollmentTestBase):

    def test_transient_error_retried(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError('database is locked')
            return 'ok'

        self.assertEqual(run_atomic(flaky), 'ok')
        self.assertEqual(len(calls), 3)

    def test_retry_budget_exhausted(self):
        def always_locked():
            raise OperationalError('deadlock detected')

        with self.assertRaises(TransactionFailed):
            run_atomic(always_locked, attempts=2)

    def test_constraint_failure_not_retried(self):
        calls = []

        def rejected():
            calls.append(1)
            raise IntegrityError('FOREIGN KEY constraint failed')

        with self.assertRaises(TransactionFailed):
            run_atomic(rejected)
        self.assertEqual(len(calls), 1)

    def test_enrollment_retried_as_a_whole(self):
        real_apply = intake_service.counters_service.apply_enrollment
        calls = []

        def apply_once_locked(course_id, amount):
            calls.append(course_id)
            if len(calls) == 1:
                raise OperationalError('could not serialize access')
            real_apply(course_id, amount)

        with mock.patch.object(
            intake_service.counters_service, 'apply_enrollment', side_effect=apply_once_locked,
        ):
            result = intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertTrue(result.created)
        self.assertEqual(Enrollment.objects.count(), 1)
        self.assertEqual(Activity.objects.count(), 1)
        self.assertCounters(self.free_course, 1, '0.00')

    def test_exhausted_enrollment_leaves_no_partial_state(self):
        with mock.patch.object(
            intake_service.counters_service, 'apply_enrollment',
            side_effect=OperationalError('lock timeout'),
        ):
            with self.assertRaises(TransactionFailed):
                intake_service.enroll(self.student.pk, self.free_course.pk)

        self.assertFalse(Enrollment.objects.exists())
        self.assertFalse(Activity.objects.exists())
        self.assertCounters(self.free_course, 0, '0.00')


# ═════════════════════════════════════════════════════════════════════════════
# 4. PAYMENT VERIFICATION
# ═════════════════════════════════════════════════════════════════════════════

class PaymentVerificationTests(FakeProcessorMixin, EnrollmentTestBase):

    def test_verify_completed_session(self):
        FakePaymentProcessor.add_session(
            'cs_1', course=self.paid_course, user=self.student, payment_reference='pi_1',
        )
        result = payment_service.verify(
            self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor,
        )

        self.assertTrue(result.created)
        self.assertEqual(result.enrollment.source, EnrollmentSource.PAYMENT)
        self.assertEqual(result.enrollment.payment_reference, 'pi_1')
        self.assertEqual(result.enrollment.amount_paid, Decimal('4999.00'))
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_reference_falls_back_to_session_id(self):
        FakePaymentProcessor.add_session('cs_2', course=self.paid_course, user=self.student)
        result = payment_service.verify(
            self.student.pk, 'cs_2', self.paid_course.pk, processor=self.processor,
        )
        self.assertEqual(result.enrollment.payment_reference, 'cs_2')

    def test_double_verify_single_enrollment(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        first = payment_service.verify(self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor)
        second = payment_service.verify(self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor)

        self.assertTrue(first.created)
        self.assertFalse(second.created)
        self.assertEqual(first.enrollment.pk, second.enrollment.pk)
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_unknown_session(self):
        with self.assertRaises(NotFound):
            payment_service.verify(self.student.pk, 'cs_missing', self.paid_course.pk, processor=self.processor)

    def test_pending_session_not_confirmed(self):
        FakePaymentProcessor.add_session(
            'cs_1', course=self.paid_course, user=self.student, status='unpaid',
        )
        with self.assertRaises(PaymentNotConfirmed):
            payment_service.verify(self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor)
        self.assertFalse(Enrollment.objects.exists())

    def test_session_for_other_course(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        with self.assertRaises(PaymentMismatch):
            payment_service.verify(self.student.pk, 'cs_1', self.free_course.pk, processor=self.processor)

    def test_session_for_other_user(self):
        other = User.objects.create_user(email='other@test.com')
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=other)
        with self.assertRaises(PaymentMismatch):
            payment_service.verify(self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor)

    def test_session_amount_must_match_price(self):
        FakePaymentProcessor.add_session(
            'cs_1', course=self.paid_course, user=self.student, amount='10.00',
        )
        with self.assertRaises(PaymentMismatch):
            payment_service.verify(self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor)
        self.assertCounters(self.paid_course, 0, '0.00')

    def test_session_without_user_enrolls_caller(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course)
        result = payment_service.verify(
            self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor,
        )
        self.assertEqual(result.enrollment.user, self.student)

    def test_webhook_then_verify(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        payload = '{"type": "checkout.session.completed", "session_id": "cs_1"}'

        hooked = payment_service.handle_webhook(
            payload, FakePaymentProcessor.VALID_SIGNATURE, processor=self.processor,
        )
        verified = payment_service.verify(
            self.student.pk, 'cs_1', self.paid_course.pk, processor=self.processor,
        )

        self.assertTrue(hooked.created)
        self.assertFalse(verified.created)
        self.assertCounters(self.paid_course, 1, '4999.00')

    def test_webhook_ignores_other_events(self):
        payload = '{"type": "payment_intent.created", "session_id": "cs_1"}'
        self.assertIsNone(payment_service.handle_webhook(
            payload, FakePaymentProcessor.VALID_SIGNATURE, processor=self.processor,
        ))

    def test_webhook_bad_signature(self):
        with self.assertRaises(WebhookSignatureError):
            payment_service.handle_webhook('{}', 'forged', processor=self.processor)

    def test_create_checkout_uses_course_price(self):
        checkout = payment_service.create_checkout(
            self.student, self.paid_course.pk, processor=self.processor,
        )
        self.assertTrue(checkout.url.startswith('https://checkout.test/'))
        self.assertEqual(FakePaymentProcessor.checkouts[0]['amount'], Decimal('4999.00'))

    def test_create_checkout_rejects_free_course(self):
        with self.assertRaises(EnrollmentValidationError):
            payment_service.create_checkout(self.student, self.free_course.pk, processor=self.processor)

    def test_create_checkout_rejects_enrolled_user(self):
        intake_service.manual_enroll(self.student.email, self.paid_course.pk)
        with self.assertRaises(EnrollmentValidationError):
            payment_service.create_checkout(self.student, self.paid_course.pk, processor=self.processor)

    def test_processor_state_cleared_after_each_test(self):
        self.assertIsInstance(get_payment_processor(), FakePaymentProcessor)
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        payment_service.create_checkout(self.student, self.paid_course.pk, processor=self.processor)

        self.doCleanups()

        self.assertEqual(FakePaymentProcessor.sessions, {})
        self.assertEqual(FakePaymentProcessor.checkouts, [])


# ═════════════════════════════════════════════════════════════════════════════
# 5. STRIPE ADAPTER
# ═════════════════════════════════════════════════════════════════════════════

@override_settings(STRIPE_SECRET_KEY='sk_test_123', STRIPE_WEBHOOK_SECRET='whsec_123')
class StripeProcessorTests(EnrollmentTestBase):

    def stripe_session(self, **overrides):
        fields = {
            'id': 'cs_live_1',
            'payment_status': 'paid',
            'amount_total': 499900,
            'payment_intent': 'pi_live_1',
            'client_reference_id': str(self.student.pk),
            'metadata': SimpleNamespace(
                course_id=str(self.paid_course.pk), user_id=str(self.student.pk),
            ),
        }
        fields.update(overrides)
        return SimpleNamespace(**fields)

    @mock.patch('enrollments.providers.stripe.checkout.Session.retrieve')
    def test_get_session_maps_fields(self, retrieve):
        retrieve.return_value = self.stripe_session()
        session = StripePaymentProcessor().get_session('cs_live_1')

        retrieve.assert_called_once_with('cs_live_1', api_key='sk_test_123')
        self.assertEqual(session.status, COMPLETED)
        self.assertEqual(session.amount, Decimal('4999.00'))
        self.assertEqual(session.course_id, str(self.paid_course.pk))
        self.assertEqual(session.payment_reference, 'pi_live_1')

    @mock.patch('enrollments.providers.stripe.checkout.Session.retrieve')
    def test_unpaid_session_not_completed(self, retrieve):
        retrieve.return_value = self.stripe_session(payment_status='unpaid', payment_intent=None)
        session = StripePaymentProcessor().get_session('cs_live_1')
        self.assertEqual(session.status, 'unpaid')
        self.assertEqual(session.payment_reference, 'cs_live_1')

    @mock.patch('enrollments.providers.stripe.checkout.Session.retrieve')
    def test_unknown_session_is_none(self, retrieve):
        retrieve.side_effect = stripe.InvalidRequestError('No such checkout.session', 'id')
        self.assertIsNone(StripePaymentProcessor().get_session('cs_nope'))

    @mock.patch('enrollments.providers.stripe.checkout.Session.retrieve')
    def test_provider_failure(self, retrieve):
        retrieve.side_effect = stripe.APIConnectionError('network down')
        with self.assertRaises(PaymentProviderError):
            StripePaymentProcessor().get_session('cs_live_1')

    @mock.patch('enrollments.providers.stripe.checkout.Session.create')
    def test_create_session_carries_intent(self, create):
        create.return_value = SimpleNamespace(id='cs_new', url='https://checkout.stripe.com/c/cs_new')
        checkout = StripePaymentProcessor().create_session(
            course=self.paid_course, user=self.student, amount=Decimal('4999.00'),
            success_url='https://app.test/ok', cancel_url='https://app.test/cancel',
        )

        self.assertEqual(checkout.id, 'cs_new')
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs['line_items'][0]['price_data']['unit_amount'], 499900)
        self.assertEqual(kwargs['line_items'][0]['price_data']['currency'], 'pkr')
        self.assertEqual(kwargs['metadata']['course_id'], str(self.paid_course.pk))
        self.assertEqual(kwargs['metadata']['user_id'], str(self.student.pk))

    @mock.patch('enrollments.providers.stripe.Webhook.construct_event')
    def test_parse_completed_event(self, construct_event):
        construct_event.return_value = SimpleNamespace(
            type='checkout.session.completed',
            data=SimpleNamespace(object=self.stripe_session()),
        )
        session = StripePaymentProcessor().parse_event(b'{}', 't=1,v1=abc')

        construct_event.assert_called_once_with(b'{}', 't=1,v1=abc', 'whsec_123')
        self.assertEqual(session.id, 'cs_live_1')

    @mock.patch('enrollments.providers.stripe.Webhook.construct_event')
    def test_parse_other_event(self, construct_event):
        construct_event.return_value = SimpleNamespace(type='charge.refunded', data=None)
        self.assertIsNone(StripePaymentProcessor().parse_event(b'{}', 'sig'))

    @mock.patch('enrollments.providers.stripe.Webhook.construct_event')
    def test_parse_bad_signature(self, construct_event):
        construct_event.side_effect = stripe.SignatureVerificationError('bad signature', 'sig')
        with self.assertRaises(WebhookSignatureError):
            StripePaymentProcessor().parse_event(b'{}', 'sig')


# ═════════════════════════════════════════════════════════════════════════════
# 6. GROWTH ANALYTICS
# ═════════════════════════════════════════════════════════════════════════════

def at(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=dt_timezone.utc)


class GrowthFormulaTests(TestCase):

    def test_no_history_is_zero(self):
        self.assertEqual(growth(0, 0, 0), Decimal('0'))
        self.assertEqual(growth(25, 0, 0), Decimal('0'))

    def test_previous_month_base(self):
        self.assertEqual(growth(150, 100, 7), Decimal('50.00'))
        self.assertEqual(growth(50, 100, 0), Decimal('-50.00'))

    def test_fallback_base_when_previous_empty(self):
        self.assertEqual(growth(10, 0, 5), Decimal('100.00'))
        self.assertEqual(growth(0, 0, 4), Decimal('-100.00'))

    def test_halves_round_toward_positive(self):
        self.assertEqual(growth(2, 3, 0), Decimal('-33.33'))
        self.assertEqual(growth(Decimal('100.005'), 100, 0), Decimal('0.01'))
        self.assertEqual(growth(Decimal('112.345'), 100, 0), Decimal('12.35'))
        self.assertEqual(growth(Decimal('87.655'), 100, 0), Decimal('-12.34'))


@override_settings(TIME_ZONE='UTC')
class AnalyticsReportTests(EnrollmentTestBase):

    def setUp(self):
        super().setUp()
        self.now = at(2025, 3, 15)

    def make_student(self, email, joined):
        return User.objects.create_user(email=email, date_joined=joined)

    def make_enrollment(self, user, course, amount, enrolled_at):
        return Enrollment.objects.create(
            user=user, course=course, amount_paid=Decimal(amount), enrolled_at=enrolled_at,
        )

    def test_monthly_growth(self):
        march = [self.make_student(f'm{i}@test.com', at(2025, 3, i + 1)) for i in range(3)]
        feb = [self.make_student(f'f{i}@test.com', at(2025, 2, i + 1)) for i in range(2)]
        self.make_student('j0@test.com', at(2025, 1, 10))
        User.objects.create_user(
            email='newadmin@test.com', role=UserRole.ADMIN, date_joined=at(2025, 3, 2),
        )

        self.make_enrollment(march[0], self.paid_course, '4999.00', at(2025, 3, 3))
        self.make_enrollment(march[1], self.free_course, '0.00', at(2025, 3, 4))
        self.make_enrollment(feb[0], self.free_course, '0.00', at(2025, 1, 20))

        report = analytics_service.monthly_growth(now=self.now)

        self.assertEqual(report.current.students, 3)
        self.assertEqual(report.previous.students, 2)
        self.assertEqual(report.students, Decimal('50.00'))

        self.assertEqual(report.current.enrollments, 2)
        self.assertEqual(report.previous.enrollments, 0)
        self.assertEqual(report.fallback.enrollments, 1)
        self.assertEqual(report.enrollments, Decimal('100.00'))

        self.assertEqual(report.current.revenue, Decimal('4999.00'))
        self.assertEqual(report.revenue, Decimal('0'))

    def test_month_windows_cross_year(self):
        current, previous, fallback = analytics_service.month_windows(at(2025, 1, 31, 23))
        self.assertEqual(current, (at(2025, 1, 1, 0), at(2025, 2, 1, 0)))
        self.assertEqual(previous, (at(2024, 12, 1, 0), at(2025, 1, 1, 0)))
        self.assertEqual(fallback[0], at(2024, 11, 1, 0))

    def test_revenue_breakdown(self):
        buyer = self.make_student('buyer@test.com', at(2025, 1, 1))
        self.make_enrollment(buyer, self.paid_course, '4999.00', at(2025, 3, 10))
        self.make_enrollment(self.student, self.paid_course, '4999.00', at(2024, 11, 5))
        self.make_enrollment(buyer, self.free_course, '0.00', at(2025, 3, 10))

        breakdown = analytics_service.revenue_breakdown(now=self.now)

        self.assertEqual(len(breakdown['monthly']), 12)
        self.assertEqual(breakdown['monthly'][0]['month'], '2024-04')
        self.assertEqual(breakdown['monthly'][-1], {
            'month': '2025-03', 'revenue': Decimal('4999.00'), 'enrollments': 1,
        })
        november = next(m for m in breakdown['monthly'] if m['month'] == '2024-11')
        self.assertEqual(november['revenue'], Decimal('4999.00'))

        self.assertEqual(len(breakdown['daily']), 30)
        self.assertEqual(breakdown['daily'][-1]['date'], '2025-03-15')
        march_10 = next(d for d in breakdown['daily'] if d['date'] == '2025-03-10')
        self.assertEqual(march_10['enrollments'], 1)

    def test_top_courses_by_revenue(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        intake_service.enroll(self.student.pk, self.free_course.pk)

        top = analytics_service.top_courses()
        self.assertEqual(top[0], self.paid_course)

    def test_platform_totals(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        totals = analytics_service.platform_totals()

        self.assertEqual(totals['totalStudents'], 1)
        self.assertEqual(totals['totalCourses'], 2)
        self.assertEqual(totals['totalEnrollments'], 1)
        self.assertEqual(totals['totalRevenue'], Decimal('4999.00'))

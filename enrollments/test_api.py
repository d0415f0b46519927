"""
Enrollment API Tests: status codes, error bodies and permissions of the HTTP endpoints.
"""

import json
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.db import IntegrityError
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from enrollments.models import Activity, Course, Enrollment, EnrollmentSource
from enrollments.services import intake_service
from enrollments.testing import FakePaymentProcessor, FakeProcessorMixin
from users.models import User, UserRole


class APITestBase(APITestCase):

    def setUp(self):
        self.student = User.objects.create_user(
            email='student@test.com', password='testpass123',
            first_name='Bilal', last_name='Ahmed',
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
        self.client.force_authenticate(user=self.student)


# ─── Enrollment ──────────────────────────────────────────────────────────────

class EnrollmentAPITests(APITestBase):

    url = '/api/enrollments/'

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(self.url, {'courseId': str(self.free_course.pk)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_enroll_then_repeat(self):
        first = self.client.post(self.url, {'courseId': str(self.free_course.pk)}, format='json')
        second = self.client.post(self.url, {'courseId': str(self.free_course.pk)}, format='json')

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['id'], second.data['id'])
        self.assertEqual(first.data['course_title'], 'Intro to Python')

        self.free_course.refresh_from_db()
        self.assertEqual(self.free_course.enrollment_count, 1)

    def test_paid_course_with_unverified_reference(self):
        response = self.client.post(self.url, {
            'courseId': str(self.paid_course.pk),
            'amountPaid': '4999.00',
            'paymentReference': 'made-up-ref',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid')
        self.assertFalse(Enrollment.objects.exists())
        self.paid_course.refresh_from_db()
        self.assertEqual(self.paid_course.enrollment_count, 0)
        self.assertEqual(self.paid_course.total_revenue, Decimal('0.00'))

    def test_paid_course_without_reference(self):
        response = self.client.post(self.url, {
            'courseId': str(self.paid_course.pk), 'amountPaid': '4999.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid')

    def test_wrong_amount(self):
        response = self.client.post(self.url, {
            'courseId': str(self.free_course.pk), 'amountPaid': '1.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_amount')

    def test_conflicting_resubmission(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        Course.objects.filter(pk=self.paid_course.pk).update(price=Decimal('0.00'))

        response = self.client.post(self.url, {'courseId': str(self.paid_course.pk)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'conflict')

    def test_storage_rejection_is_typed(self):
        with mock.patch.object(
            Enrollment.objects, 'create',
            side_effect=IntegrityError('FOREIGN KEY constraint failed'),
        ):
            response = self.client.post(self.url, {'courseId': str(self.free_course.pk)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['code'], 'transaction_failed')

    def test_unknown_course(self):
        response = self.client.post(
            self.url, {'courseId': '00000000-0000-0000-0000-000000000000'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_malformed_course_id(self):
        response = self.client.post(self.url, {'courseId': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_my_enrollments(self):
        intake_service.enroll(self.student.pk, self.free_course.pk)
        intake_service.manual_enroll(self.student.email, self.paid_course.pk)
        Enrollment.objects.filter(course=self.free_course).update(
            enrolled_at=timezone.now() - timedelta(days=1),
        )

        response = self.client.get('/api/enrollments/my-enrollments/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(
            [e['course_slug'] for e in response.data['results']],
            ['advanced-django', 'intro-python'],
        )

    def test_check(self):
        intake_service.enroll(self.student.pk, self.free_course.pk)

        enrolled = self.client.get('/api/enrollments/check/', {'courseId': str(self.free_course.pk)})
        not_enrolled = self.client.get('/api/enrollments/check/', {'courseId': str(self.paid_course.pk)})
        invalid = self.client.get('/api/enrollments/check/', {'courseId': 'nope'})

        self.assertTrue(enrolled.data['isEnrolled'])
        self.assertEqual(enrolled.data['enrollment']['course_slug'], 'intro-python')
        self.assertFalse(not_enrolled.data['isEnrolled'])
        self.assertIsNone(not_enrolled.data['enrollment'])
        self.assertEqual(invalid.status_code, status.HTTP_400_BAD_REQUEST)


# ─── Payments ────────────────────────────────────────────────────────────────

class PaymentAPITests(FakeProcessorMixin, APITestBase):

    def verify(self, session_id, course):
        return self.client.post('/api/payments/verify-payment/', {
            'sessionId': session_id,
            'courseId': str(course.pk),
            'amountPaid': '1.00',
        }, format='json')

    def test_create_checkout(self):
        response = self.client.post(
            '/api/payments/create-checkout/', {'courseId': str(self.paid_course.pk)}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sessionId'], 'cs_test_1')
        self.assertIn('cs_test_1', response.data['url'])

    def test_create_checkout_free_course(self):
        response = self.client.post(
            '/api/payments/create-checkout/', {'courseId': str(self.free_course.pk)}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_verify_uses_session_amount(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        response = self.verify('cs_1', self.paid_course)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['amount_paid']), Decimal('4999.00'))
        self.assertEqual(response.data['source'], EnrollmentSource.PAYMENT)

    def test_verify_twice(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        first = self.verify('cs_1', self.paid_course)
        second = self.verify('cs_1', self.paid_course)

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(Enrollment.objects.count(), 1)

    def test_verify_pending(self):
        FakePaymentProcessor.add_session(
            'cs_1', course=self.paid_course, user=self.student, status='unpaid',
        )
        response = self.verify('cs_1', self.paid_course)
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertEqual(response.data['code'], 'payment_not_confirmed')

    def test_verify_mismatch(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        response = self.verify('cs_1', self.free_course)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'payment_mismatch')

    def test_verify_unknown_session(self):
        response = self.verify('cs_missing', self.paid_course)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_webhook_enrolls_without_authentication(self):
        FakePaymentProcessor.add_session('cs_1', course=self.paid_course, user=self.student)
        self.client.force_authenticate(user=None)

        response = self.client.post(
            '/api/payments/webhook/',
            data=json.dumps({'type': 'checkout.session.completed', 'session_id': 'cs_1'}),
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE=FakePaymentProcessor.VALID_SIGNATURE,
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['received'])
        self.assertTrue(Enrollment.objects.filter(user=self.student, course=self.paid_course).exists())

    def test_webhook_bad_signature(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(
            '/api/payments/webhook/', data='{}', content_type='application/json',
            HTTP_STRIPE_SIGNATURE='forged',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_signature')

    def test_webhook_acknowledges_unusable_session(self):
        FakePaymentProcessor.add_session(
            'cs_1', course=self.paid_course, user=self.student, amount='10.00',
        )
        response = self.client.post(
            '/api/payments/webhook/',
            data=json.dumps({'type': 'checkout.session.completed', 'session_id': 'cs_1'}),
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE=FakePaymentProcessor.VALID_SIGNATURE,
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Enrollment.objects.exists())


# ─── Admin ───────────────────────────────────────────────────────────────────

class AdminAPITests(APITestBase):

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.admin)

    def test_student_cannot_use_admin_endpoints(self):
        self.client.force_authenticate(user=self.student)
        for url in ['/api/admin/stats/', '/api/admin/activities/', '/api/admin/top-courses/']:
            with self.subTest(url=url):
                self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post('/api/admin/manual-enroll/', {
            'courseId': str(self.paid_course.pk), 'studentEmail': self.student.email,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manual_enroll(self):
        payload = {'courseId': str(self.paid_course.pk), 'studentEmail': 'Student@Test.com'}
        first = self.client.post('/api/admin/manual-enroll/', payload, format='json')
        second = self.client.post('/api/admin/manual-enroll/', payload, format='json')

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(first.data['amount_paid']), Decimal('0.00'))
        self.assertEqual(second.status_code, status.HTTP_200_OK)

        self.paid_course.refresh_from_db()
        self.assertEqual(self.paid_course.enrollment_count, 1)
        self.assertEqual(self.paid_course.total_revenue, Decimal('0.00'))

    def test_manual_enroll_unknown_student(self):
        response = self.client.post('/api/admin/manual-enroll/', {
            'courseId': str(self.paid_course.pk), 'studentEmail': 'admin@test.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stats(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        response = self.client.get('/api/admin/stats/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totalEnrollments'], 1)
        self.assertEqual(response.data['totalRevenue'], Decimal('4999.00'))
        self.assertEqual(set(response.data['monthlyGrowth']), {'students', 'revenue', 'enrollments'})
        self.assertEqual(response.data['currentMonth']['enrollments'], 1)
        self.assertIn('lastMonth', response.data)

    def test_activities(self):
        intake_service.enroll(self.student.pk, self.free_course.pk)
        intake_service.manual_enroll(self.student.email, self.paid_course.pk)

        response = self.client.get('/api/admin/activities/', {'limit': 1})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['user']['email'], 'student@test.com')
        self.assertEqual(Activity.objects.count(), 2)

    def test_revenue_stats(self):
        response = self.client.get('/api/admin/revenue-stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['monthly']), 12)
        self.assertEqual(len(response.data['daily']), 30)

    def test_top_courses(self):
        intake_service.enroll(
            self.student.pk, self.paid_course.pk, '4999.00', 'pi_1', source=EnrollmentSource.PAYMENT,
        )
        response = self.client.get('/api/admin/top-courses/')
        self.assertEqual(response.data[0]['slug'], 'advanced-django')


class CourseRosterAPITests(APITestBase):

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.admin)
        self.url = f'/api/admin/courses/{self.free_course.pk}/enrollments/'

        self.finished = User.objects.create_user(email='finished@test.com', first_name='Hina')
        self.halfway = User.objects.create_user(email='halfway@test.com', first_name='Omar')
        for user in (self.student, self.finished, self.halfway):
            intake_service.enroll(user.pk, self.free_course.pk)
        Enrollment.objects.filter(user=self.finished).update(progress=100)
        Enrollment.objects.filter(user=self.halfway).update(progress=40)

    def test_roster_lists_students(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['course']['slug'], 'intro-python')

    def test_status_filter(self):
        for value, email in [
            ('completed', 'finished@test.com'),
            ('in-progress', 'halfway@test.com'),
            ('not-started', 'student@test.com'),
        ]:
            with self.subTest(status=value):
                response = self.client.get(self.url, {'status': value})
                emails = [row['student_email'] for row in response.data['results']]
                self.assertEqual(emails, [email])

    def test_search(self):
        response = self.client.get(self.url, {'search': 'omar'})
        self.assertEqual([r['student_email'] for r in response.data['results']], ['halfway@test.com'])

    def test_pagination(self):
        response = self.client.get(self.url, {'limit': 2})
        self.assertEqual(len(response.data['results']), 2)
        self.assertIsNotNone(response.data['next'])

    def test_unknown_course(self):
        response = self.client.get('/api/admin/courses/00000000-0000-0000-0000-000000000000/enrollments/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

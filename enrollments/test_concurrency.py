"""
Concurrency Tests: simultaneous enrollments for the same (user, course).

Uses real threads with their own database connections, so these need a
file-backed SQLite database or PostgreSQL (see DATABASES['default']['TEST']).
"""

import threading
from decimal import Decimal

from django.db import connection
from django.test import TransactionTestCase

from enrollments.models import Activity, Course, Enrollment, EnrollmentSource
from enrollments.services import intake_service
from users.models import User


class ConcurrentEnrollmentTests(TransactionTestCase):

    def setUp(self):
        if connection.vendor == 'sqlite' and connection.is_in_memory_db():
            self.skipTest('Threaded tests need a file-backed or server database.')

        self.student = User.objects.create_user(email='racer@test.com')
        self.free_course = Course.objects.create(
            title='Intro to Python', slug='intro-python', price=Decimal('0.00'),
        )
        self.paid_course = Course.objects.create(
            title='Advanced Django', slug='advanced-django', price=Decimal('4999.00'),
        )

    def run_concurrently(self, calls):
        """Start every call at the same moment; return (results, errors)."""
        barrier = threading.Barrier(len(calls))
        lock = threading.Lock()
        results, errors = [], []

        def worker(fn):
            try:
                barrier.wait()
                result = fn()
                with lock:
                    results.append(result)
            except Exception as e:
                with lock:
                    errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(fn,)) for fn in calls]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_same_pair_yields_single_enrollment(self):
        calls = [
            lambda: intake_service.enroll(self.student.pk, self.free_course.pk)
            for _ in range(8)
        ]
        results, errors = self.run_concurrently(calls)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 8)
        self.assertEqual(len({r.enrollment.pk for r in results}), 1)
        self.assertEqual(sum(r.created for r in results), 1)

        self.free_course.refresh_from_db()
        self.assertEqual(Enrollment.objects.count(), 1)
        self.assertEqual(self.free_course.enrollment_count, 1)
        self.assertEqual(Activity.objects.count(), 1)

    def test_entry_paths_converge(self):
        email = self.student.email
        calls = []
        for i in range(6):
            if i % 2:
                calls.append(lambda: intake_service.manual_enroll(email, self.paid_course.pk))
            else:
                calls.append(lambda: intake_service.enroll(
                    self.student.pk, self.paid_course.pk, '4999.00', 'pi_race',
                    source=EnrollmentSource.PAYMENT,
                ))
        results, errors = self.run_concurrently(calls)

        self.assertEqual(errors, [])
        self.assertEqual(len({r.enrollment.pk for r in results}), 1)

        enrollment = Enrollment.objects.get()
        self.paid_course.refresh_from_db()
        self.assertEqual(self.paid_course.enrollment_count, 1)
        self.assertEqual(self.paid_course.total_revenue, enrollment.amount_paid)

    def test_distinct_users_all_counted(self):
        students = [User.objects.create_user(email=f'student{i}@test.com') for i in range(6)]
        calls = [
            (lambda user=user: intake_service.enroll(
                user.pk, self.paid_course.pk, '4999.00', f'pi_{user.pk}',
                source=EnrollmentSource.PAYMENT,
            ))
            for user in students
        ]
        results, errors = self.run_concurrently(calls)

        self.assertEqual(errors, [])
        self.assertTrue(all(r.created for r in results))

        self.paid_course.refresh_from_db()
        self.assertEqual(self.paid_course.enrollment_count, 6)
        self.assertEqual(self.paid_course.total_revenue, Decimal('4999.00') * 6)

"""
Users Tests: user manager lookups and bearer-token authentication.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import jwt
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from rest_framework import exceptions
from rest_framework.test import APITestCase

from users.authentication import JWTIdentityAuthentication
from users.models import User, UserRole, UserStatus

SECRET = 'test-jwt-secret'


def make_token(user_id, secret=SECRET, **claims):
    payload = {
        'sub': str(user_id),
        'exp': datetime.now(dt_timezone.utc) + timedelta(minutes=5),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm='HS256')


class UserManagerTests(TestCase):

    def setUp(self):
        self.student = User.objects.create_user(email='Student@Test.com', first_name='Zara')
        self.admin = User.objects.create_user(email='admin@test.com', role=UserRole.ADMIN)

    def test_email_unique_regardless_of_case(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            User.objects.create_user(email='student@test.com')

    def test_get_student_by_email(self):
        self.assertEqual(User.objects.get_student_by_email(' STUDENT@test.com '), self.student)

    def test_admin_is_not_a_student(self):
        with self.assertRaises(User.DoesNotExist):
            User.objects.get_student_by_email('admin@test.com')
        self.assertNotIn(self.admin, User.objects.students())

    def test_names(self):
        self.assertEqual(self.student.full_name, 'Zara')
        self.assertEqual(self.admin.full_name, 'admin')
        self.assertTrue(self.admin.is_admin)
        self.assertFalse(self.student.is_admin)

    def test_superuser_defaults(self):
        root = User.objects.create_superuser(email='root@test.com', password='testpass123')
        self.assertEqual(root.role, UserRole.SUPER_ADMIN)
        self.assertTrue(root.is_staff)
        self.assertTrue(root.check_password('testpass123'))


@override_settings(JWT_SECRET=SECRET, JWT_AUDIENCE='')
class JWTAuthenticationTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='student@test.com')
        self.auth = JWTIdentityAuthentication()

    def test_valid_token(self):
        token = make_token(self.user.pk)
        user, returned = self.auth.authenticate_token(token)
        self.assertEqual(user, self.user)
        self.assertEqual(returned, token)

    def test_id_claim_accepted(self):
        token = jwt.encode({'id': str(self.user.pk)}, SECRET, algorithm='HS256')
        user, _ = self.auth.authenticate_token(token)
        self.assertEqual(user, self.user)

    def test_wrong_secret(self):
        with self.assertRaises(exceptions.AuthenticationFailed):
            self.auth.authenticate_token(make_token(self.user.pk, secret='other-secret'))

    def test_expired_token(self):
        token = make_token(self.user.pk, exp=datetime.now(dt_timezone.utc) - timedelta(minutes=1))
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'expired'):
            self.auth.authenticate_token(token)

    def test_unknown_user(self):
        with self.assertRaises(exceptions.AuthenticationFailed):
            self.auth.authenticate_token(make_token('00000000-0000-0000-0000-000000000000'))

    def test_suspended_user(self):
        self.user.status = UserStatus.SUSPENDED
        self.user.save()
        with self.assertRaises(exceptions.AuthenticationFailed):
            self.auth.authenticate_token(make_token(self.user.pk))

    @override_settings(JWT_AUDIENCE='authenticated')
    def test_audience_checked_when_configured(self):
        with self.assertRaises(exceptions.AuthenticationFailed):
            self.auth.authenticate_token(make_token(self.user.pk))
        user, _ = self.auth.authenticate_token(make_token(self.user.pk, aud='authenticated'))
        self.assertEqual(user, self.user)

    @override_settings(JWT_SECRET='')
    def test_missing_secret_rejects(self):
        with self.assertRaises(exceptions.AuthenticationFailed), \
                self.assertLogs('users.authentication', level='ERROR'):
            self.auth.authenticate_token(make_token(self.user.pk))


@override_settings(JWT_SECRET=SECRET)
class BearerHeaderTests(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='student@test.com')

    def test_bearer_header_authenticates(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {make_token(self.user.pk)}')
        response = self.client.get('/api/enrollments/my-enrollments/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 0)

    def test_malformed_header(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer a b')
        response = self.client.get('/api/enrollments/my-enrollments/')
        self.assertEqual(response.status_code, 401)

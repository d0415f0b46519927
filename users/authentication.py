"""
Bearer-token identity verification for the REST API.

Session and token issuance live with the identity provider; this module only
turns an ``Authorization: Bearer <jwt>`` header into a ``User``:

1. Verify the HS256 signature with ``settings.JWT_SECRET``
2. Read the user id from the ``sub`` claim (``id`` is accepted too)
3. Load the matching active user
"""

import logging
import os
import uuid

import jwt
from django.conf import settings
from rest_framework import authentication, exceptions

from users.models import User, UserStatus

logger = logging.getLogger(__name__)


# =============================================================================
# JWT AUTHENTICATION
# =============================================================================

class JWTIdentityAuthentication(authentication.BaseAuthentication):
    """
    Authenticate requests carrying a JWT issued by the identity provider.

    Usage in settings.py:
        REST_FRAMEWORK = {
            'DEFAULT_AUTHENTICATION_CLASSES': [
                'users.authentication.JWTIdentityAuthentication',
            ],
        }

    Expected header:
        Authorization: Bearer <jwt>
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        """
        Authenticate the request and return a tuple of (user, token).
        """
        auth_header = authentication.get_authorization_header(request)

        if not auth_header:
            return None

        try:
            auth_parts = auth_header.decode('utf-8').split()
        except UnicodeDecodeError:
            raise exceptions.AuthenticationFailed('Invalid token header encoding.')

        if len(auth_parts) == 0:
            return None

        if auth_parts[0].lower() != self.keyword.lower():
            return None

        if len(auth_parts) == 1:
            raise exceptions.AuthenticationFailed('Invalid token header. No credentials provided.')

        if len(auth_parts) > 2:
            raise exceptions.AuthenticationFailed('Invalid token header. Token should not contain spaces.')

        token = auth_parts[1]
        return self.authenticate_token(token)

    def authenticate_token(self, token):
        try:
            payload = self.decode_token(token)
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired.')
        except jwt.InvalidTokenError as e:
            raise exceptions.AuthenticationFailed(f'Invalid token: {e}')

        user_id = payload.get('sub') or payload.get('id')
        if not user_id:
            raise exceptions.AuthenticationFailed('Invalid token: missing user ID.')

        return (self.get_user(user_id), token)

    def decode_token(self, token):
        """
        Decode and verify the JWT signature (and audience, when configured).
        """
        secret = getattr(settings, 'JWT_SECRET', None) or os.environ.get('JWT_SECRET')
        if not secret:
            logger.error('JWT_SECRET is not configured; rejecting bearer token')
            raise exceptions.AuthenticationFailed('Token verification is not configured.')

        audience = getattr(settings, 'JWT_AUDIENCE', '') or None
        return jwt.decode(
            token,
            secret,
            algorithms=['HS256'],
            audience=audience,
            options={'verify_aud': audience is not None},
        )

    def get_user(self, user_id):
        try:
            user = User.objects.get(pk=uuid.UUID(str(user_id)))
        except (ValueError, User.DoesNotExist):
            raise exceptions.AuthenticationFailed('User not found.')

        if not user.is_active or user.status in (UserStatus.SUSPENDED, UserStatus.DELETED):
            raise exceptions.AuthenticationFailed('User account is disabled.')

        return user

    def authenticate_header(self, request):
        """
        Return string to be used as the value of the WWW-Authenticate header.
        """
        return self.keyword

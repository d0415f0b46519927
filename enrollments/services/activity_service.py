"""
Activity Log — append-only feed shown on the admin dashboard.
"""

import logging

from django.db import transaction

from enrollments.models import Activity, ActivityType

logger = logging.getLogger(__name__)

DEFAULT_FEED_SIZE = 20
MAX_FEED_SIZE = 100


def record(user_id, user_name, action, course_id=None, *, user_email='',
           activity_type=ActivityType.ENROLLMENT, metadata=None):
    """
    Append one activity entry.

    The insert runs in a savepoint: if it fails the error is logged, the
    savepoint is rolled back and None is returned. The surrounding
    transaction carries on.
    """
    try:
        with transaction.atomic():
            return Activity.objects.create(
                actor_id=user_id,
                actor_name=user_name,
                actor_email=user_email or '',
                action=action,
                type=activity_type,
                course_id=course_id,
                metadata=metadata or {},
            )
    except Exception:
        logger.exception(
            'Failed to record activity for user %s (course %s)', user_id, course_id,
        )
        return None


def recent(limit=DEFAULT_FEED_SIZE):
    """Newest entries across all users."""
    limit = max(1, min(int(limit), MAX_FEED_SIZE))
    return list(Activity.objects.order_by('-timestamp')[:limit])

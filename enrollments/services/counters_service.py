"""
Aggregate counters on Course.

Only ever called from inside the enrollment transaction; F() expressions
let the database apply the increment against the current row value.
"""

from django.db.models import F

from enrollments.models import Course


def apply_enrollment(course_id, amount_paid) -> None:
    Course.objects.filter(pk=course_id).update(
        enrollment_count=F('enrollment_count') + 1,
        total_revenue=F('total_revenue') + amount_paid,
    )

"""
Enrollment Filters — django-filter filterset for the admin course roster.
"""

import django_filters
from django.db.models import Q

from enrollments.models import Enrollment

ROSTER_STATUSES = (
    ('completed', 'Completed'),
    ('in-progress', 'In progress'),
    ('not-started', 'Not started'),
)


class EnrollmentFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    status = django_filters.ChoiceFilter(choices=ROSTER_STATUSES, method='filter_status')

    class Meta:
        model = Enrollment
        fields = ['source']

    def filter_search(self, queryset, name, value):
        """Search student email and name."""
        return queryset.filter(
            Q(user__email__icontains=value)
            | Q(user__first_name__icontains=value)
            | Q(user__last_name__icontains=value)
        )

    def filter_status(self, queryset, name, value):
        if value == 'completed':
            return queryset.filter(progress__gte=100)
        if value == 'in-progress':
            return queryset.filter(progress__gt=0, progress__lt=100)
        return queryset.filter(progress=0)

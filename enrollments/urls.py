"""
Enrollment URL configuration.

All endpoints are prefixed with /api/ (set in root urls.py).
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from enrollments import views

router = DefaultRouter()
router.register(r'enrollments', views.EnrollmentViewSet, basename='enrollment')
router.register(r'payments', views.PaymentViewSet, basename='payment')
router.register(r'admin', views.AdminDashboardViewSet, basename='admin-dashboard')

urlpatterns = [
    path(
        'admin/courses/<uuid:course_id>/enrollments/',
        views.CourseRosterView.as_view(),
        name='admin-course-roster',
    ),
    path('', include(router.urls)),
]

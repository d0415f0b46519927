"""
Enrollment Views — DRF endpoints for enrollment intake, payments and the
admin dashboard.
"""

import logging

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from enrollments.exceptions import EnrollmentError, WebhookSignatureError
from enrollments.filters import EnrollmentFilter
from enrollments.models import Course, Enrollment
from enrollments.permissions import IsAdminOrSuperAdmin
from enrollments.serializers import (
    ActivitySerializer, CheckoutCreateSerializer, CourseSummarySerializer,
    EnrollmentCreateSerializer, EnrollmentSerializer, ManualEnrollmentSerializer,
    RosterEntrySerializer, VerifyPaymentSerializer,
)
from enrollments.services import (
    activity_service, analytics_service, intake_service, ledger_service,
    payment_service,
)

logger = logging.getLogger(__name__)


def error_response(exc: EnrollmentError):
    return Response(
        {'detail': exc.detail, 'code': exc.code},
        status=exc.status_code,
    )


def result_response(result):
    return Response(
        EnrollmentSerializer(result.enrollment).data,
        status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
    )


# ─── Enrollment ──────────────────────────────────────────────────────────────

@extend_schema_view(
    create=extend_schema(
        summary='Enroll in a course',
        request=EnrollmentCreateSerializer,
        responses={201: EnrollmentSerializer, 200: EnrollmentSerializer},
    ),
)
class EnrollmentViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = EnrollmentSerializer

    def get_queryset(self):
        return ledger_service.list_by_user(self.request.user.pk)

    def create(self, request, *args, **kwargs):
        ser = EnrollmentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            result = intake_service.enroll(
                request.user.pk,
                data['courseId'],
                data.get('amountPaid'),
                data.get('paymentReference') or None,
            )
        except EnrollmentError as e:
            return error_response(e)

        return result_response(result)

    @extend_schema(summary='List my enrollments', responses=EnrollmentSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='my-enrollments')
    def my_enrollments(self, request):
        enrollments = self.get_queryset()
        return Response({
            'count': enrollments.count(),
            'results': EnrollmentSerializer(enrollments, many=True).data,
        })

    @extend_schema(
        summary='Check whether I am enrolled in a course',
        parameters=[OpenApiParameter('courseId', str, required=True)],
    )
    @action(detail=False, methods=['get'])
    def check(self, request):
        course_id = intake_service.parse_id(request.query_params.get('courseId'))
        if course_id is None:
            return Response(
                {'detail': 'A valid courseId is required.', 'code': 'invalid'},
                status=status.HTTP_400_BAD_REQUEST,
            )

        enrollment = ledger_service.find_by_user_and_course(request.user.pk, course_id)
        return Response({
            'isEnrolled': enrollment is not None,
            'enrollment': EnrollmentSerializer(enrollment).data if enrollment else None,
        })


# ─── Payments ────────────────────────────────────────────────────────────────

class PaymentViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = VerifyPaymentSerializer

    @extend_schema(summary='Start a checkout for a paid course', request=CheckoutCreateSerializer)
    @action(detail=False, methods=['post'], url_path='create-checkout')
    def create_checkout(self, request):
        ser = CheckoutCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            checkout = payment_service.create_checkout(request.user, ser.validated_data['courseId'])
        except EnrollmentError as e:
            return error_response(e)

        return Response({'url': checkout.url, 'sessionId': checkout.id})

    @extend_schema(
        summary='Verify a completed checkout and enroll',
        request=VerifyPaymentSerializer,
        responses={201: EnrollmentSerializer, 200: EnrollmentSerializer},
    )
    @action(detail=False, methods=['post'], url_path='verify-payment')
    def verify_payment(self, request):
        ser = VerifyPaymentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            result = payment_service.verify(
                request.user.pk,
                ser.validated_data['sessionId'],
                ser.validated_data['courseId'],
            )
        except EnrollmentError as e:
            return error_response(e)

        return result_response(result)

    @extend_schema(summary='Payment processor webhook', request=None, responses=None)
    @action(
        detail=False, methods=['post'],
        permission_classes=[AllowAny], authentication_classes=[],
    )
    def webhook(self, request):
        signature = request.META.get('HTTP_STRIPE_SIGNATURE', '')

        try:
            result = payment_service.handle_webhook(request.body, signature)
        except WebhookSignatureError as e:
            return error_response(e)
        except EnrollmentError as e:
            if e.status_code >= 500:
                return error_response(e)
            logger.warning('Webhook checkout not enrolled: %s', e.detail)
            return Response({'received': True, 'detail': e.detail})

        return Response({
            'received': True,
            'enrollment': str(result.enrollment.pk) if result else None,
        })


# ─── Admin dashboard ─────────────────────────────────────────────────────────

class AdminDashboardViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated, IsAdminOrSuperAdmin]
    serializer_class = ManualEnrollmentSerializer

    @extend_schema(
        summary='Grant a student free access to a course',
        request=ManualEnrollmentSerializer,
        responses={201: EnrollmentSerializer, 200: EnrollmentSerializer},
    )
    @action(detail=False, methods=['post'], url_path='manual-enroll')
    def manual_enroll(self, request):
        ser = ManualEnrollmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            result = intake_service.manual_enroll(
                ser.validated_data['studentEmail'],
                ser.validated_data['courseId'],
                actor=request.user,
            )
        except EnrollmentError as e:
            return error_response(e)

        return result_response(result)

    @extend_schema(summary='Dashboard totals and month-over-month growth')
    @action(detail=False, methods=['get'])
    def stats(self, request):
        report = analytics_service.monthly_growth()
        return Response({
            **analytics_service.platform_totals(),
            'monthlyGrowth': {
                'students': report.students,
                'revenue': report.revenue,
                'enrollments': report.enrollments,
            },
            'currentMonth': _period(report.current),
            'lastMonth': _period(report.previous),
        })

    @extend_schema(
        summary='Recent activity feed',
        parameters=[OpenApiParameter('limit', int, required=False)],
        responses=ActivitySerializer(many=True),
    )
    @action(detail=False, methods=['get'])
    def activities(self, request):
        try:
            limit = int(request.query_params.get('limit', activity_service.DEFAULT_FEED_SIZE))
        except ValueError:
            limit = activity_service.DEFAULT_FEED_SIZE

        entries = activity_service.recent(limit)
        return Response(ActivitySerializer(entries, many=True).data)

    @extend_schema(summary='Monthly and daily revenue')
    @action(detail=False, methods=['get'], url_path='revenue-stats')
    def revenue_stats(self, request):
        return Response(analytics_service.revenue_breakdown())

    @extend_schema(summary='Top courses by revenue', responses=CourseSummarySerializer(many=True))
    @action(detail=False, methods=['get'], url_path='top-courses')
    def top_courses(self, request):
        return Response(CourseSummarySerializer(analytics_service.top_courses(), many=True).data)


def _period(figures):
    return {
        'students': figures.students,
        'enrollments': figures.enrollments,
        'revenue': figures.revenue,
    }


class RosterPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100


@extend_schema_view(get=extend_schema(summary='List the students enrolled in a course'))
class CourseRosterView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsAdminOrSuperAdmin]
    serializer_class = RosterEntrySerializer
    pagination_class = RosterPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = EnrollmentFilter

    def get_queryset(self):
        return (
            Enrollment.objects
            .filter(course_id=self.kwargs['course_id'])
            .select_related('user')
            .order_by('-enrolled_at', '-id')
        )

    def list(self, request, *args, **kwargs):
        course = Course.objects.filter(pk=self.kwargs['course_id']).first()
        if course is None:
            return Response(
                {'detail': 'Course not found.', 'code': 'not_found'},
                status=status.HTTP_404_NOT_FOUND,
            )

        response = super().list(request, *args, **kwargs)
        response.data['course'] = CourseSummarySerializer(course).data
        return response

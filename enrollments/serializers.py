"""
Enrollment Serializers — request validation and response shapes.

Request bodies use the camelCase keys the web client sends (``courseId``);
responses are snake_case model fields.
"""

from rest_framework import serializers

from enrollments.models import Activity, Course, Enrollment


# ─── Course ─────────────────────────────────────────────────────────────────

class CourseSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Course
        fields = [
            'id', 'title', 'slug', 'price', 'thumbnail', 'instructor_name',
            'enrollment_count', 'total_revenue',
        ]
        read_only_fields = fields


# ─── Enrollment ─────────────────────────────────────────────────────────────

class EnrollmentSerializer(serializers.ModelSerializer):
    course_title = serializers.CharField(source='course.title', read_only=True)
    course_slug = serializers.CharField(source='course.slug', read_only=True)
    course_price = serializers.DecimalField(
        source='course.price', max_digits=10, decimal_places=2, read_only=True,
    )
    course_thumbnail = serializers.CharField(source='course.thumbnail', read_only=True)

    class Meta:
        model = Enrollment
        fields = [
            'id', 'user', 'course', 'amount_paid', 'payment_reference', 'source',
            'progress', 'completed_lectures', 'enrolled_at',
            'course_title', 'course_slug', 'course_price', 'course_thumbnail',
        ]
        read_only_fields = fields


class EnrollmentCreateSerializer(serializers.Serializer):
    courseId = serializers.UUIDField()
    amountPaid = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True,
    )
    paymentReference = serializers.CharField(
        max_length=255, required=False, allow_blank=True, allow_null=True,
    )


class RosterEntrySerializer(serializers.ModelSerializer):
    """Enrollment row as listed on the admin course roster."""
    student_id = serializers.UUIDField(source='user.id', read_only=True)
    student_name = serializers.CharField(source='user.full_name', read_only=True)
    student_email = serializers.EmailField(source='user.email', read_only=True)
    status = serializers.SerializerMethodField()

    class Meta:
        model = Enrollment
        fields = [
            'id', 'student_id', 'student_name', 'student_email',
            'amount_paid', 'source', 'progress', 'status', 'enrolled_at',
        ]
        read_only_fields = fields

    def get_status(self, obj):
        if obj.progress >= 100:
            return 'completed'
        if obj.progress > 0:
            return 'in-progress'
        return 'not-started'


# ─── Payments ───────────────────────────────────────────────────────────────

class CheckoutCreateSerializer(serializers.Serializer):
    courseId = serializers.UUIDField()


class VerifyPaymentSerializer(serializers.Serializer):
    sessionId = serializers.CharField(max_length=255)
    courseId = serializers.UUIDField()


# ─── Admin ──────────────────────────────────────────────────────────────────

class ManualEnrollmentSerializer(serializers.Serializer):
    courseId = serializers.UUIDField()
    studentEmail = serializers.EmailField()


class ActivitySerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()

    class Meta:
        model = Activity
        fields = ['id', 'user', 'action', 'type', 'course_id', 'metadata', 'timestamp']
        read_only_fields = fields

    def get_user(self, obj):
        return {
            'id': str(obj.actor_id),
            'name': obj.actor_name,
            'email': obj.actor_email,
        }

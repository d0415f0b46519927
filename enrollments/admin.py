"""
Enrollment Admin

Enrollments are created only through the intake gateway, so the ledger,
the course counters and the activity feed are read-only here.
"""

from django.contrib import admin

from enrollments.models import Activity, Course, Enrollment


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['title', 'slug', 'price', 'enrollment_count', 'total_revenue', 'created_at']
    search_fields = ['title', 'slug']
    prepopulated_fields = {'slug': ('title',)}
    readonly_fields = ['id', 'enrollment_count', 'total_revenue', 'created_at', 'updated_at']
    fieldsets = (
        (None, {
            'fields': ('id', 'title', 'slug', 'description', 'thumbnail', 'instructor_name')
        }),
        ('Pricing', {
            'fields': ('price',)
        }),
        ('Stats', {
            'fields': ('enrollment_count', 'total_revenue')
        }),
        ('Dates', {
            'classes': ('collapse',),
            'fields': ('created_at', 'updated_at')
        }),
    )


class ReadOnlyAdmin(admin.ModelAdmin):

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Enrollment)
class EnrollmentAdmin(ReadOnlyAdmin):
    list_display = ['user', 'course', 'amount_paid', 'source', 'progress', 'enrolled_at']
    list_filter = ['source']
    raw_id_fields = ['user', 'course']
    search_fields = ['user__email', 'course__title', 'payment_reference']
    date_hierarchy = 'enrolled_at'


@admin.register(Activity)
class ActivityAdmin(ReadOnlyAdmin):
    list_display = ['actor_name', 'action', 'type', 'timestamp']
    list_filter = ['type']
    search_fields = ['actor_name', 'actor_email', 'action']
    date_hierarchy = 'timestamp'

"""
Enrollment Permissions

- ADMIN / SUPER_ADMIN: dashboard, manual enrollment, rosters
- Any authenticated user: their own enrollments and payments
"""

from rest_framework import permissions


class IsAdminOrSuperAdmin(permissions.BasePermission):
    """
    Permission for admin-only endpoints.
    Only ADMIN and SUPER_ADMIN roles can access.
    """
    message = "Only administrators can perform this action."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return getattr(request.user, 'is_admin', False)

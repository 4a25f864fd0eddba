from rest_framework import permissions


class IsStaffMember(permissions.BasePermission):
    """Wardens and admins."""
    message = 'Only wardens and admins can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_staff_member)


class IsAdminRole(permissions.BasePermission):
    """Hostel admins only (the role, not Django's is_staff flag)."""
    message = 'Only admins can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin)

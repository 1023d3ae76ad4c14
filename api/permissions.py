from rest_framework.permissions import BasePermission

ROLE_CUSTOMER = "CUSTOMER"
ROLE_SUPPORT = "SUPPORT"
ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"

STAFF_ROLES = (ROLE_SUPPORT, ROLE_MANAGER, ROLE_ADMIN)


def is_staff(user):
    return bool(user and user.is_authenticated and user.role in STAFF_ROLES)


def has_role(user, *roles):
    return bool(user and user.is_authenticated and user.role in roles)


class _RolePermission(BasePermission):
    roles = ()
    message = "Insufficient permissions"

    def has_permission(self, request, view):
        return has_role(request.user, *self.roles)


class IsStaff(_RolePermission):
    roles = STAFF_ROLES


class IsManager(_RolePermission):
    roles = (ROLE_MANAGER, ROLE_ADMIN)


class IsAdmin(_RolePermission):
    roles = (ROLE_ADMIN,)

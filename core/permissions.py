"""
Custom permission classes for role based access control.

The role comes from the authenticated user record only.  Relationship
checks (is this the assigned doctor, the owning patient...) live in the
service layer so that they can be folded into the not-found response.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

STAFF_ROLES = {"admin", "front_desk", "doctor", "lab_technician"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Allow access only to users with the administrator role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "admin"


class IsFrontDeskOrAdmin(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in {"admin", "front_desk"}


class IsDoctorRole(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "doctor"


class IsLabTechnicianRole(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "lab_technician"


class IsPatientRole(BasePermission):
    """Allow access only to users with the patient role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "patient"


class IsStaffRole(BasePermission):
    """Any hospital staff member (everyone but patients)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsAdminOrReadOnlyStaff(BasePermission):
    """Staff may read; only administrators may write."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        role = _role(request)
        if request.method in SAFE_METHODS:
            return role in STAFF_ROLES
        return role == "admin"

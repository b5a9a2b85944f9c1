"""
Django admin registrations for the core models.

Results and access grants are read-only here: their digests and statuses
may only change through the result lifecycle services.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    DoctorProfile,
    LabTechnicianProfile,
    LabTest,
    PatientAccess,
    PatientProfile,
    TestRequest,
    TestResult,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'role', 'is_active', 'is_staff', 'is_superuser')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'first_name', 'last_name', 'email')


@admin.register(PatientProfile)
class PatientProfileAdmin(admin.ModelAdmin):
    list_display = ('patient_number', 'first_name', 'last_name', 'phone', 'category', 'is_active')
    list_filter = ('category', 'gender', 'is_active')
    search_fields = ('first_name', 'last_name', 'email', 'phone', 'patient_number')


@admin.register(DoctorProfile)
class DoctorProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'specialization', 'license_number')
    search_fields = ('user__username', 'specialization', 'license_number')


@admin.register(LabTechnicianProfile)
class LabTechnicianProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'certification', 'certification_number')
    search_fields = ('user__username', 'certification_number')


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'category', 'price', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('code', 'name')


@admin.register(TestRequest)
class TestRequestAdmin(admin.ModelAdmin):
    list_display = ('request_number', 'patient', 'test', 'doctor', 'lab_technician', 'priority', 'status', 'created_at')
    list_filter = ('status', 'priority')
    search_fields = ('request_number', 'patient__first_name', 'patient__last_name')
    readonly_fields = ('status', 'assigned_at', 'started_at', 'completed_at')


@admin.register(TestResult)
class TestResultAdmin(admin.ModelAdmin):
    list_display = ('id', 'test_request', 'result_type', 'status', 'lab_technician', 'approved_by', 'submitted_at')
    list_filter = ('status', 'result_type')
    search_fields = ('test_request__request_number', 'result_hash')

    def has_change_permission(self, request, obj=None):
        return False

    def has_add_permission(self, request):
        return False


@admin.register(PatientAccess)
class PatientAccessAdmin(admin.ModelAdmin):
    list_display = ('id', 'test_result', 'patient', 'expires_at', 'delivered_at')
    exclude = ('access_code_hash',)

    def has_change_permission(self, request, obj=None):
        return False

    def has_add_permission(self, request):
        return False


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'ip', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('action', 'user__username')

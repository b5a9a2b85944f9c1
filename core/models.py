"""
Database models for the medlab backend.

These models capture the directory (users, patients, staff role records),
the diagnostic test catalog, test requests and their lab results, the
short-lived patient access grants that release an approved result, and
the audit trail.  ``TestRequest`` is the spine of the workflow:
``TestResult`` and ``PatientAccess`` rows hang off it and are only ever
created by staff actions.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Custom user model carrying the caller's role.

    The role is the only input to the permission classes in
    :mod:`core.permissions`; it is never taken from a request body.
    """
    ROLE_ADMIN = 'admin'
    ROLE_FRONT_DESK = 'front_desk'
    ROLE_DOCTOR = 'doctor'
    ROLE_LAB_TECHNICIAN = 'lab_technician'
    ROLE_PATIENT = 'patient'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_FRONT_DESK, 'Front desk'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_LAB_TECHNICIAN, 'Lab technician'),
        (ROLE_PATIENT, 'Patient'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class PatientProfile(models.Model):
    """Demographic record of a patient.

    ``patient_number`` is the public identifier printed on reports; the
    optional ``user`` is the login that may retrieve released results.
    """
    GENDER_CHOICES = [('male', 'Male'), ('female', 'Female'), ('other', 'Other')]
    CATEGORY_CHOICES = [
        ('walk_in', 'Walk-in'),
        ('referred', 'Referred'),
        ('doctor_referral', 'Doctor referral'),
        ('corporate', 'Corporate'),
        ('hospital', 'Hospital'),
        ('hmo', 'HMO'),
    ]
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_profile'
    )
    patient_number = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    address = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='walk_in')
    referred_by = models.CharField(max_length=255, blank=True)
    medical_history = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return f"{self.full_name} ({self.patient_number})"


class DoctorProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    specialization = models.CharField(max_length=255)
    license_number = models.CharField(max_length=64, unique=True)

    def __str__(self) -> str:
        return f"Dr. {self.user.display_name} ({self.specialization})"


class LabTechnicianProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='lab_technician_profile')
    certification = models.CharField(max_length=255)
    certification_number = models.CharField(max_length=64, unique=True)

    def __str__(self) -> str:
        return f"{self.user.display_name} ({self.certification})"


class LabTest(models.Model):
    """A diagnostic test offered by the laboratory."""
    CATEGORY_CHOICES = [
        ('Blood', 'Blood'),
        ('Imaging', 'Imaging'),
        ('Urine', 'Urine'),
        ('Genetic', 'Genetic'),
        ('Other', 'Other'),
    ]
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES, db_index=True)
    description = models.TextField(blank=True)
    normal_range = models.CharField(max_length=255, blank=True)
    units = models.CharField(max_length=64, blank=True)
    methodology = models.TextField(blank=True)
    sample_type = models.CharField(max_length=64, blank=True)
    turnaround_hours = models.PositiveIntegerField(null=True, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_tests_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class TestRequest(models.Model):
    """One diagnostic order for one patient and one catalog test.

    Requests are never deleted; they end in ``completed``, ``rejected`` or
    ``cancelled``.  ``needs_revision`` is the only backward edge and is
    left through a result resubmission, not a direct status change.
    """
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned_to_lab'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_PENDING_REVIEW = 'pending_doctor_review'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'
    STATUS_NEEDS_REVISION = 'needs_revision'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ASSIGNED, 'Assigned to lab'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_PENDING_REVIEW, 'Pending doctor review'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_NEEDS_REVISION, 'Needs revision'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    request_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(PatientProfile, on_delete=models.PROTECT, related_name='test_requests')
    test = models.ForeignKey(LabTest, on_delete=models.PROTECT, related_name='test_requests')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='ordered_test_requests')
    lab_technician = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.PROTECT, related_name='assigned_test_requests'
    )
    requested_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='created_test_requests'
    )
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium', db_index=True)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    remarks = models.TextField(blank=True)
    doctor_remarks = models.TextField(blank=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'status'], name='core_treq_doctor_status_idx'),
            models.Index(fields=['lab_technician', 'status'], name='core_treq_tech_status_idx'),
            models.Index(fields=['patient', 'created_at'], name='core_treq_patient_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.request_number} [{self.status}]"


class TestResult(models.Model):
    """A submitted outcome for a :class:`TestRequest`.

    Exactly one of ``results`` (structured rows) or ``raw_file`` (uploaded
    report) carries the payload, as told by ``result_type``.
    ``result_hash`` is the canonical digest computed at submission (see
    :mod:`core.services.integrity`) and is re-verified before approval and
    on every patient retrieval.
    """
    TYPE_MANUAL = 'manual'
    TYPE_FILE = 'file'
    TYPE_CHOICES = [(TYPE_MANUAL, 'Manual entry'), (TYPE_FILE, 'Uploaded file')]

    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_NEEDS_REVISION = 'needs_revision'
    STATUS_SENT = 'sent'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SUBMITTED, 'Submitted'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_NEEDS_REVISION, 'Needs revision'),
        (STATUS_SENT, 'Sent'),
    ]
    RELEASED_STATUSES = (STATUS_APPROVED, STATUS_SENT)

    test_request = models.ForeignKey(TestRequest, on_delete=models.PROTECT, related_name='results')
    result_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    results = models.JSONField(null=True, blank=True)
    raw_file = models.CharField(max_length=512, blank=True)
    raw_file_name = models.CharField(max_length=255, blank=True)
    interpretation = models.TextField(blank=True)
    methodology = models.TextField(blank=True)
    comments = models.TextField(blank=True)
    quality_control = models.TextField(blank=True)
    result_hash = models.CharField(max_length=64)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)

    lab_technician = models.ForeignKey(User, on_delete=models.PROTECT, related_name='submitted_results')
    lab_tech_signature = models.TextField()
    submitted_at = models.DateTimeField()
    revised_at = models.DateTimeField(null=True, blank=True)

    doctor_remarks = models.TextField(blank=True)
    doctor_signature = models.TextField(blank=True)
    approved_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='approved_results'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_file = models.CharField(max_length=512, blank=True)
    approved_file_hash = models.CharField(max_length=64, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'submitted_at'], name='core_tres_status_sub_idx'),
            models.Index(fields=['lab_technician', 'submitted_at'], name='core_tres_tech_sub_idx'),
        ]

    @property
    def is_released(self) -> bool:
        return self.status in self.RELEASED_STATUSES

    def __str__(self) -> str:
        return f"result {self.id} for {self.test_request_id} [{self.status}]"


class PatientAccess(models.Model):
    """Time-limited capability letting one patient fetch one approved result.

    Only a keyed digest of the access code is stored; the plain code leaves
    the process once, in the result-ready email.
    """
    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='result_accesses')
    test_result = models.ForeignKey(TestResult, on_delete=models.CASCADE, related_name='patient_accesses')
    access_code_hash = models.CharField(max_length=64)
    expires_at = models.DateTimeField(db_index=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['test_result', 'patient', 'expires_at'], name='core_access_lookup_idx')]

    def __str__(self) -> str:
        return f"access result={self.test_result_id} patient={self.patient_id} until {self.expires_at:%F %T}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    ip = models.GenericIPAddressField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='core_audit_action_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='core_audit_object_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"

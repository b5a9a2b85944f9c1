import bleach
from rest_framework import serializers

from core.models import TestRequest

PRIORITIES = [c for c, _ in TestRequest.PRIORITY_CHOICES]


class TestRequestCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    testIds = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1, max_length=50)
    doctorId = serializers.IntegerField(min_value=1)
    priority = serializers.ChoiceField(choices=PRIORITIES, default='medium')
    remarks = serializers.CharField(max_length=2000, required=False, allow_blank=True, default='')

    def validate_remarks(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class AssignSerializer(serializers.Serializer):
    labTechnicianId = serializers.IntegerField(min_value=1)
    priority = serializers.ChoiceField(choices=PRIORITIES, required=False)
    remarks = serializers.CharField(max_length=2000, required=False, allow_blank=True)

    def validate_remarks(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate_reason(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class TestRequestQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in TestRequest.STATUS_CHOICES], required=False)
    priority = serializers.ChoiceField(choices=PRIORITIES, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, required=False)


def _person(user):
    if user is None:
        return None
    return {'id': user.id, 'name': user.display_name}


def request_to_dict(r: TestRequest) -> dict:
    return {
        'id': r.id,
        'requestNumber': r.request_number,
        'status': r.status,
        'priority': r.priority,
        'patient': {
            'id': r.patient_id,
            'patientNumber': str(r.patient.patient_number),
            'name': r.patient.full_name,
        },
        'test': {'id': r.test_id, 'name': r.test.name, 'code': r.test.code, 'category': r.test.category},
        'doctor': _person(r.doctor),
        'labTechnician': _person(r.lab_technician),
        'remarks': r.remarks,
        'doctorRemarks': r.doctor_remarks,
        'assignedAt': r.assigned_at.isoformat() if r.assigned_at else None,
        'startedAt': r.started_at.isoformat() if r.started_at else None,
        'completedAt': r.completed_at.isoformat() if r.completed_at else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


class RemarksSerializer(serializers.Serializer):
    remarks = serializers.CharField(max_length=2000, allow_blank=True)

    def validate_remarks(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class PeriodQuerySerializer(serializers.Serializer):
    period = serializers.IntegerField(min_value=1, max_value=365, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)

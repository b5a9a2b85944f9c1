"""
Request schemas for the lab result endpoints.

Every body is validated here before any service code runs; free text is
sanitized with bleach and signatures must decode to an image.
"""
import bleach
from django.conf import settings
from rest_framework import serializers

from core.models import TestResult
from core.services.artifacts import decode_signature


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class ResultRowSerializer(serializers.Serializer):
    parameter = serializers.CharField(max_length=255)
    value = serializers.CharField(max_length=255)
    unit = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    referenceRange = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    flag = serializers.CharField(max_length=32, required=False, allow_blank=True, allow_null=True)

    def to_internal_value(self, data):
        # accept the snake_case spelling used by older clients
        if isinstance(data, dict) and 'reference_range' in data and 'referenceRange' not in data:
            data = {**data, 'referenceRange': data['reference_range']}
        # values such as "<0.5" are kept verbatim, only trimmed
        values = super().to_internal_value(data)
        return {k: (v.strip() if isinstance(v, str) else v) for k, v in values.items()}


class SignatureField(serializers.CharField):
    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            decode_signature(value)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))
        return value


class AnnotationsMixin(serializers.Serializer):
    interpretation = serializers.CharField(max_length=5000, required=False, allow_blank=True, default='')
    methodology = serializers.CharField(max_length=5000, required=False, allow_blank=True, default='')
    comments = serializers.CharField(max_length=5000, required=False, allow_blank=True, default='')
    qualityControl = serializers.CharField(max_length=5000, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        attrs = super().validate(attrs)
        for key in ('interpretation', 'methodology', 'comments', 'qualityControl'):
            attrs[key] = _clean(attrs.get(key))
        return attrs


class ManualSubmitSerializer(AnnotationsMixin):
    testRequestId = serializers.IntegerField(min_value=1)
    resultId = serializers.IntegerField(min_value=1, required=False)
    results = ResultRowSerializer(many=True, allow_empty=False)
    signature = SignatureField(max_length=700_000)
    submittedAt = serializers.DateTimeField(required=False)


class UploadSubmitSerializer(AnnotationsMixin):
    testRequestId = serializers.IntegerField(min_value=1)
    resultId = serializers.IntegerField(min_value=1, required=False)
    file = serializers.FileField(allow_empty_file=False)
    signature = SignatureField(max_length=700_000)
    submittedAt = serializers.DateTimeField(required=False)

    def validate_file(self, f):
        if (f.size or 0) > settings.UPLOAD_MAX_MB * 1024 * 1024:
            raise serializers.ValidationError(f'File exceeds the {settings.UPLOAD_MAX_MB}MB limit.')
        ctype = getattr(f, 'content_type', '') or ''
        if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
            raise serializers.ValidationError('Unsupported file type.')
        return f


class ReviewSerializer(serializers.Serializer):
    resultId = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=[
        TestResult.STATUS_APPROVED, TestResult.STATUS_REJECTED, TestResult.STATUS_NEEDS_REVISION,
    ])
    remarks = serializers.CharField(max_length=5000, required=False, allow_blank=True, default='')
    signature = SignatureField(max_length=700_000, required=False, allow_blank=True)

    def validate_remarks(self, v):
        return _clean(v)

    def validate(self, attrs):
        if attrs['status'] == TestResult.STATUS_APPROVED and not attrs.get('signature'):
            raise serializers.ValidationError({'signature': ['A signature is required to approve a result.']})
        return attrs


class AccessSerializer(serializers.Serializer):
    accessCode = serializers.CharField(max_length=64)


class ResultListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in TestResult.STATUS_CHOICES], required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, required=False)


def result_to_dict(r: TestResult, *, detail: bool = False) -> dict:
    req = r.test_request
    data = {
        'id': r.id,
        'testRequestId': r.test_request_id,
        'requestNumber': req.request_number,
        'patient': {'id': req.patient_id, 'name': req.patient.full_name},
        'test': {'id': req.test_id, 'name': req.test.name, 'code': req.test.code},
        'resultType': r.result_type,
        'status': r.status,
        'resultHash': r.result_hash,
        'labTechnician': {'id': r.lab_technician_id, 'name': r.lab_technician.display_name},
        'submittedAt': r.submitted_at.isoformat() if r.submitted_at else None,
        'revisedAt': r.revised_at.isoformat() if r.revised_at else None,
        'approvedBy': {'id': r.approved_by_id, 'name': r.approved_by.display_name} if r.approved_by_id else None,
        'approvedAt': r.approved_at.isoformat() if r.approved_at else None,
        'hasReport': bool(r.approved_file),
    }
    if detail:
        data.update({
            'results': r.results,
            'fileName': r.raw_file_name or None,
            'interpretation': r.interpretation,
            'methodology': r.methodology,
            'comments': r.comments,
            'qualityControl': r.quality_control,
            'doctorRemarks': r.doctor_remarks,
        })
    return data

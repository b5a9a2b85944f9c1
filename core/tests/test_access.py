from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.db import connection
from django.utils import timezone
from rest_framework.throttling import ScopedRateThrottle

from core.models import AuditEvent, PatientAccess, TestResult
from core.services import access as access_grants
from core.services import integrity
from core.services import results as lifecycle

from .helpers import api

pytestmark = pytest.mark.django_db


def retrieve(user, result_id, code):
    return api(user).post(f'/api/lab-results/{result_id}/access', {'accessCode': code}, format='json')


def test_generated_codes_avoid_ambiguous_characters():
    for _ in range(50):
        code = access_grants.generate_code()
        assert len(code) == 8
        assert not set(code) & set('01ILO')
        assert set(code) <= set(access_grants.ALPHABET)


def test_foreign_patient_is_indistinguishable_from_wrong_code(approved, patient, other_patient):
    result, code = approved
    foreign = retrieve(other_patient[0], result.id, code)
    wrong = retrieve(patient[0], result.id, 'ZZZZZZZZ')
    missing = retrieve(patient[0], result.id + 1000, code)
    assert foreign.status_code == wrong.status_code == missing.status_code == 403
    assert foreign.data == wrong.data == missing.data


def test_staff_cannot_use_retrieval(approved, doctor):
    result, code = approved
    assert retrieve(doctor, result.id, code).status_code == 403


def test_unreleased_result_is_denied_even_with_a_grant(approved, patient):
    result, code = approved
    TestResult.objects.filter(pk=result.id).update(status=TestResult.STATUS_REJECTED)
    assert not TestResult.objects.get(pk=result.id).is_released
    r = retrieve(patient[0], result.id, code)
    assert r.status_code == 403
    assert r.data['error']['code'] == 'access_denied'


def test_approved_but_undelivered_result_is_released(approved, patient):
    result, code = approved
    TestResult.objects.filter(pk=result.id).update(status=TestResult.STATUS_APPROVED)
    assert retrieve(patient[0], result.id, code).status_code == 200


def test_payload_edit_after_approval_is_detected(approved, patient):
    result, code = approved
    rows = list(result.results)
    rows[0] = dict(rows[0], value='99.9')
    TestResult.objects.filter(pk=result.id).update(results=rows)

    r = retrieve(patient[0], result.id, code)
    assert r.status_code == 400
    assert r.data['error']['code'] == 'result_tampered'
    audit = AuditEvent.objects.get(action='result_tamper_detected', object_id=result.id)
    assert audit.detail == {'stage': 'retrieval'}
    assert audit.user == patient[0]
    assert not AuditEvent.objects.filter(action='result_accessed').exists()


def test_retrieval_reads_and_audits_inside_one_transaction(approved, patient, monkeypatch):
    result, code = approved
    outer = len(connection.atomic_blocks)
    depths = {}
    read_artifact, audit = integrity.read_verified_artifact, lifecycle.log_action

    def reading(res, *args, **kwargs):
        depths['read'] = len(connection.atomic_blocks)
        return read_artifact(res, *args, **kwargs)

    def auditing(**kwargs):
        depths[kwargs['action']] = len(connection.atomic_blocks)
        return audit(**kwargs)

    monkeypatch.setattr(integrity, 'read_verified_artifact', reading)
    monkeypatch.setattr(lifecycle, 'log_action', auditing)
    assert retrieve(patient[0], result.id, code).status_code == 200
    assert depths == {'read': outer + 1, 'result_accessed': outer + 1}


def test_replaced_report_file_is_detected(approved, patient, secure_root):
    result, code = approved
    (secure_root / result.approved_file).write_bytes(b'%PDF-1.4 forged report')
    r = retrieve(patient[0], result.id, code)
    assert r.status_code == 400
    assert r.data['error']['code'] == 'result_tampered'


def test_missing_report_file_is_a_storage_error(approved, patient, secure_root):
    result, code = approved
    (secure_root / result.approved_file).unlink()
    r = retrieve(patient[0], result.id, code)
    assert r.status_code == 500
    assert r.data['error']['code'] == 'storage_error'


def test_retrieval_requires_a_code(approved, patient):
    result, _ = approved
    r = api(patient[0]).post(f'/api/lab-results/{result.id}/access', {}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid'


def test_retrieval_is_throttled(monkeypatch, approved, patient):
    monkeypatch.setattr(ScopedRateThrottle, 'THROTTLE_RATES', {'result_access': '2/hour'})
    result, code = approved
    assert retrieve(patient[0], result.id, code).status_code == 200
    assert retrieve(patient[0], result.id, 'ZZZZZZZZ').status_code == 403
    r = retrieve(patient[0], result.id, code)
    assert r.status_code == 429
    assert r.data['error']['code'] == 'throttled'
    assert 'Retry-After' in r


def test_purge_expired_access_command(approved):
    result, _ = approved
    stale = PatientAccess.objects.create(
        patient=result.test_request.patient, test_result=result, access_code_hash=access_grants.hash_code('OLD'),
        expires_at=timezone.now() - timedelta(hours=1),
    )
    out = StringIO()
    call_command('purge_expired_access', stdout=out)
    assert 'Purged 1 expired access grant(s)' in out.getvalue()
    assert not PatientAccess.objects.filter(pk=stale.pk).exists()
    assert PatientAccess.objects.filter(test_result=result).count() == 1

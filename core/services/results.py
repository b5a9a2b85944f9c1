"""
Result lifecycle: submission, doctor review, patient retrieval.

Each operation runs its reads, digest computation, writes and status
changes inside one ``transaction.atomic()`` block.  Files it writes are
staged through :class:`~core.services.storage.StagedFiles` and removed if
the block fails.  Notifications are queued on an
:class:`~core.services.notifications.Outbox` and leave the process only
after commit.

A digest mismatch always aborts the operation with
:class:`~core.exceptions.ResultTampered`; the tamper audit row is written
after the rollback so that it survives.
"""
from __future__ import annotations

import logging
import mimetypes
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from core.exceptions import AccessDenied, NotFoundOrForbidden, ResultTampered, StateConflict
from core.models import PatientProfile, TestRequest, TestResult
from core.services import access as access_grants
from core.services import integrity
from core.services.artifacts import render_approved_report
from core.services.audit import log_action
from core.services.notifications import Outbox
from core.services.storage import APPROVED_DIR, StagedFiles, delete_on_commit, read_bytes, sha256_hex
from core.services.test_requests import apply_transition, check_transition

logger = logging.getLogger(__name__)

DECISION_ACTIONS = {
    TestResult.STATUS_APPROVED: 'approve',
    TestResult.STATUS_REJECTED: 'reject',
    TestResult.STATUS_NEEDS_REVISION: 'request_revision',
}


def _notice(result: TestResult, req: TestRequest) -> Dict[str, Any]:
    return {
        'resultId': result.id,
        'testRequestId': req.id,
        'requestNumber': req.request_number,
        'status': result.status,
    }


# ---------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------
def submit(actor, *, test_request_id: int, signature: str, rows: Optional[List[Dict[str, Any]]] = None,
           upload=None, interpretation: str = '', methodology: str = '', comments: str = '',
           quality_control: str = '', submitted_at: Optional[datetime] = None, result_id: Optional[int] = None,
           request=None) -> TestResult:
    """Create (or, after a revision request, update) the result of a test request.

    Exactly one of ``rows`` and ``upload`` carries the payload.
    """
    now = timezone.now()
    outbox = Outbox()
    with StagedFiles() as files, transaction.atomic():
        req = TestRequest.objects.select_for_update().filter(pk=test_request_id, lab_technician=actor).first()
        if req is None:
            raise NotFoundOrForbidden('Test request not found.')
        check_transition(req, 'submit')

        if req.status == TestRequest.STATUS_IN_PROGRESS:
            if result_id:
                raise StateConflict('There is no result awaiting revision for this request.')
            result = TestResult(test_request=req, lab_technician=actor)
            revising = False
        else:
            result = (TestResult.objects.select_for_update()
                      .filter(test_request=req, status=TestResult.STATUS_NEEDS_REVISION)
                      .order_by('-id').first())
            if result is None or (result_id and result.id != result_id):
                raise StateConflict('Only the result marked for revision can be resubmitted.')
            revising = True
        superseded_file = result.raw_file if revising else ''

        file_sha = None
        if upload is not None:
            path, original_name, data = files.save_upload(upload)
            file_sha = sha256_hex(data)
            result.result_type = TestResult.TYPE_FILE
            result.results = None
            result.raw_file, result.raw_file_name = path, original_name
        else:
            result.result_type = TestResult.TYPE_MANUAL
            result.results = integrity.normalize_rows(rows)
            result.raw_file, result.raw_file_name = '', ''

        result.interpretation = interpretation or ''
        result.methodology = methodology or ''
        result.comments = comments or ''
        result.quality_control = quality_control or ''
        result.lab_tech_signature = signature
        result.submitted_at = submitted_at or now
        result.revised_at = now if revising else None
        result.status = TestResult.STATUS_SUBMITTED
        result.result_hash = integrity.digest_for_result(result, files.storage, file_sha256=file_sha)
        result.save()

        apply_transition(req, 'submit', now)
        req.save(update_fields=['status', 'updated_at'])

        if superseded_file and superseded_file != result.raw_file:
            delete_on_commit(superseded_file, files.storage)

        log_action(user=actor, action='result_revise' if revising else 'result_submit',
                   object_type='lab_result', object_id=result.id,
                   detail={'testRequestId': req.id, 'resultType': result.result_type, 'hash': result.result_hash},
                   request=request)
        outbox.add('result_revised' if revising else 'result_submitted', user_ids=(req.doctor_id,),
                   **_notice(result, req))
        outbox.publish_on_commit()

    logger.info('result %s %s for request %s', result.id, 'revised' if revising else 'submitted', req.id)
    return result


# ---------------------------------------------------------------------
# Doctor review
# ---------------------------------------------------------------------
def review(actor, *, result_id: int, decision: str, remarks: str = '', signature: Optional[str] = None,
           request=None) -> Tuple[TestResult, Optional[str]]:
    """Record the doctor's decision on a submitted result.

    Returns ``(result, access_code)``; the code is only set on approval and
    is meant for the email outbox, not for the API response.
    """
    action = DECISION_ACTIONS[decision]
    if decision == TestResult.STATUS_APPROVED and not signature:
        raise ValidationError({'signature': ['A signature is required to approve a result.']})
    try:
        return _review(actor, result_id, decision, action, remarks, signature, request)
    except ResultTampered:
        log_action(user=actor, action='result_tamper_detected', object_type='lab_result', object_id=result_id,
                   detail={'stage': 'approval'}, request=request)
        raise


def _review(actor, result_id, decision, action, remarks, signature, request):
    now = timezone.now()
    outbox = Outbox()
    code = None
    with StagedFiles() as files, transaction.atomic():
        result = TestResult.objects.select_for_update().filter(pk=result_id, test_request__doctor=actor).first()
        if result is None:
            raise NotFoundOrForbidden('Result not found.')
        if result.status != TestResult.STATUS_SUBMITTED:
            raise StateConflict('Result is not in submitted state.')
        req = TestRequest.objects.select_for_update().get(pk=result.test_request_id)
        check_transition(req, action)

        result.doctor_remarks = remarks or ''
        fields = {'status': decision, 'doctor_remarks': result.doctor_remarks, 'updated_at': now}
        if decision == TestResult.STATUS_APPROVED:
            integrity.verify_result(result, stage='approval', storage=files.storage)
            pdf = render_approved_report(result, doctor_signature=signature, approved_by=actor, approved_at=now)
            path = files.save_bytes(f'{APPROVED_DIR}/result_{result.id}_{now:%Y%m%d%H%M%S}.pdf', pdf)
            fields.update(
                doctor_signature=signature,
                approved_by=actor,
                approved_at=now,
                approved_file=path,
                approved_file_hash=sha256_hex(pdf),
            )

        claimed = TestResult.objects.filter(pk=result.pk, status=TestResult.STATUS_SUBMITTED).update(**fields)
        if claimed != 1:
            raise StateConflict('Result is not in submitted state.')
        result.refresh_from_db()

        apply_transition(req, action, now)
        req.doctor_remarks = result.doctor_remarks
        req.save(update_fields=['status', 'completed_at', 'doctor_remarks', 'updated_at'])

        log_action(user=actor, action={'approve': 'result_approve', 'reject': 'result_reject',
                                       'request_revision': 'result_needs_revision'}[action],
                   object_type='lab_result', object_id=result.id,
                   detail={'testRequestId': req.id, 'hash': result.result_hash,
                           'artifactHash': result.approved_file_hash or None},
                   request=request)

        if decision == TestResult.STATUS_APPROVED:
            patient = req.patient
            grant, code = access_grants.mint(result, patient, now)
            outbox.add('result_approved', user_ids=(patient.user_id,), **_notice(result, req))
            outbox.add('result_ready', email=patient.email or getattr(patient.user, 'email', ''),
                       name=patient.full_name, testName=req.test.name, requestNumber=req.request_number,
                       resultId=result.id, accessId=grant.id, accessCode=code,
                       expiresAt=grant.expires_at.strftime('%Y-%m-%d %H:%M UTC'))
        else:
            outbox.add('result_revision_needed', user_ids=(result.lab_technician_id,),
                       remarks=result.doctor_remarks, **_notice(result, req))
        outbox.publish_on_commit()

    logger.info('result %s %s by doctor %s', result.id, decision, actor.id)
    return result, code


# ---------------------------------------------------------------------
# Patient retrieval
# ---------------------------------------------------------------------
def retrieve(actor, *, result_id: int, access_code: str, request=None) -> Tuple[TestResult, bytes]:
    """Return the approved report bytes for the owning patient.

    Every failed precondition raises the same :class:`AccessDenied`.
    """
    try:
        return _retrieve(actor, result_id, access_code, request)
    except ResultTampered:
        log_action(user=actor, action='result_tamper_detected', object_type='lab_result', object_id=result_id,
                   detail={'stage': 'retrieval'}, request=request)
        raise


def _retrieve(actor, result_id, access_code, request):
    with transaction.atomic():
        patient = PatientProfile.objects.filter(user=actor).first() if getattr(actor, 'pk', None) else None
        result = None
        if patient is not None:
            result = (TestResult.objects.select_related('test_request__patient', 'test_request__test')
                      .filter(pk=result_id, test_request__patient=patient)
                      .first())
        if result is None or not result.is_released:
            logger.warning('result access denied: result %s not released to user %s', result_id, actor.pk)
            raise AccessDenied()
        grant = access_grants.find_valid_grant(result, patient, access_code)
        if grant is None:
            logger.warning('result access denied: no valid grant/code for result %s, user %s', result_id, actor.pk)
            raise AccessDenied()

        integrity.verify_result(result, stage='retrieval')
        data = integrity.read_verified_artifact(result)

        log_action(user=actor, action='result_accessed', object_type='lab_result', object_id=result.id,
                   detail={'accessId': grant.id}, request=request)
    return result, data


# ---------------------------------------------------------------------
# Listing / detail
# ---------------------------------------------------------------------
def visible_results(user):
    qs = TestResult.objects.select_related(
        'test_request', 'test_request__patient', 'test_request__test', 'test_request__doctor',
        'lab_technician', 'approved_by',
    )
    role = getattr(user, 'role', None)
    if role == 'admin':
        return qs
    if role == 'doctor':
        return qs.filter(test_request__doctor=user)
    if role == 'lab_technician':
        return qs.filter(lab_technician=user)
    if role == 'patient':
        return qs.filter(test_request__patient__user=user, status__in=TestResult.RELEASED_STATUSES)
    return qs.none()


def search(user, *, status: Optional[str] = None, patient_id: Optional[int] = None,
           date_from=None, date_to=None, page: int = 1, page_size: int = 20):
    qs = visible_results(user)
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(test_request__patient_id=patient_id)
    if date_from:
        qs = qs.filter(submitted_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(submitted_at__date__lte=date_to)
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(100, max(1, int(page_size or 20)))
    start = (page - 1) * page_size
    return list(qs.order_by('-submitted_at', '-id')[start:start + page_size]), total


def get_result_for(user, pk: int) -> TestResult:
    result = visible_results(user).filter(pk=pk).first()
    if result is None:
        raise NotFoundOrForbidden('Result not found.')
    return result


def raw_file_for(user, pk: int) -> Tuple[TestResult, bytes, str]:
    """Uploaded report of a result, for its lab technician or reviewing doctor."""
    if getattr(user, 'role', None) not in ('doctor', 'lab_technician'):
        raise NotFoundOrForbidden('Result not found.')
    result = get_result_for(user, pk)
    if result.result_type != TestResult.TYPE_FILE or not result.raw_file:
        raise NotFoundOrForbidden('This result has no uploaded file.')
    data = read_bytes(result.raw_file)
    content_type = mimetypes.guess_type(result.raw_file_name or result.raw_file)[0] or 'application/octet-stream'
    return result, data, content_type

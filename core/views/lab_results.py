"""
Lab result endpoints.

Lab technicians submit results (structured rows or an uploaded report),
doctors approve / reject / request a revision, and patients retrieve the
approved report with the access code they received by email.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.http import HttpResponse
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from core.permissions import IsDoctorRole, IsLabTechnicianRole, IsPatientRole
from core.serializers.results import (
    AccessSerializer,
    ManualSubmitSerializer,
    ResultListQuerySerializer,
    ReviewSerializer,
    UploadSubmitSerializer,
    result_to_dict,
)
from core.services import results as lifecycle

logger = logging.getLogger(__name__)


def _annotations(vd) -> dict:
    return {
        'interpretation': vd['interpretation'],
        'methodology': vd['methodology'],
        'comments': vd['comments'],
        'quality_control': vd['qualityControl'],
    }


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabTechnicianRole])
def submit_manual(request):
    s = ManualSubmitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = lifecycle.submit(
        request.user,
        test_request_id=vd['testRequestId'],
        result_id=vd.get('resultId'),
        rows=vd['results'],
        signature=vd['signature'],
        submitted_at=vd.get('submittedAt'),
        request=request,
        **_annotations(vd),
    )
    return Response({'ok': True, 'result': result_to_dict(result, detail=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabTechnicianRole])
def submit_upload(request):
    s = UploadSubmitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = lifecycle.submit(
        request.user,
        test_request_id=vd['testRequestId'],
        result_id=vd.get('resultId'),
        upload=vd['file'],
        signature=vd['signature'],
        submitted_at=vd.get('submittedAt'),
        request=request,
        **_annotations(vd),
    )
    return Response({'ok': True, 'result': result_to_dict(result, detail=True), 'fileName': result.raw_file_name})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def review_result(request):
    s = ReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result, code = lifecycle.review(
        request.user,
        result_id=vd['resultId'],
        decision=vd['status'],
        remarks=vd['remarks'],
        signature=vd.get('signature') or None,
        request=request,
    )
    payload = {'ok': True, 'result': result_to_dict(result, detail=True)}
    if code and settings.RESULT_ACCESS_CODE_IN_RESPONSE:
        payload['accessCode'] = code
    return Response(payload)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
@throttle_classes([ScopedRateThrottle])
def access_result(request, pk: int):
    s = AccessSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result, data = lifecycle.retrieve(request.user, result_id=pk, access_code=s.validated_data['accessCode'],
                                      request=request)
    resp = HttpResponse(data, content_type='application/pdf')
    resp['Content-Disposition'] = f'attachment; filename="lab-result-{result.test_request.request_number}.pdf"'
    resp['Cache-Control'] = 'no-store'
    return resp

access_result.cls.throttle_scope = 'result_access'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_results(request):
    q = ResultListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    items, total = lifecycle.search(
        request.user,
        status=vd.get('status'),
        patient_id=vd.get('patientId'),
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        page=vd.get('page') or 1,
        page_size=vd.get('pageSize') or 20,
    )
    return Response({
        'ok': True,
        'data': [result_to_dict(r) for r in items],
        'pagination': {'page': vd.get('page') or 1, 'pageSize': min(100, vd.get('pageSize') or 20), 'total': total},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def result_detail(request, pk: int):
    result = lifecycle.get_result_for(request.user, pk)
    return Response({'ok': True, 'result': result_to_dict(result, detail=True)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def result_file(request, pk: int):
    result, data, content_type = lifecycle.raw_file_for(request.user, pk)
    resp = HttpResponse(data, content_type=content_type)
    resp['Content-Disposition'] = f'attachment; filename="{result.raw_file_name or "result"}"'
    return resp

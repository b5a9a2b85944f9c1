"""
Dashboards, worklists and summary statistics.

Counts are scoped the same way as the list endpoints: a doctor sees the
requests they ordered, a lab technician the ones assigned to them.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.permissions import IsDoctorRole, IsLabTechnicianRole, IsStaffRole
from core.serializers.results import result_to_dict
from core.serializers.test_requests import PeriodQuerySerializer, request_to_dict
from core.services import reports


def _query(request):
    q = PeriodQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return q.validated_data


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def doctor_dashboard(request):
    data = reports.doctor_dashboard(request.user)
    return Response({
        'ok': True,
        'openToday': [request_to_dict(r) for r in data['openToday']],
        'pendingResults': [result_to_dict(r) for r in data['pendingResults']],
        'stats': data['stats'],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def pending_results(request):
    vd = _query(request)
    qs = reports.pending_results(request.user)
    total = qs.count()
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 10
    start = (page - 1) * page_size
    return Response({
        'ok': True,
        'data': [result_to_dict(r) for r in qs[start:start + page_size]],
        'pagination': {'page': page, 'pageSize': page_size, 'total': total},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabTechnicianRole])
def lab_dashboard(request):
    data = reports.lab_dashboard(request.user)
    return Response({
        'ok': True,
        'worklist': [request_to_dict(r) for r in data['worklist']],
        'revisionNeeded': [result_to_dict(r) for r in data['revisionNeeded']],
        'stats': data['stats'],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabTechnicianRole])
def lab_statistics(request):
    vd = _query(request)
    return Response({'ok': True, **reports.lab_statistics(request.user, days=vd.get('period') or 7)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def request_summary(request):
    if request.user.role not in ('admin', 'doctor'):
        raise PermissionDenied('Only administrators and doctors can view request statistics.')
    vd = _query(request)
    return Response({'ok': True, **reports.request_summary(request.user, days=vd.get('period') or 30)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def lab_test_categories(request):
    return Response({'ok': True, 'data': reports.catalog_categories()})


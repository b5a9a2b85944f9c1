import logging

from django.db import transaction
from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import NotFoundOrForbidden, StateConflict
from core.models import LabTest, TestRequest
from core.permissions import IsAdminOrReadOnlyStaff
from core.serializers.catalog import LabTestQuerySerializer, LabTestSerializer
from core.services.audit import log_action

logger = logging.getLogger(__name__)

OPEN_REQUEST_STATUSES = [
    TestRequest.STATUS_PENDING,
    TestRequest.STATUS_ASSIGNED,
    TestRequest.STATUS_IN_PROGRESS,
    TestRequest.STATUS_PENDING_REVIEW,
    TestRequest.STATUS_NEEDS_REVISION,
]


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnlyStaff])
def lab_tests(request):
    if request.method == 'POST':
        s = LabTestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        test = s.save(created_by=request.user)
        log_action(user=request.user, action='lab_test_create', object_type='lab_test', object_id=test.id,
                   detail={'code': test.code}, request=request)
        return Response({'ok': True, 'data': LabTestSerializer(test).data}, status=201)

    q = LabTestQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = LabTest.objects.all()
    if not vd.get('includeInactive'):
        qs = qs.filter(is_active=True)
    if vd.get('category'):
        qs = qs.filter(category=vd['category'])
    if vd.get('q'):
        qs = qs.filter(Q(name__icontains=vd['q']) | Q(code__icontains=vd['q']))
    return Response({'ok': True, 'data': LabTestSerializer(qs.order_by('name'), many=True).data})


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnlyStaff])
def lab_test_detail(request, pk: int):
    test = LabTest.objects.filter(pk=pk).first()
    if test is None:
        raise NotFoundOrForbidden('Test not found.')

    if request.method == 'GET':
        return Response({'ok': True, 'data': LabTestSerializer(test).data})

    if request.method == 'PUT':
        s = LabTestSerializer(test, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        test = s.save()
        log_action(user=request.user, action='lab_test_update', object_type='lab_test', object_id=test.id,
                   detail={'fields': sorted(request.data.keys())}, request=request)
        return Response({'ok': True, 'data': LabTestSerializer(test).data})

    # soft delete
    with transaction.atomic():
        test = LabTest.objects.select_for_update().get(pk=pk)
        pending = TestRequest.objects.filter(test=test, status__in=OPEN_REQUEST_STATUSES).count()
        if pending:
            raise StateConflict(f'Cannot deactivate a test with {pending} open request(s).')
        test.is_active = False
        test.save(update_fields=['is_active', 'updated_at'])
        log_action(user=request.user, action='lab_test_deactivate', object_type='lab_test', object_id=test.id,
                   request=request)
    logger.info('lab test %s deactivated', test.id)
    return Response({'ok': True})

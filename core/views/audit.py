from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.models import AuditEvent
from core.permissions import IsAdminRole


class AuditQuerySerializer(serializers.Serializer):
    action = serializers.CharField(max_length=64, required=False)
    objectType = serializers.CharField(max_length=64, required=False)
    objectId = serializers.IntegerField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_events(request):
    q = AuditQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = AuditEvent.objects.select_related('user')
    if vd.get('action'):
        qs = qs.filter(action=vd['action'])
    if vd.get('objectType'):
        qs = qs.filter(object_type=vd['objectType'])
    if vd.get('objectId') is not None:
        qs = qs.filter(object_id=vd['objectId'])
    total = qs.count()
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 50
    start = (page - 1) * page_size
    data = [{
        'id': e.id,
        'action': e.action,
        'userId': e.user_id,
        'username': e.user.username if e.user_id else None,
        'objectType': e.object_type,
        'objectId': e.object_id,
        'detail': e.detail,
        'ip': e.ip,
        'createdAt': e.created_at.isoformat(),
    } for e in qs.order_by('-created_at', '-id')[start:start + page_size]]
    return Response({'ok': True, 'data': data, 'pagination': {'page': page, 'pageSize': page_size, 'total': total}})

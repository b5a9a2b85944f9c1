"""
Directory endpoints: staff and patient registration, user administration
and the patient lookup used by the front desk.

Registration never returns the generated password; it is delivered by
email after the transaction commits.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.permissions import IsAdminRole, IsDoctorRole, IsFrontDeskOrAdmin, IsStaffRole
from core.serializers.directory import (
    PatientCreateSerializer,
    PatientQuerySerializer,
    StaffCreateSerializer,
    UserListQuerySerializer,
    UserUpdateSerializer,
    patient_to_dict,
    user_to_dict,
)
from core.serializers.test_requests import request_to_dict
from core.services import directory
from core.services.test_requests import visible_requests


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def register_staff(request):
    s = StaffCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    user, _ = directory.create_staff(
        request.user,
        username=vd['username'],
        email=vd['email'],
        role=vd['role'],
        first_name=vd['firstName'],
        last_name=vd['lastName'],
        password=vd.get('password') or None,
        specialization=vd['specialization'],
        license_number=vd['licenseNumber'],
        certification=vd['certification'],
        certification_number=vd['certificationNumber'],
        request=request,
    )
    return Response({'ok': True, 'user': user_to_dict(user), 'credentialsSent': True}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDeskOrAdmin])
def register_patient(request):
    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    profile, _ = directory.register_patient(
        request.user,
        first_name=vd['firstName'],
        last_name=vd['lastName'],
        email=vd['email'],
        phone=vd['phone'],
        date_of_birth=vd['dateOfBirth'],
        gender=vd['gender'],
        address=vd['address'],
        category=vd['category'],
        referred_by=vd['referredBy'],
        medical_history=vd['medicalHistory'],
        username=vd.get('username') or None,
        password=vd.get('password') or None,
        request=request,
    )
    return Response({'ok': True, 'patient': patient_to_dict(profile), 'credentialsSent': True}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def list_users(request):
    q = UserListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = directory.list_users(role=vd.get('role'), q=vd.get('q')).select_related(
        'doctor_profile', 'lab_technician_profile')
    total = qs.count()
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 50
    start = (page - 1) * page_size
    return Response({
        'ok': True,
        'data': [user_to_dict(u) for u in qs[start:start + page_size]],
        'pagination': {'page': page, 'pageSize': page_size, 'total': total},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def lab_technicians(request):
    return Response({'ok': True, 'data': [user_to_dict(u) for u in directory.active_lab_technicians()]})


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk: int):
    if request.method == 'DELETE':
        user = directory.deactivate_user(request.user, pk, request=request)
        return Response({'ok': True, 'user': user_to_dict(user)})
    s = UserUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = directory.update_user(request.user, pk, request=request, **s.validated_data)
    return Response({'ok': True, 'user': user_to_dict(user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    q = PatientQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = directory.search_patients(q=vd.get('q'), category=vd.get('category'),
                                   include_inactive=vd['includeInactive'])
    total = qs.count()
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 20
    start = (page - 1) * page_size
    return Response({
        'ok': True,
        'data': [patient_to_dict(p) for p in qs[start:start + page_size]],
        'pagination': {'page': page, 'pageSize': page_size, 'total': total},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_detail(request, pk: int):
    """A patient's record with the test requests the caller may see."""
    profile = directory.get_patient(pk)
    requests = visible_requests(request.user).filter(patient=profile).order_by('-created_at', '-id')
    return Response({
        'ok': True,
        'data': dict(patient_to_dict(profile), testRequests=[request_to_dict(r) for r in requests]),
    })

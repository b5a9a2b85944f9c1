import logging
import secrets
import uuid
from typing import Optional, Tuple

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from rest_framework.authtoken.models import Token
from rest_framework.exceptions import ValidationError as DRFValidation

from core.exceptions import NotFoundOrForbidden, StateConflict
from core.models import DoctorProfile, LabTechnicianProfile, PatientProfile
from core.services.audit import log_action
from core.services.notifications import Outbox

logger = logging.getLogger(__name__)

User = get_user_model()

STAFF_ROLES = ('admin', 'front_desk', 'doctor', 'lab_technician')


def _password_or_generate(password: Optional[str], user=None) -> str:
    if password:
        try:
            validate_password(password, user=user)
        except ValidationError as e:
            raise DRFValidation({'password': e.messages})
        return password
    return secrets.token_urlsafe(12)


def _ensure_username_free(username: str) -> None:
    if User.objects.filter(username__iexact=username).exists():
        raise DRFValidation({'username': ['A user with that username already exists.']})


def create_staff(actor, *, username: str, email: str, role: str, first_name: str = '', last_name: str = '',
                 password: Optional[str] = None, specialization: str = '', license_number: str = '',
                 certification: str = '', certification_number: str = '', request=None) -> Tuple[User, str]:
    """Create a staff login plus its role record; credentials are emailed after commit."""
    if role not in STAFF_ROLES:
        raise DRFValidation({'role': ['Unsupported staff role.']})
    _ensure_username_free(username)
    if role == 'doctor':
        if not (specialization and license_number):
            raise DRFValidation({'licenseNumber': ['Doctors need a specialization and a license number.']})
        if DoctorProfile.objects.filter(license_number=license_number).exists():
            raise DRFValidation({'licenseNumber': ['License number already registered.']})
    if role == 'lab_technician':
        if not (certification and certification_number):
            raise DRFValidation({'certificationNumber': ['Lab technicians need a certification and its number.']})
        if LabTechnicianProfile.objects.filter(certification_number=certification_number).exists():
            raise DRFValidation({'certificationNumber': ['Certification number already registered.']})

    password = _password_or_generate(password)
    outbox = Outbox()
    with transaction.atomic():
        user = User.objects.create_user(username=username, email=email, password=password,
                                        first_name=first_name, last_name=last_name, role=role)
        if role == 'doctor':
            DoctorProfile.objects.create(user=user, specialization=specialization, license_number=license_number)
        elif role == 'lab_technician':
            LabTechnicianProfile.objects.create(user=user, certification=certification,
                                                certification_number=certification_number)
        log_action(user=actor, action='staff_register', object_type='user', object_id=user.id,
                   detail={'role': role, 'username': username}, request=request)
        outbox.add('credentials_issued', email=email, username=username, password=password,
                   name=user.display_name, role=user.get_role_display())
        outbox.publish_on_commit()
    logger.info('staff user %s (%s) created by %s', user.id, role, getattr(actor, 'id', None))
    return user, password


def register_patient(actor, *, first_name: str, last_name: str, email: str, phone: str, date_of_birth,
                     gender: str, address: str = '', category: str = 'walk_in', referred_by: str = '',
                     medical_history: str = '', username: Optional[str] = None, password: Optional[str] = None,
                     request=None) -> Tuple[PatientProfile, str]:
    username = (username or email).strip().lower()
    _ensure_username_free(username)
    password = _password_or_generate(password)
    outbox = Outbox()
    with transaction.atomic():
        user = User.objects.create_user(username=username, email=email, password=password,
                                        first_name=first_name, last_name=last_name, role='patient')
        profile = PatientProfile.objects.create(
            user=user, first_name=first_name, last_name=last_name, email=email, phone=phone,
            date_of_birth=date_of_birth, gender=gender, address=address, category=category,
            referred_by=referred_by, medical_history=medical_history,
        )
        log_action(user=actor, action='patient_register', object_type='patient', object_id=profile.id,
                   detail={'patientNumber': str(profile.patient_number)}, request=request)
        outbox.add('credentials_issued', email=email, username=username, password=password,
                   name=profile.full_name, role='Patient')
        outbox.publish_on_commit()
    logger.info('patient %s registered by %s', profile.id, getattr(actor, 'id', None))
    return profile, password


def list_users(*, role: Optional[str] = None, q: Optional[str] = None):
    qs = User.objects.all().order_by('id')
    if role:
        qs = qs.filter(role=role)
    if q:
        qs = qs.filter(Q(username__icontains=q) | Q(email__icontains=q) | Q(last_name__icontains=q))
    return qs


def active_lab_technicians():
    return (User.objects.filter(role='lab_technician', is_active=True)
            .select_related('lab_technician_profile').order_by('first_name', 'last_name', 'id'))


def search_patients(*, q: Optional[str] = None, category: Optional[str] = None, include_inactive: bool = False):
    qs = PatientProfile.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if category:
        qs = qs.filter(category=category)
    if q:
        cond = Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(phone__icontains=q)
        try:
            cond |= Q(patient_number=uuid.UUID(q))
        except ValueError:
            pass
        qs = qs.filter(cond)
    return qs.order_by('-created_at', '-id')


def get_patient(pk: int) -> PatientProfile:
    profile = PatientProfile.objects.filter(pk=pk).first()
    if profile is None:
        raise NotFoundOrForbidden('Patient not found.')
    return profile


def _user_or_404(pk: int):
    user = User.objects.select_for_update().filter(pk=pk).first()
    if user is None:
        raise NotFoundOrForbidden('User not found.')
    return user


def update_user(actor, pk: int, *, request=None, **changes):
    """Apply ``first_name``/``last_name``/``email`` changes to a login.

    A patient login keeps its demographic record in step.
    """
    changes = {k: v for k, v in changes.items() if v is not None}
    with transaction.atomic():
        user = _user_or_404(pk)
        email = changes.get('email')
        if email and User.objects.filter(email__iexact=email).exclude(pk=user.pk).exists():
            raise DRFValidation({'email': ['Email already in use.']})
        for field, value in changes.items():
            setattr(user, field, value)
        user.save()
        if user.role == 'patient' and changes:
            PatientProfile.objects.filter(user=user).update(**changes)
        log_action(user=actor, action='user_update', object_type='user', object_id=user.id,
                   detail={'fields': sorted(changes)}, request=request)
    logger.info('user %s updated by %s', user.id, actor.id)
    return user


def deactivate_user(actor, pk: int, *, request=None):
    """Disable a login; rows that reference the user are kept."""
    if pk == actor.pk:
        raise StateConflict('Administrators cannot deactivate their own account.')
    with transaction.atomic():
        user = _user_or_404(pk)
        if not user.is_active:
            raise StateConflict('User is already inactive.')
        user.is_active = False
        user.save(update_fields=['is_active'])
        Token.objects.filter(user=user).delete()
        unlinked = PatientProfile.objects.filter(user=user).update(user=None)
        log_action(user=actor, action='user_deactivate', object_type='user', object_id=user.id,
                   detail={'role': user.role, 'patientUnlinked': bool(unlinked)}, request=request)
    logger.info('user %s deactivated by %s', user.id, actor.id)
    return user

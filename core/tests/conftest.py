import datetime

import pytest
from django.core import mail
from django.core.cache import cache
from django.utils import timezone

from core.models import (
    DoctorProfile,
    LabTechnicianProfile,
    LabTest,
    PatientProfile,
    TestRequest,
    TestResult,
    User,
)
from core.services import notifications

from .helpers import PASSWORD, THREE_ROWS, access_code_from, api, make_signature


@pytest.fixture(autouse=True)
def _isolated(settings, tmp_path):
    settings.RESULT_STORAGE_ROOT = tmp_path / 'secure'
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.CHANNEL_LAYERS = {'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}}
    settings.RESULT_ACCESS_CODE_IN_RESPONSE = False
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    settings.FRONTEND_URL = 'https://portal.example.test'
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def signature():
    return make_signature()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password=PASSWORD, role='admin', email='admin1@example.test')


@pytest.fixture
def front_desk(db):
    return User.objects.create_user(username='desk1', password=PASSWORD, role='front_desk')


def _doctor(username, license_number):
    u = User.objects.create_user(username=username, password=PASSWORD, role='doctor',
                                 first_name='Greg', last_name=username.title())
    DoctorProfile.objects.create(user=u, specialization='Pathology', license_number=license_number)
    return u


def _tech(username, cert):
    u = User.objects.create_user(username=username, password=PASSWORD, role='lab_technician',
                                 first_name='Lee', last_name=username.title())
    LabTechnicianProfile.objects.create(user=u, certification='MLS', certification_number=cert)
    return u


def _patient(username, email):
    u = User.objects.create_user(username=username, password=PASSWORD, role='patient', email=email)
    profile = PatientProfile.objects.create(
        user=u, first_name='Pat', last_name=username.title(), email=email, phone='555-0100',
        date_of_birth=datetime.date(1985, 5, 17), gender='female',
    )
    return u, profile


@pytest.fixture
def doctor(db):
    return _doctor('doctor1', 'LIC-001')


@pytest.fixture
def other_doctor(db):
    return _doctor('doctor2', 'LIC-002')


@pytest.fixture
def tech(db):
    return _tech('tech1', 'CERT-001')


@pytest.fixture
def other_tech(db):
    return _tech('tech2', 'CERT-002')


@pytest.fixture
def patient(db):
    return _patient('patient1', 'patient1@example.test')


@pytest.fixture
def other_patient(db):
    return _patient('patient2', 'patient2@example.test')


@pytest.fixture
def cbc(db):
    return LabTest.objects.create(name='Complete Blood Count', code='CBC', category='Blood')


@pytest.fixture
def make_request(db, doctor, tech, patient, cbc):
    def factory(status=TestRequest.STATUS_IN_PROGRESS, **overrides):
        now = timezone.now()
        fields = dict(
            request_number=f"TR-{now:%Y%m%d}-{TestRequest.objects.count() + 1:06d}",
            patient=patient[1], test=cbc, doctor=doctor, lab_technician=tech,
            priority='high', status=status, assigned_at=now,
            started_at=now if status == TestRequest.STATUS_IN_PROGRESS else None,
        )
        fields.update(overrides)
        return TestRequest.objects.create(**fields)
    return factory


@pytest.fixture
def in_progress(make_request):
    return make_request()


@pytest.fixture
def submit_manual(tech, signature):
    def submit(req, rows=None, user=None, **extra):
        body = {
            'testRequestId': req.id,
            'results': THREE_ROWS if rows is None else rows,
            'interpretation': 'Within normal limits.',
            'methodology': 'Automated analyzer',
            'signature': signature,
            'submittedAt': '2024-03-01T10:00:00Z',
        }
        body.update(extra)
        return api(user or tech).post('/api/lab-results/submit/manual', body, format='json')
    return submit


@pytest.fixture
def approve(doctor):
    def review(result_id, status='approved', user=None, **extra):
        body = {'resultId': result_id, 'status': status, 'remarks': 'Reviewed.'}
        if status == 'approved':
            body['signature'] = make_signature('blue')
        body.update(extra)
        return api(user or doctor).post('/api/lab-results/approve', body, format='json')
    return review


@pytest.fixture
def events():
    """Events delivered by committed outboxes, in order."""
    seen = []

    def record(event):
        seen.append(event)

    notifications.subscribe(record)
    yield seen
    notifications.unsubscribe(record)


@pytest.fixture
def secure_root(settings):
    return settings.RESULT_STORAGE_ROOT


@pytest.fixture
def approved(in_progress, submit_manual, approve, django_capture_on_commit_callbacks):
    """A manual result taken through approval with its email delivered; returns ``(result, code)``."""
    r = submit_manual(in_progress)
    assert r.status_code == 200, r.data
    with django_capture_on_commit_callbacks(execute=True):
        r = approve(r.data['result']['id'])
    assert r.status_code == 200, r.data
    result = TestResult.objects.get(pk=r.data['result']['id'])
    return result, access_code_from(mail.outbox[-1])

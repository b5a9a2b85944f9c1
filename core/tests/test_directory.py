import pytest
from django.core import mail
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from core.models import AuditEvent, DoctorProfile, PatientProfile, User

from .helpers import PASSWORD, api

pytestmark = pytest.mark.django_db


def test_admin_registers_doctor_and_credentials_are_emailed(admin_user, django_capture_on_commit_callbacks):
    body = {
        'username': 'dr.house',
        'email': 'house@example.test',
        'role': 'doctor',
        'firstName': 'Gregory',
        'lastName': 'House',
        'specialization': 'Diagnostics',
        'licenseNumber': 'LIC-HOUSE',
    }
    with django_capture_on_commit_callbacks(execute=True):
        r = api(admin_user).post('/api/admin/staff', body, format='json')
    assert r.status_code == 201, r.data
    assert r.data['user']['role'] == 'doctor'
    assert r.data['user']['licenseNumber'] == 'LIC-HOUSE'
    assert 'password' not in r.data['user']

    user = User.objects.get(username='dr.house')
    assert DoctorProfile.objects.filter(user=user, specialization='Diagnostics').exists()
    assert AuditEvent.objects.filter(action='staff_register', object_id=user.id).exists()

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ['house@example.test']
    assert 'dr.house' in mail.outbox[0].body


def test_doctor_registration_needs_a_license(admin_user):
    body = {'username': 'dr2', 'email': 'dr2@example.test', 'role': 'doctor', 'specialization': 'Pathology'}
    r = api(admin_user).post('/api/admin/staff', body, format='json')
    assert r.status_code == 400
    assert 'licenseNumber' in r.data['error']['message']
    assert not User.objects.filter(username='dr2').exists()


def test_duplicate_username_is_rejected(admin_user, tech):
    body = {'username': tech.username.upper(), 'email': 'x@example.test', 'role': 'front_desk'}
    r = api(admin_user).post('/api/admin/staff', body, format='json')
    assert r.status_code == 400
    assert 'username' in r.data['error']['message']


def test_weak_explicit_password_is_rejected(admin_user):
    body = {'username': 'desk9', 'email': 'd9@example.test', 'role': 'front_desk', 'password': '123'}
    r = api(admin_user).post('/api/admin/staff', body, format='json')
    assert r.status_code == 400
    assert 'password' in r.data['error']['message']


def test_only_admins_register_staff(front_desk):
    body = {'username': 'desk2', 'email': 'd2@example.test', 'role': 'front_desk'}
    assert api(front_desk).post('/api/admin/staff', body, format='json').status_code == 403


def test_front_desk_registers_patient(front_desk, django_capture_on_commit_callbacks):
    body = {
        'firstName': 'Ada',
        'lastName': 'Lovelace',
        'email': 'Ada@Example.test',
        'phone': '555-0199',
        'dateOfBirth': '1990-12-10',
        'gender': 'female',
        'medicalHistory': '<script>x</script>Asthma',
    }
    with django_capture_on_commit_callbacks(execute=True):
        r = api(front_desk).post('/api/admin/patients', body, format='json')
    assert r.status_code == 201, r.data
    profile = PatientProfile.objects.get(pk=r.data['patient']['id'])
    assert profile.user.username == 'ada@example.test'
    assert profile.user.role == 'patient'
    assert '<script>' not in profile.medical_history
    assert r.data['patient']['patientNumber'] == str(profile.patient_number)
    assert len(mail.outbox) == 1
    assert AuditEvent.objects.filter(action='patient_register', object_id=profile.id, user=front_desk).exists()


def test_user_listing_filters(admin_user, doctor, tech, patient):
    r = api(admin_user).get('/api/admin/users?role=doctor')
    assert r.status_code == 200
    assert [u['username'] for u in r.data['data']] == [doctor.username]
    assert r.data['data'][0]['specialization'] == 'Pathology'

    r = api(admin_user).get('/api/admin/users?q=tech')
    assert [u['id'] for u in r.data['data']] == [tech.id]
    assert api(doctor).get('/api/admin/users').status_code == 403


def test_doctors_list_active_technicians(doctor, tech, other_tech):
    other_tech.is_active = False
    other_tech.save()
    r = api(doctor).get('/api/lab-technicians')
    assert r.status_code == 200
    assert [u['id'] for u in r.data['data']] == [tech.id]
    assert r.data['data'][0]['certificationNumber'] == 'CERT-001'


def test_front_desk_looks_up_patients(front_desk, patient, other_patient):
    other_patient[1].category = 'corporate'
    other_patient[1].save()

    r = api(front_desk).get('/api/patients?q=patient2')
    assert r.status_code == 200
    assert [p['id'] for p in r.data['data']] == [other_patient[1].id]

    assert api(front_desk).get('/api/patients?q=555-0100').data['pagination']['total'] == 2
    by_number = api(front_desk).get(f'/api/patients?q={patient[1].patient_number}').data['data']
    assert [p['id'] for p in by_number] == [patient[1].id]
    by_category = api(front_desk).get('/api/patients?category=corporate').data['data']
    assert [p['id'] for p in by_category] == [other_patient[1].id]

    PatientProfile.objects.filter(pk=patient[1].pk).update(is_active=False)
    assert api(front_desk).get('/api/patients').data['pagination']['total'] == 1
    assert api(front_desk).get('/api/patients?includeInactive=true').data['pagination']['total'] == 2

    assert api(patient[0]).get('/api/patients').status_code == 403


def test_patient_record_shows_requests_the_caller_may_see(make_request, front_desk, doctor, other_doctor, patient):
    mine = make_request()
    make_request(doctor=other_doctor)

    r = api(front_desk).get(f'/api/patients/{patient[1].id}')
    assert r.status_code == 200
    assert r.data['data']['patientNumber'] == str(patient[1].patient_number)
    assert len(r.data['data']['testRequests']) == 2

    r = api(doctor).get(f'/api/patients/{patient[1].id}')
    assert [t['id'] for t in r.data['data']['testRequests']] == [mine.id]

    r = api(front_desk).get('/api/patients/9999')
    assert r.status_code == 404
    assert r.data['error']['code'] == 'not_found'


def test_admin_updates_a_user(admin_user, patient, other_patient, doctor):
    user, profile = patient
    r = api(admin_user).put(f'/api/admin/users/{user.id}',
                            {'firstName': '<i>Patricia</i>', 'email': 'patricia@example.test'}, format='json')
    assert r.status_code == 200, r.data
    assert r.data['user']['email'] == 'patricia@example.test'
    profile.refresh_from_db()
    assert profile.first_name == 'Patricia'
    assert profile.email == 'patricia@example.test'
    event = AuditEvent.objects.get(action='user_update', object_id=user.id)
    assert event.detail == {'fields': ['email', 'first_name']}

    r = api(admin_user).put(f'/api/admin/users/{user.id}', {'email': other_patient[0].email}, format='json')
    assert r.status_code == 400
    assert 'email' in r.data['error']['message']
    assert api(admin_user).put(f'/api/admin/users/{user.id}', {}, format='json').status_code == 400
    assert api(admin_user).put('/api/admin/users/9999', {'lastName': 'X'}, format='json').status_code == 404
    assert api(doctor).put(f'/api/admin/users/{user.id}', {'lastName': 'X'}, format='json').status_code == 403


def test_admin_deactivates_a_user(admin_user, patient):
    user, profile = patient
    Token.objects.create(user=user)

    r = api(admin_user).delete(f'/api/admin/users/{user.id}')
    assert r.status_code == 200
    assert r.data['user']['isActive'] is False
    user.refresh_from_db()
    profile.refresh_from_db()
    assert not user.is_active
    assert profile.user is None
    assert not Token.objects.filter(user=user).exists()
    assert AuditEvent.objects.get(action='user_deactivate', object_id=user.id).detail == {
        'role': 'patient', 'patientUnlinked': True,
    }

    r = APIClient().post('/api/auth/login', {'username': user.username, 'password': PASSWORD}, format='json')
    assert r.status_code == 400

    assert api(admin_user).delete(f'/api/admin/users/{user.id}').status_code == 409
    r = api(admin_user).delete(f'/api/admin/users/{admin_user.id}')
    assert r.status_code == 409
    assert r.data['error']['code'] == 'invalid_state'

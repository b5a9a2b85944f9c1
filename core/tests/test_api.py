"""
Integration tests for the medlab backend API.

These tests walk one lab test from the front desk to the patient:
registration, test request, assignment, result entry, doctor approval
and code-gated retrieval of the signed report.  They log in through the
real login endpoint and use Django REST Framework's APIClient within the
APITestCase base class.

To run the tests:

```
pytest -q core/tests
```
"""
import datetime
import tempfile
from io import StringIO

from django.core import mail
from django.core.management import call_command
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import (
    AuditEvent,
    DoctorProfile,
    LabTechnicianProfile,
    LabTest,
    PatientAccess,
    TestRequest,
    TestResult,
    User,
)
from .helpers import THREE_ROWS, access_code_from, make_signature


class LabWorkflowAPITests(APITestCase):
    def setUp(self) -> None:
        """Create one user per role, a catalog test and an isolated result store."""
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        overrides = override_settings(
            RESULT_STORAGE_ROOT=tmp.name,
            EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend',
            RESULT_ACCESS_CODE_IN_RESPONSE=False,
        )
        overrides.enable()
        self.addCleanup(overrides.disable)

        self.password = 'P@ssw0rd1'
        self.admin = User.objects.create_user(username='admin1', password=self.password, role='admin')
        self.desk = User.objects.create_user(username='desk1', password=self.password, role='front_desk')
        self.doctor = User.objects.create_user(username='doctor1', password=self.password, role='doctor')
        DoctorProfile.objects.create(user=self.doctor, specialization='Pathology', license_number='LIC-1')
        self.tech = User.objects.create_user(username='tech1', password=self.password, role='lab_technician')
        LabTechnicianProfile.objects.create(user=self.tech, certification='MLS', certification_number='C-1')
        self.test = LabTest.objects.create(name='Complete Blood Count', code='CBC', category='Blood')

    def client_for(self, username: str, password: str = None) -> APIClient:
        """Log in through the API and return a client carrying the token."""
        client = APIClient()
        r = client.post(reverse('login_view'), {'username': username, 'password': password or self.password},
                        format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
        return client

    def test_result_travels_from_front_desk_to_patient(self) -> None:
        desk = self.client_for('desk1')

        # front desk registers the patient; credentials arrive by email
        with self.captureOnCommitCallbacks(execute=True):
            r = desk.post('/api/admin/patients', {
                'firstName': 'Jane', 'lastName': 'Roe', 'email': 'jane@example.test', 'phone': '555-0101',
                'dateOfBirth': '1988-02-14', 'gender': 'female', 'password': 'Kx9!mediumStrong',
            }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        patient_id = r.data['patient']['id']
        self.assertEqual(mail.outbox[-1].to, ['jane@example.test'])

        r = desk.post('/api/test-requests', {
            'patientId': patient_id, 'testIds': [self.test.id], 'doctorId': self.doctor.id, 'priority': 'high',
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        request_id = r.data['data'][0]['id']

        doctor = self.client_for('doctor1')
        r = doctor.post(f'/api/test-requests/{request_id}/assign', {'labTechnicianId': self.tech.id}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)

        tech = self.client_for('tech1')
        self.assertEqual(tech.post(f'/api/test-requests/{request_id}/start').status_code, status.HTTP_200_OK)
        r = tech.post('/api/lab-results/submit/manual', {
            'testRequestId': request_id,
            'results': THREE_ROWS,
            'interpretation': 'Within normal limits.',
            'signature': make_signature(),
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        result_id = r.data['result']['id']

        with self.captureOnCommitCallbacks(execute=True):
            r = doctor.post('/api/lab-results/approve', {
                'resultId': result_id, 'status': 'approved', 'remarks': 'Normal.',
                'signature': make_signature('blue'),
            }, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK, r.data)
        self.assertNotIn('accessCode', r.data)
        self.assertEqual(TestRequest.objects.get(pk=request_id).status, TestRequest.STATUS_COMPLETED)
        self.assertEqual(TestResult.objects.get(pk=result_id).status, TestResult.STATUS_SENT)
        self.assertEqual(PatientAccess.objects.filter(test_result_id=result_id).count(), 1)

        code = access_code_from(mail.outbox[-1])
        patient = self.client_for('jane@example.test', 'Kx9!mediumStrong')
        r = patient.get('/api/lab-results')
        self.assertEqual([item['id'] for item in r.data['data']], [result_id])

        r = patient.post(f'/api/lab-results/{result_id}/access', {'accessCode': code}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertTrue(r.content.startswith(b'%PDF'))
        self.assertIn('lab-result-', r['Content-Disposition'])

        actions = set(AuditEvent.objects.values_list('action', flat=True))
        for action in ('patient_register', 'test_request_create', 'test_request_assign', 'test_request_start',
                       'result_submit', 'result_approve', 'result_accessed'):
            self.assertIn(action, actions)

    def test_admin_reads_audit_trail(self) -> None:
        admin = self.client_for('admin1')
        self.client_for('doctor1')
        r = admin.get('/api/admin/audit-events?action=login')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['pagination']['total'], 2)
        self.assertEqual(r.data['data'][0]['username'], 'doctor1')
        self.assertEqual(self.client_for('doctor1').get('/api/admin/audit-events').status_code,
                         status.HTTP_403_FORBIDDEN)

    def test_demo_users_command_is_idempotent(self) -> None:
        call_command('ensure_demo_users', '--password', 'Demo#Pass2024', stdout=StringIO())
        call_command('ensure_demo_users', '--password', 'Demo#Pass2024', stdout=StringIO())
        self.assertEqual(User.objects.filter(username='labtech1', role='lab_technician').count(), 1)
        self.assertTrue(LabTest.objects.filter(code='GLU').exists())
        self.assertEqual(LabTest.objects.filter(code='CBC').count(), 1)
        self.client_for('patient1', 'Demo#Pass2024')
        profile = User.objects.get(username='patient1').patient_profile
        self.assertEqual(profile.date_of_birth, datetime.date(1990, 1, 1))

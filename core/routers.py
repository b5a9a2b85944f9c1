"""
URL mappings for the medlab backend API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path, include

from .auth_views import login_view, jwt_refresh_view, jwt_logout_view
from .views import audit, catalog, directory, health, lab_results, reports, test_requests


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),

    # Directory
    path('api/admin/staff', directory.register_staff, name='register_staff'),
    path('api/admin/patients', directory.register_patient, name='register_patient'),
    path('api/admin/users', directory.list_users, name='list_users'),
    path('api/admin/users/<int:pk>', directory.user_detail, name='user_detail'),
    path('api/admin/audit-events', audit.audit_events, name='audit_events'),
    path('api/lab-technicians', directory.lab_technicians, name='lab_technicians'),
    path('api/patients', directory.patients, name='patients'),
    path('api/patients/<int:pk>', directory.patient_detail, name='patient_detail'),

    # Test catalog
    path('api/tests', catalog.lab_tests, name='lab_tests'),
    path('api/tests/categories', reports.lab_test_categories, name='lab_test_categories'),
    path('api/tests/<int:pk>', catalog.lab_test_detail, name='lab_test_detail'),

    # Test requests
    path('api/test-requests', test_requests.test_requests, name='test_requests'),
    path('api/test-requests/<int:pk>', test_requests.test_request_detail, name='test_request_detail'),
    path('api/test-requests/<int:pk>/assign', test_requests.assign_test_request, name='assign_test_request'),
    path('api/test-requests/<int:pk>/start', test_requests.start_test_request, name='start_test_request'),
    path('api/test-requests/<int:pk>/cancel', test_requests.cancel_test_request, name='cancel_test_request'),
    path('api/test-requests/<int:pk>/remarks', test_requests.update_remarks, name='update_remarks'),
    path('api/test-requests/stats/summary', reports.request_summary, name='request_summary'),

    # Worklists
    path('api/doctor/dashboard', reports.doctor_dashboard, name='doctor_dashboard'),
    path('api/doctor/pending-results', reports.pending_results, name='pending_results'),
    path('api/lab/dashboard', reports.lab_dashboard, name='lab_dashboard'),
    path('api/lab/statistics', reports.lab_statistics, name='lab_statistics'),

    # Lab results
    path('api/lab-results', lab_results.list_results, name='list_results'),
    path('api/lab-results/submit/manual', lab_results.submit_manual, name='submit_manual'),
    path('api/lab-results/submit/upload', lab_results.submit_upload, name='submit_upload'),
    path('api/lab-results/approve', lab_results.review_result, name='review_result'),
    path('api/lab-results/<int:pk>', lab_results.result_detail, name='result_detail'),
    path('api/lab-results/<int:pk>/file', lab_results.result_file, name='result_file'),
    path('api/lab-results/<int:pk>/access', lab_results.access_result, name='access_result'),
]

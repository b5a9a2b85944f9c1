import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils import timezone

from core.models import PatientAccess, TestResult

logger = logging.getLogger(__name__)


def _send(template: str, subject: str, to: str, context: dict) -> None:
    body = render_to_string(f'core/emails/{template}.txt', context)
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [to], fail_silently=False)


def send_credentials(data: dict) -> None:
    if not data.get('email'):
        logger.warning('no email address for user %s; credentials not sent', data.get('username'))
        return
    _send('credentials', 'Your Medlab account', data['email'], {
        'name': data.get('name') or data['username'],
        'username': data['username'],
        'password': data['password'],
        'role': data.get('role'),
        'login_url': f"{settings.FRONTEND_URL}/login",
    })
    logger.info('credentials email sent to user %s', data['username'])


def send_result_ready(data: dict) -> None:
    """Deliver the access code, then mark the result as sent."""
    if not data.get('email'):
        logger.warning('patient of result %s has no email; access code not delivered', data['resultId'])
        return
    _send('result_ready', 'Your lab result is ready', data['email'], {
        'name': data.get('name'),
        'test_name': data.get('testName'),
        'request_number': data.get('requestNumber'),
        'access_code': data['accessCode'],
        'expires_at': data.get('expiresAt'),
        'access_url': f"{settings.FRONTEND_URL}/results/{data['resultId']}/access",
    })
    now = timezone.now()
    PatientAccess.objects.filter(id=data['accessId'], delivered_at__isnull=True).update(delivered_at=now)
    TestResult.objects.filter(id=data['resultId'], status=TestResult.STATUS_APPROVED).update(
        status=TestResult.STATUS_SENT, updated_at=now)
    logger.info('result %s access code delivered', data['resultId'])


HANDLERS = {
    'credentials_issued': send_credentials,
    'result_ready': send_result_ready,
}

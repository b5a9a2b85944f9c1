"""
Patient access grants for approved results.

A grant is minted once per approval.  The plain code is returned to the
caller only so it can be handed to the email outbox; the row stores a
keyed digest of it.
"""
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from django.utils.crypto import constant_time_compare, salted_hmac

from core.models import PatientAccess

logger = logging.getLogger(__name__)

# no 0/O or 1/I/L: codes are typed in by hand
ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
_SALT = 'core.services.access.patient-access-code'


def generate_code(length: int = None) -> str:
    length = length or settings.RESULT_ACCESS_CODE_LENGTH
    return ''.join(secrets.choice(ALPHABET) for _ in range(length))


def hash_code(code: str) -> str:
    return salted_hmac(_SALT, (code or '').strip().upper(), algorithm='sha256').hexdigest()


def code_matches(access: PatientAccess, code: str) -> bool:
    return constant_time_compare(hash_code(code), access.access_code_hash)


def mint(result, patient, now=None):
    """Create the grant for ``(result, patient)`` and return ``(access, plain_code)``."""
    now = now or timezone.now()
    code = generate_code()
    access = PatientAccess.objects.create(
        patient=patient,
        test_result=result,
        access_code_hash=hash_code(code),
        expires_at=now + timedelta(hours=settings.RESULT_ACCESS_TTL_HOURS),
    )
    logger.info('access grant %s minted for result %s, expires %s', access.id, result.id, access.expires_at)
    return access, code


def find_valid_grant(result, patient, code: str, now=None):
    """Return the unexpired grant matching ``code`` or ``None``."""
    now = now or timezone.now()
    grants = PatientAccess.objects.filter(test_result=result, patient=patient, expires_at__gt=now)
    for grant in grants:
        if code_matches(grant, code):
            return grant
    return None


def purge_expired(now=None) -> int:
    now = now or timezone.now()
    deleted, _ = PatientAccess.objects.filter(expires_at__lte=now).delete()
    return deleted

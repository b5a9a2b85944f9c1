"""
Secure file storage for raw result uploads and approved artifacts.

Files live under ``settings.RESULT_STORAGE_ROOT``, outside static and
media roots; rows reference them by storage-relative path.  Writes made
during a lifecycle operation go through :class:`StagedFiles` so that a
rolled back (or failed to commit) transaction never leaves an orphan on
disk.
"""
from __future__ import annotations

import hashlib
import logging
import os
from typing import List, Optional, Tuple

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import FileSystemStorage
from django.db import transaction
from django.utils import timezone
from django.utils.text import get_valid_filename

from core.exceptions import StorageFailure

logger = logging.getLogger(__name__)

RAW_DIR = 'raw'
APPROVED_DIR = 'approved'


def get_storage() -> FileSystemStorage:
    return FileSystemStorage(location=os.fspath(settings.RESULT_STORAGE_ROOT))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def safe_file_name(name: Optional[str]) -> str:
    base = os.path.basename(name or '')
    if not base.strip(' .'):
        return 'upload'
    return get_valid_filename(base)[:120]


def read_bytes(path: str, storage: Optional[FileSystemStorage] = None) -> bytes:
    storage = storage or get_storage()
    try:
        with storage.open(path, 'rb') as fh:
            return fh.read()
    except OSError as exc:
        logger.error('failed to read stored file %s: %s', path, exc)
        raise StorageFailure() from exc


def delete_quietly(path: str, storage: Optional[FileSystemStorage] = None) -> None:
    if not path:
        return
    storage = storage or get_storage()
    try:
        storage.delete(path)
    except OSError:
        logger.exception('failed to delete stored file %s', path)


def delete_on_commit(path: str, storage: Optional[FileSystemStorage] = None) -> None:
    """Remove a superseded file once the current transaction commits."""
    if path:
        transaction.on_commit(lambda: delete_quietly(path, storage))


class StagedFiles:
    """Track files written during one operation; delete them all on error.

    Enter this *outside* ``transaction.atomic()`` so that commit failures
    are covered as well::

        with StagedFiles() as files, transaction.atomic():
            path = files.save_bytes(...)
    """

    def __init__(self, storage: Optional[FileSystemStorage] = None):
        self.storage = storage or get_storage()
        self.written: List[str] = []

    def __enter__(self) -> 'StagedFiles':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            for path in self.written:
                delete_quietly(path, self.storage)
            if self.written:
                logger.warning('discarded %d staged file(s) after %s', len(self.written), exc_type.__name__)
        return False

    def save_bytes(self, name: str, data: bytes) -> str:
        try:
            path = self.storage.save(name, ContentFile(data))
        except OSError as exc:
            logger.error('failed to write %s: %s', name, exc)
            raise StorageFailure() from exc
        self.written.append(path)
        return path

    def save_upload(self, upload) -> Tuple[str, str, bytes]:
        """Store an uploaded result file as ``raw/result_<ts>_<name>``.

        Returns ``(path, original_name, data)``.
        """
        data = b''.join(upload.chunks())
        original = safe_file_name(getattr(upload, 'name', ''))
        stamp = timezone.now().strftime('%Y%m%d%H%M%S%f')
        path = self.save_bytes(f'{RAW_DIR}/result_{stamp}_{original}', data)
        return path, original, data

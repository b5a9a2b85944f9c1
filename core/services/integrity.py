"""
Canonical digest of a lab result.

One serialization is used at submission, before approval and on every
patient retrieval::

    sha256(json.dumps({
        "comments", "interpretation", "methodology", "qualityControl",
        "resultType", "payload",
    }, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))

Blank text fields serialize as ``null``.  ``payload`` is the list of result
rows exactly as stored for manual entries (normalized once, at submission),
or ``{"sha256": <file digest>}`` for uploads, so a file swapped on disk
changes the result digest too.
"""
from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from core.exceptions import ResultTampered
from core.models import TestResult
from core.services import storage as file_storage

logger = logging.getLogger(__name__)

ROW_FIELDS = ('parameter', 'value', 'unit', 'referenceRange', 'flag')


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def normalize_rows(rows: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Optional[str]]]:
    """Project result rows onto the fixed row shape, keeping their order."""
    return [{key: _text(row.get(key)) for key in ROW_FIELDS} for row in (rows or [])]


def canonical_bytes(*, result_type: str, payload: Any, interpretation: Optional[str] = None,
                    methodology: Optional[str] = None, comments: Optional[str] = None,
                    quality_control: Optional[str] = None) -> bytes:
    doc = {
        'comments': _text(comments),
        'interpretation': _text(interpretation),
        'methodology': _text(methodology),
        'qualityControl': _text(quality_control),
        'resultType': result_type,
        'payload': payload,
    }
    return json.dumps(doc, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def compute_digest(*, result_type: str, rows=None, file_sha256: Optional[str] = None, **annotations) -> str:
    if result_type == TestResult.TYPE_FILE:
        payload: Any = {'sha256': file_sha256}
    else:
        payload = list(rows or [])
    return file_storage.sha256_hex(canonical_bytes(result_type=result_type, payload=payload, **annotations))


def digest_for_result(result: TestResult, storage=None, *, file_sha256: Optional[str] = None) -> str:
    """Digest of the fields currently set on ``result``.

    For uploads the file is read back from storage unless its hash is given.
    """
    file_sha = file_sha256
    if result.result_type == TestResult.TYPE_FILE and file_sha is None:
        file_sha = file_storage.sha256_hex(file_storage.read_bytes(result.raw_file, storage))
    return compute_digest(
        result_type=result.result_type,
        rows=result.results,
        file_sha256=file_sha,
        interpretation=result.interpretation,
        methodology=result.methodology,
        comments=result.comments,
        quality_control=result.quality_control,
    )


def verify_result(result: TestResult, *, stage: str, storage=None) -> None:
    actual = digest_for_result(result, storage)
    if not hmac.compare_digest(actual, result.result_hash or ''):
        logger.error('result %s digest mismatch at %s: stored=%s recomputed=%s',
                     result.id, stage, result.result_hash, actual)
        raise ResultTampered()


def read_verified_artifact(result: TestResult, storage=None) -> bytes:
    """Return the approved artifact bytes after checking them against the stored hash."""
    data = file_storage.read_bytes(result.approved_file, storage)
    if not hmac.compare_digest(file_storage.sha256_hex(data), result.approved_file_hash or ''):
        logger.error('approved artifact of result %s does not match its recorded hash', result.id)
        raise ResultTampered()
    return data

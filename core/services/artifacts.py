"""
Rendering of the approved result report (PDF, reportlab).

The report embeds patient and test identity, the result rows (or the
uploaded file reference), the annotations, both signature images and the
submission digest, so the document can be audited on its own.
"""
from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO
from typing import List, Optional

from django.utils import timezone
from PIL import Image as PILImage, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

from core.models import TestResult

logger = logging.getLogger(__name__)

SIGNATURE_MAX_BYTES = 512 * 1024
SIGNATURE_BOX = (60 * mm, 22 * mm)


def decode_signature(value: str) -> bytes:
    """Decode a base64 signature image (optionally a ``data:`` URL) and check it is an image.

    Raises ``ValueError`` when the value is not a readable image.
    """
    value = (value or '').strip()
    if value.startswith('data:'):
        value = value.partition(',')[2]
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError('signature must be a base64 encoded image') from exc
    if not raw or len(raw) > SIGNATURE_MAX_BYTES:
        raise ValueError('signature image is empty or too large')
    try:
        with PILImage.open(BytesIO(raw)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError('signature is not a valid image') from exc
    return raw


def _signature_flowable(value: str):
    raw = decode_signature(value)
    with PILImage.open(BytesIO(raw)) as img:
        width, height = img.size
    box_w, box_h = SIGNATURE_BOX
    scale = min(box_w / max(width, 1), box_h / max(height, 1))
    return Image(BytesIO(raw), width=width * scale, height=height * scale)


def _p(text: Optional[str], style) -> Paragraph:
    return Paragraph(escape(text or '-').replace('\n', '<br/>'), style)


def render_approved_report(result: TestResult, *, doctor_signature: str, approved_by, approved_at=None) -> bytes:
    """Render the approved artifact for ``result`` and return the PDF bytes."""
    req = result.test_request
    patient = req.patient
    test = req.test
    approved_at = approved_at or timezone.now()

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=16 * mm,
        bottomMargin=16 * mm,
        title=f"Lab result {req.request_number}",
    )
    styles = getSampleStyleSheet()
    heading = ParagraphStyle('Heading', parent=styles['Heading2'], textColor=colors.HexColor('#1a3a5c'),
                             spaceBefore=8, spaceAfter=4)
    normal = styles['Normal']
    small = ParagraphStyle('Small', parent=normal, fontSize=8, textColor=colors.grey)
    mono = ParagraphStyle('Mono', parent=small, fontName='Courier')

    story: List = [
        Paragraph('Laboratory Test Report', styles['Title']),
        Paragraph(f"Request {escape(req.request_number)} &middot; approved {approved_at:%Y-%m-%d %H:%M} UTC", small),
        Spacer(1, 4 * mm),
    ]

    info = Table([
        ['Patient', patient.full_name, 'Patient No.', str(patient.patient_number)],
        ['Date of birth', patient.date_of_birth.isoformat(), 'Gender', patient.get_gender_display()],
        ['Test', f"{test.name} ({test.code})", 'Category', test.category],
        ['Sample type', test.sample_type or '-', 'Priority', req.get_priority_display()],
    ], colWidths=[28 * mm, 62 * mm, 26 * mm, 58 * mm])
    info.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    story.append(info)

    story.append(Paragraph('Results', heading))
    if result.result_type == TestResult.TYPE_FILE:
        story.append(_p(f"Uploaded report: {result.raw_file_name or result.raw_file}", normal))
    else:
        rows = [['Parameter', 'Value', 'Unit', 'Reference range', 'Flag']]
        for row in result.results or []:
            rows.append([row.get('parameter') or '', row.get('value') or '', row.get('unit') or '',
                         row.get('referenceRange') or '', row.get('flag') or ''])
        table = Table(rows, colWidths=[50 * mm, 30 * mm, 22 * mm, 50 * mm, 22 * mm], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1a3a5c')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f0f4f8')]),
            ('GRID', (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ]))
        story.append(table)

    for title, text in (
        ('Interpretation', result.interpretation),
        ('Methodology', result.methodology),
        ('Comments', result.comments),
        ('Quality control', result.quality_control),
        ("Doctor's remarks", result.doctor_remarks),
    ):
        if text:
            story.append(Paragraph(title, heading))
            story.append(_p(text, normal))

    story.append(Paragraph('Signatures', heading))
    signatures = Table([
        [_signature_flowable(result.lab_tech_signature), _signature_flowable(doctor_signature)],
        [_p(f"Lab technician: {result.lab_technician.display_name}", small),
         _p(f"Approved by: Dr. {approved_by.display_name}", small)],
        [_p(f"Submitted {result.submitted_at:%Y-%m-%d %H:%M}", small),
         _p(f"Approved {approved_at:%Y-%m-%d %H:%M}", small)],
    ], colWidths=[87 * mm, 87 * mm])
    signatures.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'BOTTOM')]))
    story.append(signatures)

    story.append(Spacer(1, 6 * mm))
    story.append(Paragraph(f"Result digest (SHA-256): {escape(result.result_hash)}", mono))

    doc.build(story)
    pdf = buf.getvalue()
    logger.debug('rendered approved report for result %s (%d bytes)', result.id, len(pdf))
    return pdf

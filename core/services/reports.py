"""
Worklists and summary counts for the doctor and lab technician screens.

Everything here is read-only and built on the role-scoped querysets of
:mod:`core.services.test_requests` and :mod:`core.services.results`, so a
dashboard never shows more than the matching list endpoint would.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Dict, List

from django.db.models import Case, Count, IntegerField, Value, When
from django.db.models.functions import TruncDate
from django.utils import timezone

from core.models import LabTest, TestRequest, TestResult
from core.services.results import visible_results
from core.services.test_requests import visible_requests

S = TestRequest

PRIORITY_RANK = Case(
    When(priority='urgent', then=Value(0)),
    When(priority='high', then=Value(1)),
    When(priority='medium', then=Value(2)),
    default=Value(3),
    output_field=IntegerField(),
)


def _today_bounds(now=None):
    start = timezone.localtime(now or timezone.now()).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _status_counts(qs) -> Dict[str, int]:
    return {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id')).order_by()}


def doctor_dashboard(user, now=None) -> dict:
    start, end = _today_bounds(now)
    requests = visible_requests(user)
    todays = requests.filter(created_at__gte=start, created_at__lt=end)
    counts = _status_counts(todays)
    return {
        'openToday': list(todays.filter(status__in=[S.STATUS_PENDING, S.STATUS_ASSIGNED, S.STATUS_IN_PROGRESS])
                          .order_by('created_at', 'id')),
        'pendingResults': list(pending_results(user)),
        'stats': {
            'pending': counts.get(S.STATUS_PENDING, 0),
            'assignedToLab': counts.get(S.STATUS_ASSIGNED, 0),
            'inProgress': counts.get(S.STATUS_IN_PROGRESS, 0),
            'completed': counts.get(S.STATUS_COMPLETED, 0),
        },
    }


def pending_results(user):
    """Submitted results awaiting this doctor's review, oldest first."""
    return visible_results(user).filter(status=TestResult.STATUS_SUBMITTED).order_by('submitted_at', 'id')


def lab_dashboard(user, now=None) -> dict:
    start, end = _today_bounds(now)
    requests = visible_requests(user)
    worklist = list(requests.filter(status__in=[S.STATUS_ASSIGNED, S.STATUS_IN_PROGRESS])
                    .annotate(rank=PRIORITY_RANK).order_by('rank', 'assigned_at', 'id'))
    counts = _status_counts(requests.filter(assigned_at__gte=start, assigned_at__lt=end))
    return {
        'worklist': worklist,
        'revisionNeeded': list(visible_results(user).filter(status=TestResult.STATUS_NEEDS_REVISION)
                               .order_by('updated_at', 'id')),
        'stats': {
            'assigned': counts.get(S.STATUS_ASSIGNED, 0),
            'inProgress': counts.get(S.STATUS_IN_PROGRESS, 0),
            'completed': counts.get(S.STATUS_COMPLETED, 0),
            'total': len(worklist),
        },
    }


def lab_statistics(user, *, days: int = 7, now=None) -> dict:
    since = (now or timezone.now()) - timedelta(days=days)
    assigned = visible_requests(user).filter(assigned_at__gte=since)
    daily = (assigned.annotate(date=TruncDate('assigned_at')).values('date', 'status')
             .annotate(count=Count('id')).order_by('date', 'status'))
    spans = [
        (done - started).total_seconds()
        for started, done in assigned.filter(status=S.STATUS_COMPLETED, completed_at__isnull=False)
                                     .values_list('assigned_at', 'completed_at')
    ]
    return {
        'dailyStats': [{'date': row['date'].isoformat(), 'status': row['status'], 'count': row['count']}
                       for row in daily],
        'avgCompletionHours': round(sum(spans) / len(spans) / 3600, 2) if spans else 0,
    }


def request_summary(user, *, days: int = 30, now=None) -> dict:
    """Status, category and daily distribution of recent requests."""
    since = (now or timezone.now()) - timedelta(days=days)
    qs = visible_requests(user).filter(created_at__gte=since)
    categories = qs.values('test__category').annotate(count=Count('id')).order_by('test__category')
    daily = qs.annotate(date=TruncDate('created_at')).values('date').annotate(count=Count('id')).order_by('date')
    return {
        'statusDistribution': [{'status': s, 'count': n} for s, n in sorted(_status_counts(qs).items())],
        'categoryDistribution': [{'category': row['test__category'], 'count': row['count']} for row in categories],
        'dailyTrend': [{'date': row['date'].isoformat(), 'count': row['count']} for row in daily],
    }


def catalog_categories() -> List[dict]:
    rows = (LabTest.objects.filter(is_active=True).values('category')
            .annotate(count=Count('id')).order_by('category'))
    return [{'category': row['category'], 'count': row['count']} for row in rows]


"""
Growth Analytics: dashboard figures computed from the ledger on demand.

Months are calendar months in the active time zone (settings.TIME_ZONE).
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_FLOOR, Decimal

from django.db.models import Count, Sum
from django.db.models.functions import TruncDay, TruncMonth
from django.utils import timezone

from enrollments.models import Course, Enrollment
from users.models import User

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')
HALF = Decimal('0.5')

REVENUE_MONTHS = 12
REVENUE_DAYS = 30
TOP_COURSES = 5


@dataclass(frozen=True)
class PeriodFigures:
    students: int
    enrollments: int
    revenue: Decimal


@dataclass(frozen=True)
class GrowthReport:
    students: Decimal
    revenue: Decimal
    enrollments: Decimal
    current: PeriodFigures
    previous: PeriodFigures
    fallback: PeriodFigures


def growth(current, previous, fallback) -> Decimal:
    """
    Signed percentage change of ``current`` against ``previous``.

    With no previous figure the month before it (``fallback``) is used as
    the base instead; with neither, growth is 0. Rounded to 2 places with
    halves going toward positive infinity, so -12.345 becomes -12.34.
    """
    current, previous, fallback = Decimal(current), Decimal(previous), Decimal(fallback)

    if previous > 0:
        base = previous
    elif fallback > 0:
        base = fallback
    else:
        return ZERO

    percent = (current - base) / base * HUNDRED
    cents = (percent * HUNDRED + HALF).to_integral_value(rounding=ROUND_FLOOR)
    return (cents / HUNDRED).quantize(CENT)


# ─── Windows ────────────────────────────────────────────────────────────────

def month_start(moment):
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def previous_month_start(start):
    return month_start(start - timedelta(days=1))


def next_month_start(start):
    return month_start(start + timedelta(days=32))


def month_windows(now=None):
    """(current, previous, fallback) as half-open [start, end) ranges."""
    now = timezone.localtime(now or timezone.now())
    current = month_start(now)
    previous = previous_month_start(current)
    fallback = previous_month_start(previous)
    return (
        (current, next_month_start(current)),
        (previous, current),
        (fallback, previous),
    )


def period_figures(start, end) -> PeriodFigures:
    enrollments = Enrollment.objects.filter(enrolled_at__gte=start, enrolled_at__lt=end)
    totals = enrollments.aggregate(count=Count('id'), revenue=Sum('amount_paid'))
    return PeriodFigures(
        students=User.objects.students().filter(
            date_joined__gte=start, date_joined__lt=end,
        ).count(),
        enrollments=totals['count'] or 0,
        revenue=Decimal(totals['revenue'] or ZERO).quantize(CENT),
    )


# ─── Reports ────────────────────────────────────────────────────────────────

def monthly_growth(now=None) -> GrowthReport:
    current_window, previous_window, fallback_window = month_windows(now)
    current = period_figures(*current_window)
    previous = period_figures(*previous_window)
    fallback = period_figures(*fallback_window)

    return GrowthReport(
        students=growth(current.students, previous.students, fallback.students),
        revenue=growth(current.revenue, previous.revenue, fallback.revenue),
        enrollments=growth(current.enrollments, previous.enrollments, fallback.enrollments),
        current=current,
        previous=previous,
        fallback=fallback,
    )


def platform_totals() -> dict:
    """Totals from the course counters, plus the student head count."""
    counters = Course.objects.aggregate(
        courses=Count('id'),
        enrollments=Sum('enrollment_count'),
        revenue=Sum('total_revenue'),
    )
    return {
        'totalStudents': User.objects.students().count(),
        'totalCourses': counters['courses'] or 0,
        'totalEnrollments': counters['enrollments'] or 0,
        'totalRevenue': Decimal(counters['revenue'] or ZERO).quantize(CENT),
    }


def revenue_breakdown(now=None) -> dict:
    """
    Paid enrollments grouped by month (last 12) and by day (last 30).

    Free and manual enrollments are left out. Every bucket is present, empty
    ones with zero revenue.
    """
    now = timezone.localtime(now or timezone.now())
    paid = Enrollment.objects.filter(amount_paid__gt=0)

    first_month = month_start(now)
    for _ in range(REVENUE_MONTHS - 1):
        first_month = previous_month_start(first_month)

    monthly_rows = (
        paid.filter(enrolled_at__gte=first_month)
        .annotate(bucket=TruncMonth('enrolled_at'))
        .values('bucket')
        .annotate(revenue=Sum('amount_paid'), enrollments=Count('id'))
    )
    by_month = {
        (row['bucket'].year, row['bucket'].month): row for row in monthly_rows
    }

    monthly = []
    cursor = first_month
    for _ in range(REVENUE_MONTHS):
        row = by_month.get((cursor.year, cursor.month), {})
        monthly.append({
            'month': cursor.strftime('%Y-%m'),
            'revenue': Decimal(row.get('revenue') or ZERO).quantize(CENT),
            'enrollments': row.get('enrollments', 0),
        })
        cursor = next_month_start(cursor)

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    first_day = today - timedelta(days=REVENUE_DAYS - 1)
    daily_rows = (
        paid.filter(enrolled_at__gte=first_day)
        .annotate(bucket=TruncDay('enrolled_at'))
        .values('bucket')
        .annotate(revenue=Sum('amount_paid'), enrollments=Count('id'))
    )
    by_day = {row['bucket'].date(): row for row in daily_rows}

    daily = []
    for offset in range(REVENUE_DAYS):
        day = (first_day + timedelta(days=offset)).date()
        row = by_day.get(day, {})
        daily.append({
            'date': day.isoformat(),
            'revenue': Decimal(row.get('revenue') or ZERO).quantize(CENT),
            'enrollments': row.get('enrollments', 0),
        })

    return {'monthly': monthly, 'daily': daily}


def top_courses(limit=TOP_COURSES):
    return list(
        Course.objects.order_by('-total_revenue', '-enrollment_count', 'title')[:limit]
    )

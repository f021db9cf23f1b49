# dentalclinic/services/report_service.py
import calendar
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud, schemas
from ..exceptions import ValidationError
from ..models import AppointmentStatus, PaymentStatus

PERIOD_MONTHS = {"month": 1, "quarter": 3, "year": 12}


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def period_bounds(period: str, today: Optional[date] = None) -> tuple[date, date]:
    if period not in PERIOD_MONTHS:
        raise ValidationError(f"Unknown period '{period}'. Use one of: {', '.join(PERIOD_MONTHS)}")
    end = today or date.today()
    return _months_back(end, PERIOD_MONTHS[period]), end


def attendance_rate(completed: int, total: int) -> float:
    """completed / total as a percentage with one decimal; 0.0 when there is nothing to measure."""
    if total <= 0:
        return 0.0
    return round(completed / total * 100, 1)


def average_revenue(revenue: Decimal, completed: int) -> Decimal:
    if completed <= 0:
        return Decimal("0.00")
    return (Decimal(revenue) / completed).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def build_report(db: Session, period: str = "month", today: Optional[date] = None) -> schemas.ReportResponse:
    start, end = period_bounds(period, today)
    # Timestamps are compared against [start 00:00, day after end 00:00) so both ends are inclusive days
    start_dt = datetime.combine(start, time.min)
    end_dt = datetime.combine(end + timedelta(days=1), time.min)

    total = crud.count_appointments(db, start, end)
    completed = crud.count_appointments(db, start, end, AppointmentStatus.completed)
    revenue = Decimal(str(crud.sum_completed_payments(db, start_dt, end_dt) or 0)).quantize(Decimal("0.01"))

    return schemas.ReportResponse(
        period=period,
        period_start=start,
        period_end=end,
        total_appointments=total,
        completed_appointments=completed,
        cancelled_appointments=crud.count_appointments(db, start, end, AppointmentStatus.cancelled),
        no_show_appointments=crud.count_appointments(db, start, end, AppointmentStatus.no_show),
        total_revenue=revenue,
        pending_payments=crud.count_payments(db, PaymentStatus.pending),
        new_patients=crud.count_new_patients(db, start_dt, end_dt),
        attendance_rate=attendance_rate(completed, total),
        average_revenue_per_appointment=average_revenue(revenue, completed),
    )

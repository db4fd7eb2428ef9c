"""
Repayment Schedule Engine

Pure calendar and money computations over a loan snapshot and its
repayments: due dates, per-period status, overdue amount and missed-payment
count. Nothing in this module touches storage; the LoanManager fetches the
records, calls in here and writes back the results.

Conventions:
    - ``interest_rate`` is a flat charge per period, not a percentage.
    - A Monthly installment is ``amount / duration + interest_rate``.
    - A Weekly installment is ``amount / (duration - 1)``; the last week carries
      no principal slice. Single-week loans divide by 1.
    - When a period has several repayments the one with the latest
      ``paid_date`` is authoritative; on equal dates the later-recorded wins.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import calendar
import math

from .currency import Money
from .models import Loan, LoanStatus, PaymentType, PeriodStatus, Repayment, RepaymentType


DAYS_PER_WEEK = 7
DEFAULT_VISIBILITY_DAYS = 7


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the end of the target month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date_for_period(loan: Loan, period: int) -> date:
    """Due date of ``period``, always counted from the disbursement date"""
    if loan.repayment_type == RepaymentType.MONTHLY:
        return add_months(loan.disbursement_date, period)
    return loan.disbursement_date + timedelta(days=DAYS_PER_WEEK * period)


def first_due_date(loan: Loan) -> date:
    return due_date_for_period(loan, 1)


def expected_periods(loan: Loan, as_of: date) -> int:
    """
    Number of periods that should have been paid by ``as_of``

    Monthly loans count whole calendar months, less one when the
    disbursement day-of-month has not recurred yet. Weekly loans count whole
    weeks. The result is clamped to ``[0, duration]``.
    """
    disbursed = loan.disbursement_date
    if loan.repayment_type == RepaymentType.MONTHLY:
        count = (as_of.year - disbursed.year) * 12 + (as_of.month - disbursed.month)
        if as_of.day < disbursed.day:
            count -= 1
    else:
        count = (as_of - disbursed).days // DAYS_PER_WEEK
    return max(0, min(count, loan.duration))


def _principal_divisor(duration: int, repayment_type: RepaymentType) -> int:
    if repayment_type == RepaymentType.MONTHLY:
        return max(1, duration)
    return max(1, duration - 1)


def principal_slice(loan: Loan) -> Money:
    """Principal carried by one installment; what an interest-only payment leaves unpaid"""
    return loan.amount / _principal_divisor(loan.duration, loan.repayment_type)


def calculate_installment(
    amount: Money,
    interest_rate: Money,
    duration: int,
    repayment_type: RepaymentType
) -> Money:
    """
    Full payment due each period

    Args:
        amount: Principal
        interest_rate: Flat interest charge per period
        duration: Number of periods
        repayment_type: Monthly or Weekly cadence

    Returns:
        Installment rounded to the currency precision
    """
    principal = amount / _principal_divisor(duration, repayment_type)
    if repayment_type == RepaymentType.MONTHLY:
        return principal + interest_rate
    return principal


def latest_repayments_by_period(
    repayments: Iterable[Repayment],
    duration: Optional[int] = None
) -> Dict[int, Repayment]:
    """
    Map each period to its authoritative repayment

    Repayments are walked in recording order (``created_at``, stable), and a
    later one replaces an earlier one when its ``paid_date`` is the same or
    newer. Periods outside ``1..duration`` are ignored when ``duration`` is
    given.
    """
    latest: Dict[int, Repayment] = {}
    for repayment in sorted(repayments, key=lambda r: r.created_at):
        if repayment.period < 1 or (duration is not None and repayment.period > duration):
            continue
        current = latest.get(repayment.period)
        if current is None or repayment.paid_date >= current.paid_date:
            latest[repayment.period] = repayment
    return latest


@dataclass(frozen=True)
class OverdueResult:
    """Overdue amount and missed-payment count as of a date"""
    overdue_amount: Money
    missed_payments: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overdue_amount': str(self.overdue_amount.amount),
            'missed_payments': self.missed_payments,
            'currency': self.overdue_amount.currency.code,
        }


def compute_overdue(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: Optional[date] = None
) -> OverdueResult:
    """
    Recompute a loan's overdue position from scratch

    Inactive loans and loans that have not been activated
    (``current_month == 0``) are never overdue. A loan without repayments
    whose ``next_payment_date`` was pushed past the first due date counts as
    exactly one missed installment. Otherwise every period that should have
    been paid by ``as_of`` is checked against its authoritative repayment:
    nothing recorded adds the installment, an interest-only payment adds the
    principal slice, and both count as missed.

    Args:
        loan: Loan snapshot
        repayments: All repayments recorded for the loan
        as_of: Reference date, today when omitted

    Returns:
        OverdueResult
    """
    zero = Money(Decimal('0'), loan.currency)
    if loan.status != LoanStatus.ACTIVE or loan.current_month == 0:
        return OverdueResult(zero, 0)

    as_of = as_of or date.today()
    repayments = list(repayments)

    if not repayments and loan.next_payment_date and loan.next_payment_date > first_due_date(loan):
        return OverdueResult(loan.installment_amount, 1)

    by_period = latest_repayments_by_period(repayments, loan.duration)
    slice_amount = principal_slice(loan)

    overdue = zero
    missed = 0
    for period in range(1, expected_periods(loan, as_of) + 1):
        repayment = by_period.get(period)
        if repayment is None:
            overdue = overdue + loan.installment_amount
            missed += 1
        elif repayment.payment_type == PaymentType.INTEREST_ONLY:
            overdue = overdue + slice_amount
            missed += 1

    return OverdueResult(overdue, missed)


@dataclass
class SchedulePeriod:
    """One derived row of a loan's payment schedule"""
    period: int
    due_date: date
    expected_amount: Money
    status: PeriodStatus
    actual_payment_date: Optional[date] = None
    repayment: Optional[Repayment] = None


@dataclass
class SchedulePage:
    """A page of schedule rows plus pagination metadata"""
    periods: List[SchedulePeriod] = field(default_factory=list)
    page: int = 1
    page_size: int = 10
    total_count: int = 0
    total_pages: int = 0


def build_schedule(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: Optional[date] = None,
    visibility_days: int = DEFAULT_VISIBILITY_DAYS
) -> List[SchedulePeriod]:
    """
    Derive every period of the loan, in period order

    Status rules, first match wins:
        - authoritative repayment: ``paid`` or ``interest_only_paid``
        - period within the expected count: ``missed``
        - due within ``visibility_days`` of ``as_of``: ``pending``
        - otherwise ``upcoming``
    """
    as_of = as_of or date.today()
    by_period = latest_repayments_by_period(repayments, loan.duration)
    expected = expected_periods(loan, as_of)
    horizon = as_of + timedelta(days=visibility_days)

    periods = []
    for period in range(1, loan.duration + 1):
        due = due_date_for_period(loan, period)
        repayment = by_period.get(period)

        if repayment is not None:
            status = (PeriodStatus.INTEREST_ONLY_PAID
                      if repayment.payment_type == PaymentType.INTEREST_ONLY
                      else PeriodStatus.PAID)
        elif period <= expected:
            status = PeriodStatus.MISSED
        elif due <= horizon:
            status = PeriodStatus.PENDING
        else:
            status = PeriodStatus.UPCOMING

        periods.append(SchedulePeriod(
            period=period,
            due_date=due,
            expected_amount=loan.installment_amount,
            status=status,
            actual_payment_date=repayment.paid_date if repayment else None,
            repayment=repayment,
        ))
    return periods


def paginate_schedule(
    periods: List[SchedulePeriod],
    page: int = 1,
    page_size: int = 10,
    status: Optional[PeriodStatus] = None,
    include_all: bool = False
) -> SchedulePage:
    """
    Filter, order and slice derived periods

    Upcoming periods are hidden unless ``include_all`` is set. The status
    filter is applied before counting, rows are ordered newest period first,
    and ``include_all`` returns every matching row without slicing.
    Non-positive ``page``/``page_size`` fall back to 1 and 10.
    """
    page = page if page and page > 0 else 1
    page_size = page_size if page_size and page_size > 0 else 10

    visible = [
        p for p in periods
        if (include_all or p.status != PeriodStatus.UPCOMING)
        and (status is None or p.status == status)
    ]
    visible.sort(key=lambda p: p.period, reverse=True)

    total_count = len(visible)
    if include_all:
        rows = visible
    else:
        start = (page - 1) * page_size
        rows = visible[start:start + page_size]

    return SchedulePage(
        periods=rows,
        page=page,
        page_size=page_size,
        total_count=total_count,
        total_pages=math.ceil(total_count / page_size),
    )


def calculate_next_payment_date(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: Optional[date] = None
) -> Optional[date]:
    """
    Next date the borrower owes a payment

    None once the loan is completed or nothing remains. With no repayments
    it is the first due date. Otherwise the earliest period not settled in
    full that fell due before ``as_of``, then the next such period on or after
    ``as_of``, falling back to the first due date for an active loan.
    """
    if loan.status == LoanStatus.COMPLETED or not loan.remaining_amount.is_positive():
        return None

    as_of = as_of or date.today()
    repayments = list(repayments)
    if not repayments:
        return first_due_date(loan)

    by_period = latest_repayments_by_period(repayments, loan.duration)
    unpaid = [
        due_date_for_period(loan, period)
        for period in range(1, loan.duration + 1)
        if period not in by_period or by_period[period].payment_type != PaymentType.FULL
    ]

    for due in unpaid:
        if due < as_of:
            return due
    for due in unpaid:
        if due >= as_of:
            return due

    if loan.status == LoanStatus.ACTIVE:
        return first_due_date(loan)
    return None

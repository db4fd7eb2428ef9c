"""
Loan Module

Loan creation, repayment recording and overdue recomputation. The
LoanManager owns persistence and audit; every calculation is delegated to
the pure functions in ``schedule``.
"""

from datetime import datetime, timezone, date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import Money, Currency, decimal_from_string
from .errors import NotFoundError, ValidationError
from .logging_config import log_action
from .models import Loan, LoanStatus, PaymentType, PeriodStatus, Repayment, RepaymentType
from .schedule import (
    DEFAULT_VISIBILITY_DAYS,
    OverdueResult,
    SchedulePage,
    build_schedule,
    calculate_installment,
    calculate_next_payment_date,
    compute_overdue,
    first_due_date,
    paginate_schedule,
)
from .storage import StorageInterface

logger = logging.getLogger(__name__)

AmountInput = Union[Money, Decimal, int, float, str]
DateInput = Union[date, datetime, str]

LOAN_MONEY_FIELDS = (
    'amount', 'interest_rate', 'installment_amount',
    'remaining_amount', 'overdue_amount', 'document_charge',
)

# Largest accepted single amount
MAX_AMOUNT = Decimal('10000000000000')

# Editing any of these recalculates the installment or the next payment date
INSTALLMENT_TERMS = {'amount', 'interest_rate', 'duration', 'repayment_type'}
CALENDAR_TERMS = {'disbursement_date', 'duration', 'repayment_type'}


def _parse_date(value: Optional[DateInput], field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            # Accept full ISO timestamps ("2024-01-15T00:00:00Z") as well as dates
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid date for {field}: {value!r}", field=field)


def _parse_whole_number(value: Any, field: str) -> int:
    """Integer from an int or numeric string; fractions, bools and junk are rejected"""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number, got {value!r}", field=field)
    return int(number)


def _audit_value(value: Any) -> Any:
    return value.to_string() if isinstance(value, Money) else value


def _parse_status(value: Union[LoanStatus, str]) -> LoanStatus:
    try:
        return LoanStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid loan status: {value!r}", field="status")


def _parse_money(value: Optional[AmountInput], currency: Currency, field: str) -> Optional[Money]:
    if value is None or value == "":
        return None
    if isinstance(value, Money):
        if value.currency != currency:
            raise ValidationError(
                f"{field} currency {value.currency.code} does not match loan currency {currency.code}",
                field=field
            )
        value = value.amount
    try:
        money = Money(decimal_from_string(value), currency)
    except (ValueError, ArithmeticError):
        raise ValidationError(f"Invalid amount for {field}: {value!r}", field=field)
    if abs(money.amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum of {MAX_AMOUNT:,}", field=field)
    return money


class LoanManager:
    """
    Manages loans and their repayments

    Overdue fields are never patched incrementally: every write-back is the
    result of ``compute_overdue`` over the full repayment history.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        default_currency: Currency = Currency.INR,
        schedule_visibility_days: int = DEFAULT_VISIBILITY_DAYS
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.default_currency = default_currency
        self.schedule_visibility_days = schedule_visibility_days

        self.loans_table = "loans"
        self.repayments_table = "repayments"

    def create_loan(
        self,
        borrower_name: str,
        amount: AmountInput,
        interest_rate: AmountInput,
        duration: int,
        disbursement_date: DateInput,
        repayment_type: Union[RepaymentType, str] = RepaymentType.MONTHLY,
        installment_amount: Optional[AmountInput] = None,
        document_charge: Optional[AmountInput] = None,
        purpose: Optional[str] = None,
        current_month: int = 0,
        currency: Optional[Currency] = None,
        next_payment_date: Optional[DateInput] = None,
        status: Union[LoanStatus, str] = LoanStatus.ACTIVE
    ) -> Loan:
        """
        Create a new loan

        Args:
            borrower_name: Borrower's name
            amount: Principal
            interest_rate: Flat interest charged per period
            duration: Number of periods
            disbursement_date: Date funds were handed over
            repayment_type: Monthly or Weekly
            installment_amount: Full payment per period; computed when omitted
            document_charge: One-off fee taken at disbursement
            purpose: Free-text loan purpose
            current_month: Periods elapsed, 0 until the loan is activated
            currency: Defaults to the manager's currency, or that of ``amount``
            next_payment_date: First date a payment is due; one period after
                disbursement when omitted
            status: Initial status, active unless imported as completed or closed

        Returns:
            Created Loan
        """
        if not borrower_name or not str(borrower_name).strip():
            raise ValidationError("Borrower name is required", field="borrower_name")

        if currency is None:
            currency = amount.currency if isinstance(amount, Money) else self.default_currency

        try:
            repayment_type = RepaymentType(repayment_type)
        except ValueError:
            raise ValidationError(f"Invalid repayment type: {repayment_type!r}", field="repayment_type")

        principal = _parse_money(amount, currency, "amount")
        if principal is None or not principal.is_positive():
            raise ValidationError("Loan amount must be positive", field="amount")

        interest = _parse_money(interest_rate, currency, "interest_rate")
        if interest is None or interest.is_negative():
            raise ValidationError("Interest rate must be zero or positive", field="interest_rate")

        if duration is None:
            raise ValidationError("Duration is required", field="duration")
        duration = _parse_whole_number(duration, "duration")
        if duration < 1:
            raise ValidationError("Duration must be at least one period", field="duration")

        disbursed = _parse_date(disbursement_date, "disbursement_date")
        if disbursed is None:
            raise ValidationError("Disbursement date is required", field="disbursement_date")

        current_month = _parse_whole_number(current_month, "current_month")
        if not 0 <= current_month <= duration:
            raise ValidationError(
                f"current_month must be between 0 and {duration}", field="current_month"
            )

        installment = _parse_money(installment_amount, currency, "installment_amount")
        if installment is None:
            installment = calculate_installment(principal, interest, duration, repayment_type)
        elif not installment.is_positive():
            raise ValidationError("Installment amount must be positive", field="installment_amount")

        charge = _parse_money(document_charge, currency, "document_charge")
        if charge is not None and charge.is_negative():
            raise ValidationError("Document charge cannot be negative", field="document_charge")

        loan_status = _parse_status(status)
        next_due = _parse_date(next_payment_date, "next_payment_date")

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            borrower_name=str(borrower_name).strip(),
            amount=principal,
            interest_rate=interest,
            duration=duration,
            disbursement_date=disbursed,
            repayment_type=repayment_type,
            installment_amount=installment,
            status=loan_status,
            current_month=current_month,
            remaining_amount=principal,
            missed_payments=0,
            document_charge=charge,
            purpose=purpose,
        )
        loan.next_payment_date = next_due or first_due_date(loan)

        with self.storage.atomic():
            self._save_loan(loan)
            self._audit(
                AuditEventType.LOAN_CREATED,
                loan.id,
                {
                    "borrower_name": loan.borrower_name,
                    "amount": loan.amount.to_string(),
                    "interest_rate": loan.interest_rate.to_string(),
                    "installment_amount": loan.installment_amount.to_string(),
                    "duration": loan.duration,
                    "repayment_type": loan.repayment_type.value,
                    "disbursement_date": loan.disbursement_date.isoformat(),
                    "status": loan.status.value,
                }
            )

        log_action(logger, "INFO", "Loan created", action="create_loan",
                   resource="loan", loan_id=loan.id)
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        return self._loan_from_dict(data) if data else None

    def require_loan(self, loan_id: str) -> Loan:
        """Get loan by ID, raising NotFoundError if it does not exist"""
        loan = self.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("loan", loan_id)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        """All loans in creation order, optionally filtered by status"""
        if status is None:
            data = self.storage.load_all(self.loans_table)
        else:
            data = self.storage.find(self.loans_table, {'status': status.value})
        return [self._loan_from_dict(item) for item in data]

    def get_repayments(self, loan_id: str) -> List[Repayment]:
        """Repayments for a loan in the order they were recorded"""
        data = self.storage.find(self.repayments_table, {'loan_id': loan_id})
        repayments = [self._repayment_from_dict(item) for item in data]
        repayments.sort(key=lambda r: r.created_at)
        return repayments

    def record_payment(
        self,
        loan_id: str,
        period: Optional[int],
        amount: Optional[AmountInput],
        paid_date: Optional[DateInput],
        payment_type: Union[PaymentType, str] = PaymentType.FULL,
        as_of: Optional[date] = None
    ) -> Repayment:
        """
        Record a repayment against one period

        Earlier repayments for the same period are kept; the most recent one
        by paid date decides the period's status when schedules and overdue
        figures are derived.

        A full payment reduces the remaining amount (never below zero) and
        completes the loan when nothing remains. The next payment date and
        overdue fields are recomputed in the same transaction.

        Raises:
            ValidationError: Missing field, period outside the loan term,
                non-positive amount or unknown payment type
            NotFoundError: Unknown loan
        """
        if period is None or period == "":
            raise ValidationError("Period is required", field="period")
        if amount is None or amount == "":
            raise ValidationError("Amount is required", field="amount")
        if paid_date is None or paid_date == "":
            raise ValidationError("Paid date is required", field="paid_date")

        loan = self.require_loan(loan_id)

        period = _parse_whole_number(period, "period")
        if not 1 <= period <= loan.duration:
            raise ValidationError(
                f"Period must be between 1 and {loan.duration}", field="period"
            )

        payment = _parse_money(amount, loan.currency, "amount")
        if not payment.is_positive():
            raise ValidationError("Amount must be positive", field="amount")

        paid_on = _parse_date(paid_date, "paid_date")

        try:
            payment_type = PaymentType(payment_type)
        except ValueError:
            raise ValidationError(f"Invalid payment type: {payment_type!r}", field="payment_type")

        now = datetime.now(timezone.utc)
        repayment = Repayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan.id,
            period=period,
            amount=payment,
            paid_date=paid_on,
            payment_type=payment_type,
        )

        with self.storage.atomic():
            self._save_repayment(repayment)

            completed = False
            if payment_type == PaymentType.FULL:
                remaining = loan.remaining_amount - payment
                if remaining.is_negative():
                    remaining = Money(Decimal('0'), loan.currency)
                loan.remaining_amount = remaining
                if remaining.is_zero() and loan.status != LoanStatus.COMPLETED:
                    loan.status = LoanStatus.COMPLETED
                    completed = True

            repayments = self.get_repayments(loan.id)
            loan.next_payment_date = calculate_next_payment_date(loan, repayments, as_of)
            result = compute_overdue(loan, repayments, as_of)
            loan.overdue_amount = result.overdue_amount
            loan.missed_payments = result.missed_payments
            loan.updated_at = now
            self._save_loan(loan)

            self._audit(
                AuditEventType.REPAYMENT_RECORDED,
                loan.id,
                {
                    "repayment_id": repayment.id,
                    "period": period,
                    "amount": payment.to_string(),
                    "paid_date": paid_on.isoformat(),
                    "payment_type": payment_type.value,
                    "remaining_amount": loan.remaining_amount.to_string(),
                }
            )
            if completed:
                self._audit(AuditEventType.LOAN_COMPLETED, loan.id,
                            {"final_repayment_id": repayment.id})

        log_action(logger, "INFO", "Repayment recorded", action="record_payment",
                   resource="repayment", loan_id=loan.id,
                   extra={"period": period, "payment_type": payment_type.value})
        return repayment

    def get_payment_schedule(
        self,
        loan_id: str,
        page: int = 1,
        page_size: int = 10,
        status: Optional[Union[PeriodStatus, str]] = None,
        include_all: bool = False,
        as_of: Optional[date] = None
    ) -> SchedulePage:
        """
        Paginated view of the loan's derived schedule, newest period first

        Raises:
            ValidationError: Unknown status filter
            NotFoundError: Unknown loan
        """
        if status is not None and status != "":
            try:
                status = PeriodStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid schedule status: {status!r}", field="status")
        else:
            status = None

        loan = self.require_loan(loan_id)
        periods = build_schedule(
            loan, self.get_repayments(loan.id), as_of, self.schedule_visibility_days
        )
        return paginate_schedule(periods, page, page_size, status, include_all)

    def calculate_overdue(self, loan_id: str, as_of: Optional[date] = None) -> OverdueResult:
        """Compute the overdue position without writing it back"""
        loan = self.require_loan(loan_id)
        return compute_overdue(loan, self.get_repayments(loan.id), as_of)

    def update_overdue(self, loan_id: str, as_of: Optional[date] = None) -> OverdueResult:
        """
        Recompute and store the loan's overdue amount and missed payments

        Idempotent: repeated calls with the same repayments and date store
        the same values.
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            result = compute_overdue(loan, self.get_repayments(loan.id), as_of)
            changed = self._apply_overdue(loan, result)

        logger.debug("Overdue recomputed for loan %s: %s (%d missed, changed=%s)",
                     loan_id, result.overdue_amount.to_string(), result.missed_payments, changed)
        return result

    def update_all_overdue(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Recompute overdue figures for every active loan

        Loans are processed one at a time and only those whose figures changed
        are written. A failure on one loan is logged and does not stop the
        batch.

        Returns:
            ``{'loans_processed', 'loans_updated', 'updates', 'errors'}``
        """
        results = {"loans_processed": 0, "loans_updated": 0, "updates": [], "errors": []}

        for loan in self.list_loans(LoanStatus.ACTIVE):
            try:
                with self.storage.atomic():
                    result = compute_overdue(loan, self.get_repayments(loan.id), as_of)
                    previous_amount = loan.overdue_amount
                    previous_missed = loan.missed_payments
                    changed = self._apply_overdue(loan, result)
            except Exception as e:
                logger.exception("Overdue recomputation failed for loan %s", loan.id)
                results["errors"].append({"loan_id": loan.id, "error": str(e)})
                continue

            results["loans_processed"] += 1
            if changed:
                results["loans_updated"] += 1
                results["updates"].append({
                    "loan_id": loan.id,
                    "borrower_name": loan.borrower_name,
                    "previous_overdue_amount": str(previous_amount.amount),
                    "overdue_amount": str(result.overdue_amount.amount),
                    "previous_missed_payments": previous_missed,
                    "missed_payments": result.missed_payments,
                })

        log_action(logger, "INFO", "Batch overdue recomputation finished",
                   action="update_all_overdue", resource="loan",
                   extra={"loans_processed": results["loans_processed"],
                          "loans_updated": results["loans_updated"]})
        return results

    def update_loan(
        self,
        loan_id: str,
        borrower_name: Optional[str] = None,
        amount: Optional[AmountInput] = None,
        interest_rate: Optional[AmountInput] = None,
        duration: Optional[int] = None,
        disbursement_date: Optional[DateInput] = None,
        repayment_type: Optional[Union[RepaymentType, str]] = None,
        installment_amount: Optional[AmountInput] = None,
        remaining_amount: Optional[AmountInput] = None,
        document_charge: Optional[AmountInput] = None,
        next_payment_date: Optional[DateInput] = None,
        status: Optional[Union[LoanStatus, str]] = None,
        purpose: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> Loan:
        """
        Edit a loan's terms or bookkeeping fields

        Only the arguments given are changed. The installment is recalculated
        when the principal, interest, duration or repayment type change and no
        explicit installment is given; the next payment date is recalculated
        when the calendar terms change and no explicit date is given. Overdue
        figures are recomputed after every edit, so closing a loan clears
        them and advancing ``next_payment_date`` on a loan with no repayments
        counts one missed installment.

        Raises:
            ValidationError: Invalid value for any field
            NotFoundError: Unknown loan
        """
        loan = self.require_loan(loan_id)
        currency = loan.currency
        updates: Dict[str, Any] = {}

        if borrower_name is not None:
            if not str(borrower_name).strip():
                raise ValidationError("Borrower name cannot be empty", field="borrower_name")
            updates['borrower_name'] = str(borrower_name).strip()

        if amount is not None:
            principal = _parse_money(amount, currency, "amount")
            if principal is None or not principal.is_positive():
                raise ValidationError("Loan amount must be positive", field="amount")
            updates['amount'] = principal

        if interest_rate is not None:
            interest = _parse_money(interest_rate, currency, "interest_rate")
            if interest is None or interest.is_negative():
                raise ValidationError("Interest rate must be zero or positive", field="interest_rate")
            updates['interest_rate'] = interest

        if duration is not None:
            new_duration = _parse_whole_number(duration, "duration")
            if new_duration < max(1, loan.current_month):
                raise ValidationError(
                    f"Duration must be at least {max(1, loan.current_month)}", field="duration"
                )
            updates['duration'] = new_duration

        if disbursement_date is not None:
            updates['disbursement_date'] = _parse_date(disbursement_date, "disbursement_date")

        if repayment_type is not None:
            try:
                updates['repayment_type'] = RepaymentType(repayment_type)
            except ValueError:
                raise ValidationError(f"Invalid repayment type: {repayment_type!r}", field="repayment_type")

        if installment_amount is not None:
            installment = _parse_money(installment_amount, currency, "installment_amount")
            if installment is None or not installment.is_positive():
                raise ValidationError("Installment amount must be positive", field="installment_amount")
            updates['installment_amount'] = installment

        if remaining_amount is not None:
            remaining = _parse_money(remaining_amount, currency, "remaining_amount")
            if remaining is None or remaining.is_negative():
                raise ValidationError("Remaining amount cannot be negative", field="remaining_amount")
            updates['remaining_amount'] = remaining

        if document_charge is not None:
            charge = _parse_money(document_charge, currency, "document_charge")
            if charge is None or charge.is_negative():
                raise ValidationError("Document charge cannot be negative", field="document_charge")
            updates['document_charge'] = charge

        if next_payment_date is not None:
            updates['next_payment_date'] = _parse_date(next_payment_date, "next_payment_date")

        if status is not None:
            updates['status'] = _parse_status(status)

        if purpose is not None:
            updates['purpose'] = purpose

        changes = {
            name: {"old": _audit_value(getattr(loan, name)), "new": _audit_value(value)}
            for name, value in updates.items()
            if getattr(loan, name) != value
        }
        if not changes:
            return loan

        for name, value in updates.items():
            setattr(loan, name, value)

        if 'installment_amount' not in updates and changes.keys() & INSTALLMENT_TERMS:
            loan.installment_amount = calculate_installment(
                loan.amount, loan.interest_rate, loan.duration, loan.repayment_type
            )

        with self.storage.atomic():
            repayments = self.get_repayments(loan.id)
            if 'next_payment_date' not in updates and changes.keys() & CALENDAR_TERMS:
                loan.next_payment_date = calculate_next_payment_date(loan, repayments, as_of)

            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)
            self._audit(AuditEventType.LOAN_UPDATED, loan.id, {"changes": changes})
            self._apply_overdue(loan, compute_overdue(loan, repayments, as_of))

        log_action(logger, "INFO", "Loan updated", action="update_loan",
                   resource="loan", loan_id=loan.id, extra={"fields": sorted(changes)})
        return loan

    def delete_loan(self, loan_id: str) -> Dict[str, Any]:
        """
        Delete a loan together with all of its repayments

        Returns:
            ``{'loan_id', 'repayments_deleted'}``
        """
        loan = self.require_loan(loan_id)

        with self.storage.atomic():
            repayments = self.get_repayments(loan.id)
            for repayment in repayments:
                self.storage.delete(self.repayments_table, repayment.id)
            self.storage.delete(self.loans_table, loan.id)
            self._audit(AuditEventType.LOAN_DELETED, loan.id, {
                "borrower_name": loan.borrower_name,
                "repayments_deleted": len(repayments),
            })

        log_action(logger, "INFO", "Loan deleted", action="delete_loan",
                   resource="loan", loan_id=loan.id)
        return {"loan_id": loan.id, "repayments_deleted": len(repayments)}

    def set_current_month(
        self,
        loan_id: str,
        current_month: int,
        as_of: Optional[date] = None
    ) -> Loan:
        """
        Set how many periods have elapsed on the loan

        A loan disbursed in the future is held at 0 regardless of the value
        given.

        Raises:
            ValidationError: Negative value or more than the loan duration
            NotFoundError: Unknown loan
        """
        current_month = _parse_whole_number(current_month, "current_month")

        loan = self.require_loan(loan_id)
        if not 0 <= current_month <= loan.duration:
            raise ValidationError(
                f"current_month must be between 0 and {loan.duration}", field="current_month"
            )

        as_of = as_of or date.today()
        if loan.disbursement_date > as_of and current_month > 0:
            logger.warning("Loan %s is disbursed in the future; holding current_month at 0", loan.id)
            current_month = 0

        previous = loan.current_month
        with self.storage.atomic():
            loan.current_month = current_month
            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)
            self._audit(AuditEventType.LOAN_UPDATED, loan.id,
                        {"field": "current_month", "old": previous, "new": current_month})
        return loan

    def _apply_overdue(self, loan: Loan, result: OverdueResult) -> bool:
        """Write the result onto the loan if it differs; returns whether it changed"""
        if (loan.overdue_amount == result.overdue_amount
                and loan.missed_payments == result.missed_payments):
            return False

        previous_amount = loan.overdue_amount
        previous_missed = loan.missed_payments
        loan.overdue_amount = result.overdue_amount
        loan.missed_payments = result.missed_payments
        loan.updated_at = datetime.now(timezone.utc)
        self._save_loan(loan)
        self._audit(
            AuditEventType.OVERDUE_RECOMPUTED,
            loan.id,
            {
                "previous_overdue_amount": previous_amount.to_string(),
                "overdue_amount": result.overdue_amount.to_string(),
                "previous_missed_payments": previous_missed,
                "missed_payments": result.missed_payments,
            }
        )
        return True

    def _audit(self, event_type: AuditEventType, loan_id: str, metadata: Dict[str, Any]) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="loan",
                entity_id=loan_id,
                metadata=metadata
            )

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))

    def _save_repayment(self, repayment: Repayment) -> None:
        self.storage.save(self.repayments_table, repayment.id, self._repayment_to_dict(repayment))

    def _loan_to_dict(self, loan: Loan) -> Dict:
        """Convert loan to dictionary"""
        result = {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'borrower_name': loan.borrower_name,
            'duration': loan.duration,
            'disbursement_date': loan.disbursement_date.isoformat(),
            'repayment_type': loan.repayment_type.value,
            'status': loan.status.value,
            'current_month': loan.current_month,
            'next_payment_date': loan.next_payment_date.isoformat() if loan.next_payment_date else None,
            'missed_payments': loan.missed_payments,
            'purpose': loan.purpose,
            'currency': loan.currency.code,
        }

        # Money values as Decimal strings
        for field in LOAN_MONEY_FIELDS:
            result[field] = str(getattr(loan, field).amount)

        return result

    def _loan_from_dict(self, data: Dict) -> Loan:
        """Convert dictionary to loan"""
        currency = Currency[data['currency']]

        def get_money(field: str) -> Money:
            return Money(Decimal(data[field]), currency)

        return Loan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            borrower_name=data['borrower_name'],
            amount=get_money('amount'),
            interest_rate=get_money('interest_rate'),
            duration=data['duration'],
            disbursement_date=date.fromisoformat(data['disbursement_date']),
            repayment_type=RepaymentType(data['repayment_type']),
            installment_amount=get_money('installment_amount'),
            status=LoanStatus(data['status']),
            current_month=data.get('current_month', 0),
            next_payment_date=(date.fromisoformat(data['next_payment_date'])
                               if data.get('next_payment_date') else None),
            remaining_amount=get_money('remaining_amount'),
            overdue_amount=get_money('overdue_amount'),
            missed_payments=data.get('missed_payments', 0),
            document_charge=get_money('document_charge'),
            purpose=data.get('purpose'),
        )

    def _repayment_to_dict(self, repayment: Repayment) -> Dict:
        """Convert repayment to dictionary"""
        return {
            'id': repayment.id,
            'created_at': repayment.created_at.isoformat(),
            'updated_at': repayment.updated_at.isoformat(),
            'loan_id': repayment.loan_id,
            'period': repayment.period,
            'amount': str(repayment.amount.amount),
            'currency': repayment.amount.currency.code,
            'paid_date': repayment.paid_date.isoformat(),
            'payment_type': repayment.payment_type.value,
        }

    def _repayment_from_dict(self, data: Dict) -> Repayment:
        """Convert dictionary to repayment"""
        return Repayment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            period=data['period'],
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            paid_date=date.fromisoformat(data['paid_date']),
            payment_type=PaymentType(data['payment_type']),
        )

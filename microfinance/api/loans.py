"""
Loan endpoints
"""

from datetime import date
from typing import Optional
import hmac

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .schemas import (
    CreateLoanRequest,
    RecordPaymentRequest,
    ScheduleActionRequest,
    UpdateCurrentMonthRequest,
    UpdateLoanRequest,
    money_dict,
)
from .system import LoanSystem, get_loan_system
from ..currency import Currency
from ..errors import ValidationError
from ..models import Loan, LoanStatus, Repayment
from ..schedule import OverdueResult, SchedulePeriod


router = APIRouter()


def loan_to_response(loan: Loan) -> dict:
    return {
        "id": loan.id,
        "borrower_name": loan.borrower_name,
        "amount": money_dict(loan.amount),
        "interest_rate": money_dict(loan.interest_rate),
        "document_charge": money_dict(loan.document_charge),
        "installment_amount": money_dict(loan.installment_amount),
        "duration": loan.duration,
        "repayment_type": loan.repayment_type.value,
        "disbursement_date": loan.disbursement_date.isoformat(),
        "status": loan.status.value,
        "current_month": loan.current_month,
        "next_payment_date": loan.next_payment_date.isoformat() if loan.next_payment_date else None,
        "remaining_amount": money_dict(loan.remaining_amount),
        "overdue_amount": money_dict(loan.overdue_amount),
        "missed_payments": loan.missed_payments,
        "purpose": loan.purpose,
        "created_at": loan.created_at.isoformat(),
    }


def repayment_to_response(repayment: Repayment) -> dict:
    return {
        "id": repayment.id,
        "loan_id": repayment.loan_id,
        "period": repayment.period,
        "amount": money_dict(repayment.amount),
        "paid_date": repayment.paid_date.isoformat(),
        "payment_type": repayment.payment_type.value,
        "created_at": repayment.created_at.isoformat(),
    }


def period_to_response(row: SchedulePeriod) -> dict:
    return {
        "period": row.period,
        "due_date": row.due_date.isoformat(),
        "expected_amount": money_dict(row.expected_amount),
        "status": row.status.value,
        "actual_payment_date": row.actual_payment_date.isoformat() if row.actual_payment_date else None,
        "repayment": repayment_to_response(row.repayment) if row.repayment else None,
    }


def overdue_to_response(loan_id: str, result: OverdueResult) -> dict:
    return {
        "loan_id": loan_id,
        "overdue_amount": money_dict(result.overdue_amount),
        "missed_payments": result.missed_payments,
    }


def _record_payment(system: LoanSystem, loan_id: str, request: RecordPaymentRequest,
                    as_of: Optional[date]) -> dict:
    repayment = system.loan_manager.record_payment(
        loan_id=loan_id,
        period=request.period,
        amount=request.amount,
        paid_date=request.paid_date,
        payment_type=request.payment_type,
        as_of=as_of
    )
    loan = system.loan_manager.require_loan(loan_id)
    return {
        "repayment": repayment_to_response(repayment),
        "loan": loan_to_response(loan),
        "message": "Payment recorded successfully"
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Create a new loan"""
    currency = None
    if request.currency:
        try:
            currency = Currency[request.currency.upper()]
        except KeyError:
            raise ValidationError(f"Unsupported currency: {request.currency}", field="currency")

    loan = system.loan_manager.create_loan(
        borrower_name=request.borrower_name,
        amount=request.amount,
        interest_rate=request.interest_rate,
        duration=request.duration,
        disbursement_date=request.disbursement_date,
        repayment_type=request.repayment_type,
        installment_amount=request.installment_amount,
        document_charge=request.document_charge,
        purpose=request.purpose,
        current_month=request.current_month,
        currency=currency,
        next_payment_date=request.next_payment_date,
        status=request.status or LoanStatus.ACTIVE
    )
    return loan_to_response(loan)


@router.get("")
async def list_loans(
    loan_status: Optional[str] = Query(None, alias="status"),
    system: LoanSystem = Depends(get_loan_system)
):
    """List loans, optionally by status"""
    status_filter = None
    if loan_status:
        try:
            status_filter = LoanStatus(loan_status)
        except ValueError:
            raise ValidationError(f"Invalid loan status: {loan_status}", field="status")

    loans = system.loan_manager.list_loans(status_filter)
    return {"loans": [loan_to_response(loan) for loan in loans], "total_count": len(loans)}


@router.post("/update-overdue")
async def update_all_overdue(
    api_key: Optional[str] = Query(None, alias="apiKey"),
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Recompute overdue figures for every active loan (batch job trigger)"""
    expected_key = system.config.overdue_update_api_key
    if not expected_key:
        raise HTTPException(status_code=403, detail="Batch overdue update is disabled")
    if not api_key or not hmac.compare_digest(api_key, expected_key):
        raise HTTPException(status_code=401, detail="Unauthorized")

    result = system.loan_manager.update_all_overdue(as_of=as_of)
    return {"message": "Overdue amounts updated", **result}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """Get loan details"""
    return loan_to_response(system.loan_manager.require_loan(loan_id))


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Edit loan terms, status or next payment date"""
    loan = system.loan_manager.update_loan(
        loan_id,
        as_of=as_of,
        **request.model_dump(exclude_none=True)
    )
    return loan_to_response(loan)


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """Delete a loan and its repayments"""
    result = system.loan_manager.delete_loan(loan_id)
    return {"message": "Loan deleted successfully", **result}


@router.put("/{loan_id}/current-month")
async def update_current_month(
    loan_id: str,
    request: UpdateCurrentMonthRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Set the number of elapsed periods"""
    loan = system.loan_manager.set_current_month(loan_id, request.current_month)
    return loan_to_response(loan)


@router.get("/{loan_id}/repayments")
async def get_repayments(
    loan_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """All repayments recorded against a loan"""
    system.loan_manager.require_loan(loan_id)
    repayments = system.loan_manager.get_repayments(loan_id)
    return {
        "repayments": [repayment_to_response(r) for r in repayments],
        "total_count": len(repayments)
    }


@router.post("/{loan_id}/repayments", status_code=status.HTTP_201_CREATED)
async def record_repayment(
    loan_id: str,
    request: RecordPaymentRequest,
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Record a repayment against one period"""
    return _record_payment(system, loan_id, request, as_of)


@router.get("/{loan_id}/payment-schedules")
async def get_payment_schedules(
    loan_id: str,
    page: int = Query(1),
    page_size: Optional[int] = Query(None, alias="pageSize"),
    schedule_status: Optional[str] = Query(None, alias="status"),
    include_all: bool = Query(False, alias="includeAll"),
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Derived payment schedule, newest period first"""
    result = system.loan_manager.get_payment_schedule(
        loan_id,
        page=page,
        page_size=page_size if page_size is not None else system.config.default_page_size,
        status=schedule_status,
        include_all=include_all,
        as_of=as_of
    )
    return {
        "schedules": [period_to_response(row) for row in result.periods],
        "page": result.page,
        "page_size": result.page_size,
        "total_count": result.total_count,
        "total_pages": result.total_pages,
    }


@router.post("/{loan_id}/payment-schedules")
async def payment_schedule_action(
    loan_id: str,
    request: ScheduleActionRequest,
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Record a payment or recompute overdue figures"""
    if request.action == "recordPayment":
        return _record_payment(system, loan_id, request, as_of)
    if request.action == "updateOverdue":
        result = system.loan_manager.update_overdue(loan_id, as_of=as_of)
        return overdue_to_response(loan_id, result)
    raise ValidationError(f"Invalid action: {request.action}", field="action")


@router.post("/{loan_id}/update-overdue")
async def update_overdue(
    loan_id: str,
    as_of: Optional[date] = Query(None, alias="asOf"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Recompute and store one loan's overdue figures"""
    result = system.loan_manager.update_overdue(loan_id, as_of=as_of)
    return overdue_to_response(loan_id, result)

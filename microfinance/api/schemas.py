"""
Pydantic schemas for API requests and responses

Request bodies accept both snake_case and the camelCase names used by
existing clients (``paidDate``, ``paymentType``, ...). Amounts arrive as
decimals or numeric strings; dates as ISO strings. Range and presence
checks are left to the LoanManager so they surface as 400 responses.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..currency import Money


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (INR, USD, etc.)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def money_dict(money: Money) -> dict:
    return MoneyModel.from_money(money).model_dump()


class CreateLoanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    borrower_name: str = Field(..., alias="borrowerName")
    amount: Decimal
    interest_rate: Decimal = Field(..., alias="interestRate", description="Flat charge per period")
    duration: int = Field(..., description="Number of periods")
    disbursement_date: str = Field(..., alias="disbursementDate", description="ISO date")
    repayment_type: str = Field("monthly", alias="repaymentType", description="monthly or weekly")
    installment_amount: Optional[Decimal] = Field(None, alias="installmentAmount")
    document_charge: Optional[Decimal] = Field(None, alias="documentCharge")
    purpose: Optional[str] = None
    current_month: int = Field(0, alias="currentMonth")
    currency: Optional[str] = Field(None, description="Currency code, defaults to the configured currency")
    next_payment_date: Optional[str] = Field(None, alias="nextPaymentDate", description="ISO date")
    status: Optional[str] = Field(None, description="active, completed or closed")


class UpdateLoanRequest(BaseModel):
    """Partial edit; omitted fields keep their stored values"""
    model_config = ConfigDict(populate_by_name=True)

    borrower_name: Optional[str] = Field(None, alias="borrowerName")
    amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = Field(None, alias="interestRate")
    duration: Optional[int] = None
    disbursement_date: Optional[str] = Field(None, alias="disbursementDate")
    repayment_type: Optional[str] = Field(None, alias="repaymentType")
    installment_amount: Optional[Decimal] = Field(None, alias="installmentAmount")
    remaining_amount: Optional[Decimal] = Field(None, alias="remainingAmount")
    document_charge: Optional[Decimal] = Field(None, alias="documentCharge")
    next_payment_date: Optional[str] = Field(None, alias="nextPaymentDate")
    status: Optional[str] = None
    purpose: Optional[str] = None


class UpdateCurrentMonthRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_month: int = Field(..., alias="currentMonth")


class RecordPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: Optional[int] = None
    amount: Optional[Decimal] = None
    paid_date: Optional[str] = Field(None, alias="paidDate", description="ISO date")
    payment_type: str = Field("full", alias="paymentType", description="full or interest_only")


class ScheduleActionRequest(RecordPaymentRequest):
    """Body of POST /loans/{id}/payment-schedules"""
    action: str = Field(..., description="recordPayment or updateOverdue")

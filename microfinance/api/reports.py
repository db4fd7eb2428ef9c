"""
Reporting endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .system import LoanSystem, get_loan_system


router = APIRouter()


@router.get("/loan-profit")
async def loan_profit(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Interest and document-charge profit per loan"""
    return system.reporting_engine.loan_profit(start_date, end_date).to_dict()


@router.get("/portfolio")
async def portfolio_summary(system: LoanSystem = Depends(get_loan_system)):
    """Loan book summary"""
    return system.reporting_engine.portfolio_summary().to_dict()

"""
Microfinance Loan Engine

Repayment schedules, per-period status and overdue tracking for flat-rate
microfinance loans, with Decimal money math and a hash-chained audit trail.
"""

__version__ = "1.0.0"

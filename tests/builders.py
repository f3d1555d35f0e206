"""
builders.py - Test Helpers for building portfolio snapshots

Small factories shared by unit, functional and conformance tests.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from btcsim import Loan, PortfolioState


START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_state(usd="100", btc="0", loan=None, transactions=()) -> PortfolioState:
    """Build a portfolio snapshot from string amounts."""
    return PortfolioState(
        usd_balance=Decimal(usd),
        btc_balance=Decimal(btc),
        transactions=tuple(transactions),
        loan=loan,
    )


def make_loan(principal="500", days=7, rate="0.18", start: datetime = START) -> Loan:
    """Build a loan issued at start for the given term."""
    return Loan(
        principal=Decimal(principal),
        interest_rate=Decimal(rate),
        loan_date=start,
        due_date=start + timedelta(days=days),
        repayment_period_days=days,
    )

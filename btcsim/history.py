"""
history.py - Read-only views over a portfolio

Derived values for display: transaction history filtering and total
portfolio valuation. Nothing here touches the ledger.
"""

from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union

from .core import (
    InvalidAmount, PortfolioState, Transaction, TransactionType,
    round_currency, to_decimal,
)


DateLike = Union[date, datetime, None]


def _start_of(value: DateLike) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _end_of(value: DateLike) -> Optional[datetime]:
    """Plain dates include the whole day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc) - timedelta(microseconds=1)


def filter_transactions(
    transactions: Iterable[Transaction],
    tx_type: Optional[TransactionType] = None,
    start_date: DateLike = None,
    end_date: DateLike = None,
) -> List[Transaction]:
    """
    Filter a transaction log, preserving its order.

    Args:
        transactions: Log to filter (newest first, as stored)
        tx_type: Keep only BUY or SELL; None keeps both
        start_date: Inclusive lower bound; a date means from its midnight UTC
        end_date: Inclusive upper bound; a date means through the end of that day
    """
    start = _start_of(start_date)
    end = _end_of(end_date)
    result = []
    for tx in transactions:
        if tx_type is not None and tx.type is not tx_type:
            continue
        if start is not None and tx.date < start:
            continue
        if end is not None and tx.date > end:
            continue
        result.append(tx)
    return result


def portfolio_value(state: PortfolioState, current_price: Any = None) -> Decimal:
    """
    Total value in USD: cash plus BTC marked at current_price.

    When the price is unavailable only the cash is counted.
    """
    try:
        price = to_decimal(current_price)
    except InvalidAmount:
        return round_currency(state.usd_balance)
    if price <= 0:
        return round_currency(state.usd_balance)
    return round_currency(state.usd_balance + state.btc_balance * price)


def net_worth(state: PortfolioState, current_price: Any = None) -> Decimal:
    """Portfolio value minus the outstanding loan principal."""
    value = portfolio_value(state, current_price)
    if state.loan is not None:
        value -= state.loan.principal
    return round_currency(value)

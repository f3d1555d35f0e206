"""
test_history.py - Unit tests for portfolio views

Tests:
- filter_transactions: by type, by date range, order preserved
- portfolio_value / net_worth with and without a price
"""

from datetime import date, timedelta
from decimal import Decimal

from btcsim import (
    Transaction, TransactionType, filter_transactions, portfolio_value, net_worth,
)
from tests.builders import START, make_loan, make_state


def tx(tx_id, tx_type, when):
    return Transaction(tx_id, tx_type, when, Decimal("0.001"), Decimal("25"), Decimal("25000"))


# newest first, as stored
LOG = (
    tx("c", TransactionType.SELL, START + timedelta(days=2, hours=11)),
    tx("b", TransactionType.BUY, START + timedelta(days=1)),
    tx("a", TransactionType.BUY, START),
)


class TestFilterTransactions:

    def test_no_filters_keeps_everything(self):
        assert filter_transactions(LOG) == list(LOG)

    def test_by_type(self):
        assert [t.id for t in filter_transactions(LOG, TransactionType.BUY)] == ["b", "a"]
        assert [t.id for t in filter_transactions(LOG, TransactionType.SELL)] == ["c"]

    def test_end_date_includes_whole_day(self):
        # "c" is at 11pm on Jan 3; a plain date bound covers the full day
        result = filter_transactions(LOG, end_date=date(2025, 1, 3))
        assert [t.id for t in result] == ["c", "b", "a"]

    def test_date_range(self):
        result = filter_transactions(LOG, start_date=date(2025, 1, 2), end_date=date(2025, 1, 2))
        assert [t.id for t in result] == ["b"]

    def test_datetime_bounds_are_exact(self):
        result = filter_transactions(LOG, start_date=START + timedelta(seconds=1))
        assert [t.id for t in result] == ["c", "b"]

    def test_combined(self):
        result = filter_transactions(LOG, TransactionType.BUY, start_date=date(2025, 1, 2))
        assert [t.id for t in result] == ["b"]


class TestValuation:

    def test_portfolio_value(self):
        state = make_state(usd="50", btc="0.002")
        assert portfolio_value(state, Decimal("30000")) == Decimal("110.00")

    def test_unavailable_price_counts_cash_only(self):
        state = make_state(usd="50", btc="0.002")
        assert portfolio_value(state, None) == Decimal("50.00")
        assert portfolio_value(state, 0) == Decimal("50.00")

    def test_net_worth_subtracts_principal(self):
        state = make_state(usd="600", btc="0.01", loan=make_loan())
        assert portfolio_value(state, 20000) == Decimal("800.00")
        assert net_worth(state, 20000) == Decimal("300.00")

    def test_net_worth_can_be_negative(self):
        state = make_state(usd="-27.16")
        assert net_worth(state, 20000) == Decimal("-27.16")

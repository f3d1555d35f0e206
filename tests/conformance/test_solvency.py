"""
Solvency Conformance Tests

INVARIANT: Buying, selling, borrowing and repaying never drive a balance
below zero, and a portfolio never holds more than one loan.

Only the overdue penalty may produce a negative USD balance.
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from btcsim import Ledger, LoanEngine, TradeEngine
from btcsim.loans import LOAN_ACTIVE
from tests.builders import START
from tests.fake_clock import FakeClock
from tests.conformance.strategies import actions


def apply(action, trades, loans, clock):
    kind, amount, arg, minutes = action
    clock.advance(minutes=minutes)
    if kind == "buy":
        return trades.buy(amount, arg)
    if kind == "sell":
        return trades.sell(amount, arg)
    if kind == "take_loan":
        return loans.take_loan(amount, arg)
    return loans.repay_loan()


@given(st.lists(actions, min_size=1, max_size=30))
@settings(max_examples=200, deadline=None)
def test_balances_never_negative_without_penalty(sequence):
    clock = FakeClock(START)
    ledger = Ledger(clock=clock, verbose=False)
    trades = TradeEngine(ledger, clock=clock)
    loans = LoanEngine(ledger, clock=clock)

    for action in sequence:
        apply(action, trades, loans, clock)
        state = ledger.state
        assert state.usd_balance >= 0
        assert state.btc_balance >= 0


@given(st.lists(actions, min_size=1, max_size=30))
@settings(max_examples=200, deadline=None)
def test_at_most_one_loan(sequence):
    clock = FakeClock(START)
    ledger = Ledger(clock=clock, verbose=False)
    trades = TradeEngine(ledger, clock=clock)
    loans = LoanEngine(ledger, clock=clock)

    for action in sequence:
        before = ledger.state.loan
        note = apply(action, trades, loans, clock)
        if action[0] == "take_loan" and before is not None:
            assert note.message_key == LOAN_ACTIVE
            assert ledger.state.loan is before


@given(st.lists(actions, min_size=1, max_size=30))
@settings(max_examples=100, deadline=None)
def test_balances_stay_quantized(sequence):
    clock = FakeClock(START)
    ledger = Ledger(clock=clock, verbose=False)
    trades = TradeEngine(ledger, clock=clock)
    loans = LoanEngine(ledger, clock=clock)

    for action in sequence:
        apply(action, trades, loans, clock)
        state = ledger.state
        assert state.usd_balance == state.usd_balance.quantize(Decimal("0.01"))
        assert state.btc_balance == state.btc_balance.quantize(Decimal("1e-8"))

"""
test_loans.py - Unit tests for the loan engine

Tests:
- Pure calculations: years elapsed, max loan, accrued interest,
  repayment, scheduled repayment at term, penalty, collateral, quotes
- compute_take_loan: success, each rejection path, limit boundary
- compute_repay_loan: zero-elapsed repayment, accrued interest, rejections
- compute_penalty: debit, negative balance, no-op without loan
- LoanEngine wrappers and display helpers
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from btcsim import (
    LoanStateError, Severity, SimulatorConfig,
    LoanEngine,
    calculate_years_between, calculate_max_loan, calculate_accrued_interest,
    calculate_repayment_amount, calculate_total_due_at_term, calculate_penalty,
    calculate_available_collateral, quote_loan,
    compute_take_loan, compute_repay_loan, compute_penalty,
)
from btcsim.loans import (
    LOAN_SUCCESS, LOAN_ACTIVE, LOAN_TOO_HIGH, INVALID_AMOUNT, INVALID_PERIOD,
    REPAY_SUCCESS, INSUFFICIENT_FUNDS_FOR_REPAY, LOAN_PENALTY,
)
from tests.builders import START, make_loan, make_state


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

class TestCalculations:

    def test_years_between(self):
        assert calculate_years_between(START, START + timedelta(days=365)) == Decimal("1")
        assert calculate_years_between(START, START + timedelta(days=73)) == Decimal("0.2")

    def test_years_between_negative_is_zero(self):
        assert calculate_years_between(START, START - timedelta(days=1)) == Decimal("0")

    def test_max_loan(self):
        assert calculate_max_loan(Decimal("100")) == Decimal("1000.00")
        assert calculate_max_loan(Decimal("12.345"), Decimal("10")) == Decimal("123.45")

    def test_accrued_interest_zero_at_issue(self):
        assert calculate_accrued_interest(make_loan(), START) == Decimal("0")

    def test_accrued_interest_full_year(self):
        loan = make_loan(principal="1000")
        assert calculate_accrued_interest(loan, START + timedelta(days=365)) == Decimal("180")

    def test_repayment_at_term(self):
        loan = make_loan()
        assert calculate_repayment_amount(loan, START + timedelta(days=7)) == Decimal("501.73")

    def test_total_due_at_term(self):
        # 500 + 500 * 0.18 * 7/365 = 501.7260...
        assert calculate_total_due_at_term(make_loan()) == Decimal("501.73")

    def test_penalty(self):
        # 501.73 * 1.25 = 627.1625
        assert calculate_penalty(make_loan()) == Decimal("627.16")
        assert calculate_penalty(make_loan(), Decimal("2")) == Decimal("1003.46")

    def test_available_collateral(self):
        assert calculate_available_collateral(make_state(usd="600")) == Decimal("600")
        assert calculate_available_collateral(
            make_state(usd="600", loan=make_loan())
        ) == Decimal("100")

    def test_quote(self):
        quote = quote_loan(1000, 30)
        # 1000 * 0.18 * 30/365 = 14.7945...
        assert quote.total_interest == Decimal("14.79")
        assert quote.total_repayment == Decimal("1014.79")
        assert quote.repayment_period_days == 30
        assert quote.interest_rate == Decimal("0.18")


# ============================================================================
# TAKE LOAN
# ============================================================================

class TestComputeTakeLoan:

    def test_take_loan_scenario(self):
        state = make_state(usd="100")
        new_state, note = compute_take_loan(state, 500, 7, START)
        assert new_state.usd_balance == Decimal("600")
        loan = new_state.loan
        assert loan.principal == Decimal("500")
        assert loan.interest_rate == Decimal("0.18")
        assert loan.loan_date == START
        assert loan.due_date == START + timedelta(days=7)
        assert loan.repayment_period_days == 7
        assert note.message_key == LOAN_SUCCESS
        assert note.payload == {"amount": "500.00"}

    def test_transactions_and_btc_untouched(self):
        state = make_state(usd="100", btc="0.5")
        new_state, _ = compute_take_loan(state, 10, 1, START)
        assert new_state.btc_balance == Decimal("0.5")
        assert new_state.transactions == state.transactions

    def test_rejects_when_loan_active(self):
        state = make_state(usd="600", loan=make_loan())
        new_state, note = compute_take_loan(state, 1, 7, START)
        assert new_state is state
        assert note.message_key == LOAN_ACTIVE
        assert note.severity is Severity.ERROR

    @pytest.mark.parametrize("amount", [0, -1, "abc", None, "0.004"])
    def test_rejects_non_positive_amount(self, amount):
        state = make_state(usd="100")
        new_state, note = compute_take_loan(state, amount, 7, START)
        assert new_state is state
        assert note.message_key == INVALID_AMOUNT

    @pytest.mark.parametrize("period", [0, 2, 14, 365, "week", None, 7.9, "7.5", True])
    def test_rejects_period_outside_allowed_terms(self, period):
        state = make_state(usd="100")
        new_state, note = compute_take_loan(state, 10, period, START)
        assert new_state is state
        assert note.message_key == INVALID_PERIOD

    @pytest.mark.parametrize("period", [7, 7.0, "7", Decimal("7")])
    def test_whole_day_period_forms_accepted(self, period):
        new_state, note = compute_take_loan(make_state(usd="100"), 100, period, START)
        assert note.message_key == LOAN_SUCCESS
        assert new_state.loan.repayment_period_days == 7

    def test_fractional_period_does_not_truncate(self, ledger, loan_engine):
        snapshot = ledger.state
        assert loan_engine.take_loan(100, 7.9).message_key == INVALID_PERIOD
        assert ledger.state is snapshot

    def test_limit_boundary(self):
        state = make_state(usd="100")
        at_epsilon, note = compute_take_loan(state, "1000.01", 1, START)
        assert note.message_key == LOAN_SUCCESS
        assert at_epsilon.usd_balance == Decimal("1100.01")

        over, note = compute_take_loan(state, "1000.02", 1, START)
        assert over is state
        assert note.message_key == LOAN_TOO_HIGH
        assert note.payload == {"max": "1000.00"}

    def test_zero_balance_cannot_borrow(self):
        state = make_state(usd="0")
        _, note = compute_take_loan(state, "0.02", 1, START)
        assert note.message_key == LOAN_TOO_HIGH

    def test_custom_terms(self):
        state = make_state(usd="100")
        new_state, note = compute_take_loan(
            state, 300, 2, START,
            interest_rate=Decimal("0.05"), multiplier=Decimal("3"),
            allowed_periods=(2,),
        )
        assert note.message_key == LOAN_SUCCESS
        assert new_state.loan.interest_rate == Decimal("0.05")


# ============================================================================
# REPAY LOAN
# ============================================================================

class TestComputeRepayLoan:

    def test_repay_at_issue_pays_principal_only(self):
        state = make_state(usd="600", loan=make_loan())
        new_state, note = compute_repay_loan(state, START)
        assert new_state.loan is None
        assert new_state.usd_balance == Decimal("100")
        assert note.message_key == REPAY_SUCCESS
        assert note.payload == {"amount": "500.00"}

    def test_repay_with_elapsed_interest(self):
        state = make_state(usd="600", loan=make_loan())
        new_state, _ = compute_repay_loan(state, START + timedelta(days=7))
        assert new_state.usd_balance == Decimal("98.27")

    def test_interest_uses_elapsed_time_not_term(self):
        state = make_state(usd="600", loan=make_loan(days=30))
        new_state, _ = compute_repay_loan(state, START + timedelta(days=7))
        assert new_state.usd_balance == Decimal("98.27")

    def test_insufficient_funds_rejects(self):
        state = make_state(usd="501.72", loan=make_loan())
        new_state, note = compute_repay_loan(state, START + timedelta(days=7))
        assert new_state is state
        assert note.message_key == INSUFFICIENT_FUNDS_FOR_REPAY
        assert note.payload == {"amount": "501.73"}

    def test_no_loan_is_noop(self):
        state = make_state()
        assert compute_repay_loan(state, START) == (state, None)


# ============================================================================
# PENALTY
# ============================================================================

class TestComputePenalty:

    def test_penalty_debits_and_clears(self):
        state = make_state(usd="600", loan=make_loan())
        new_state, note = compute_penalty(state)
        assert new_state.loan is None
        assert new_state.usd_balance == Decimal("600") - Decimal("627.16")
        assert note.message_key == LOAN_PENALTY
        assert note.severity is Severity.ERROR
        assert note.payload == {"amount": "627.16"}

    def test_penalty_can_drive_balance_negative(self):
        state = make_state(usd="10", loan=make_loan())
        new_state, _ = compute_penalty(state)
        assert new_state.usd_balance == Decimal("-617.16")

    def test_no_loan_is_noop(self):
        state = make_state()
        assert compute_penalty(state) == (state, None)


# ============================================================================
# ENGINE
# ============================================================================

class TestLoanEngine:

    def test_take_and_repay(self, ledger, loan_engine, clock):
        assert loan_engine.take_loan(500, 7).message_key == LOAN_SUCCESS
        assert ledger.state.loan.loan_date == clock.now
        clock.advance(days=7)
        assert loan_engine.repay_loan().message_key == REPAY_SUCCESS
        assert ledger.state.loan is None
        assert ledger.state.usd_balance == Decimal("98.27")

    def test_second_loan_rejected(self, ledger, loan_engine):
        loan_engine.take_loan(500, 7)
        snapshot = ledger.state
        assert loan_engine.take_loan(1, 1).message_key == LOAN_ACTIVE
        assert ledger.state is snapshot

    def test_repay_without_loan_returns_none(self, loan_engine):
        assert loan_engine.repay_loan() is None

    def test_apply_penalty(self, ledger, loan_engine):
        loan_engine.take_loan(500, 7)
        note = loan_engine.apply_penalty()
        assert note.message_key == LOAN_PENALTY
        assert ledger.state.usd_balance == Decimal("600") - Decimal("627.16")
        assert loan_engine.apply_penalty() is None

    def test_uses_config_terms(self, ledger, clock):
        config = SimulatorConfig(loan_apr="0.10", max_loan_multiplier=2,
                                 allowed_loan_periods=[5], penalty_multiplier="1.5")
        engine = LoanEngine(ledger, clock=clock, config=config)
        assert engine.take_loan(201, 5).message_key == LOAN_TOO_HIGH
        assert engine.take_loan(200, 7).message_key == INVALID_PERIOD
        assert engine.take_loan(200, 5).message_key == LOAN_SUCCESS
        assert ledger.state.loan.interest_rate == Decimal("0.10")

    def test_display_helpers(self, ledger, loan_engine, clock):
        assert loan_engine.current_repayment_amount() is None
        assert loan_engine.available_collateral() == Decimal("100")
        assert loan_engine.max_loan_amount() == Decimal("1000")

        loan_engine.take_loan(500, 7)
        assert loan_engine.available_collateral() == Decimal("100")
        assert loan_engine.max_loan_amount() == Decimal("1000")
        assert loan_engine.current_repayment_amount() == Decimal("500")
        clock.advance(days=7)
        assert loan_engine.current_repayment_amount() == Decimal("501.73")
        assert loan_engine.scheduled_repayment() == Decimal("501.73")
        assert loan_engine.penalty_amount() == Decimal("627.16")

    def test_loan_math_without_loan_raises(self, loan_engine):
        with pytest.raises(LoanStateError):
            loan_engine.scheduled_repayment()
        with pytest.raises(LoanStateError):
            loan_engine.penalty_amount()

    def test_quote_uses_config_rate(self, loan_engine):
        assert loan_engine.quote(365, 365).total_interest == Decimal("65.70")

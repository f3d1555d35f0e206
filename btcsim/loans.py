"""
loans.py - Collateralized loans for the simulator

A portfolio holds at most one loan. Its state machine is:

    NO_LOAN --take_loan--> ACTIVE --repay_loan / penalty--> NO_LOAN

There are no other transitions: while a loan is ACTIVE every take_loan is
rejected, and a loan is never partially repaid or modified in place.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Interest, repayment, penalty and limit math
   - No Ledger, all inputs explicit

2. PURE STATE FUNCTIONS (compute_*):
   - (PortfolioState, intent) -> (next_state, notification)

3. LoanEngine:
   - Wraps compute_* in Ledger.commit()
   - Exposes display helpers (quote, live repayment, collateral)

Key Formulas:
    max_loan        = round_currency(usd_balance * multiplier)
    years_passed    = (now - loan_date) / 365 days
    repayment       = round_currency(principal + principal * rate * years_passed)
    due_at_term     = round_currency(principal + principal * rate * period_days / 365)
    penalty         = round_currency(due_at_term * penalty_multiplier)

Interest is simple and pro-rata on elapsed wall-clock time for voluntary
repayment. The penalty uses the nominal term instead, regardless of how long
the loan sat overdue.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence
import logging

from .core import (
    Clock, DAYS_PER_YEAR, InvalidAmount, Loan, LoanStateError, Mutation,
    Notification, PortfolioState,
    LOAN_APR, LOAN_LIMIT_EPSILON, LOAN_PERIODS_DAYS, MAX_LOAN_MULTIPLIER,
    PENALTY_MULTIPLIER,
    format_currency, round_currency, to_decimal, utc_now,
)
from .config import SimulatorConfig
from .ledger import Ledger


logger = logging.getLogger(__name__)

LOAN_SUCCESS = "bank.notifications.loanSuccess"
LOAN_ACTIVE = "bank.notifications.loanActive"
LOAN_TOO_HIGH = "bank.notifications.loanTooHigh"
INVALID_AMOUNT = "bank.notifications.invalidAmount"
INVALID_PERIOD = "bank.notifications.invalidPeriod"
REPAY_SUCCESS = "bank.notifications.repaySuccess"
INSUFFICIENT_FUNDS_FOR_REPAY = "bank.notifications.insufficientFundsForRepay"
LOAN_DUE_SOON = "bank.notifications.loanDueSoon"
LOAN_PENALTY = "bank.notifications.loanPenalty"

_SECONDS_PER_YEAR = Decimal(DAYS_PER_YEAR * 24 * 60 * 60)
_MICROS_PER_SECOND = Decimal(1_000_000)


@dataclass(frozen=True, slots=True)
class LoanQuote:
    """
    Preview of a loan before it is taken.

    Interest is computed on the nominal term, as shown on the loan form.
    """
    amount: Decimal
    repayment_period_days: int
    interest_rate: Decimal
    total_interest: Decimal
    total_repayment: Decimal


# ============================================================================
# PURE CALCULATION FUNCTIONS - No Ledger, All Inputs Explicit
# ============================================================================

def calculate_years_between(start: datetime, end: datetime) -> Decimal:
    """
    Exact fraction of a 365-day year between two instants.

    Negative spans (clock moved backwards) count as zero.
    """
    elapsed = end - start
    if elapsed <= timedelta(0):
        return Decimal("0")
    micros = elapsed // timedelta(microseconds=1)
    return Decimal(micros) / _MICROS_PER_SECOND / _SECONDS_PER_YEAR


def calculate_max_loan(
    usd_balance: Decimal,
    multiplier: Decimal = MAX_LOAN_MULTIPLIER,
) -> Decimal:
    """Loan limit: USD balance before the loan times the collateral multiplier."""
    return round_currency(to_decimal(usd_balance) * to_decimal(multiplier))


def calculate_accrued_interest(loan: Loan, as_of: datetime) -> Decimal:
    """Simple interest accrued from loan_date to as_of (unrounded)."""
    years = calculate_years_between(loan.loan_date, as_of)
    return loan.principal * loan.interest_rate * years


def calculate_repayment_amount(loan: Loan, as_of: datetime) -> Decimal:
    """Amount repay_loan charges at as_of: principal plus accrued interest."""
    return round_currency(loan.principal + calculate_accrued_interest(loan, as_of))


def calculate_total_due_at_term(loan: Loan) -> Decimal:
    """Scheduled repayment at the nominal term, independent of the clock."""
    years = Decimal(loan.repayment_period_days) / Decimal(DAYS_PER_YEAR)
    return round_currency(loan.principal + loan.principal * loan.interest_rate * years)


def calculate_penalty(loan: Loan, multiplier: Decimal = PENALTY_MULTIPLIER) -> Decimal:
    """Debit applied to an overdue loan: scheduled repayment plus surcharge."""
    return round_currency(calculate_total_due_at_term(loan) * to_decimal(multiplier))


def calculate_available_collateral(state: PortfolioState) -> Decimal:
    """
    Cash the user owns outright.

    With an active loan, the borrowed principal is excluded.
    """
    if state.loan is None:
        return round_currency(state.usd_balance)
    return round_currency(state.usd_balance - state.loan.principal)


def quote_loan(
    amount: Any,
    period_days: int,
    interest_rate: Decimal = LOAN_APR,
) -> LoanQuote:
    """
    Preview interest and repayment of a prospective loan.

    Raises:
        InvalidAmount: If amount is not a finite number.
    """
    principal = round_currency(amount)
    rate = to_decimal(interest_rate)
    interest = principal * rate * Decimal(int(period_days)) / Decimal(DAYS_PER_YEAR)
    return LoanQuote(
        amount=principal,
        repayment_period_days=int(period_days),
        interest_rate=rate,
        total_interest=round_currency(interest),
        total_repayment=round_currency(principal + interest),
    )


def _whole_days(value: Any) -> Optional[int]:
    """Parse a loan term; None unless it is a whole number of days."""
    if isinstance(value, bool):
        return None
    try:
        days = to_decimal(value)
    except InvalidAmount:
        return None
    if days != days.to_integral_value():
        return None
    return int(days)


def require_loan(state: PortfolioState) -> Loan:
    if state.loan is None:
        raise LoanStateError("Portfolio has no active loan")
    return state.loan


# ============================================================================
# PURE STATE FUNCTIONS
# ============================================================================

def compute_take_loan(
    state: PortfolioState,
    amount: Any,
    period_days: Any,
    now: datetime,
    interest_rate: Decimal = LOAN_APR,
    multiplier: Decimal = MAX_LOAN_MULTIPLIER,
    epsilon: Decimal = LOAN_LIMIT_EPSILON,
    allowed_periods: Sequence[int] = LOAN_PERIODS_DAYS,
) -> Mutation:
    """
    Issue a loan and credit its principal to the USD balance.

    Rejections (state unchanged): a loan is already active, the period is
    not one of the allowed terms, the amount is not positive, or the amount
    exceeds usd_balance * multiplier (+ epsilon).
    """
    if state.loan is not None:
        return state, Notification.error(LOAN_ACTIVE)

    period = _whole_days(period_days)
    if period is None or period not in allowed_periods:
        return state, Notification.error(INVALID_PERIOD, period=str(period_days))

    try:
        principal = round_currency(amount)
    except InvalidAmount:
        return state, Notification.error(INVALID_AMOUNT)
    if principal <= 0:
        return state, Notification.error(INVALID_AMOUNT)

    max_loan = calculate_max_loan(state.usd_balance, multiplier)
    if principal > max_loan + to_decimal(epsilon):
        return state, Notification.error(LOAN_TOO_HIGH, max=format_currency(max_loan))

    loan = Loan(
        principal=principal,
        interest_rate=to_decimal(interest_rate),
        loan_date=now,
        due_date=now + timedelta(days=period),
        repayment_period_days=period,
    )
    next_state = PortfolioState(
        usd_balance=round_currency(state.usd_balance + principal),
        btc_balance=state.btc_balance,
        transactions=state.transactions,
        loan=loan,
    )
    return next_state, Notification.success(LOAN_SUCCESS, amount=format_currency(principal))


def compute_repay_loan(state: PortfolioState, now: datetime) -> Mutation:
    """
    Repay the active loan in full with interest accrued to now.

    No loan: silent no-op. Insufficient cash: rejected, state unchanged.
    """
    if state.loan is None:
        return state, None

    total = calculate_repayment_amount(state.loan, now)
    if round_currency(state.usd_balance) < total:
        return state, Notification.error(
            INSUFFICIENT_FUNDS_FOR_REPAY, amount=format_currency(total)
        )

    next_state = PortfolioState(
        usd_balance=round_currency(state.usd_balance - total),
        btc_balance=state.btc_balance,
        transactions=state.transactions,
        loan=None,
    )
    return next_state, Notification.success(REPAY_SUCCESS, amount=format_currency(total))


def compute_penalty(
    state: PortfolioState,
    multiplier: Decimal = PENALTY_MULTIPLIER,
) -> Mutation:
    """
    Clear an overdue loan by debiting the penalty.

    This is the one operation allowed to drive usd_balance below zero.
    No loan (already repaid or penalized): silent no-op.
    """
    if state.loan is None:
        return state, None

    penalty = calculate_penalty(state.loan, multiplier)
    next_state = PortfolioState(
        usd_balance=round_currency(state.usd_balance - penalty),
        btc_balance=state.btc_balance,
        transactions=state.transactions,
        loan=None,
    )
    return next_state, Notification.error(LOAN_PENALTY, amount=format_currency(penalty))


# ============================================================================
# ENGINE
# ============================================================================

class LoanEngine:
    """
    Executes loan intents against a Ledger.

    Example:
        engine = LoanEngine(ledger)
        engine.take_loan(500, 7)
        engine.repay_loan()
    """

    def __init__(
        self,
        ledger: Ledger,
        clock: Optional[Clock] = None,
        config: Optional[SimulatorConfig] = None,
    ):
        self.ledger = ledger
        self.config = config or SimulatorConfig()
        self._clock: Clock = clock or utc_now

    def take_loan(self, amount: Any, period_days: Any) -> Optional[Notification]:
        now = self._clock()
        cfg = self.config
        notification = self.ledger.commit(
            lambda state: compute_take_loan(
                state, amount, period_days, now,
                interest_rate=cfg.loan_apr,
                multiplier=cfg.max_loan_multiplier,
                epsilon=cfg.loan_limit_epsilon,
                allowed_periods=cfg.allowed_loan_periods,
            )
        )
        if notification is not None and notification.is_error:
            logger.info("Loan rejected: %s", notification.message_key)
        return notification

    def repay_loan(self) -> Optional[Notification]:
        now = self._clock()
        notification = self.ledger.commit(lambda state: compute_repay_loan(state, now))
        if notification is not None and notification.is_error:
            logger.info("Repayment rejected: %s", notification.message_key)
        return notification

    def apply_penalty(self) -> Optional[Notification]:
        """
        Penalize the active loan. Reserved for the lifecycle monitor.

        Returns None if the loan was already cleared by a concurrent repay.
        """
        multiplier = self.config.penalty_multiplier
        notification = self.ledger.commit(lambda state: compute_penalty(state, multiplier))
        if notification is not None:
            logger.warning("Overdue loan penalized: %s USD", notification.payload["amount"])
        return notification

    # ------------------------------------------------------------------------
    # Display helpers (read-only)
    # ------------------------------------------------------------------------

    def quote(self, amount: Any, period_days: int) -> LoanQuote:
        return quote_loan(amount, period_days, self.config.loan_apr)

    def current_repayment_amount(self, as_of: Optional[datetime] = None) -> Optional[Decimal]:
        """What repay_loan would charge now; None without an active loan."""
        loan = self.ledger.state.loan
        if loan is None:
            return None
        return calculate_repayment_amount(loan, as_of or self._clock())

    def scheduled_repayment(self) -> Decimal:
        """
        Repayment due at the nominal term of the active loan.

        Raises:
            LoanStateError: If no loan is active.
        """
        return calculate_total_due_at_term(require_loan(self.ledger.state))

    def penalty_amount(self) -> Decimal:
        """
        Debit the active loan would incur if it went overdue.

        Raises:
            LoanStateError: If no loan is active.
        """
        loan = require_loan(self.ledger.state)
        return calculate_penalty(loan, self.config.penalty_multiplier)

    def available_collateral(self) -> Decimal:
        return calculate_available_collateral(self.ledger.state)

    def max_loan_amount(self) -> Decimal:
        """Limit shown on the loan form (owned cash times the multiplier)."""
        return calculate_max_loan(self.available_collateral(), self.config.max_loan_multiplier)

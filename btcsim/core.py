"""
Core types and pure helpers for the BTC trading simulator.

This module provides the foundational pieces every other module builds on:
1. Decimal context and fixed-decimal rounding helpers
2. Constants: starting balance, loan terms, monitor timings
3. Immutable data structures: Transaction, Loan, PortfolioState, Notification
4. Exceptions: LedgerError and domain-specific error types
5. Protocols: LedgerView for read-only access to the ledger

All functions in this module are pure. Nothing here mutates a portfolio;
new states are produced with dataclasses.replace() and committed by the Ledger.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from enum import Enum
import uuid
from typing import (
    Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances are kept as Decimal so that repeated trades never drift.
# Precision 50 leaves ample headroom for price * quantity products before
# the results are quantized back to cents or satoshis.
#
_SIM_DECIMAL_CONTEXT = getcontext()
_SIM_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

ASSET_SYMBOL = "BTC"
QUOTE_SYMBOL = "USD"

# Every new session starts with this much virtual cash and no BTC.
INITIAL_USD_BALANCE = Decimal("100")

# Loan terms
LOAN_APR = Decimal("0.18")
MAX_LOAN_MULTIPLIER = Decimal("10")
LOAN_LIMIT_EPSILON = Decimal("0.01")
LOAN_PERIODS_DAYS: Tuple[int, ...] = (1, 3, 7, 30)
PENALTY_MULTIPLIER = Decimal("1.25")
DAYS_PER_YEAR = 365

# Lifecycle monitor timings
DUE_SOON_WINDOW = timedelta(hours=24)
MONITOR_INTERVAL_SECONDS = 60

# Quantization targets
CURRENCY_QUANTUM = Decimal("0.01")
ASSET_QUANTUM = Decimal("1e-8")

DECIMAL_PRECISION = {
    QUOTE_SYMBOL: 2,
    ASSET_SYMBOL: 8,
}


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all simulator errors."""
    pass


class InvalidAmount(LedgerError):
    """Raised when an amount cannot be interpreted as a finite decimal."""
    pass


class LoanStateError(LedgerError):
    """Raised when loan math is requested for a portfolio with no active loan."""
    pass


class PersistenceError(LedgerError):
    """Raised by portfolio stores when reading or writing fails."""
    pass


class ConfigError(LedgerError):
    """Raised when simulator configuration is invalid."""
    pass


# ============================================================================
# NUMERIC HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a user or storage supplied number into a finite Decimal.

    Floats go through str() so that 0.1 becomes Decimal("0.1") rather than
    its binary expansion.

    Raises:
        InvalidAmount: If the value is None, unparsable, NaN or infinite.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmount(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {value!r}")
    return result


def round_currency(value: Any) -> Decimal:
    """Round to the nearest cent."""
    return to_decimal(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def round_asset(value: Any) -> Decimal:
    """Round to the nearest 1e-8 BTC (one satoshi)."""
    return to_decimal(value).quantize(ASSET_QUANTUM, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal) -> str:
    return f"{round_currency(value):.2f}"


def format_asset(value: Decimal) -> str:
    return f"{round_asset(value):.8f}"


# ============================================================================
# TIME HELPERS
# ============================================================================

# A clock is any zero-argument callable returning an aware datetime.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class TransactionType(Enum):
    BUY = "BUY"
    SELL = "SELL"


class Severity(Enum):
    """
    How a notification should be presented.

    SUCCESS: Operation applied.
    ERROR: Operation rejected, or a punitive outcome (loan penalty).
    WARNING: Advisory only, state unchanged (loan due soon).
    """
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def new_transaction_id(now: datetime) -> str:
    """
    Build a transaction id from the execution time plus a random suffix.

    The suffix keeps ids distinct when two trades land on the same timestamp.
    """
    return f"{now.isoformat()}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed trade - an immutable entry in the audit log.

    Attributes:
        id: Unique identifier (execution time + random suffix).
        type: BUY or SELL.
        date: When the trade was executed (aware UTC datetime).
        btc_amount: BTC acquired (BUY) or disposed of (SELL).
        usd_amount: USD spent (BUY) or received (SELL).
        price_at_transaction: Market price used for the fill.
    """
    id: str
    type: TransactionType
    date: datetime
    btc_amount: Decimal
    usd_amount: Decimal
    price_at_transaction: Decimal

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("Transaction id cannot be empty")
        if not isinstance(self.type, TransactionType):
            object.__setattr__(self, 'type', TransactionType(self.type))
        object.__setattr__(self, 'date', ensure_utc(self.date))
        for name in ('btc_amount', 'usd_amount', 'price_at_transaction'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))

    def __repr__(self) -> str:
        return (f"Transaction({self.type.value} {self.btc_amount} {ASSET_SYMBOL} "
                f"for {self.usd_amount} {QUOTE_SYMBOL} @ {self.price_at_transaction})")


@dataclass(frozen=True, slots=True)
class Loan:
    """
    The single active loan of a portfolio.

    A loan is never modified in place: it is created by take_loan and
    removed either by repay_loan or by the overdue penalty.

    Attributes:
        principal: Amount borrowed (> 0).
        interest_rate: Annual rate fixed at issuance (e.g. 0.18 for 18%).
        loan_date: When the loan was issued.
        due_date: loan_date + repayment_period_days.
        repayment_period_days: Nominal term in calendar days.
    """
    principal: Decimal
    interest_rate: Decimal
    loan_date: datetime
    due_date: datetime
    repayment_period_days: int

    def __post_init__(self):
        if not isinstance(self.principal, Decimal):
            object.__setattr__(self, 'principal', to_decimal(self.principal))
        if not isinstance(self.interest_rate, Decimal):
            object.__setattr__(self, 'interest_rate', to_decimal(self.interest_rate))
        object.__setattr__(self, 'loan_date', ensure_utc(self.loan_date))
        object.__setattr__(self, 'due_date', ensure_utc(self.due_date))
        object.__setattr__(self, 'repayment_period_days', int(self.repayment_period_days))
        if self.principal <= 0:
            raise ValueError(f"Loan principal must be positive, got {self.principal}")
        if self.repayment_period_days <= 0:
            raise ValueError(
                f"Loan period must be positive, got {self.repayment_period_days}"
            )
        if self.due_date < self.loan_date:
            raise ValueError("Loan due_date precedes loan_date")


@dataclass(frozen=True, slots=True)
class PortfolioState:
    """
    Complete simulated holdings of one session.

    Attributes:
        usd_balance: Virtual cash.
        btc_balance: Virtual BTC holdings.
        transactions: Executed trades, newest first.
        loan: Active loan or None.
    """
    usd_balance: Decimal
    btc_balance: Decimal
    transactions: Tuple[Transaction, ...] = ()
    loan: Optional[Loan] = None

    def __post_init__(self):
        if not isinstance(self.usd_balance, Decimal):
            object.__setattr__(self, 'usd_balance', to_decimal(self.usd_balance))
        if not isinstance(self.btc_balance, Decimal):
            object.__setattr__(self, 'btc_balance', to_decimal(self.btc_balance))
        if not isinstance(self.transactions, tuple):
            object.__setattr__(self, 'transactions', tuple(self.transactions))

    def with_transaction(self, tx: Transaction, **changes: Any) -> PortfolioState:
        """Return a copy with tx prepended to the log and the given fields replaced."""
        return replace(self, transactions=(tx,) + self.transactions, **changes)

    @property
    def has_loan(self) -> bool:
        return self.loan is not None


def initial_portfolio(usd_balance: Decimal = INITIAL_USD_BALANCE) -> PortfolioState:
    """The state a brand-new session starts from."""
    return PortfolioState(
        usd_balance=round_currency(usd_balance),
        btc_balance=Decimal("0"),
    )


@dataclass(frozen=True, slots=True)
class Notification:
    """
    A user-visible outcome of an engine operation.

    message_key is a translation key (e.g. "notifications.buySuccess");
    payload carries interpolation values for it.
    """
    message_key: str
    severity: Severity
    payload: Optional[Mapping[str, Any]] = field(default=None)

    @classmethod
    def success(cls, message_key: str, **payload: Any) -> Notification:
        return cls(message_key, Severity.SUCCESS, payload or None)

    @classmethod
    def error(cls, message_key: str, **payload: Any) -> Notification:
        return cls(message_key, Severity.ERROR, payload or None)

    @classmethod
    def warning(cls, message_key: str, **payload: Any) -> Notification:
        return cls(message_key, Severity.WARNING, payload or None)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


# A mutator maps one consistent snapshot to the next snapshot plus an optional
# notification. Returning the input state unchanged means "rejected / no-op".
Mutation = Tuple[PortfolioState, Optional[Notification]]
Mutator = Callable[[PortfolioState], Mutation]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to the ledger.

    UI collaborators, valuation helpers and the lifecycle monitor depend on
    this protocol. Only engines go through Ledger.commit().
    """

    @property
    def state(self) -> PortfolioState:
        """Return the current immutable portfolio snapshot."""
        ...

    @property
    def notification(self) -> Optional[Notification]:
        """Return the most recent notification, or None."""
        ...

    @property
    def current_time(self) -> datetime:
        """Return the ledger clock's current time."""
        ...


# Payload helpers shared by the engines.
def amount_payload(amount: Decimal, currency: str = QUOTE_SYMBOL) -> Dict[str, str]:
    if currency == ASSET_SYMBOL:
        return {"amount": format_asset(amount), "currency": currency}
    return {"amount": format_currency(amount), "currency": currency}

"""
btcsim - Paper-trading BTC Simulator Core

Portfolio ledger, trade and loan engines, and the loan lifecycle monitor
behind a browser-based Bitcoin trading simulator.

Usage:
    from decimal import Decimal
    from btcsim import Ledger, TradeEngine, LoanEngine, LoanMonitor

    ledger = Ledger(verbose=False)          # starts with 100 USD, 0 BTC
    trades = TradeEngine(ledger)
    loans = LoanEngine(ledger)
    monitor = LoanMonitor(ledger, loans)

    trades.buy(50, current_price=Decimal("25000"))   # -> 0.002 BTC
    loans.take_loan(500, 7)                          # limit is 10x USD balance
    monitor.tick()                                   # penalizes once overdue

Or let a Session wire everything together, including persistence:

    session = await Session.open(JsonFilePortfolioStore("portfolio.json"))
"""

# Core types
from .core import (
    Transaction,
    TransactionType,
    Loan,
    PortfolioState,
    Notification,
    Severity,
    LedgerView,
    Mutator,
    Clock,
    LedgerError,
    InvalidAmount,
    LoanStateError,
    PersistenceError,
    ConfigError,
    initial_portfolio,
    new_transaction_id,
    round_currency,
    round_asset,
    to_decimal,
    utc_now,
    ASSET_SYMBOL,
    QUOTE_SYMBOL,
    INITIAL_USD_BALANCE,
    LOAN_APR,
    MAX_LOAN_MULTIPLIER,
    LOAN_LIMIT_EPSILON,
    LOAN_PERIODS_DAYS,
    PENALTY_MULTIPLIER,
    DUE_SOON_WINDOW,
    MONITOR_INTERVAL_SECONDS,
)

# Ledger
from .ledger import Ledger

# Configuration
from .config import SimulatorConfig

# Trading
from .trading import (
    TradeEngine,
    compute_buy,
    compute_sell,
    calculate_btc_for_usd,
    calculate_usd_for_btc,
)

# Loans
from .loans import (
    LoanEngine,
    LoanQuote,
    quote_loan,
    compute_take_loan,
    compute_repay_loan,
    compute_penalty,
    calculate_max_loan,
    calculate_years_between,
    calculate_accrued_interest,
    calculate_repayment_amount,
    calculate_total_due_at_term,
    calculate_penalty,
    calculate_available_collateral,
)

# Lifecycle
from .lifecycle import (
    LifecycleAction,
    LoanMonitor,
    check_loan_lifecycle,
)

# Persistence
from .persistence import (
    PortfolioStore,
    InMemoryPortfolioStore,
    JsonFilePortfolioStore,
    serialize_portfolio,
    deserialize_portfolio,
    format_timestamp,
    parse_timestamp,
)

# Pricing sources
from .pricing_source import (
    PricePoint,
    PriceSource,
    StaticPriceSource,
    TimeSeriesPriceSource,
)

# Derived views
from .history import (
    filter_transactions,
    portfolio_value,
    net_worth,
)

# Session
from .session import Session

__all__ = [
    # Core
    'Transaction', 'TransactionType', 'Loan', 'PortfolioState',
    'Notification', 'Severity', 'LedgerView', 'Mutator', 'Clock',
    'LedgerError', 'InvalidAmount', 'LoanStateError', 'PersistenceError', 'ConfigError',
    'initial_portfolio', 'new_transaction_id', 'round_currency', 'round_asset',
    'to_decimal', 'utc_now',
    'ASSET_SYMBOL', 'QUOTE_SYMBOL', 'INITIAL_USD_BALANCE', 'LOAN_APR',
    'MAX_LOAN_MULTIPLIER', 'LOAN_LIMIT_EPSILON', 'LOAN_PERIODS_DAYS',
    'PENALTY_MULTIPLIER', 'DUE_SOON_WINDOW', 'MONITOR_INTERVAL_SECONDS',
    # Ledger
    'Ledger',
    # Config
    'SimulatorConfig',
    # Trading
    'TradeEngine', 'compute_buy', 'compute_sell',
    'calculate_btc_for_usd', 'calculate_usd_for_btc',
    # Loans
    'LoanEngine', 'LoanQuote', 'quote_loan',
    'compute_take_loan', 'compute_repay_loan', 'compute_penalty',
    'calculate_max_loan', 'calculate_years_between', 'calculate_accrued_interest',
    'calculate_repayment_amount', 'calculate_total_due_at_term', 'calculate_penalty',
    'calculate_available_collateral',
    # Lifecycle
    'LifecycleAction', 'LoanMonitor', 'check_loan_lifecycle',
    # Persistence
    'PortfolioStore', 'InMemoryPortfolioStore', 'JsonFilePortfolioStore',
    'serialize_portfolio', 'deserialize_portfolio', 'format_timestamp', 'parse_timestamp',
    # Pricing
    'PricePoint', 'PriceSource', 'StaticPriceSource', 'TimeSeriesPriceSource',
    # Views
    'filter_transactions', 'portfolio_value', 'net_worth',
    # Session
    'Session',
]

__version__ = '1.0.0'

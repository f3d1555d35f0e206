"""
trading.py - Buy/sell execution against the ledger

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Conversion between USD and BTC at a given price
   - All inputs explicit, results already rounded

2. PURE STATE FUNCTIONS (compute_*):
   - Take a PortfolioState plus the trade intent
   - Return (next_state, notification); the input state is returned
     unchanged when the trade is rejected or is a no-op

3. TradeEngine:
   - Wraps compute_* in Ledger.commit() so validation and mutation happen
     against one snapshot

The price is always supplied by the caller. The engine never looks up a
price itself, which keeps it independent of the live feed.

Key Formulas:
    btc_bought = round_asset(usd_amount / price)
    usd_received = round_currency(btc_amount * price)
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
import logging

from .core import (
    ASSET_SYMBOL, Clock, InvalidAmount, Mutation, Notification, PortfolioState,
    Transaction, TransactionType,
    amount_payload, new_transaction_id, round_asset, round_currency, to_decimal,
    utc_now,
)
from .ledger import Ledger


logger = logging.getLogger(__name__)

BUY_SUCCESS = "notifications.buySuccess"
SELL_SUCCESS = "notifications.sellSuccess"
INSUFFICIENT_USD = "notifications.insufficientUsd"
INSUFFICIENT_BTC = "notifications.insufficientBtc"
PRICE_UNAVAILABLE = "notifications.priceUnavailable"


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_btc_for_usd(usd_amount: Decimal, price: Decimal) -> Decimal:
    """BTC that usd_amount buys at price, rounded to 1e-8."""
    return round_asset(to_decimal(usd_amount) / to_decimal(price))


def calculate_usd_for_btc(btc_amount: Decimal, price: Decimal) -> Decimal:
    """USD that btc_amount sells for at price, rounded to the cent."""
    return round_currency(to_decimal(btc_amount) * to_decimal(price))


def _positive_or_none(value: Any) -> Optional[Decimal]:
    """Parse value; None when it is missing, unparsable or not positive."""
    try:
        parsed = to_decimal(value)
    except InvalidAmount:
        return None
    return parsed if parsed > 0 else None


# ============================================================================
# PURE STATE FUNCTIONS
# ============================================================================

def compute_buy(
    state: PortfolioState,
    usd_amount: Any,
    current_price: Any,
    now: datetime,
) -> Mutation:
    """
    Buy BTC with usd_amount at current_price.

    A non-positive amount is a silent no-op (nothing entered yet).
    A missing price or insufficient cash rejects with an error notification.

    Returns:
        (next_state, notification) - state is unchanged on reject/no-op.
    """
    requested = _positive_or_none(usd_amount)
    if requested is None:
        return state, None
    usd = round_currency(requested)
    if usd <= 0:
        return state, None

    price = _positive_or_none(current_price)
    if price is None:
        return state, Notification.error(PRICE_UNAVAILABLE)

    if round_currency(state.usd_balance) < usd:
        return state, Notification.error(INSUFFICIENT_USD)

    btc_to_buy = calculate_btc_for_usd(usd, price)
    tx = Transaction(
        id=new_transaction_id(now),
        type=TransactionType.BUY,
        date=now,
        btc_amount=btc_to_buy,
        usd_amount=usd,
        price_at_transaction=price,
    )
    next_state = state.with_transaction(
        tx,
        usd_balance=round_currency(state.usd_balance - usd),
        btc_balance=round_asset(state.btc_balance + btc_to_buy),
    )
    return next_state, Notification.success(BUY_SUCCESS, **amount_payload(btc_to_buy, ASSET_SYMBOL))


def compute_sell(
    state: PortfolioState,
    btc_amount: Any,
    current_price: Any,
    now: datetime,
) -> Mutation:
    """
    Sell btc_amount at current_price.

    Mirror image of compute_buy: rejects on insufficient BTC, converts at
    the supplied price, rounds both legs and appends a SELL transaction.
    """
    requested = _positive_or_none(btc_amount)
    if requested is None:
        return state, None
    btc = round_asset(requested)
    if btc <= 0:
        return state, None

    price = _positive_or_none(current_price)
    if price is None:
        return state, Notification.error(PRICE_UNAVAILABLE)

    if round_asset(state.btc_balance) < btc:
        return state, Notification.error(INSUFFICIENT_BTC)

    usd_to_gain = calculate_usd_for_btc(btc, price)
    tx = Transaction(
        id=new_transaction_id(now),
        type=TransactionType.SELL,
        date=now,
        btc_amount=btc,
        usd_amount=usd_to_gain,
        price_at_transaction=price,
    )
    next_state = state.with_transaction(
        tx,
        usd_balance=round_currency(state.usd_balance + usd_to_gain),
        btc_balance=round_asset(state.btc_balance - btc),
    )
    return next_state, Notification.success(SELL_SUCCESS, **amount_payload(btc, ASSET_SYMBOL))


# ============================================================================
# ENGINE
# ============================================================================

class TradeEngine:
    """
    Executes buy/sell intents against a Ledger.

    Example:
        engine = TradeEngine(ledger)
        engine.buy(50, current_price=Decimal("25000"))
        ledger.state.btc_balance  # Decimal("0.00200000")
    """

    def __init__(self, ledger: Ledger, clock: Optional[Clock] = None):
        self.ledger = ledger
        self._clock: Clock = clock or utc_now

    def buy(self, usd_amount: Any, current_price: Any) -> Optional[Notification]:
        """Spend usd_amount on BTC at current_price. Returns the notification."""
        now = self._clock()
        notification = self.ledger.commit(
            lambda state: compute_buy(state, usd_amount, current_price, now)
        )
        self._log(notification)
        return notification

    def sell(self, btc_amount: Any, current_price: Any) -> Optional[Notification]:
        """Sell btc_amount at current_price. Returns the notification."""
        now = self._clock()
        notification = self.ledger.commit(
            lambda state: compute_sell(state, btc_amount, current_price, now)
        )
        self._log(notification)
        return notification

    @staticmethod
    def preview_buy(usd_amount: Any, current_price: Any) -> Decimal:
        """BTC a buy would acquire; zero when the inputs are not usable."""
        usd = _positive_or_none(usd_amount)
        price = _positive_or_none(current_price)
        if usd is None or price is None:
            return Decimal("0")
        return calculate_btc_for_usd(round_currency(usd), price)

    @staticmethod
    def preview_sell(btc_amount: Any, current_price: Any) -> Decimal:
        """USD a sell would return; zero when the inputs are not usable."""
        btc = _positive_or_none(btc_amount)
        price = _positive_or_none(current_price)
        if btc is None or price is None:
            return Decimal("0")
        return calculate_usd_for_btc(round_asset(btc), price)

    @staticmethod
    def _log(notification: Optional[Notification]) -> None:
        if notification is not None and notification.is_error:
            logger.info("Trade rejected: %s", notification.message_key)

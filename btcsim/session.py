"""
session.py - One user's simulator session

Session is the injectable service object the UI talks to. It owns the
ledger, both engines, the lifecycle monitor and the persistence writer.

Usage:
    session = await Session.open(JsonFilePortfolioStore("portfolio.json"))
    session.buy(50, current_price=feed.current_price())
    session.take_loan(500, 7)
    ...
    await session.close()

Engine calls are synchronous: the new snapshot is visible as soon as they
return. Saving happens afterwards on the event loop and never blocks or
undoes an operation.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Optional
import asyncio
import logging

from .config import SimulatorConfig
from .core import Clock, Notification, PortfolioState, utc_now
from .history import net_worth, portfolio_value
from .ledger import Ledger
from .lifecycle import LoanMonitor
from .loans import LoanEngine, LoanQuote
from .persistence import (
    InMemoryPortfolioStore, JsonFilePortfolioStore, PortfolioStore,
)
from .trading import TradeEngine


logger = logging.getLogger(__name__)


class Session:
    """
    Wires ledger, engines, monitor and persistence for one session.

    Create with Session.open() so the saved portfolio is restored before
    the first operation.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: Optional[SimulatorConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or SimulatorConfig()
        self.ledger = ledger
        self._clock: Clock = clock or utc_now
        self.trades = TradeEngine(ledger, clock=self._clock)
        self.loans = LoanEngine(ledger, clock=self._clock, config=self.config)
        self.monitor = LoanMonitor(
            ledger,
            self.loans,
            clock=self._clock,
            interval_seconds=self.config.monitor_interval_seconds,
            due_soon_window=self.config.due_soon_window,
        )
        self._pending_save: Optional[PortfolioState] = None
        self._save_task: Optional[asyncio.Task] = None
        self._unsubscribe = ledger.subscribe(self._on_commit)
        self._closed = False

    @classmethod
    async def open(
        cls,
        store: Optional[PortfolioStore] = None,
        config: Optional[SimulatorConfig] = None,
        clock: Optional[Clock] = None,
        verbose: bool = False,
    ) -> Session:
        """
        Restore (or create) a portfolio and start watching its loan.

        Args:
            store: Persistence backend; defaults to config.storage_path as a
                JSON file, or an in-memory store when that is unset
            config: Business terms (default: standard terms)
            clock: Time source (default: utc_now)
            verbose: Print every commit
        """
        config = config or SimulatorConfig()
        if store is None:
            if config.storage_path:
                store = JsonFilePortfolioStore(config.storage_path)
            else:
                store = InMemoryPortfolioStore()

        ledger = Ledger(
            store=store,
            clock=clock,
            initial_usd_balance=config.initial_usd_balance,
            verbose=verbose,
        )
        restored = await ledger.load()
        logger.info("Session opened (%s)", "restored" if restored else "new portfolio")

        session = cls(ledger, config=config, clock=clock)
        if ledger.state.loan is not None:
            # A loan may have expired while the session was closed.
            session.monitor.tick()
            session.monitor.start()
        return session

    # ========================================================================
    # READ-ONLY VIEW
    # ========================================================================

    @property
    def portfolio(self) -> PortfolioState:
        return self.ledger.state

    @property
    def notification(self) -> Optional[Notification]:
        return self.ledger.notification

    def clear_notification(self) -> None:
        self.ledger.clear_notification()

    def total_value(self, current_price: Any = None) -> Decimal:
        return portfolio_value(self.ledger.state, current_price)

    def net_worth(self, current_price: Any = None) -> Decimal:
        return net_worth(self.ledger.state, current_price)

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def buy(self, usd_amount: Any, current_price: Any) -> Optional[Notification]:
        return self.trades.buy(usd_amount, current_price)

    def sell(self, btc_amount: Any, current_price: Any) -> Optional[Notification]:
        return self.trades.sell(btc_amount, current_price)

    def take_loan(self, amount: Any, period_days: Any) -> Optional[Notification]:
        return self.loans.take_loan(amount, period_days)

    def repay_loan(self) -> Optional[Notification]:
        return self.loans.repay_loan()

    def quote_loan(self, amount: Any, period_days: int) -> LoanQuote:
        return self.loans.quote(amount, period_days)

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _on_commit(self, previous: PortfolioState, current: PortfolioState) -> None:
        if current is previous or self._closed:
            return
        self._pending_save = current
        if self._save_task is not None and not self._save_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; save deferred until flush()")
            return
        self._save_task = loop.create_task(self._drain_saves())

    async def _drain_saves(self) -> None:
        # Latest snapshot wins; saves are written one at a time, in order.
        while self._pending_save is not None:
            state, self._pending_save = self._pending_save, None
            await self.ledger.save(state)

    async def flush(self) -> None:
        """Wait until every committed change has been handed to the store."""
        if self._save_task is not None and not self._save_task.done():
            await self._save_task
        if self._pending_save is not None:
            await self._drain_saves()

    async def close(self) -> None:
        """Cancel the monitor, flush outstanding saves and detach."""
        if self._closed:
            return
        await self.monitor.aclose()
        await self.flush()
        self._closed = True
        self._unsubscribe()
        logger.info("Session closed")

"""
lifecycle.py - Loan Lifecycle Monitor

Watches the active loan and acts on its due date.

Each tick:
1. Loan overdue (now > due_date): apply the penalty, which clears the loan
2. Loan due within the warning window and not yet warned: emit one warning
3. Otherwise: nothing

The monitor is a best-effort wall-clock poll. A loan that becomes overdue
between ticks is penalized at the next tick, so drift is bounded by the
interval.

Scheduling is tied to the loan, not to any caller: the monitor subscribes
to ledger commits, starts its periodic task when a loan appears and cancels
it (resetting the warned flag) when the loan is cleared.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
import asyncio
import logging

from .core import (
    Clock, Loan, Notification, PortfolioState,
    DUE_SOON_WINDOW, MONITOR_INTERVAL_SECONDS,
    utc_now,
)
from .ledger import Ledger
from .loans import LOAN_DUE_SOON, LoanEngine
from .persistence import format_timestamp


logger = logging.getLogger(__name__)


class LifecycleAction(Enum):
    NONE = "none"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


def check_loan_lifecycle(
    loan: Optional[Loan],
    now: datetime,
    warned: bool,
    window: timedelta = DUE_SOON_WINDOW,
) -> LifecycleAction:
    """
    Decide what the monitor should do for loan at now.

    PURE FUNCTION - no ledger access.

    Args:
        loan: Active loan or None
        now: Current time
        warned: Whether a due-soon warning was already issued for this loan
        window: How far ahead of the due date the warning fires

    Returns:
        OVERDUE if past due, DUE_SOON if inside the window and not yet
        warned, otherwise NONE.
    """
    if loan is None:
        return LifecycleAction.NONE
    if now > loan.due_date:
        return LifecycleAction.OVERDUE
    remaining = loan.due_date - now
    if timedelta(0) < remaining < window and not warned:
        return LifecycleAction.DUE_SOON
    return LifecycleAction.NONE


def _due_soon_mutator(loan: Loan):
    """Warn only if the loan is still the one that was checked."""
    def mutate(state: PortfolioState):
        if state.loan != loan:
            return state, None
        return state, Notification.warning(LOAN_DUE_SOON, dueDate=format_timestamp(loan.due_date))
    return mutate


class LoanMonitor:
    """
    Periodic due-date check for the active loan.

    Without a running asyncio event loop, start() does nothing and the
    owner is expected to call tick() itself (tests, batch simulations).

    Example:
        monitor = LoanMonitor(ledger, loan_engine)
        monitor.tick()            # one synchronous check
        monitor.start()           # inside a running loop: check every 60s
        await monitor.aclose()
    """

    def __init__(
        self,
        ledger: Ledger,
        loan_engine: LoanEngine,
        clock: Optional[Clock] = None,
        interval_seconds: float = MONITOR_INTERVAL_SECONDS,
        due_soon_window: timedelta = DUE_SOON_WINDOW,
    ):
        self.ledger = ledger
        self.loan_engine = loan_engine
        self.interval_seconds = float(interval_seconds)
        self.due_soon_window = due_soon_window
        self._clock: Clock = clock or utc_now
        self._warned_loan: Optional[Loan] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = ledger.subscribe(self._on_commit)

    # ------------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------------

    @property
    def warned(self) -> bool:
        """Whether the current loan instance has already been warned about."""
        loan = self.ledger.state.loan
        return loan is not None and self._warned_loan == loan

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> LifecycleAction:
        """Run one lifecycle check and act on it."""
        now = now or self._clock()
        loan = self.ledger.state.loan
        action = check_loan_lifecycle(loan, now, self.warned, self.due_soon_window)

        if action is LifecycleAction.OVERDUE:
            logger.warning("Loan due %s is overdue at %s", loan.due_date, now)
            self.loan_engine.apply_penalty()
        elif action is LifecycleAction.DUE_SOON:
            self._warned_loan = loan
            logger.warning("Loan due %s is due within %s", loan.due_date, self.due_soon_window)
            self.ledger.commit(_due_soon_mutator(loan))
        return action

    # ------------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start the periodic task if a loan is active and a loop is running.

        Returns:
            True if a task is running after the call.
        """
        if self.running:
            return True
        if self.ledger.state.loan is None:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; loan monitor not scheduled")
            return False
        self._task = loop.create_task(self._run())
        return True

    def stop(self) -> None:
        """Cancel the periodic task. Safe to call when not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # The loop exits on its own once it sees the loan is gone.
            return
        task.cancel()

    async def aclose(self) -> None:
        """Stop the task, wait for it to finish and detach from the ledger."""
        task = self._task
        self.stop()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._unsubscribe()

    async def _run(self) -> None:
        while self.ledger.state.loan is not None:
            await asyncio.sleep(self.interval_seconds)
            self.tick()

    def _on_commit(self, previous: PortfolioState, current: PortfolioState) -> None:
        if current.loan is None:
            self._warned_loan = None
            self.stop()
            return
        if current.loan != previous.loan:
            # New loan instance: earlier warnings do not carry over.
            self._warned_loan = None
        self.start()

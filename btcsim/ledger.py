"""
ledger.py - Portfolio Ledger Store

The Ledger class is the central state holder for a simulator session.
It is the only object that replaces the portfolio snapshot, ensuring every
change is atomic and observable.

Key responsibilities:
    - Implements LedgerView protocol for read-only consumers
    - Applies mutators atomically via commit() (read snapshot, compute, replace)
    - Holds the single most-recent notification slot
    - Notifies subscribers (lifecycle monitor, persistence writer) after commits
    - Loads and saves the snapshot through a PortfolioStore, best effort
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, List, Optional
import logging
import threading

from .core import (
    Clock, LedgerError, Mutator, Notification, PersistenceError, PortfolioState,
    INITIAL_USD_BALANCE, format_asset, format_currency, initial_portfolio, utc_now,
)
from .persistence import PortfolioStore


logger = logging.getLogger(__name__)


# Called with (previous_state, new_state) after every commit.
CommitListener = Callable[[PortfolioState, PortfolioState], None]


class Ledger:
    """
    Single-session portfolio ledger with atomic commits.

    Every engine operation is expressed as one commit(mutator). The mutator
    receives the snapshot current at the time of the commit, never a value
    read earlier, so two rapid operations cannot overwrite each other.

    Thread Safety:
        commit() holds a re-entrant lock while the mutator runs, so the
        ledger stays consistent if engines are called from several threads.
        Listeners run after the lock is released.

    Example:
        ledger = Ledger(verbose=False)
        notification = ledger.commit(lambda s: (s, Notification.warning("x")))
    """

    def __init__(
        self,
        initial_state: Optional[PortfolioState] = None,
        store: Optional[PortfolioStore] = None,
        clock: Optional[Clock] = None,
        initial_usd_balance=INITIAL_USD_BALANCE,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            initial_state: Starting snapshot (default: fresh portfolio)
            store: Persistence backend used by load()/save() (default: none)
            clock: Time source (default: utc_now)
            initial_usd_balance: Starting cash when no saved state exists
            verbose: Print a line for every commit (default: True)
        """
        self.initial_usd_balance = initial_usd_balance
        self._state = initial_state or initial_portfolio(initial_usd_balance)
        self._notification: Optional[Notification] = None
        self._store = store
        self._clock: Clock = clock or utc_now
        self._lock = threading.RLock()
        self._listeners: List[CommitListener] = []
        self._commit_count = 0
        self.verbose = verbose

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only)
    # ========================================================================

    @property
    def state(self) -> PortfolioState:
        """Current immutable snapshot."""
        return self._state

    @property
    def notification(self) -> Optional[Notification]:
        return self._notification

    @property
    def current_time(self) -> datetime:
        return self._clock()

    @property
    def commit_count(self) -> int:
        """Number of commits that replaced the snapshot."""
        return self._commit_count

    @property
    def store(self) -> Optional[PortfolioStore]:
        return self._store

    # ========================================================================
    # MUTATION
    # ========================================================================

    def commit(self, mutator: Mutator) -> Optional[Notification]:
        """
        Atomically replace the snapshot with mutator(snapshot).

        The mutator must be pure: it receives the current PortfolioState and
        returns (next_state, notification_or_None). Returning the same
        state object means nothing changed. A non-None notification replaces
        the notification slot.

        Returns:
            The notification produced by the mutator (or None).

        Raises:
            LedgerError: If the mutator returns something other than a
                PortfolioState. The snapshot is left untouched.
        """
        with self._lock:
            previous = self._state
            next_state, notification = mutator(previous)
            if not isinstance(next_state, PortfolioState):
                raise LedgerError(
                    f"Mutator must return PortfolioState, got {type(next_state)}"
                )
            self._state = next_state
            if next_state is not previous:
                self._commit_count += 1
            if notification is not None:
                self._notification = notification
            listeners = list(self._listeners)

        if self.verbose:
            self._print_commit(previous, next_state, notification)
        if next_state is not previous:
            logger.debug("Committed portfolio change #%d", self._commit_count)

        for listener in listeners:
            listener(previous, next_state)
        return notification

    def clear_notification(self) -> None:
        """Empty the notification slot. Safe to call repeatedly."""
        with self._lock:
            self._notification = None

    def subscribe(self, listener: CommitListener) -> Callable[[], None]:
        """
        Register a listener called after each commit.

        Returns:
            A callable that removes the listener (idempotent).
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    async def load(self) -> bool:
        """
        Restore the snapshot from the store.

        Falls back to a fresh portfolio when nothing was saved yet or when
        the store fails; a failure is logged, never raised.

        Returns:
            True if a saved portfolio was restored.
        """
        loaded: Optional[PortfolioState] = None
        if self._store is not None:
            try:
                loaded = await self._store.load()
            except PersistenceError:
                logger.exception("Failed to load portfolio; starting from defaults")

        restored = loaded or initial_portfolio(self.initial_usd_balance)
        self.commit(lambda _: (restored, None))
        return loaded is not None

    async def save(self, state: Optional[PortfolioState] = None) -> bool:
        """
        Persist a snapshot (the current one by default).

        In-memory state is the source of truth: a failed save is logged and
        neither retried nor rolled back.

        Returns:
            True if the store accepted the snapshot.
        """
        if self._store is None:
            return False
        snapshot = state if state is not None else self._state
        try:
            await self._store.save(snapshot)
        except PersistenceError:
            logger.exception("Failed to save portfolio")
            return False
        return True

    # ========================================================================
    # DISPLAY
    # ========================================================================

    def _print_commit(
        self,
        previous: PortfolioState,
        current: PortfolioState,
        notification: Optional[Notification],
    ) -> None:
        if current is previous:
            icon = "✗" if notification is not None and notification.is_error else "·"
        else:
            icon = "✓"
        key = notification.message_key if notification is not None else "-"
        loan = "none"
        if current.loan is not None:
            loan = f"{format_currency(current.loan.principal)} due {current.loan.due_date.isoformat()}"
        print(
            f"{icon} {key:<45} usd={format_currency(current.usd_balance)} "
            f"btc={format_asset(current.btc_balance)} txs={len(current.transactions)} loan={loan}"
        )

    def __repr__(self) -> str:
        s = self._state
        return (f"Ledger(usd={s.usd_balance}, btc={s.btc_balance}, "
                f"transactions={len(s.transactions)}, loan={'yes' if s.loan else 'no'})")

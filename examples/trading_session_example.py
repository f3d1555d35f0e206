"""
Example: A week of leveraged paper trading.

Walks one session through borrowing, trading on a price series, the
due-soon warning and repayment, then shows what a missed deadline costs.
Time is simulated with a hand-driven clock so the whole week runs instantly.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from btcsim import (
    InMemoryPortfolioStore, PricePoint, Session, TimeSeriesPriceSource,
    filter_transactions, TransactionType,
)


class ScriptClock:
    """Clock the script moves forward by hand."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def show(session, feed, title):
    state = session.portfolio
    price = feed.current_price()
    print(f"{title}")
    print(f"  USD: ${state.usd_balance:,.2f}   BTC: {state.btc_balance:.8f}")
    print(f"  Value @ {price}: ${session.total_value(price):,.2f}"
          f"   Net worth: ${session.net_worth(price):,.2f}")
    if state.loan is not None:
        print(f"  Loan: ${state.loan.principal:,.2f} due {state.loan.due_date:%Y-%m-%d %H:%M}")
    if session.notification is not None:
        print(f"  Notice: {session.notification.message_key} {session.notification.payload or ''}")
    print()


async def main():
    print("=" * 80)
    print("BTC PAPER TRADING - Leveraged Week")
    print("=" * 80)
    print()

    start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
    clock = ScriptClock(start)
    feed = TimeSeriesPriceSource(
        [PricePoint(start + timedelta(days=d), p)
         for d, p in enumerate([40000, 41200, 39800, 42500, 44100, 43800, 45000, 44600])],
        clock=clock,
    )
    store = InMemoryPortfolioStore()
    session = await Session.open(store, clock=clock, verbose=True)
    show(session, feed, "Day 0: fresh portfolio")

    quote = session.quote_loan(500, 7)
    print(f"Quote: borrow $500 for 7 days, repay ${quote.total_repayment} at term")
    print()

    session.take_loan(500, 7)
    session.buy(550, feed.current_price())
    show(session, feed, "Day 0: borrowed $500 and bought BTC")

    clock.advance(days=4)
    session.sell(session.portfolio.btc_balance, feed.current_price())
    show(session, feed, "Day 4: sold everything")

    clock.advance(days=2, hours=12)
    session.monitor.tick()
    show(session, feed, "Day 6.5: monitor check")

    session.repay_loan()
    show(session, feed, "Day 6.5: repaid")

    print("Example 2: Missing the deadline")
    print("-" * 80)
    session.take_loan(200, 1)
    clock.advance(days=1, minutes=5)
    session.monitor.tick()
    show(session, feed, "Day 7.5: loan expired")

    buys = filter_transactions(session.portfolio.transactions, TransactionType.BUY)
    print(f"Buys this week: {len(buys)}")

    await session.close()
    print(f"Saves written: {store.save_count}")


if __name__ == "__main__":
    asyncio.run(main())

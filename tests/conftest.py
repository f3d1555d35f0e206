"""
conftest.py - Shared pytest fixtures for simulator tests

Provides common fixtures used across unit, functional and conformance tests:
- A deterministic clock
- Fresh and funded ledgers
- Trade/loan engines and the lifecycle monitor bound to them
"""

import pytest
from btcsim import (
    Ledger, TradeEngine, LoanEngine, LoanMonitor,
    SimulatorConfig,
)

from tests.builders import START
from tests.fake_clock import FakeClock


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def config():
    return SimulatorConfig()


@pytest.fixture
def ledger(clock):
    """Fresh ledger: 100 USD, 0 BTC, no loan."""
    return Ledger(clock=clock, verbose=False)


@pytest.fixture
def trade_engine(ledger, clock):
    return TradeEngine(ledger, clock=clock)


@pytest.fixture
def loan_engine(ledger, clock, config):
    return LoanEngine(ledger, clock=clock, config=config)


@pytest.fixture
def monitor(ledger, loan_engine, clock):
    return LoanMonitor(ledger, loan_engine, clock=clock)

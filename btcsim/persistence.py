"""
persistence.py - Portfolio storage

Provides the load/save boundary between the ledger and durable storage.

Stored layout (one record per session, dates as ISO-8601 text):

    {
        "usdBalance": "50.00",
        "btcBalance": "0.00200000",
        "transactions": [
            {"id": ..., "type": "BUY", "date": "2024-01-01T00:00:00+00:00",
             "btcAmount": ..., "usdAmount": ..., "priceAtTransaction": ...}
        ],
        "loan": {"principal": ..., "interestRate": ..., "loanDate": ...,
                 "dueDate": ..., "repaymentPeriodDays": 7}   # or null
    }

Decimals are written as strings so values round-trip exactly. Numbers are
accepted on read, which keeps records written by older clients loadable.

Classes:
- PortfolioStore: Protocol for async stores
- InMemoryPortfolioStore: Dict-backed store for tests and ephemeral sessions
- JsonFilePortfolioStore: JSON document on disk, keyed by record name
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
import asyncio
import copy
import json
import logging
import os
import tempfile

from .core import (
    InvalidAmount, Loan, PersistenceError, PortfolioState, Transaction,
    TransactionType, ensure_utc, new_transaction_id, to_decimal,
)


logger = logging.getLogger(__name__)

DEFAULT_RECORD_KEY = "main"


# ============================================================================
# TIMESTAMPS
# ============================================================================

def format_timestamp(value: datetime) -> str:
    """Serialize an aware datetime to ISO-8601 (UTC, microsecond precision)."""
    return ensure_utc(value).isoformat()


def parse_timestamp(text: str) -> datetime:
    """
    Parse ISO-8601 text into an aware UTC datetime.

    Accepts the trailing "Z" form produced by JavaScript's toISOString().
    """
    if not isinstance(text, str):
        raise PersistenceError(f"Timestamp must be a string, got {type(text).__name__}")
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError as exc:
        raise PersistenceError(f"Invalid timestamp: {text!r}") from exc


# ============================================================================
# SERIALIZATION
# ============================================================================

def _decimal_text(value: Decimal) -> str:
    return str(value)


def serialize_transaction(tx: Transaction) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "type": tx.type.value,
        "date": format_timestamp(tx.date),
        "btcAmount": _decimal_text(tx.btc_amount),
        "usdAmount": _decimal_text(tx.usd_amount),
        "priceAtTransaction": _decimal_text(tx.price_at_transaction),
    }


def serialize_loan(loan: Loan) -> Dict[str, Any]:
    return {
        "principal": _decimal_text(loan.principal),
        "interestRate": _decimal_text(loan.interest_rate),
        "loanDate": format_timestamp(loan.loan_date),
        "dueDate": format_timestamp(loan.due_date),
        "repaymentPeriodDays": loan.repayment_period_days,
    }


def serialize_portfolio(state: PortfolioState) -> Dict[str, Any]:
    """Convert a snapshot into its stored record (JSON-compatible)."""
    return {
        "usdBalance": _decimal_text(state.usd_balance),
        "btcBalance": _decimal_text(state.btc_balance),
        "transactions": [serialize_transaction(tx) for tx in state.transactions],
        "loan": serialize_loan(state.loan) if state.loan is not None else None,
    }


def _require(record: Dict[str, Any], key: str, context: str) -> Any:
    if key not in record:
        raise PersistenceError(f"Stored {context} missing field {key!r}")
    return record[key]


def _stored_decimal(record: Dict[str, Any], key: str, context: str) -> Decimal:
    try:
        return to_decimal(_require(record, key, context))
    except InvalidAmount as exc:
        raise PersistenceError(f"Stored {context} field {key!r}: {exc}") from exc


def deserialize_transaction(record: Dict[str, Any]) -> Transaction:
    date = parse_timestamp(_require(record, "date", "transaction"))
    try:
        tx_type = TransactionType(_require(record, "type", "transaction"))
    except ValueError as exc:
        raise PersistenceError(f"Unknown transaction type: {record.get('type')!r}") from exc
    return Transaction(
        id=record.get("id") or new_transaction_id(date),
        type=tx_type,
        date=date,
        btc_amount=_stored_decimal(record, "btcAmount", "transaction"),
        usd_amount=_stored_decimal(record, "usdAmount", "transaction"),
        price_at_transaction=_stored_decimal(record, "priceAtTransaction", "transaction"),
    )


def deserialize_loan(record: Dict[str, Any]) -> Loan:
    try:
        return Loan(
            principal=_stored_decimal(record, "principal", "loan"),
            interest_rate=_stored_decimal(record, "interestRate", "loan"),
            loan_date=parse_timestamp(_require(record, "loanDate", "loan")),
            due_date=parse_timestamp(_require(record, "dueDate", "loan")),
            repayment_period_days=int(_require(record, "repaymentPeriodDays", "loan")),
        )
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Invalid stored loan: {exc}") from exc


def deserialize_portfolio(record: Dict[str, Any]) -> PortfolioState:
    """
    Rebuild a snapshot from its stored record.

    Raises:
        PersistenceError: If the record is malformed.
    """
    if not isinstance(record, dict):
        raise PersistenceError(f"Stored portfolio must be an object, got {type(record).__name__}")
    transactions: List[Any] = record.get("transactions") or []
    if not isinstance(transactions, list):
        raise PersistenceError("Stored transactions must be a list")
    loan_record = record.get("loan")
    return PortfolioState(
        usd_balance=_stored_decimal(record, "usdBalance", "portfolio"),
        btc_balance=_stored_decimal(record, "btcBalance", "portfolio"),
        transactions=tuple(deserialize_transaction(tx) for tx in transactions),
        loan=deserialize_loan(loan_record) if loan_record else None,
    )


# ============================================================================
# STORES
# ============================================================================

@runtime_checkable
class PortfolioStore(Protocol):
    """
    Protocol for portfolio persistence backends.

    load() returns None when nothing has been saved yet. Both methods raise
    PersistenceError on failure; the Ledger catches and logs it.
    """

    async def load(self) -> Optional[PortfolioState]:
        ...

    async def save(self, state: PortfolioState) -> None:
        ...


class InMemoryPortfolioStore:
    """
    Store that keeps serialized records in a dict.

    Records go through the same serialization as the file store, so tests
    exercise the real round trip.
    """

    def __init__(self, key: str = DEFAULT_RECORD_KEY):
        self.key = key
        self.records: Dict[str, Dict[str, Any]] = {}
        self.save_count = 0

    async def load(self) -> Optional[PortfolioState]:
        record = self.records.get(self.key)
        if record is None:
            return None
        return deserialize_portfolio(copy.deepcopy(record))

    async def save(self, state: PortfolioState) -> None:
        self.records[self.key] = serialize_portfolio(state)
        self.save_count += 1

    def __repr__(self):
        return f"InMemoryPortfolioStore(key={self.key!r}, saved={self.key in self.records})"


class JsonFilePortfolioStore:
    """
    Store backed by a JSON document on disk.

    The document maps record keys to portfolio records, so several
    sessions can share one file. Blocking file I/O runs in a worker thread
    via asyncio.to_thread(). Writes go to a temporary file that replaces
    the target, so a crash never leaves a half-written document.
    """

    def __init__(self, path, key: str = DEFAULT_RECORD_KEY):
        self.path = Path(path)
        self.key = key

    async def load(self) -> Optional[PortfolioState]:
        document = await asyncio.to_thread(self._read_document)
        record = document.get(self.key)
        if record is None:
            return None
        return deserialize_portfolio(record)

    async def save(self, state: PortfolioState) -> None:
        record = serialize_portfolio(state)
        await asyncio.to_thread(self._write_record, record)

    def _read_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceError(f"{self.path} does not contain a JSON object")
        return document

    def _write_record(self, record: Dict[str, Any]) -> None:
        try:
            document = self._read_document()
        except PersistenceError:
            logger.warning("Overwriting unreadable portfolio file %s", self.path)
            document = {}
        document[self.key] = record
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(document, fh, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc

    def __repr__(self):
        return f"JsonFilePortfolioStore({str(self.path)!r}, key={self.key!r})"

"""Ledger store: transactional documents plus a best-effort mirror."""

from reward_engine.ledger.mirror import LedgerMirror
from reward_engine.ledger.redis_store import RedisLedgerStore
from reward_engine.ledger.sql_store import SqlLedgerStore
from reward_engine.ledger.store import (
    UNCHANGED,
    Document,
    LedgerStore,
    TransactionConflict,
)

__all__ = [
    "UNCHANGED",
    "Document",
    "LedgerStore",
    "LedgerMirror",
    "RedisLedgerStore",
    "SqlLedgerStore",
    "TransactionConflict",
]

"""SQL tables backing the ledger store when ledger_backend == "postgres"."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from reward_engine.models.base import Base, TimestampMixin


class LedgerDocument(Base, TimestampMixin):
    """One JSON document addressed by its logical path.

    ``version`` is bumped on every write; an update only applies when the
    version read at the start of the transaction is still current.
    """

    __tablename__ = "ledger_documents"

    path: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
        comment="Logical document path, e.g. balances/{userId}",
    )
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Document body",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic concurrency version",
    )

    def __repr__(self) -> str:
        return f"<LedgerDocument path={self.path} v={self.version}>"


class LedgerClockProbe(Base):
    """Throwaway rows whose server-generated timestamp is the trusted time."""

    __tablename__ = "ledger_clock_probes"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

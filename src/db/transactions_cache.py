from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint, create_engine, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from config import config

logger = logging.getLogger(__name__)

ETHEREUM_CHAIN = "ethereum"


def default_cache_path() -> Path:
    return config().artifacts_dir / "transactions_cache.db"


class TransactionsCacheBase(DeclarativeBase):
    pass


class BackfilledTransactionOrm(TransactionsCacheBase):
    """A transaction fetched by hash; on-chain data, never updated once stored."""

    __tablename__ = "backfilled_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String, nullable=False)
    hash: Mapped[str] = mapped_column(String, nullable=False)
    block_number: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("chain", "hash", name="uq_backfilled_chain_hash"),
        Index("ix_backfilled_hash", "hash"),
    )


class TransactionsCacheRepository:
    def __init__(self, session: Session, *, chain: str = ETHEREUM_CHAIN):
        self.session = session
        self.chain = chain

    def get(self, tx_hash: str) -> dict[str, Any] | None:
        stmt = select(BackfilledTransactionOrm.payload).where(
            BackfilledTransactionOrm.chain == self.chain,
            BackfilledTransactionOrm.hash == tx_hash.lower(),
        )
        payload = self.session.scalar(stmt)
        return json.loads(payload) if payload is not None else None

    def put(self, tx_hash: str, record: dict[str, Any]) -> None:
        stmt = sqlite_insert(BackfilledTransactionOrm).values(
            chain=self.chain,
            hash=tx_hash.lower(),
            block_number=int(record.get("blockNumber") or 0),
            payload=json.dumps(record, sort_keys=True),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["chain", "hash"])
        self.session.execute(stmt)
        self.session.commit()

    def count(self) -> int:
        return len(self.session.execute(select(BackfilledTransactionOrm.id)).all())


def init_transactions_cache_db(echo: bool = False, *, db_file: str | Path | None = None, reset: bool = False) -> Session:
    path = Path(db_file) if db_file is not None else default_cache_path()
    if reset and path.exists():
        path.unlink()
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(f"sqlite:///{path}", echo=echo)
    TransactionsCacheBase.metadata.create_all(engine)
    logger.debug("Opened transactions cache at %s", path)
    return sessionmaker(engine)()


__all__ = ["BackfilledTransactionOrm", "TransactionsCacheRepository", "init_transactions_cache_db"]

from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from db.transactions_cache import TransactionsCacheRepository, init_transactions_cache_db
from ledger_config import LedgerConfig
from services.rate_limiter import RateLimiter
from tests.helpers.chain_fixtures import make_ledger_config


@pytest.fixture(scope="function")
def ledger_config() -> LedgerConfig:
    return make_ledger_config()


@pytest.fixture(scope="function")
def no_delay_limiter() -> RateLimiter:
    return RateLimiter(min_interval=0, max_concurrent=1, name="test")


@pytest.fixture(scope="function")
def cache_session(tmp_path: Path) -> Generator[Session, None, None]:
    session = init_transactions_cache_db(db_file=tmp_path / "transactions_cache.db")
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def tx_cache(cache_session: Session) -> TransactionsCacheRepository:
    return TransactionsCacheRepository(cache_session)

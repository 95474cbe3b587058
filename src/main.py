from __future__ import annotations

import argparse
import asyncio
import logging
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Sequence

from config import AppSettings, ConfigurationError, config
from db.transactions_cache import TransactionsCacheRepository, init_transactions_cache_db
from domain.directives import Directive
from domain.postings import PostingSynthesizer
from domain.rules import apply_balance_rules, apply_rules_to_transaction
from importers.etherscan.aggregator import TransactionAggregator
from importers.etherscan.balances import balance_assertions
from importers.etherscan.contracts import ContractLabeler
from ledger_config import ETHEREUM, LedgerConfig, load_ledger_config
from services.coingecko_client import CoinGeckoClient
from services.etherscan_client import EtherscanClient
from services.gateways import CoinGeckoGateway, EtherscanGateway
from services.price_enrichment import PriceEnrichment
from services.price_store import JsonlPriceStore, PriceStore
from utils.formatting import render_directives

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def require_credentials(ledger_config: LedgerConfig, settings: AppSettings) -> None:
    uses_etherscan = any(connection.type == ETHEREUM for connection in ledger_config.connections)
    if uses_etherscan and not settings.etherscan_api_key:
        msg = "ETHERSCAN_API_KEY must be set when ethereum connections are configured"
        raise ConfigurationError(msg)


def build_gateways(settings: AppSettings) -> tuple[EtherscanGateway, CoinGeckoGateway]:
    etherscan = EtherscanClient(api_key=settings.etherscan_api_key, base_url=settings.etherscan_base_url)
    coingecko = CoinGeckoClient(base_url=settings.coingecko_base_url)
    return EtherscanGateway(etherscan), CoinGeckoGateway(coingecko)


async def run(
    ledger_config: LedgerConfig,
    *,
    chain_gateway: EtherscanGateway,
    price_gateway: CoinGeckoGateway,
    price_store: PriceStore | None = None,
    tx_cache: TransactionsCacheRepository | None = None,
    today: date | None = None,
) -> list[Directive]:
    """Turn the configured wallets' chain activity into ledger directives.

    Nothing is written here; the caller flushes the returned directives once,
    so a failure in any stage leaves no partial ledger behind.
    """
    started = perf_counter()
    aggregation = await TransactionAggregator(chain_gateway, ledger_config, cache=tx_cache).aggregate()

    describe_call = None
    if ledger_config.resolve_contracts:
        labeler = ContractLabeler(chain_gateway, ledger_config)
        await labeler.resolve(aggregation.transactions)
        describe_call = labeler.describe

    synthesizer = PostingSynthesizer(ledger_config, describe_call=describe_call)
    transactions = synthesizer.synthesize_all(aggregation.transactions)
    for transaction in transactions:
        apply_rules_to_transaction(ledger_config.rules, transaction)

    enrichment = PriceEnrichment(
        price_gateway,
        coins=ledger_config.coins,
        fiat=ledger_config.fiat,
        store=price_store,
    )
    await enrichment.enrich(transactions)

    balances = await balance_assertions(chain_gateway, aggregation)
    for balance in balances:
        apply_balance_rules(ledger_config.rules, balance)

    prices = await enrichment.latest_prices(today or datetime.now(timezone.utc).date())

    directives: list[Directive] = [*transactions, *balances, *prices]
    logger.info("Pipeline produced %d directives in %.2fs", len(directives), perf_counter() - started)
    return directives


def write_ledger(path: Path, directives: Sequence[Directive]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_directives(directives), encoding="utf-8")


def print_summary(directives: Sequence[Directive], output: Path) -> None:
    kinds = Counter(type(directive).__name__ for directive in directives)
    print(f"Wrote {len(directives)} directives to {output}")
    for kind in ("Transaction", "Balance", "Price"):
        print(f"  {kind + ':':<13}{kinds.get(kind, 0)}")


def main(argv: Sequence[str] | None = None) -> None:
    settings = config()
    parser = argparse.ArgumentParser(description="Convert tracked wallet activity into ledger directives.")
    parser.add_argument("--config", type=Path, required=True, help="JSON ledger configuration")
    parser.add_argument("--output", type=Path, default=settings.artifacts_dir / "crypto.beancount")
    parser.add_argument("--price-cache-dir", type=Path, default=settings.artifacts_dir)
    parser.add_argument("--tx-cache-db", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    ledger_config = load_ledger_config(args.config)
    require_credentials(ledger_config, settings)

    chain_gateway, price_gateway = build_gateways(settings)
    tx_cache = TransactionsCacheRepository(init_transactions_cache_db(db_file=args.tx_cache_db))
    price_store = JsonlPriceStore(root_dir=args.price_cache_dir)

    directives = asyncio.run(
        run(
            ledger_config,
            chain_gateway=chain_gateway,
            price_gateway=price_gateway,
            price_store=price_store,
            tx_cache=tx_cache,
        )
    )
    write_ledger(args.output, directives)
    print_summary(directives, args.output)


if __name__ == "__main__":
    main()

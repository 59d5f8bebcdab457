"""
helpers.py - Ledger builders and assertions shared by the test suites

Provides:
- make_ledger: a quiet ledger with a static collateral price
- set_price: change the price the ledger's oracle reports
- assert_invariants / snapshot: state checks for before/after comparisons
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from lendledger import (
    LendingLedger,
    PriceOracleAdapter,
    StaticPricingSource,
    InMemoryAssetTransfer,
    AssetTransfer,
    create_pool_parameters,
)


START = datetime(2025, 1, 1)
ONE_HOUR = timedelta(hours=1)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_ledger(
    price="10",
    base_balances: Optional[Dict[str, int]] = None,
    collateral_balances: Optional[Dict[str, int]] = None,
    with_collateral_asset: bool = True,
    initial_time: datetime = START,
    base_asset: Optional[AssetTransfer] = None,
    collateral_asset: Optional[AssetTransfer] = None,
    **param_overrides,
) -> LendingLedger:
    """
    Build a quiet ledger with a static collateral price.

    The price source is reachable as ledger.oracle.source. Transfer services
    are in-memory unless given. Keyword arguments not listed are forwarded
    to create_pool_parameters().
    """
    param_kwargs = {'annual_rate': "0.10", 'collateral_ratio_threshold': "1.5"}
    param_kwargs.update(param_overrides)
    params = create_pool_parameters(**param_kwargs)

    prices = StaticPricingSource({params.collateral_symbol: price})
    oracle = PriceOracleAdapter(prices, params.collateral_symbol, params.max_price_staleness)

    if base_balances is None:
        base_balances = {"lender": 100_000, "borrower": 10_000, "other": 10_000}
    usd = base_asset
    if usd is None:
        usd = InMemoryAssetTransfer(base_balances, pool_address=params.pool_address)

    coll = collateral_asset
    if coll is None and with_collateral_asset:
        if collateral_balances is None:
            collateral_balances = {"borrower": 1_000, "other": 1_000}
        coll = InMemoryAssetTransfer(collateral_balances, pool_address=params.pool_address)

    return LendingLedger(
        "test", params, usd, oracle,
        collateral_asset=coll,
        initial_time=initial_time,
        verbose=False,
    )


def set_price(ledger: LendingLedger, price, observed_at: Optional[datetime] = None) -> None:
    """Change the collateral price seen by the ledger's oracle."""
    ledger.oracle.source.update_price(ledger.params.collateral_symbol, price, observed_at)


def assert_invariants(ledger: LendingLedger) -> None:
    result = ledger.verify_invariants()
    assert result['valid'], f"Invariants violated: {result['discrepancies']}"


def snapshot(ledger: LendingLedger) -> dict:
    """Everything an operation could change, for before/after comparison."""
    return {
        'pool': ledger.pool_state(),
        'accounts': {a: ledger.get_account(a) for a in ledger.list_accounts()},
        'base': dict(ledger.base_asset.balances),
        'collateral': dict(ledger.collateral_asset.balances) if ledger.collateral_asset else None,
        'log_length': len(ledger.operation_log),
        'time': ledger.current_time,
    }


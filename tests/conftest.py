"""
conftest.py - Shared pytest fixtures for lending ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Pool parameters
- Ledgers at different stages (empty, funded with liquidity, with a borrower)

Builders and assertions live in tests/helpers.py.
"""

import pytest

from lendledger import PoolParameters, create_pool_parameters

from tests.helpers import make_ledger


@pytest.fixture
def params() -> PoolParameters:
    """10% annual rate, 150% threshold, hourly accrual."""
    return create_pool_parameters(annual_rate="0.10", collateral_ratio_threshold="1.5")


@pytest.fixture
def ledger():
    """Empty ledger: no liquidity, no accounts, collateral priced at 10."""
    return make_ledger()


@pytest.fixture
def funded_ledger(ledger):
    """Ledger with 10,000 of base-asset liquidity minted by 'lender'."""
    ledger.mint("lender", 10_000)
    return ledger


@pytest.fixture
def borrowing_ledger(funded_ledger):
    """
    Funded ledger where 'borrower' posted 100 collateral and borrowed 500.

    Ratio = 100 * 10 / 500 = 2.0 against a 1.5 threshold.
    """
    funded_ledger.deposit("borrower", 100)
    funded_ledger.borrow("borrower", 500)
    return funded_ledger

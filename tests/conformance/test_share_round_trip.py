"""
Share Round-Trip Conformance Tests

INVARIANT: Minting and immediately redeeming never returns more than was
supplied, and loses less than one share plus one base unit to rounding.
Measured in shares, the loss beyond that base unit is under one share:

    shares = mint(a, x)
    value  = redeem(a, shares)
    0 <= x - value
    (x - value - 1) * WAD <= exchange_rate          (exchange_rate in WAD)

Rounding always favors the pool, so neither minting nor redeeming lowers
the exchange rate for the remaining holders.
"""

import pytest
from datetime import timedelta
from hypothesis import given, settings
from hypothesis import strategies as st

from lendledger import WAD, InvalidAmount

from tests.helpers import START, make_ledger, assert_invariants


def ledger_with_interest(annual_rate, days):
    """Pool of 50,000 whose shares have appreciated by `days` of interest on 5,000 of debt."""
    ledger = make_ledger(
        annual_rate=annual_rate,
        base_balances={"lender": 100_000, "borrower": 10_000, "carol": 1_000_000},
    )
    ledger.mint("lender", 50_000)
    ledger.deposit("borrower", 1_000)
    ledger.borrow("borrower", 5_000)
    ledger.tick(START + timedelta(days=days))
    return ledger


class TestShareRoundTrip:
    """Mint-then-redeem loses only rounding dust."""

    @given(
        amount=st.integers(min_value=1, max_value=10 ** 9),
    )
    @settings(max_examples=50, deadline=None)
    def test_first_mint_round_trips_exactly(self, amount):
        ledger = make_ledger(base_balances={"carol": 10 ** 9})
        ledger.mint("carol", amount)
        shares = ledger.get_account("carol").share_balance
        assert shares == amount

        ledger.redeem("carol", shares)
        assert ledger.base_asset.balance_of("carol") == 10 ** 9
        assert ledger.pool_state().total_shares == 0

    @given(
        amount=st.integers(min_value=1, max_value=100_000),
        days=st.integers(min_value=0, max_value=3_650),
        annual_rate=st.sampled_from(["0.05", "0.10", "0.50"]),
    )
    @settings(max_examples=50, deadline=None)
    def test_round_trip_loss_is_bounded(self, amount, days, annual_rate):
        ledger = ledger_with_interest(annual_rate, days)
        rate = ledger.exchange_rate()
        funds = ledger.base_asset.balance_of("carol")

        try:
            ledger.mint("carol", amount)
        except InvalidAmount:
            # too small to buy a single share
            assert amount <= rate // WAD
            return

        ledger.redeem("carol", ledger.get_account("carol").share_balance)
        value = ledger.base_asset.balance_of("carol") - (funds - amount)

        assert 0 <= amount - value
        assert (amount - value - 1) * WAD <= rate
        assert ledger.exchange_rate() >= rate
        assert_invariants(ledger)

    @given(
        amount=st.integers(min_value=1, max_value=100_000),
        redeem_part=st.integers(min_value=1, max_value=10_000),
        days=st.integers(min_value=1, max_value=3_650),
    )
    @settings(max_examples=50, deadline=None)
    def test_rounding_never_lowers_exchange_rate(self, amount, redeem_part, days):
        ledger = ledger_with_interest("0.10", days)
        rate = ledger.exchange_rate()

        try:
            ledger.mint("carol", amount)
        except InvalidAmount:
            return
        assert ledger.exchange_rate() >= rate

        rate = ledger.exchange_rate()
        ledger.redeem("lender", min(redeem_part, 4_000))
        assert ledger.exchange_rate() >= rate


class TestShareExamples:
    """Concrete share accounting."""

    def test_interest_goes_to_existing_holders(self):
        ledger = ledger_with_interest("0.10", 365)
        # 5,000 borrowed for a year at 10% adds 500 to 50,000 of assets
        assert ledger.pool_asset_balance() + ledger.pool_state().total_borrowed == 50_500
        assert ledger.exchange_rate() == WAD + WAD // 100

        ledger.mint("carol", 10_000)
        # 10,000 * 50,000 / 50,500 = 9,900.99
        assert ledger.get_account("carol").share_balance == 9_900

    def test_later_depositor_gets_fewer_shares(self):
        ledger = ledger_with_interest("0.10", 365)
        ledger.mint("carol", 1_000)
        ledger.mint("borrower", 1_000)
        assert ledger.get_account("carol").share_balance == 990
        assert ledger.get_account("borrower").share_balance <= 990

    def test_redeem_zero_shares_rejected(self):
        ledger = make_ledger()
        ledger.mint("lender", 100)
        with pytest.raises(InvalidAmount):
            ledger.redeem("lender", 0)

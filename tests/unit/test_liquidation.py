"""
test_liquidation.py - Unit tests for liquidation.py

Tests:
- calculate_debt_reduction: value at price, bonus discount, cap at debt
- compute_liquidation: gating, partial and full seizure, bad debt
"""

import pytest
from datetime import datetime

from lendledger import (
    WAD, PoolState, AccountState, OperationKind, AssetRole, TransferDirection,
    InsufficientBalance, NotLiquidatable, InvalidAmount,
    calculate_debt_reduction, compute_liquidation, create_pool_parameters,
)

from tests.fake_view import FakePoolView


T0 = datetime(2025, 1, 1)


def liquidation_view(price, collateral=100, debt=500, bonus="0"):
    params = create_pool_parameters(
        annual_rate="0.10", collateral_ratio_threshold="1.5", liquidation_bonus=bonus
    )
    pool = PoolState(
        last_accrual_time=T0, total_collateral=collateral, total_borrowed=debt, scaled_borrowed=debt * WAD,
        collateral_price=price * WAD, price_observed_at=T0,
    )
    state = AccountState(collateral_balance=collateral, borrow_principal=debt, checkpoint_index=WAD)
    return FakePoolView(params=params, pool=pool, accounts={"bob": state}, pool_balance=9_500, time=T0), pool


class TestDebtReduction:

    def test_one_to_one_by_value(self):
        assert calculate_debt_reduction(50, 6 * WAD, 0, 500) == 300

    def test_capped_at_debt(self):
        assert calculate_debt_reduction(100, 6 * WAD, 0, 500) == 500

    def test_bonus_discounts_reduction(self):
        # 50 * 6 / 1.05 = 285.71...
        assert calculate_debt_reduction(50, 6 * WAD, WAD // 20, 500) == 285


class TestComputeLiquidation:

    def test_partial_liquidation(self):
        view, pool = liquidation_view(price=6)
        pending = compute_liquidation(view, pool, "bob", 50)

        assert pending.kind is OperationKind.LIQUIDATE
        new = pending.account_changes[0].new_state
        assert new.collateral_balance == 50
        assert new.borrow_principal == 200
        assert pending.pool_after.total_collateral == 50
        assert pending.pool_after.total_borrowed == 200
        assert pending.pool_after.seized_collateral == 50
        assert pending.pool_after.bad_debt == 0
        assert pending.transfer.asset is AssetRole.COLLATERAL
        assert pending.transfer.direction is TransferDirection.OUT
        assert pending.transfer.counterparty == "liquidator"

    def test_full_liquidation_writes_off_shortfall(self):
        # 100 collateral at 4 covers 400 of 500 debt
        view, pool = liquidation_view(price=4)
        pending = compute_liquidation(view, pool, "bob", 100)

        new = pending.account_changes[0].new_state
        assert new.collateral_balance == 0
        assert new.borrow_principal == 0
        assert pending.pool_after.total_borrowed == 0
        assert pending.pool_after.bad_debt == 100

    def test_full_liquidation_with_surplus_collateral(self):
        view, pool = liquidation_view(price=7)
        pending = compute_liquidation(view, pool, "bob", 100)
        assert pending.account_changes[0].new_state.borrow_principal == 0
        assert pending.pool_after.bad_debt == 0

    def test_healthy_account(self):
        view, pool = liquidation_view(price=8)
        with pytest.raises(NotLiquidatable):
            compute_liquidation(view, pool, "bob", 10)

    def test_exactly_at_threshold(self):
        view, pool = liquidation_view(price=10, collateral=75)
        with pytest.raises(NotLiquidatable):
            compute_liquidation(view, pool, "bob", 10)

    def test_account_without_debt(self):
        view, pool = liquidation_view(price=1)
        with pytest.raises(NotLiquidatable):
            compute_liquidation(view, pool, "nobody", 1)

    def test_seize_more_than_posted(self):
        view, pool = liquidation_view(price=6)
        with pytest.raises(InsufficientBalance):
            compute_liquidation(view, pool, "bob", 101)

    def test_invalid_amount(self):
        view, pool = liquidation_view(price=6)
        with pytest.raises(InvalidAmount):
            compute_liquidation(view, pool, "bob", 0)

    def test_bonus_reduces_less_debt(self):
        view, pool = liquidation_view(price=6, bonus="0.05")
        pending = compute_liquidation(view, pool, "bob", 50)
        assert pending.account_changes[0].new_state.borrow_principal == 215

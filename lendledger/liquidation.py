"""
liquidation.py - Liquidation of undercollateralized accounts

An account whose ratio has fallen below the pool's collateral ratio threshold
can have collateral seized. The seized collateral moves to the liquidator
store and the account's debt is reduced by its base-asset value at the
ticked price, discounted by the liquidation bonus:

    debt_reduction = seize_amount * price / (1 + liquidation_bonus)

capped at the outstanding debt. Seizing less than the whole balance is a
partial liquidation. Seizing all of it closes the position: collateral and
debt both go to zero and whatever the collateral did not cover is written
off as bad debt.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    PoolState, PoolView, PendingOperation, AccountChange, TransferInstruction,
    OperationKind, AssetRole, TransferDirection,
    InsufficientBalance, NotLiquidatable,
    build_operation, validate_amount,
)
from .accrual import calculate_rebased_pool
from .borrow import current_debt_of
from .collateral import calculate_ratio, is_healthy
from .fixed_point import WAD, Rounding, mul_div, checked_add, checked_sub, from_wad


def calculate_debt_reduction(seize_amount: int, collateral_price: int, liquidation_bonus: int, debt: int) -> int:
    """
    Debt repaid by seizing seize_amount of collateral, rounded down.

    Args:
        seize_amount: Collateral units seized
        collateral_price: Base units per collateral unit (WAD)
        liquidation_bonus: Liquidator incentive (WAD, 0 = 1:1 by value)
        debt: Outstanding debt (the result never exceeds it)

    Example:
        # 50 units at $6 with no bonus repay 300
        calculate_debt_reduction(50, to_wad(6), 0, 500)  # 300
    """
    value = mul_div(seize_amount, collateral_price, WAD + liquidation_bonus, Rounding.DOWN)
    return min(value, debt)


def compute_liquidation(view: PoolView, pool: PoolState, account: str, seize_amount: int) -> PendingOperation:
    """
    Seize collateral from an undercollateralized account.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Account being liquidated
        seize_amount: Collateral units to seize

    Returns:
        PendingOperation reducing the account's collateral and debt, moving
        seized collateral to the liquidator store and recording any bad debt.

    Raises:
        InvalidAmount: If seize_amount is not a positive integer.
        NotLiquidatable: If the account has no debt or is at or above the
                         collateral ratio threshold.
        InsufficientBalance: If seize_amount exceeds the posted collateral.
    """
    validate_amount(seize_amount, "seize_amount")
    params = view.params
    old = view.get_account(account)
    debt = current_debt_of(old, pool.accrual_index)
    if debt == 0:
        raise NotLiquidatable(f"{account} has no debt")
    if is_healthy(old.collateral_balance, pool.collateral_price, debt, params.collateral_ratio_threshold):
        raise NotLiquidatable(
            f"{account} ratio {calculate_ratio(old.collateral_balance, pool.collateral_price, debt)} "
            f">= {from_wad(params.collateral_ratio_threshold).normalize()}"
        )
    if seize_amount > old.collateral_balance:
        raise InsufficientBalance(
            f"{account} has {old.collateral_balance} collateral, cannot seize {seize_amount}"
        )

    reduction = calculate_debt_reduction(seize_amount, pool.collateral_price, params.liquidation_bonus, debt)
    remaining_collateral = old.collateral_balance - seize_amount
    if remaining_collateral == 0:
        remaining_debt = 0
        written_off = debt - reduction
    else:
        remaining_debt = debt - reduction
        written_off = 0

    new = replace(
        old,
        collateral_balance=remaining_collateral,
        borrow_principal=remaining_debt,
        checkpoint_index=pool.accrual_index,
    )
    pool_after = calculate_rebased_pool(
        pool, old, new,
        total_collateral=checked_sub(pool.total_collateral, seize_amount),
        seized_collateral=checked_add(pool.seized_collateral, seize_amount),
        bad_debt=checked_add(pool.bad_debt, written_off),
    )

    return build_operation(
        view, OperationKind.LIQUIDATE, pool_after,
        account=account,
        amount=seize_amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(
            AssetRole.COLLATERAL, TransferDirection.OUT, params.liquidator_store, seize_amount
        ),
    )

"""
collateral.py - Collateral ledger and ratio evaluation

Borrowers post the collateral asset to secure their debt. Posting is always
allowed; taking collateral back is allowed only while the account remains
at or above the pool's collateral ratio threshold afterwards.

The collateralization ratio of an account is

    ratio = collateral_balance * collateral_price / current_debt

and is infinite for an account with no debt, which is therefore never
liquidatable. Threshold checks are done by cross-multiplication, so no
division (and no rounding) is involved in deciding whether an account is
healthy.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal

from .core import (
    PoolState, PoolView, PendingOperation, AccountChange, TransferInstruction,
    OperationKind, AssetRole, TransferDirection,
    InsufficientBalance, Undercollateralized, INFINITE_RATIO,
    build_operation, validate_amount,
)
from .accrual import calculate_current_debt
from .fixed_point import Rounding, mul_div, from_wad, checked_add, checked_sub


# ============================================================================
# RATIO CALCULATIONS
# ============================================================================

def calculate_ratio(collateral_balance: int, collateral_price: int, debt: int) -> Decimal:
    """
    Collateralization ratio as a Decimal.

    Args:
        collateral_balance: Collateral units posted
        collateral_price: Base units per collateral unit (WAD)
        debt: Current debt in base units

    Returns:
        collateral value / debt (rounded down to 18 decimals), or
        Decimal('Infinity') when debt is zero.

    Example:
        calculate_ratio(100, to_wad(10), 500)  # Decimal('2')
    """
    if debt == 0:
        return INFINITE_RATIO
    return from_wad(mul_div(collateral_balance, collateral_price, debt, Rounding.DOWN))


def is_healthy(collateral_balance: int, collateral_price: int, debt: int, threshold: int) -> bool:
    """
    True if collateral_balance * price / debt >= threshold.

    Evaluated exactly as collateral_balance * price >= threshold * debt.
    An account without debt is always healthy.
    """
    if debt == 0:
        return True
    return collateral_balance * collateral_price >= threshold * debt


# ============================================================================
# COLLATERAL OPERATIONS
# ============================================================================

def compute_deposit(view: PoolView, pool: PoolState, account: str, amount: int) -> PendingOperation:
    """
    Post collateral to an account.

    No ratio check: adding collateral can only improve an account.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Depositing account
        amount: Collateral units to post

    Returns:
        PendingOperation crediting the account and pool totals, with an
        inbound collateral transfer from the account.

    Raises:
        InvalidAmount: If amount is not a positive integer.
    """
    validate_amount(amount)
    old = view.get_account(account)
    new = replace(old, collateral_balance=checked_add(old.collateral_balance, amount))
    pool_after = replace(pool, total_collateral=checked_add(pool.total_collateral, amount))

    return build_operation(
        view, OperationKind.DEPOSIT, pool_after,
        account=account,
        amount=amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.COLLATERAL, TransferDirection.IN, account, amount),
    )


def compute_withdraw(view: PoolView, pool: PoolState, account: str, amount: int) -> PendingOperation:
    """
    Release collateral from an account.

    The ratio is evaluated on the post-withdrawal balance against the
    account's current debt at the ticked index and price.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Withdrawing account
        amount: Collateral units to release

    Returns:
        PendingOperation debiting the account and pool totals, with an
        outbound collateral transfer to the account.

    Raises:
        InvalidAmount: If amount is not a positive integer.
        InsufficientBalance: If the account has less collateral than amount.
        Undercollateralized: If the withdrawal would leave the account below
                             the collateral ratio threshold.
    """
    validate_amount(amount)
    old = view.get_account(account)
    if old.collateral_balance < amount:
        raise InsufficientBalance(
            f"{account} has {old.collateral_balance} collateral, cannot withdraw {amount}"
        )

    remaining = old.collateral_balance - amount
    debt = calculate_current_debt(old.borrow_principal, old.checkpoint_index, pool.accrual_index)
    threshold = view.params.collateral_ratio_threshold
    if not is_healthy(remaining, pool.collateral_price, debt, threshold):
        raise Undercollateralized(
            f"Withdrawing {amount} would leave {account} at ratio "
            f"{calculate_ratio(remaining, pool.collateral_price, debt)} < {from_wad(threshold).normalize()}"
        )

    new = replace(old, collateral_balance=remaining)
    pool_after = replace(pool, total_collateral=checked_sub(pool.total_collateral, amount))

    return build_operation(
        view, OperationKind.WITHDRAW, pool_after,
        account=account,
        amount=amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.COLLATERAL, TransferDirection.OUT, account, amount),
    )

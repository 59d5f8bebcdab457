"""
borrow.py - Borrow ledger

Borrowing draws the base asset out of the pool against posted collateral;
repaying returns it. Each account stores its debt as a principal recorded at
a checkpoint of the global accrual index:

    current_debt = borrow_principal * accrual_index / checkpoint_index

Every borrow or repay settles the account first: the principal is rebased to
the new current debt and the checkpoint moves to the current index. Interest
between checkpoints is therefore never lost and never double-counted. The
pool's aggregate debt follows the account through its scaled debt (see
accrual.py).
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    AccountState, PoolState, PoolView, PendingOperation, AccountChange,
    TransferInstruction, OperationKind, AssetRole, TransferDirection,
    InsufficientBalance, InsufficientLiquidity, InsufficientCollateral,
    build_operation, validate_amount,
)
from .accrual import calculate_current_debt, calculate_rebased_pool
from .collateral import calculate_ratio, is_healthy
from .fixed_point import checked_add, checked_sub, from_wad


def current_debt_of(state: AccountState, accrual_index: int) -> int:
    """Current debt of an account snapshot at accrual_index, rounded down."""
    return calculate_current_debt(state.borrow_principal, state.checkpoint_index, accrual_index)


def compute_borrow(view: PoolView, pool: PoolState, account: str, amount: int) -> PendingOperation:
    """
    Draw the base asset against posted collateral.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Borrowing account
        amount: Base units to borrow

    Returns:
        PendingOperation rebasing the account to current_debt + amount at the
        current index, growing total_borrowed, and transferring amount out
        of the pool to the account.

    Raises:
        InvalidAmount: If amount is not a positive integer.
        InsufficientLiquidity: If the pool holds less than amount.
        InsufficientCollateral: If the prospective ratio would fall below the
                                collateral ratio threshold.
    """
    validate_amount(amount)
    available = view.pool_asset_balance()
    if amount > available:
        raise InsufficientLiquidity(f"Pool holds {available}, cannot lend {amount}")

    old = view.get_account(account)
    new_debt = checked_add(current_debt_of(old, pool.accrual_index), amount)
    threshold = view.params.collateral_ratio_threshold
    if not is_healthy(old.collateral_balance, pool.collateral_price, new_debt, threshold):
        raise InsufficientCollateral(
            f"Borrowing {amount} would leave {account} at ratio "
            f"{calculate_ratio(old.collateral_balance, pool.collateral_price, new_debt)} "
            f"< {from_wad(threshold).normalize()}"
        )

    new = replace(old, borrow_principal=new_debt, checkpoint_index=pool.accrual_index)
    pool_after = calculate_rebased_pool(pool, old, new)

    return build_operation(
        view, OperationKind.BORROW, pool_after,
        account=account,
        amount=amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.BASE, TransferDirection.OUT, account, amount),
    )


def compute_repay(view: PoolView, pool: PoolState, account: str, amount: int) -> PendingOperation:
    """
    Pay back part or all of an account's debt.

    Overpayment is rejected rather than capped.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Repaying account
        amount: Base units to repay

    Returns:
        PendingOperation rebasing the account to current_debt - amount at the
        current index, shrinking total_borrowed accordingly, and
        transferring amount from the account into the pool.

    Raises:
        InvalidAmount: If amount is not a positive integer.
        InsufficientBalance: If amount exceeds the account's current debt.
    """
    validate_amount(amount)
    old = view.get_account(account)
    debt = current_debt_of(old, pool.accrual_index)
    if amount > debt:
        raise InsufficientBalance(f"{account} owes {debt}, cannot repay {amount}")

    new = replace(old, borrow_principal=checked_sub(debt, amount), checkpoint_index=pool.accrual_index)
    pool_after = calculate_rebased_pool(pool, old, new)

    return build_operation(
        view, OperationKind.REPAY, pool_after,
        account=account,
        amount=amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.BASE, TransferDirection.IN, account, amount),
    )

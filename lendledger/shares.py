"""
shares.py - Share accounting for depositors of the base asset

Depositors mint claim-shares by supplying the base asset and redeem them for
their proportional part of the pool's assets. The pool's assets are the
base asset it holds plus everything currently lent out:

    total_assets  = pool_asset_balance + total_borrowed
    exchange_rate = total_assets / total_shares      (1.0 with no shares)

As interest accrues total_borrowed grows, so the exchange rate floats up
and every share becomes redeemable for more of the base asset.

Share and asset quantities are computed straight from the totals (not via
the rounded exchange rate) and always round down, in the pool's favor.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    PoolState, PoolView, PendingOperation, AccountChange, TransferInstruction,
    OperationKind, AssetRole, TransferDirection,
    InsufficientBalance, InsufficientLiquidity, InvalidAmount,
    build_operation, validate_amount,
)
from .fixed_point import WAD, Rounding, mul_div, checked_add, checked_sub


# ============================================================================
# EXCHANGE RATE
# ============================================================================

def calculate_total_assets(pool_asset_balance: int, total_borrowed: int) -> int:
    """Base-asset value backing all outstanding shares."""
    return checked_add(pool_asset_balance, total_borrowed)


def calculate_exchange_rate(total_shares: int, pool_asset_balance: int, total_borrowed: int) -> int:
    """
    Base units per share (WAD), rounded down.

    Returns WAD (1.0) while no shares are outstanding.
    """
    if total_shares == 0:
        return WAD
    total_assets = calculate_total_assets(pool_asset_balance, total_borrowed)
    return mul_div(total_assets, WAD, total_shares, Rounding.DOWN)


def calculate_shares_for_assets(asset_amount: int, total_shares: int, total_assets: int) -> int:
    """
    Shares minted for asset_amount, rounded down.

    The first deposit into an empty pool mints shares 1:1.

    Raises:
        InsufficientLiquidity: If shares are outstanding but nothing backs them.
    """
    if total_shares == 0:
        return asset_amount
    if total_assets == 0:
        raise InsufficientLiquidity(
            f"{total_shares} shares are outstanding with no assets behind them"
        )
    return mul_div(asset_amount, total_shares, total_assets, Rounding.DOWN)


def calculate_assets_for_shares(share_amount: int, total_shares: int, total_assets: int) -> int:
    """Base units redeemable for share_amount, rounded down."""
    if total_shares == 0:
        return 0
    return mul_div(share_amount, total_assets, total_shares, Rounding.DOWN)


# ============================================================================
# MINT / REDEEM
# ============================================================================

def compute_mint(view: PoolView, pool: PoolState, account: str, asset_amount: int) -> PendingOperation:
    """
    Supply the base asset and receive claim-shares.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Supplying account
        asset_amount: Base units to supply

    Returns:
        PendingOperation crediting shares to the account and the pool, with
        an inbound base-asset transfer from the account.

    Raises:
        InvalidAmount: If asset_amount is not a positive integer, or is too
                       small to mint a single share.
        InsufficientLiquidity: If existing shares have no assets behind them.
    """
    validate_amount(asset_amount, "asset_amount")
    total_assets = calculate_total_assets(view.pool_asset_balance(), pool.total_borrowed)
    shares = calculate_shares_for_assets(asset_amount, pool.total_shares, total_assets)
    if shares == 0:
        raise InvalidAmount(f"Supplying {asset_amount} mints zero shares")

    old = view.get_account(account)
    new = replace(old, share_balance=checked_add(old.share_balance, shares))
    pool_after = replace(pool, total_shares=checked_add(pool.total_shares, shares))

    return build_operation(
        view, OperationKind.MINT, pool_after,
        account=account,
        amount=asset_amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.BASE, TransferDirection.IN, account, asset_amount),
    )


def compute_redeem(view: PoolView, pool: PoolState, account: str, share_amount: int) -> PendingOperation:
    """
    Burn claim-shares for their value in the base asset.

    The pool must keep at least total_borrowed of the base asset after paying
    out, so the liquidity check uses the asset value being withdrawn.

    Args:
        view: Read-only ledger access
        pool: Pool state already ticked to view.current_time
        account: Redeeming account
        share_amount: Shares to burn

    Returns:
        PendingOperation burning the shares, with an outbound base-asset
        transfer of their value to the account.

    Raises:
        InvalidAmount: If share_amount is not a positive integer, or its value
                       rounds down to zero.
        InsufficientBalance: If the account holds fewer shares.
        InsufficientLiquidity: If paying out would leave the pool holding
                               less than total_borrowed.
    """
    validate_amount(share_amount, "share_amount")
    old = view.get_account(account)
    if old.share_balance < share_amount:
        raise InsufficientBalance(
            f"{account} holds {old.share_balance} shares, cannot redeem {share_amount}"
        )

    balance = view.pool_asset_balance()
    total_assets = calculate_total_assets(balance, pool.total_borrowed)
    asset_value = calculate_assets_for_shares(share_amount, pool.total_shares, total_assets)
    if asset_value == 0:
        raise InvalidAmount(f"Redeeming {share_amount} shares is worth nothing")
    if balance < asset_value or balance - asset_value < pool.total_borrowed:
        raise InsufficientLiquidity(
            f"Paying out {asset_value} would leave the pool with "
            f"{balance - asset_value}, below total borrowed {pool.total_borrowed}"
        )

    new = replace(old, share_balance=old.share_balance - share_amount)
    pool_after = replace(pool, total_shares=checked_sub(pool.total_shares, share_amount))

    return build_operation(
        view, OperationKind.REDEEM, pool_after,
        account=account,
        amount=share_amount,
        account_changes=(AccountChange(account, old, new),),
        transfer=TransferInstruction(AssetRole.BASE, TransferDirection.OUT, account, asset_value),
    )

"""
accrual.py - Interest accrual engine

Interest is accrued lazily through a single global index. Each tick grows
the index by the interest owed for the whole intervals elapsed since the
last accrual; individual accounts are never iterated. An account's debt is
its principal scaled by the ratio of the current index to the index at its
last checkpoint (see borrow.py).

Growth per tick is simple interest over the elapsed intervals:

    growth = 1 + annual_rate * elapsed_intervals / intervals_per_year

so repeated ticks compound, while a single late tick does not.

Aggregate debt is tracked as scaled debt: every account contributes its
principal divided by its checkpoint index (rounded up, in DEBT_SCALE units)
and the pool keeps the exact sum. total_borrowed is that sum valued at the
current index, rounded down, so it never falls below the sum of the
accounts' rounded-down debts and exceeds it by at most one unit per
borrowing account. With no debt outstanding it is exactly zero.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from .core import (
    PoolParameters, PoolState, PoolView, PendingOperation, AccountState,
    OperationKind, build_operation,
)
from .fixed_point import WAD, Rounding, mul_div, checked_add, checked_sub, wad_mul
from .pricing_source import PriceQuote


# Precision of scaled debt (1e36)
DEBT_SCALE = WAD * WAD


def calculate_elapsed_intervals(last_accrual_time: datetime, now: datetime, min_interval: timedelta) -> int:
    """
    Number of whole accrual intervals between last_accrual_time and now.

    Returns 0 if now is not after last_accrual_time.
    """
    if now <= last_accrual_time:
        return 0
    return (now - last_accrual_time) // min_interval


def calculate_growth_factor(annual_rate: int, elapsed_intervals: int, intervals_per_year: int) -> int:
    """
    Index growth factor (WAD) for a number of elapsed intervals.

    Args:
        annual_rate: Annual interest rate (WAD)
        elapsed_intervals: Whole intervals since the last accrual
        intervals_per_year: Intervals in one year

    Returns:
        WAD + annual_rate * elapsed_intervals / intervals_per_year, rounded down.

    Example:
        # 10% a year over one hourly interval
        calculate_growth_factor(to_wad("0.10"), 1, 8760)
    """
    interest = mul_div(annual_rate, elapsed_intervals, intervals_per_year, Rounding.DOWN)
    return checked_add(WAD, interest)


def calculate_scaled_debt(borrow_principal: int, checkpoint_index: int) -> int:
    """
    An account's contribution to PoolState.scaled_borrowed.

    Returns:
        borrow_principal * DEBT_SCALE / checkpoint_index rounded up, or 0 with
        no principal.
    """
    if borrow_principal == 0 or checkpoint_index == 0:
        return 0
    return mul_div(borrow_principal, DEBT_SCALE, checkpoint_index, Rounding.UP)


def calculate_total_borrowed(scaled_borrowed: int, accrual_index: int) -> int:
    """Aggregate debt of scaled_borrowed valued at accrual_index, rounded down."""
    return mul_div(scaled_borrowed, accrual_index, DEBT_SCALE, Rounding.DOWN)


def calculate_rebased_pool(pool: PoolState, old: AccountState, new: AccountState, **updates) -> PoolState:
    """
    Pool state after an account's debt moves from old to new.

    The account's scaled debt is swapped out of the pool total and
    total_borrowed is revalued at the pool's index.

    Args:
        pool: Pool state already ticked to the current time
        old: Account state before the operation
        new: Account state after the operation
        **updates: Further PoolState fields to replace

    Returns:
        New PoolState with scaled_borrowed and total_borrowed updated.

    Raises:
        ArithmeticOverflow: If the pool's scaled debt does not cover the
                            account's old contribution.
    """
    scaled = checked_sub(
        pool.scaled_borrowed,
        calculate_scaled_debt(old.borrow_principal, old.checkpoint_index),
    )
    scaled = checked_add(scaled, calculate_scaled_debt(new.borrow_principal, new.checkpoint_index))
    return replace(
        pool,
        scaled_borrowed=scaled,
        total_borrowed=calculate_total_borrowed(scaled, pool.accrual_index),
        **updates,
    )


def calculate_accrual(
    params: PoolParameters,
    pool: PoolState,
    now: datetime,
    quote: Optional[PriceQuote] = None,
) -> PoolState:
    """
    Pool state after accruing interest up to now.

    The index grows only when at least one whole interval has elapsed, and
    last_accrual_time then moves to now. total_borrowed is revalued from
    scaled_borrowed at the new index. A quote, when given, replaces the
    stored price.

    Args:
        params: Pool policy
        pool: Pool state to accrue from
        now: Current ledger time
        quote: Fresh collateral price (from PriceOracleAdapter.fetch_price)

    Returns:
        New PoolState (pool itself is not modified).
    """
    updates = {}

    elapsed = calculate_elapsed_intervals(pool.last_accrual_time, now, params.min_interval)
    if elapsed > 0:
        growth = calculate_growth_factor(params.annual_rate, elapsed, params.intervals_per_year)
        index = wad_mul(pool.accrual_index, growth, Rounding.DOWN)
        updates['accrual_index'] = index
        updates['total_borrowed'] = calculate_total_borrowed(pool.scaled_borrowed, index)
        updates['last_accrual_time'] = now

    if quote is not None:
        updates['collateral_price'] = quote.price
        updates['price_observed_at'] = quote.observed_at

    if not updates:
        return pool
    return replace(pool, **updates)


def compute_tick(view: PoolView, quote: PriceQuote) -> PendingOperation:
    """
    Stage a standalone tick at the view's current time.

    Args:
        view: Read-only ledger access
        quote: Fresh collateral price

    Returns:
        PendingOperation that commits the accrued pool state and price.
    """
    pool_after = calculate_accrual(view.params, view.pool_state(), view.current_time, quote)
    return build_operation(view, OperationKind.TICK, pool_after)


def calculate_current_debt(borrow_principal: int, checkpoint_index: int, accrual_index: int) -> int:
    """
    Debt of an account at accrual_index, rounded down.

    Args:
        borrow_principal: Debt recorded at the account's last checkpoint
        checkpoint_index: Index at that checkpoint (0 if the account never borrowed)
        accrual_index: Index to value the debt at

    Returns:
        borrow_principal * accrual_index / checkpoint_index, or 0 with no principal.
    """
    if borrow_principal == 0 or checkpoint_index == 0:
        return 0
    return mul_div(borrow_principal, accrual_index, checkpoint_index, Rounding.DOWN)

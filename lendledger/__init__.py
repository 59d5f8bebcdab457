"""
lendledger - Collateralized Lending Ledger

Depositors supply a base asset for claim-shares; borrowers post collateral,
draw the base asset against it and accrue interest through a global index;
undercollateralized accounts can be liquidated.

Usage:
    from datetime import datetime
    from lendledger import (
        LendingLedger, create_pool_parameters, PriceOracleAdapter,
        StaticPricingSource, InMemoryAssetTransfer,
    )

    params = create_pool_parameters(annual_rate="0.10", collateral_ratio_threshold="1.5")
    prices = StaticPricingSource({"COLL": 10})
    oracle = PriceOracleAdapter(prices, params.collateral_symbol, params.max_price_staleness)
    usd = InMemoryAssetTransfer({"lender": 10_000, "borrower": 0})

    ledger = LendingLedger("main", params, usd, oracle, initial_time=datetime(2025, 1, 1))
    ledger.mint("lender", 10_000)
    ledger.deposit("borrower", 100)
    ledger.borrow("borrower", 500)
    ledger.ratio("borrower")        # Decimal('2')

    prices.update_price("COLL", 6)
    ledger.liquidate("borrower", 50)
"""

# Fixed-point arithmetic
from .fixed_point import (
    WAD,
    MAX_UINT256,
    Rounding,
    ArithmeticOverflow,
    mul_div,
    wad_mul,
    wad_div,
    to_wad,
    from_wad,
)

# Core types
from .core import (
    PoolView,
    PoolParameters,
    PoolState,
    AccountState,
    AccountChange,
    TransferInstruction,
    PendingOperation,
    OperationRecord,
    OperationKind,
    AssetRole,
    TransferDirection,
    create_pool_parameters,
    initial_pool_state,
    build_operation,
    EMPTY_ACCOUNT,
    INFINITE_RATIO,
    LendingError,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientCollateral,
    Undercollateralized,
    NotLiquidatable,
    StalePrice,
    TransferFailed,
    Reentrant,
    InvalidAmount,
)

# Ledger
from .ledger import LendingLedger

# Pricing
from .pricing_source import (
    PriceQuote,
    PricingSource,
    StaticPricingSource,
    TimeSeriesPricingSource,
    PriceOracleAdapter,
)

# Asset transfer
from .transfer import (
    AssetTransfer,
    InMemoryAssetTransfer,
)

# Interest accrual
from .accrual import (
    DEBT_SCALE,
    calculate_elapsed_intervals,
    calculate_growth_factor,
    calculate_accrual,
    calculate_current_debt,
    calculate_scaled_debt,
    calculate_total_borrowed,
    calculate_rebased_pool,
    compute_tick,
)

# Collateral
from .collateral import (
    calculate_ratio,
    is_healthy,
    compute_deposit,
    compute_withdraw,
)

# Borrowing
from .borrow import (
    current_debt_of,
    compute_borrow,
    compute_repay,
)

# Shares
from .shares import (
    calculate_total_assets,
    calculate_exchange_rate,
    calculate_shares_for_assets,
    calculate_assets_for_shares,
    compute_mint,
    compute_redeem,
)

# Liquidation
from .liquidation import (
    calculate_debt_reduction,
    compute_liquidation,
)

__version__ = "1.0.0"

__all__ = [
    # Fixed point
    'WAD', 'MAX_UINT256', 'Rounding', 'ArithmeticOverflow',
    'mul_div', 'wad_mul', 'wad_div', 'to_wad', 'from_wad',
    # Core
    'PoolView', 'PoolParameters', 'PoolState', 'AccountState', 'AccountChange',
    'TransferInstruction', 'PendingOperation', 'OperationRecord',
    'OperationKind', 'AssetRole', 'TransferDirection',
    'create_pool_parameters', 'initial_pool_state', 'build_operation',
    'EMPTY_ACCOUNT', 'INFINITE_RATIO',
    # Exceptions
    'LendingError', 'InsufficientBalance', 'InsufficientLiquidity',
    'InsufficientCollateral', 'Undercollateralized', 'NotLiquidatable',
    'StalePrice', 'TransferFailed', 'Reentrant', 'InvalidAmount',
    # Ledger
    'LendingLedger',
    # Pricing
    'PriceQuote', 'PricingSource', 'StaticPricingSource', 'TimeSeriesPricingSource',
    'PriceOracleAdapter',
    # Transfer
    'AssetTransfer', 'InMemoryAssetTransfer',
    # Accrual
    'DEBT_SCALE', 'calculate_elapsed_intervals', 'calculate_growth_factor', 'calculate_accrual',
    'calculate_current_debt', 'calculate_scaled_debt', 'calculate_total_borrowed',
    'calculate_rebased_pool', 'compute_tick',
    # Collateral
    'calculate_ratio', 'is_healthy', 'compute_deposit', 'compute_withdraw',
    # Borrow
    'current_debt_of', 'compute_borrow', 'compute_repay',
    # Shares
    'calculate_total_assets', 'calculate_exchange_rate',
    'calculate_shares_for_assets', 'calculate_assets_for_shares',
    'compute_mint', 'compute_redeem',
    # Liquidation
    'calculate_debt_reduction', 'compute_liquidation',
]

"""
Core types and pure functions for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: PoolView for read-only access to pool and account state
2. Immutable data structures: PoolParameters, PoolState, AccountState,
   AccountChange, TransferInstruction, PendingOperation, OperationRecord
3. Exceptions: LendingError and the operation error taxonomy
4. Factories: create_pool_parameters, initial_pool_state, build_operation

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple, Any, runtime_checkable

from .fixed_point import (
    WAD, ArithmeticOverflow, Numeric, to_wad,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Observation timestamps must be strictly after this instant.
EPOCH = datetime(1970, 1, 1)

# Accrual cadence: the index advances in whole intervals of this length.
DEFAULT_MIN_INTERVAL = timedelta(hours=1)

# Number of accrual intervals in a year (365 days of hourly intervals).
DEFAULT_INTERVALS_PER_YEAR = 365 * 24

# Oldest acceptable price observation.
DEFAULT_MAX_PRICE_STALENESS = timedelta(hours=1)

# Holder address of the pool's own base-asset (and collateral) balance.
DEFAULT_POOL_ADDRESS = "pool"

# Holder address receiving seized collateral.
DEFAULT_LIQUIDATOR_STORE = "liquidator"

DEFAULT_BASE_SYMBOL = "USD"
DEFAULT_COLLATERAL_SYMBOL = "COLL"

# Reported collateralization ratio for an account with no debt.
INFINITE_RATIO = Decimal("Infinity")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending-ledger operation failures."""
    pass


class InsufficientBalance(LendingError):
    """Raised when an account lacks the collateral, shares or debt the request needs."""
    pass


class InsufficientLiquidity(LendingError):
    """Raised when the pool cannot honor a borrow or redeem."""
    pass


class InsufficientCollateral(LendingError):
    """Raised when a borrow would leave the account below the collateral ratio threshold."""
    pass


class Undercollateralized(InsufficientCollateral):
    """Raised when a collateral withdrawal would leave the account below the threshold."""
    pass


class NotLiquidatable(LendingError):
    """Raised when liquidation is attempted on a healthy or debt-free account."""
    pass


class StalePrice(LendingError):
    """Raised when the oracle has no usable, fresh price."""
    pass


class TransferFailed(LendingError):
    """Raised when the asset transfer collaborator rejects a movement."""
    pass


class Reentrant(LendingError):
    """Raised when a mutating operation is invoked while another is in progress."""
    pass


class InvalidAmount(LendingError):
    """Raised when an amount is zero, negative or not an integer."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class OperationKind(str, Enum):
    """Public mutating operations of the lending ledger."""
    TICK = "tick"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    MINT = "mint"
    REDEEM = "redeem"
    LIQUIDATE = "liquidate"


class AssetRole(str, Enum):
    """Which asset a transfer instruction moves."""
    BASE = "base"
    COLLATERAL = "collateral"


class TransferDirection(str, Enum):
    """IN moves assets from a counterparty into the pool; OUT the reverse."""
    IN = "in"
    OUT = "out"


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def validate_amount(amount: int, what: str = "amount") -> int:
    """
    Require a strictly positive integer amount.

    Raises:
        InvalidAmount: If amount is not an int or is <= 0.
    """
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"{what} must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{what} must be positive, got {amount}")
    return amount


def validate_account(account: str) -> str:
    """Require a non-empty account key."""
    if not isinstance(account, str) or not account.strip():
        raise ValueError("account key cannot be empty")
    return account


# ============================================================================
# POOL PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolParameters:
    """
    Immutable pool policy - set at creation, never changes.

    Rates and ratios are WAD integers. Use create_pool_parameters() to build
    an instance from human-readable values.

    Attributes:
        annual_rate: Annual interest rate applied pro rata per accrual interval (WAD)
        collateral_ratio_threshold: Minimum collateral value / debt (WAD)
        min_interval: Length of one accrual interval
        intervals_per_year: Number of accrual intervals per year
        max_price_staleness: Oldest acceptable oracle observation
        liquidation_bonus: Extra collateral share granted per unit of debt repaid (WAD, 0 = none)
        base_symbol: Symbol of the borrowed/deposited asset
        collateral_symbol: Symbol of the collateral asset
        pool_address: Holder address of the pool balance at the transfer service
        liquidator_store: Holder address receiving seized collateral
    """
    annual_rate: int
    collateral_ratio_threshold: int
    min_interval: timedelta = DEFAULT_MIN_INTERVAL
    intervals_per_year: int = DEFAULT_INTERVALS_PER_YEAR
    max_price_staleness: timedelta = DEFAULT_MAX_PRICE_STALENESS
    liquidation_bonus: int = 0
    base_symbol: str = DEFAULT_BASE_SYMBOL
    collateral_symbol: str = DEFAULT_COLLATERAL_SYMBOL
    pool_address: str = DEFAULT_POOL_ADDRESS
    liquidator_store: str = DEFAULT_LIQUIDATOR_STORE

    def __post_init__(self):
        for name in ('annual_rate', 'collateral_ratio_threshold', 'intervals_per_year', 'liquidation_bonus'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an int, got {type(value).__name__}")
        if self.annual_rate < 0:
            raise ValueError(f"annual_rate cannot be negative, got {self.annual_rate}")
        if self.collateral_ratio_threshold <= 0:
            raise ValueError(
                f"collateral_ratio_threshold must be positive, got {self.collateral_ratio_threshold}"
            )
        if self.min_interval <= timedelta(0):
            raise ValueError(f"min_interval must be positive, got {self.min_interval}")
        if self.intervals_per_year <= 0:
            raise ValueError(f"intervals_per_year must be positive, got {self.intervals_per_year}")
        if self.max_price_staleness < timedelta(0):
            raise ValueError(f"max_price_staleness cannot be negative, got {self.max_price_staleness}")
        if self.liquidation_bonus < 0:
            raise ValueError(f"liquidation_bonus cannot be negative, got {self.liquidation_bonus}")
        for name in ('base_symbol', 'collateral_symbol', 'pool_address', 'liquidator_store'):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"{name} cannot be empty")
        if self.base_symbol == self.collateral_symbol:
            raise ValueError("base_symbol and collateral_symbol must be different")
        if self.pool_address == self.liquidator_store:
            raise ValueError("pool_address and liquidator_store must be different")


def create_pool_parameters(
    annual_rate: Numeric,
    collateral_ratio_threshold: Numeric,
    min_interval: timedelta = DEFAULT_MIN_INTERVAL,
    intervals_per_year: int = DEFAULT_INTERVALS_PER_YEAR,
    max_price_staleness: timedelta = DEFAULT_MAX_PRICE_STALENESS,
    liquidation_bonus: Numeric = "0",
    base_symbol: str = DEFAULT_BASE_SYMBOL,
    collateral_symbol: str = DEFAULT_COLLATERAL_SYMBOL,
    pool_address: str = DEFAULT_POOL_ADDRESS,
    liquidator_store: str = DEFAULT_LIQUIDATOR_STORE,
) -> PoolParameters:
    """
    Create pool parameters from human-readable values.

    Args:
        annual_rate: Annual interest rate (e.g., "0.10" for 10%)
        collateral_ratio_threshold: Minimum collateral ratio (e.g., "1.5" for 150%)
        min_interval: Accrual cadence (default: 1 hour)
        intervals_per_year: Accrual intervals per year (default: 8760)
        max_price_staleness: Oldest acceptable price observation (default: 1 hour)
        liquidation_bonus: Liquidator incentive (e.g., "0.05" for 5%, default: none)
        base_symbol: Borrowed/deposited asset symbol
        collateral_symbol: Collateral asset symbol
        pool_address: Holder address of the pool at the transfer service
        liquidator_store: Holder address receiving seized collateral

    Returns:
        PoolParameters with rates converted to WAD (rounded down).

    Raises:
        ValueError: If any parameter is out of range.

    Example:
        params = create_pool_parameters(
            annual_rate=Decimal("0.10"),
            collateral_ratio_threshold=Decimal("1.5"),
        )
    """
    try:
        rate_wad = to_wad(annual_rate)
        threshold_wad = to_wad(collateral_ratio_threshold)
        bonus_wad = to_wad(liquidation_bonus)
    except ArithmeticOverflow as e:
        raise ValueError(f"Pool parameter out of range: {e}") from e

    if threshold_wad < WAD:
        raise ValueError(
            f"collateral_ratio_threshold must be at least 1, got {collateral_ratio_threshold}"
        )

    return PoolParameters(
        annual_rate=rate_wad,
        collateral_ratio_threshold=threshold_wad,
        min_interval=min_interval,
        intervals_per_year=intervals_per_year,
        max_price_staleness=max_price_staleness,
        liquidation_bonus=bonus_wad,
        base_symbol=base_symbol,
        collateral_symbol=collateral_symbol,
        pool_address=pool_address,
        liquidator_store=liquidator_store,
    )


# ============================================================================
# STATE SNAPSHOTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountState:
    """
    Immutable snapshot of one account.

    Attributes:
        collateral_balance: Collateral units posted
        borrow_principal: Debt recorded at checkpoint_index
        checkpoint_index: Accrual index at the last debt update (0 = never borrowed)
        share_balance: Claim-shares held
    """
    collateral_balance: int = 0
    borrow_principal: int = 0
    checkpoint_index: int = 0
    share_balance: int = 0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"AccountState.{f.name} must be an int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"AccountState.{f.name} cannot be negative, got {value}")
        if self.borrow_principal > 0 and self.checkpoint_index == 0:
            raise ValueError("borrow_principal requires a checkpoint_index")

    def is_empty(self) -> bool:
        """True if the account holds nothing and owes nothing."""
        return (
            self.collateral_balance == 0
            and self.borrow_principal == 0
            and self.share_balance == 0
        )


EMPTY_ACCOUNT = AccountState()


@dataclass(frozen=True, slots=True)
class PoolState:
    """
    Immutable snapshot of pool-wide totals.

    Each committed operation replaces the ledger's PoolState with a new
    instance (value semantics).

    Attributes:
        total_shares: Outstanding claim-shares
        total_borrowed: Aggregate current debt in base units (scaled_borrowed at accrual_index)
        scaled_borrowed: Sum of every account's debt at index 1.0, in DEBT_SCALE units
        total_collateral: Aggregate posted collateral
        accrual_index: Global interest index (WAD, starts at 1.0)
        last_accrual_time: Time of the last tick that accrued at least one interval
        collateral_price: Last oracle price in base units per collateral unit (WAD)
        price_observed_at: Observation time of collateral_price (None before the first read)
        seized_collateral: Collateral moved to the liquidator store
        bad_debt: Debt written off by full liquidations
    """
    last_accrual_time: datetime
    total_shares: int = 0
    total_borrowed: int = 0
    scaled_borrowed: int = 0
    total_collateral: int = 0
    accrual_index: int = WAD
    collateral_price: int = 0
    price_observed_at: Optional[datetime] = None
    seized_collateral: int = 0
    bad_debt: int = 0

    def __post_init__(self):
        for name in ('total_shares', 'total_borrowed', 'scaled_borrowed', 'total_collateral', 'accrual_index',
                     'collateral_price', 'seized_collateral', 'bad_debt'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"PoolState.{name} must be an int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"PoolState.{name} cannot be negative, got {value}")
        if self.accrual_index < WAD:
            raise ValueError(f"accrual_index cannot fall below 1.0, got {self.accrual_index}")


def initial_pool_state(start_time: datetime) -> PoolState:
    """Create the pool state of a fresh ledger: no balances, index 1.0, no price yet."""
    return PoolState(last_accrual_time=start_time)


# ============================================================================
# STATE CHANGES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountChange:
    """
    Record of an account state change, with full before/after snapshots.

    Attributes:
        account: Account key
        old_state: State before the change
        new_state: State after the change
    """
    account: str
    old_state: AccountState
    new_state: AccountState

    def changed_fields(self) -> Dict[str, Tuple[int, int]]:
        """Fields that differ between old and new state, as (old, new) tuples."""
        changes = {}
        for f in fields(AccountState):
            old_val = getattr(self.old_state, f.name)
            new_val = getattr(self.new_state, f.name)
            if old_val != new_val:
                changes[f.name] = (old_val, new_val)
        return changes


@dataclass(frozen=True, slots=True)
class TransferInstruction:
    """
    A single asset movement requested from the transfer collaborator.

    Attributes:
        asset: BASE or COLLATERAL
        direction: IN (counterparty -> pool) or OUT (pool -> counterparty)
        counterparty: Holder address on the other side of the movement
        amount: Quantity in the asset's smallest unit (must be positive)
    """
    asset: AssetRole
    direction: TransferDirection
    counterparty: str
    amount: int

    def __post_init__(self):
        if not self.counterparty or not self.counterparty.strip():
            raise ValueError("Transfer counterparty cannot be empty")
        if not isinstance(self.amount, int) or self.amount <= 0:
            raise ValueError(f"Transfer amount must be a positive int, got {self.amount!r}")

    def __repr__(self) -> str:
        if self.direction is TransferDirection.IN:
            return f"Transfer({self.amount} {self.asset.value}: {self.counterparty}→pool)"
        return f"Transfer({self.amount} {self.asset.value}: pool→{self.counterparty})"


# ============================================================================
# OPERATIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PendingOperation:
    """
    A staged operation before commit - represents INTENT.

    Created by the pure compute_* functions and handed to
    LendingLedger.execute(), which runs the transfer (if any) and then
    commits pool_after and every account change together.

    Attributes:
        kind: Operation type
        account: Acting account (None for a bare tick)
        amount: Requested amount (0 for a bare tick)
        timestamp: Ledger time at which the operation was computed
        pool_before: Committed pool state the operation was computed from
        pool_after: Pool state to commit
        account_changes: Account snapshots to commit
        transfer: External asset movement to perform before commit
    """
    kind: OperationKind
    account: Optional[str]
    amount: int
    timestamp: datetime
    pool_before: PoolState
    pool_after: PoolState
    account_changes: Tuple[AccountChange, ...] = ()
    transfer: Optional[TransferInstruction] = None

    def is_empty(self) -> bool:
        """True if committing this operation would change nothing."""
        return (
            self.pool_before == self.pool_after
            and not self.account_changes
            and self.transfer is None
        )

    def __repr__(self) -> str:
        return (
            f"PendingOperation({self.kind.value}, account={self.account}, "
            f"amount={self.amount}, {len(self.account_changes)} account changes)"
        )


def build_operation(
    view: PoolView,
    kind: OperationKind,
    pool_after: PoolState,
    account: Optional[str] = None,
    amount: int = 0,
    account_changes: Optional[Tuple[AccountChange, ...]] = None,
    transfer: Optional[TransferInstruction] = None,
) -> PendingOperation:
    """
    Build a PendingOperation against the view's committed state.

    Account changes whose old and new snapshots are equal are dropped.
    """
    changes = tuple(
        c for c in (account_changes or ())
        if c.old_state != c.new_state
    )
    return PendingOperation(
        kind=kind,
        account=account,
        amount=amount,
        timestamp=view.current_time,
        pool_before=view.pool_state(),
        pool_after=pool_after,
        account_changes=changes,
        transfer=transfer,
    )


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    An executed, immutable record of a committed operation - represents FACT.

    Attributes:
        kind: Operation type
        account: Acting account (None for a bare tick)
        amount: Requested amount
        timestamp: Ledger time of the operation
        pool_before: Pool state before commit
        pool_after: Pool state after commit
        account_changes: Committed account snapshots
        transfer: Asset movement performed (if any)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        sequence_number: Monotonic sequence within the ledger
    """
    kind: OperationKind
    account: Optional[str]
    amount: int
    timestamp: datetime
    pool_before: PoolState
    pool_after: PoolState
    account_changes: Tuple[AccountChange, ...]
    transfer: Optional[TransferInstruction]
    exec_id: str
    ledger_name: str
    sequence_number: int

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Operation: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   kind           : ' + self.kind.value)}│",
            f"│{pad('   account        : ' + str(self.account))}│",
            f"│{pad('   amount         : ' + str(self.amount))}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
        ]
        if self.transfer is not None:
            lines.append(f"│{pad('   transfer       : ' + repr(self.transfer))}│")
        if self.account_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Account Changes (' + str(len(self.account_changes)) + '):')}│")
            for change in self.account_changes:
                lines.append(f"│{pad('   [' + change.account + ']')}│")
                for field_name, (old_val, new_val) in change.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val} → {new_val}')}│")
        pool_diff = _pool_diff(self.pool_before, self.pool_after)
        if pool_diff:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Pool Changes:')}│")
            for field_name, (old_val, new_val) in pool_diff.items():
                lines.append(f"│{pad(f'      {field_name}: {old_val} → {new_val}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _pool_diff(before: PoolState, after: PoolState) -> Dict[str, Tuple[Any, Any]]:
    changes = {}
    for f in fields(PoolState):
        old_val = getattr(before, f.name)
        new_val = getattr(after, f.name)
        if old_val != new_val:
            changes[f.name] = (old_val, new_val)
    return changes


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PoolView(Protocol):
    """
    Read-only interface to lending ledger state.

    The compute_* functions take a PoolView and return a PendingOperation;
    they can query state but never modify it. LendingLedger implements this
    protocol; tests use FakePoolView.
    """

    @property
    def params(self) -> PoolParameters:
        """Immutable pool policy."""
        ...

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        ...

    def pool_state(self) -> PoolState:
        """Committed pool-wide totals."""
        ...

    def get_account(self, account: str) -> AccountState:
        """
        Committed state of an account.

        Returns EMPTY_ACCOUNT for an account that has never interacted.
        """
        ...

    def pool_asset_balance(self) -> int:
        """Base-asset balance held by the pool at the transfer collaborator."""
        ...

"""
ledger.py - Stateful Collateralized Lending Ledger

The LendingLedger class is the central state manager of the lending pool.
It is the only module that mutates state, ensuring controlled and auditable
changes.

Key responsibilities:
    - Implements the PoolView protocol for read-only access by pure functions
    - Ticks the pool (fresh price, interest accrual) before every operation
    - Executes operations atomically: the transfer runs first, then the new
      pool and account state are committed together
    - Rejects nested mutating calls with Reentrant
    - Tracks logical time and keeps an audit trail of committed operations
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Any
import copy

from .core import (
    # Types
    PoolParameters, PoolState, AccountState, PendingOperation, OperationRecord,
    TransferInstruction, OperationKind, AssetRole, TransferDirection,
    # Constants
    EPOCH, EMPTY_ACCOUNT,
    # Exceptions
    LendingError, TransferFailed, Reentrant,
    # Helpers
    initial_pool_state, validate_account,
)
from .accrual import calculate_accrual, calculate_scaled_debt, calculate_total_borrowed, compute_tick
from .borrow import compute_borrow, compute_repay, current_debt_of
from .collateral import calculate_ratio, compute_deposit, compute_withdraw
from .liquidation import compute_liquidation
from .pricing_source import PriceOracleAdapter
from .shares import calculate_exchange_rate, compute_mint, compute_redeem
from .transfer import AssetTransfer


ComputeFn = Callable[..., PendingOperation]

# Staging function for each account operation
_COMPUTE: Dict[OperationKind, ComputeFn] = {
    OperationKind.DEPOSIT: compute_deposit,
    OperationKind.WITHDRAW: compute_withdraw,
    OperationKind.BORROW: compute_borrow,
    OperationKind.REPAY: compute_repay,
    OperationKind.MINT: compute_mint,
    OperationKind.REDEEM: compute_redeem,
    OperationKind.LIQUIDATE: compute_liquidation,
}


class LendingLedger:
    """
    Single-pool lending ledger with full validation and audit trail.

    Implements the PoolView protocol, allowing the ledger to be passed to the
    pure compute_* functions that access only read-only methods.

    Design Principles:
        - Always ticks: every mutating operation first fetches a fresh price
          and accrues interest, and fails with StalePrice if it cannot.
        - All or nothing: any error leaves the ledger exactly as it was.
        - Always logs: every committed operation is recorded in operation_log.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own LendingLedger.

    Example:
        params = create_pool_parameters(annual_rate="0.10", collateral_ratio_threshold="1.5")
        oracle = PriceOracleAdapter(StaticPricingSource({"COLL": 10}), "COLL", params.max_price_staleness)
        usd = InMemoryAssetTransfer({"alice": 1_000, "bob": 0})
        ledger = LendingLedger("main", params, usd, oracle, initial_time=datetime(2025, 1, 1))

        ledger.mint("alice", 1_000)
        ledger.deposit("bob", 100)
        ledger.borrow("bob", 500)
    """

    def __init__(
        self,
        name: str,
        params: PoolParameters,
        base_asset: AssetTransfer,
        oracle: PriceOracleAdapter,
        collateral_asset: Optional[AssetTransfer] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a lending ledger.

        Args:
            name: Ledger identifier
            params: Pool policy (see create_pool_parameters)
            base_asset: Transfer service for the lent asset; its pool balance is the liquidity
            oracle: Freshness-checked collateral price
            collateral_asset: Transfer service for the collateral asset (optional;
                              without it collateral is book-entry only)
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print applied and rejected operations (default: True)

        Raises:
            ValueError: If name is empty.
            TypeError: If a collaborator does not implement AssetTransfer.
        """
        if not name or not name.strip():
            raise ValueError("Ledger name cannot be empty")
        if not isinstance(base_asset, AssetTransfer):
            raise TypeError(f"base_asset must implement AssetTransfer, got {type(base_asset).__name__}")
        if collateral_asset is not None and not isinstance(collateral_asset, AssetTransfer):
            raise TypeError(
                f"collateral_asset must implement AssetTransfer, got {type(collateral_asset).__name__}"
            )

        self.name = name
        self._params = params
        self.base_asset = base_asset
        self.collateral_asset = collateral_asset
        self.oracle = oracle
        self._current_time: datetime = initial_time or EPOCH
        self._pool: PoolState = initial_pool_state(self._current_time)
        self._accounts: Dict[str, AccountState] = {}
        self.operation_log: List[OperationRecord] = []
        self.verbose = verbose
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        # Set while an operation is being executed
        self._in_progress: bool = False

    # ========================================================================
    # PoolView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def params(self) -> PoolParameters:
        """Immutable pool policy."""
        return self._params

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def pool_state(self) -> PoolState:
        """Committed pool-wide totals (immutable snapshot)."""
        return self._pool

    def get_account(self, account: str) -> AccountState:
        """Committed state of an account; EMPTY_ACCOUNT if it never interacted."""
        return self._accounts.get(account, EMPTY_ACCOUNT)

    def pool_asset_balance(self) -> int:
        """Base-asset balance the pool holds at the transfer service."""
        return self.base_asset.balance_of(self._params.pool_address)

    def list_accounts(self) -> List[str]:
        """All accounts that have interacted with the pool, sorted."""
        return sorted(self._accounts)

    # ========================================================================
    # DERIVED QUERIES (read-only)
    # ========================================================================

    def current_debt(self, account: str) -> int:
        """
        Debt of an account at the committed accrual index, rounded down.

        Interest for intervals not yet ticked is not included.
        """
        return current_debt_of(self.get_account(account), self._pool.accrual_index)

    def ratio(self, account: str) -> Decimal:
        """
        Collateralization ratio at the committed price and index.

        Returns Decimal('Infinity') for an account without debt.
        """
        state = self.get_account(account)
        return calculate_ratio(state.collateral_balance, self._pool.collateral_price, self.current_debt(account))

    def exchange_rate(self) -> int:
        """Base units per share (WAD); 1.0 while no shares are outstanding."""
        return calculate_exchange_rate(
            self._pool.total_shares, self.pool_asset_balance(), self._pool.total_borrowed
        )

    def verify_invariants(self, tolerance: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify that the pool totals agree with the account balances.

        Collateral, shares and scaled debt must match exactly, and
        total_borrowed must be scaled_borrowed valued at the accrual index.
        Each account rounds its own debt down while the pool rounds the
        exact sum once, so total_borrowed may exceed the sum of current
        debts by at most one unit per borrowing account and is never below it.

        Args:
            tolerance: Maximum allowed total_borrowed - sum(current_debt).
                       Defaults to the number of accounts with debt.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all invariants hold
            - 'totals': Dict[str, int] - Sums over all accounts
            - 'discrepancies': List[Dict] - Each with field, expected, actual, difference

        Example:
            result = ledger.verify_invariants()
            assert result['valid'], f"Invariants violated: {result['discrepancies']}"
        """
        pool = self._pool
        accounts = [self._accounts[a] for a in sorted(self._accounts)]
        debts = [current_debt_of(state, pool.accrual_index) for state in accounts]

        totals = {
            'total_collateral': sum(state.collateral_balance for state in accounts),
            'total_shares': sum(state.share_balance for state in accounts),
            'scaled_borrowed': sum(
                calculate_scaled_debt(state.borrow_principal, state.checkpoint_index)
                for state in accounts
            ),
            'total_borrowed': sum(debts),
        }

        if tolerance is None:
            tolerance = sum(1 for state in accounts if state.borrow_principal > 0)

        discrepancies = []
        for field_name in ('total_collateral', 'total_shares', 'scaled_borrowed'):
            expected = getattr(pool, field_name)
            if totals[field_name] != expected:
                discrepancies.append({
                    'field': field_name,
                    'expected': expected,
                    'actual': totals[field_name],
                    'difference': abs(totals[field_name] - expected),
                })

        valued = calculate_total_borrowed(pool.scaled_borrowed, pool.accrual_index)
        if valued != pool.total_borrowed:
            discrepancies.append({
                'field': 'total_borrowed',
                'expected': valued,
                'actual': pool.total_borrowed,
                'difference': abs(pool.total_borrowed - valued),
            })

        difference = pool.total_borrowed - totals['total_borrowed']
        if difference < 0 or difference > tolerance:
            discrepancies.append({
                'field': 'total_borrowed',
                'expected': pool.total_borrowed,
                'actual': totals['total_borrowed'],
                'difference': abs(difference),
            })

        return {
            'valid': len(discrepancies) == 0,
            'totals': totals,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Time can only move forward, never backward. Interest is not accrued
        until the next tick.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # PUBLIC OPERATIONS (Mutating)
    # ========================================================================

    def tick(self, now: Optional[datetime] = None) -> Optional[OperationRecord]:
        """
        Refresh the collateral price and accrue interest.

        Args:
            now: Advance the clock to this time first (default: current time)

        Returns:
            The committed OperationRecord, or None if nothing changed.

        Raises:
            Reentrant: If another operation is in progress.
            StalePrice: If no fresh price is available.
            ValueError: If now is before the current time.
        """
        self._check_not_in_progress(OperationKind.TICK)
        previous_time = self._current_time
        if now is not None:
            self.advance_time(now)
        try:
            return self._run(OperationKind.TICK, None, 0)
        except Exception:
            self._current_time = previous_time
            raise

    def deposit(self, account: str, amount: int) -> OperationRecord:
        """Post amount of collateral for account (see collateral.compute_deposit)."""
        return self._run(OperationKind.DEPOSIT, account, amount)

    def withdraw(self, account: str, amount: int) -> OperationRecord:
        """Release amount of collateral to account (see collateral.compute_withdraw)."""
        return self._run(OperationKind.WITHDRAW, account, amount)

    def borrow(self, account: str, amount: int) -> OperationRecord:
        """Lend amount of the base asset to account (see borrow.compute_borrow)."""
        return self._run(OperationKind.BORROW, account, amount)

    def repay(self, account: str, amount: int) -> OperationRecord:
        """Take back amount of account's debt (see borrow.compute_repay)."""
        return self._run(OperationKind.REPAY, account, amount)

    def mint(self, account: str, asset_amount: int) -> OperationRecord:
        """Supply asset_amount of the base asset for shares (see shares.compute_mint)."""
        return self._run(OperationKind.MINT, account, asset_amount)

    def redeem(self, account: str, share_amount: int) -> OperationRecord:
        """Burn share_amount shares for the base asset (see shares.compute_redeem)."""
        return self._run(OperationKind.REDEEM, account, share_amount)

    def liquidate(self, account: str, seize_amount: int) -> OperationRecord:
        """Seize seize_amount of account's collateral (see liquidation.compute_liquidation)."""
        return self._run(OperationKind.LIQUIDATE, account, seize_amount)

    # ========================================================================
    # OPERATION EXECUTION (Mutating)
    # ========================================================================

    def _check_not_in_progress(self, kind: OperationKind) -> None:
        if self._in_progress:
            if self.verbose:
                print(f"✗ REJECTED: {kind.value} attempted while another operation is in progress")
            raise Reentrant(f"{kind.value} attempted while another operation is in progress")

    def _run(self, kind: OperationKind, account: Optional[str], amount: int) -> Optional[OperationRecord]:
        """Tick, compute and commit one operation under the reentrancy guard."""
        self._check_not_in_progress(kind)
        self._in_progress = True
        try:
            return self._commit(self._stage(kind, account, amount))
        except (LendingError, ArithmeticError, ValueError) as e:
            if self.verbose:
                print(f"✗ REJECTED: {kind.value} account={account} amount={amount}: {e}")
            raise
        finally:
            self._in_progress = False

    def _stage(self, kind: OperationKind, account: Optional[str], amount: int) -> PendingOperation:
        """
        Compute an operation against the committed state ticked to now.

        Raises:
            StalePrice: If no fresh price is available.
            ValueError: If account is empty or reserved for the pool.
            LendingError: If the operation's own checks fail.
        """
        quote = self.oracle.fetch_price(self._current_time)
        if kind is OperationKind.TICK:
            return compute_tick(self, quote)

        validate_account(account)
        if account in (self._params.pool_address, self._params.liquidator_store):
            raise ValueError(f"{account} is reserved for the pool")
        ticked = calculate_accrual(self._params, self._pool, self._current_time, quote)
        return _COMPUTE[kind](self, ticked, account, amount)

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingOperation) -> Optional[OperationRecord]:
        """
        Execute a PendingOperation atomically.

        For callers that stage operations themselves with the compute_*
        functions. The operation is staged again from the committed state
        with a freshly fetched price, and pending must equal the result:
        a pool ticked with any other price or index, or a compute_* call
        that skipped the tick, is rejected.

        Args:
            pending: PendingOperation to execute

        Returns:
            The committed OperationRecord, or None for an empty operation.

        Raises:
            Reentrant: If another operation is in progress.
            StalePrice: If no fresh price is available.
            LendingError: If the operation no longer passes its checks.
            ValueError: If pending differs from the operation staged now.
            TransferFailed: If the asset transfer is rejected.
        """
        self._check_not_in_progress(pending.kind)
        self._in_progress = True
        try:
            expected = self._stage(pending.kind, pending.account, pending.amount)
            self._validate_pending(pending, expected)
            return self._commit(expected)
        except (LendingError, ArithmeticError, ValueError) as e:
            if self.verbose:
                print(
                    f"✗ REJECTED: {pending.kind.value} account={pending.account} "
                    f"amount={pending.amount}: {e}"
                )
            raise
        finally:
            self._in_progress = False

    def _commit(self, pending: PendingOperation) -> Optional[OperationRecord]:
        if pending.is_empty():
            return None

        # The only external call; nothing has been mutated yet
        if pending.transfer is not None:
            self._perform_transfer(pending.transfer)

        sequence = self._next_sequence
        self._next_sequence += 1
        record = OperationRecord(
            kind=pending.kind,
            account=pending.account,
            amount=pending.amount,
            timestamp=pending.timestamp,
            pool_before=pending.pool_before,
            pool_after=pending.pool_after,
            account_changes=pending.account_changes,
            transfer=pending.transfer,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            sequence_number=sequence,
        )

        self._pool = pending.pool_after
        for change in pending.account_changes:
            self._accounts[change.account] = change.new_state

        # Log operation (always - audit trail is mandatory)
        self.operation_log.append(record)

        if self.verbose:
            self._print_record(record, "APPLIED", "✓")
        return record

    def _validate_pending(self, pending: PendingOperation, expected: PendingOperation) -> None:
        """Reject a pending operation that differs from the one staged from committed state."""
        if pending.pool_before != self._pool:
            raise ValueError("PendingOperation was computed against a different pool state")
        if pending.timestamp != self._current_time:
            raise ValueError(
                f"PendingOperation timestamp {pending.timestamp} != ledger time {self._current_time}"
            )
        for change in pending.account_changes:
            if change.old_state != self.get_account(change.account):
                raise ValueError(f"PendingOperation has stale state for account {change.account}")
        if pending.pool_after != expected.pool_after:
            raise ValueError(
                "PendingOperation pool state does not match the pool ticked with the current price"
            )
        if pending != expected:
            raise ValueError(
                f"PendingOperation does not match the {expected.kind.value} staged at {self._current_time}"
            )

    def _perform_transfer(self, transfer: TransferInstruction) -> None:
        if transfer.asset is AssetRole.BASE:
            service = self.base_asset
        else:
            service = self.collateral_asset
            if service is None:
                return

        if transfer.direction is TransferDirection.IN:
            ok = service.transfer_in(transfer.counterparty, transfer.amount)
        else:
            ok = service.transfer_out(transfer.counterparty, transfer.amount)
        if not ok:
            raise TransferFailed(f"{transfer!r} was rejected")

    def _print_record(self, record: OperationRecord, result: str, icon: str) -> None:
        """Print the record with a result line replacing its closing border."""
        lines = repr(record).split('\n')
        w = 100
        bar = "─" * w
        text = f" {icon} {result}"
        lines[-1] = f"├{bar}┤"
        lines.append(f"│{text[:w].ljust(w)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> LendingLedger:
        """
        Create an independent copy of this ledger.

        The transfer services are deep-copied so that operations on the
        clone move no real balances of the original. The oracle is shared:
        it is only ever read.

        Returns:
            A new LendingLedger with identical state
        """
        cloned = LendingLedger.__new__(LendingLedger)
        cloned.name = self.name
        cloned._params = self._params
        cloned.base_asset = copy.deepcopy(self.base_asset)
        cloned.collateral_asset = copy.deepcopy(self.collateral_asset)
        cloned.oracle = self.oracle
        cloned._current_time = self._current_time
        # Pool and account states are immutable; sharing them is safe
        cloned._pool = self._pool
        cloned._accounts = dict(self._accounts)
        cloned.operation_log = list(self.operation_log)
        cloned.verbose = self.verbose
        cloned._next_sequence = self._next_sequence
        cloned._in_progress = False
        return cloned

    def __repr__(self):
        return (
            f"LendingLedger({self.name}, {len(self._accounts)} accounts, "
            f"{len(self.operation_log)} operations, time={self._current_time})"
        )

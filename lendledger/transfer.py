"""
transfer.py - Asset transfer collaborator

The lending ledger never holds tokens itself. Every movement of the base
asset (and, optionally, of the collateral asset) is delegated to an object
implementing the AssetTransfer protocol, and the pool's liquidity is read
back from it with balance_of().

InMemoryAssetTransfer is the reference implementation used by tests and
simulations: a plain balance map with the pool as one of the holders.
"""

from __future__ import annotations
from typing import Dict, Optional, Protocol, runtime_checkable

from .core import DEFAULT_POOL_ADDRESS


@runtime_checkable
class AssetTransfer(Protocol):
    """
    Movement of one asset between holders and the pool.

    transfer_in and transfer_out return a truthy value on success. A falsy
    result makes the calling ledger operation fail with TransferFailed.
    """

    def transfer_in(self, source: str, amount: int) -> bool:
        """Move amount from source into the pool."""
        ...

    def transfer_out(self, dest: str, amount: int) -> bool:
        """Move amount from the pool to dest."""
        ...

    def balance_of(self, holder: str) -> int:
        """Current balance of holder."""
        ...


class InMemoryAssetTransfer:
    """
    In-memory asset balances.

    Transfers fail (return False) instead of overdrawing a holder.

    Example:
        usd = InMemoryAssetTransfer({"alice": 1_000, "pool": 5_000})
        usd.transfer_in("alice", 100)    # alice: 900, pool: 5_100
        usd.balance_of("pool")           # 5_100
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None, pool_address: str = DEFAULT_POOL_ADDRESS):
        """
        Args:
            balances: Initial holder balances (default: all empty)
            pool_address: Holder address of the pool
        """
        if not pool_address or not pool_address.strip():
            raise ValueError("pool_address cannot be empty")
        self.pool_address = pool_address
        self.balances: Dict[str, int] = {}
        for holder, amount in (balances or {}).items():
            self.mint(holder, amount)

    def mint(self, holder: str, amount: int) -> None:
        """Credit a holder out of thin air (funding for tests and simulations)."""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"Balance must be a non-negative int, got {amount!r}")
        self.balances[holder] = self.balances.get(holder, 0) + amount

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def transfer_in(self, source: str, amount: int) -> bool:
        return self._move(source, self.pool_address, amount)

    def transfer_out(self, dest: str, amount: int) -> bool:
        return self._move(self.pool_address, dest, amount)

    def _move(self, source: str, dest: str, amount: int) -> bool:
        if amount <= 0 or self.balance_of(source) < amount:
            return False
        self.balances[source] -= amount
        self.balances[dest] = self.balance_of(dest) + amount
        return True

    def __repr__(self):
        return f"InMemoryAssetTransfer({len(self.balances)} holders, pool={self.balance_of(self.pool_address)})"

"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Pool totals equal the sum of account balances
2. atomicity.py - All-or-nothing operation semantics
3. reentrancy.py - Nested mutating calls are rejected
4. ratio_enforcement.py - Borrow and withdraw never leave an account undercollateralized
5. accrual_monotonicity.py - The index and debts only grow with time
6. liquidation_gating.py - Liquidation iff ratio below threshold
7. share_round_trip.py - Mint then redeem returns the amount up to rounding

These tests use hypothesis for property-based testing.
"""

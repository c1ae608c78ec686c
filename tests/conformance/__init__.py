"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the bonding ledger.

The tests are organized by invariant:
1. test_atomicity.py - Failed bonds and claims leave no trace
2. test_conservation.py - Claimed never exceeds owed; mints match claims
3. test_capacity.py - total_bonded never exceeds max_capacity
4. test_vesting_monotonic.py - Claimable is monotonic and completes exactly
5. test_fair_lp.py - Fair LP value ignores moves along the curve
6. test_epoch_isolation.py - Epoch counters never leak across epochs
7. test_idempotency.py - Duplicate intents are applied once

These tests use hypothesis for property-based testing.
"""

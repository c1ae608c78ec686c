"""
Vesting Monotonicity Conformance Tests

INVARIANT: Vesting only moves forward and ends exactly at amount_owed.

    ∀ position P, t1 ≤ t2:
        vested(P, t1) ≤ vested(P, t2) ≤ P.amount_owed
        vested(P, t) = P.amount_owed   for t ≥ P.vesting_end
        Σ successive claims = P.amount_owed
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta
from decimal import Decimal

from bondledger import BondPosition, calculate_vested, calculate_claim
from tests.factories import T0


owed_amounts = st.decimals(min_value=Decimal("0.000001"), max_value=Decimal("1000000"), places=6)
durations = st.integers(min_value=0, max_value=365 * 24 * 3600)
offsets = st.lists(st.integers(min_value=-3600, max_value=400 * 24 * 3600), min_size=1, max_size=15)


def make_position(owed, seconds):
    return BondPosition(
        position_id=0, owner="alice", collateral_asset="USDC",
        collateral_amount=Decimal("1"), amount_owed=owed, amount_claimed=Decimal("0"),
        vesting_start=T0, vesting_end=T0 + timedelta(seconds=seconds),
        price_at_purchase=Decimal("1"),
    )


class TestVestingProperties:

    @given(owed_amounts, durations, offsets)
    @settings(max_examples=200)
    def test_vested_is_monotonic_and_bounded(self, owed, seconds, times):
        """PROPERTY: vested never decreases with time and never exceeds amount_owed."""
        position = make_position(owed, seconds)
        previous = Decimal("0")
        for offset in sorted(times):
            vested = calculate_vested(position, T0 + timedelta(seconds=offset))
            assert previous <= vested <= owed
            previous = vested

    @given(owed_amounts, durations)
    @settings(max_examples=200)
    def test_exact_at_end(self, owed, seconds):
        """PROPERTY: At and after vesting_end, vested equals amount_owed exactly."""
        position = make_position(owed, seconds)
        assert calculate_vested(position, position.vesting_end) == owed
        assert calculate_vested(position, position.vesting_end + timedelta(days=1)) == owed

    @given(owed_amounts, durations, offsets, st.integers(min_value=0, max_value=18))
    @settings(max_examples=200)
    def test_claims_sum_to_owed(self, owed, seconds, times, decimals):
        """
        PROPERTY: Claiming at any sequence of times and once more after the
        end pays out exactly amount_owed, whatever the rounding precision.
        """
        position = make_position(owed, seconds)
        paid = Decimal("0")
        for offset in sorted(times):
            position, amount = calculate_claim(position, T0 + timedelta(seconds=offset), decimals)
            assert amount >= 0
            paid += amount
            assert paid == position.amount_claimed <= owed
        position, amount = calculate_claim(position, position.vesting_end, decimals)
        paid += amount
        assert paid == owed
        assert position.closed

"""
Conservation Conformance Tests

INVARIANT: Native is never created beyond what bonds promised, and every
unit of collateral is accounted for.

    Σ minted = total_native_claimed ≤ total_native_owed = Σ position.amount_owed
    treasury balance of asset A = total_bonded(A)      (no conversion in play)
    Σ balances of every asset across wallets = 0       (double entry)
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta
from decimal import Decimal

from bondledger import NothingToClaim, load_totals, load_collateral
from tests.factories import T0, build_scenario_engine, fund


ACCOUNTS = ["alice", "bob", "carol"]

operation = st.one_of(
    st.tuples(st.just("bond"), st.sampled_from(ACCOUNTS),
              st.decimals(min_value=Decimal("1"), max_value=Decimal("2000"), places=6)),
    st.tuples(st.just("claim"), st.sampled_from(ACCOUNTS), st.just(None)),
    st.tuples(st.just("wait"), st.just(None), st.integers(min_value=1, max_value=5 * 24 * 3600)),
)


def run(operations):
    engine = build_scenario_engine()
    for account in ACCOUNTS:
        fund(engine.ledger, account, "USDC", Decimal("100000"))
    minted = Decimal("0")
    for kind, account, arg in operations:
        if kind == "bond":
            engine.bond(account, "USDC", arg)
        elif kind == "claim":
            try:
                minted += engine.claim_all(account)
            except NothingToClaim:
                pass
        else:
            engine.ledger.advance_time(engine.ledger.current_time + timedelta(seconds=arg))
    return engine, minted


class TestNativeConservation:

    @given(st.lists(operation, min_size=1, max_size=25))
    @settings(max_examples=40, deadline=None)
    def test_minted_equals_claimed(self, operations):
        """
        PROPERTY: Native minted through claims equals total_native_claimed,
        which never exceeds total_native_owed.
        """
        engine, minted = run(operations)
        owed, claimed = load_totals(engine.ledger)
        assert minted == claimed == engine.mint_authority.total_minted()
        assert claimed <= owed
        assert sum(engine.ledger.get_balance(a, "NATIVE") for a in ACCOUNTS) == claimed

    @given(st.lists(operation, min_size=1, max_size=25))
    @settings(max_examples=40, deadline=None)
    def test_bookkeeping_invariants(self, operations):
        """
        PROPERTY: verify_invariants() holds after any sequence of bonds,
        claims and clock moves.
        """
        engine, _ = run(operations)
        report = engine.verify_invariants()
        assert report['valid'], report['violations']

    @given(st.lists(operation, min_size=1, max_size=25))
    @settings(max_examples=40, deadline=None)
    def test_collateral_reaches_treasury(self, operations):
        """
        PROPERTY: The treasury holds exactly what the registry says was bonded,
        and what accounts paid.
        """
        engine, _ = run(operations)
        bonded = load_collateral(engine.ledger, "USDC").total_bonded
        paid = sum(Decimal("100000") - engine.ledger.get_balance(a, "USDC") for a in ACCOUNTS)
        assert engine.ledger.get_balance("treasury", "USDC") == bonded == paid

    @given(st.lists(operation, min_size=1, max_size=25))
    @settings(max_examples=20, deadline=None)
    def test_eventually_everything_is_claimable(self, operations):
        """
        PROPERTY: Once every vesting window has ended, claiming drains exactly
        total_native_owed.
        """
        engine, _ = run(operations)
        engine.ledger.advance_time(engine.ledger.current_time + timedelta(days=8))
        for account in ACCOUNTS:
            try:
                engine.claim_all(account)
            except NothingToClaim:
                pass
        owed, claimed = load_totals(engine.ledger)
        assert claimed == owed
        assert engine.get_supply_pressure()['outstanding'] == 0

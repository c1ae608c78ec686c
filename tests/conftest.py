"""
conftest.py - Shared pytest fixtures for bonding tests

Provides common fixtures used across unit, functional and conformance tests:
- Ledgers (empty, with the standard asset set)
- Engines (bare, with the end-to-end USDC setup)
- FakeViews holding registry, epoch and vesting records
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from bondledger import (
    Ledger, StaticPriceOracle, Tier,
    CollateralEntry, BondPosition, EpochState,
)
from bondledger.registry import to_state_dict, collateral_key

from tests.fake_view import FakeView
from tests.factories import T0, build_ledger, build_engine, build_scenario_engine, fund


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", T0, verbose=False, test_mode=True)


@pytest.fixture
def ledger():
    """Ledger with USDC, DAI, WETH, WBTC, LP and NATIVE and wallets alice, bob, amm."""
    return build_ledger()


@pytest.fixture
def oracle():
    return StaticPriceOracle({
        "NATIVE": Decimal("100"),
        "WETH": Decimal("2500"),
        "DAI": Decimal("1"),
    })


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Initialized engine with no collateral whitelisted yet."""
    return build_engine()


@pytest.fixture
def scenario_engine():
    """USDC at Tier 2 + 500 bps, capacity 1,000,000, alice holding 10,000 USDC."""
    return build_scenario_engine()


@pytest.fixture
def weth_engine(scenario_engine):
    """Scenario engine plus WETH (Tier 3, priced by feed) converted into USDC."""
    scenario_engine.add_collateral("dao", "WETH", Tier.TIER_3, price_feed="WETH", conversion_target="USDC")
    fund(scenario_engine.ledger, "alice", "WETH", Decimal("10"))
    fund(scenario_engine.ledger, "amm", "USDC", Decimal("1000000"))
    return scenario_engine


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def registry_view():
    """FakeView with an owner, the default tier table and three entries."""
    usdc = CollateralEntry("USDC", Tier.TIER_2, discount_bonus=500,
                           max_capacity=Decimal("1000000"), pegged_to_base=True)
    weth = CollateralEntry("WETH", Tier.TIER_3, price_feed="WETH",
                           total_bonded=Decimal("40"), max_capacity=Decimal("50"))
    old = CollateralEntry("OLD", Tier.TIER_1, whitelisted=False, pegged_to_base=True)
    return FakeView(
        records={
            'config': {'owner': 'dao'},
            'tiers': {'TIER_1': 500, 'TIER_2': 2000, 'TIER_3': 3000, 'TIER_4': 4000},
            collateral_key("USDC"): to_state_dict(usdc),
            collateral_key("WETH"): to_state_dict(weth),
            collateral_key("OLD"): to_state_dict(old),
        },
        time=T0,
    )


@pytest.fixture
def position():
    """12.5 NATIVE owed over 7 days from T0, nothing claimed."""
    return BondPosition(
        position_id=0,
        owner="alice",
        collateral_asset="USDC",
        collateral_amount=Decimal("1000"),
        amount_owed=Decimal("12.5"),
        amount_claimed=Decimal("0"),
        vesting_start=T0,
        vesting_end=T0 + timedelta(days=7),
        price_at_purchase=Decimal("100"),
    )


@pytest.fixture
def epoch_view():
    """Epoch 3 started at T0; alice has bonded 400 in epoch 3."""
    return FakeView(
        records={
            'epoch': EpochState(3, T0).to_state_dict(),
            'epoch_account:alice': {3: Decimal("400")},
        },
        time=T0,
    )

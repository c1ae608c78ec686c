#!/usr/bin/env python3
"""
demo.py - Walkthrough: Bonding Collateral for Vesting Native Tokens

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1-3:  Setup       - Ledger, assets, the engine and its collateral registry
  4-6:  Bonding     - Quotes, a successful bond, a rejected bond that leaves no trace
  7-8:  Vesting     - Partial claim mid-vesting, final claim at the end
  9-10: Auditing    - Supply pressure, invariants, historical reconstruction

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from bondledger import (
    Ledger, Move, SYSTEM_WALLET, token, build_transaction,
    BondingConfig, BondingEngine, Tier,
    StaticPriceOracle, LedgerMintAuthority,
    NotWhitelisted,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Parameters for the walkthrough. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    alice_initial_usdc: Decimal = Decimal("10000")
    alice_initial_dai: Decimal = Decimal("500")
    native_price: Decimal = Decimal("100")
    bond_amount: Decimal = Decimal("1000")
    usdc_bonus_bps: int = 500
    usdc_capacity: Decimal = Decimal("1000000")
    vesting_period: timedelta = timedelta(days=7)


CONFIG = DemoConfig()
QUICK = "--quick" in sys.argv


def wait_for_enter():
    if not QUICK:
        input("\n  [Press Enter to continue]")


def step_header(number: int, title: str, objective: str):
    print("\n" + "=" * 72)
    print(f"  STEP {number}: {title}")
    print("=" * 72)
    print(f"  {objective}\n")


def show_balances(ledger: Ledger, wallets, assets):
    for wallet in wallets:
        parts = ", ".join(f"{ledger.get_balance(wallet, a)} {a}" for a in assets)
        print(f"    {wallet:<10} {parts}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_ledger() -> Ledger:
    step_header(1, "The Ledger", "Register the collateral and native assets, then fund alice.")
    ledger = Ledger("bonding_demo", CONFIG.start_time, verbose=False)
    ledger.register_asset(token("USDC", "USD Coin", decimals=6))
    ledger.register_asset(token("DAI", "Dai Stablecoin"))
    ledger.register_asset(token("NATIVE", "Native Token"))
    ledger.register_wallet("alice")

    ledger.execute(build_transaction(ledger, [
        Move(CONFIG.alice_initial_usdc, "USDC", SYSTEM_WALLET, "alice", "faucet_usdc"),
        Move(CONFIG.alice_initial_dai, "DAI", SYSTEM_WALLET, "alice", "faucet_dai"),
    ]), strict=True)
    show_balances(ledger, ["alice"], ["USDC", "DAI"])
    wait_for_enter()
    return ledger


def step_02_engine(ledger: Ledger) -> BondingEngine:
    step_header(2, "The Engine", "Native is minted on claim; collateral goes to the treasury.")
    engine = BondingEngine(
        ledger,
        BondingConfig(
            native_asset="NATIVE",
            base_asset="USD",
            treasury_wallet="treasury",
            vesting_period=CONFIG.vesting_period,
        ),
        oracle=StaticPriceOracle({"NATIVE": CONFIG.native_price}),
        mint_authority=LedgerMintAuthority(ledger, "NATIVE", minter="bond_engine"),
    )
    engine.initialize(owner="dao")
    print(f"    owner:           dao")
    print(f"    native price:    {CONFIG.native_price} USD")
    print(f"    vesting period:  {CONFIG.vesting_period}")
    wait_for_enter()
    return engine


def step_03_whitelist(engine: BondingEngine):
    step_header(3, "The Collateral Registry", "Whitelist USDC at Tier 2 with a bonus, valued 1:1.")
    engine.add_collateral(
        "dao", "USDC", Tier.TIER_2,
        discount_bonus=CONFIG.usdc_bonus_bps,
        max_capacity=CONFIG.usdc_capacity,
        pegged_to_base=True,
    )
    print(f"    USDC whitelisted: {engine.is_whitelisted('USDC')}")
    print(f"    USDC discount:    {engine.get_discount('USDC')} bps")
    print(f"    USDC capacity:    {engine.get_available_capacity('USDC')}")
    print(f"    DAI whitelisted:  {engine.is_whitelisted('DAI')}")
    wait_for_enter()


def step_04_quote(engine: BondingEngine):
    step_header(4, "Quote", "A quote previews a bond without touching state.")
    quote = engine.get_bond_quote("USDC", CONFIG.bond_amount)
    print(f"    {CONFIG.bond_amount} USDC is worth {quote.value_in_base_units} USD")
    print(f"    at {quote.discount} bps it buys {quote.native_out} NATIVE")
    wait_for_enter()


def step_05_bond(engine: BondingEngine):
    step_header(5, "Bond", "Collateral moves to the treasury and a vesting position opens.")
    owed = engine.bond("alice", "USDC", CONFIG.bond_amount)
    position = engine.get_positions("alice")[0]
    print(f"    owed:          {owed} NATIVE")
    print(f"    vesting:       {position.vesting_start} -> {position.vesting_end}")
    print(f"    capacity left: {engine.get_available_capacity('USDC')} USDC")
    show_balances(engine.ledger, ["alice", "treasury"], ["USDC", "NATIVE"])
    wait_for_enter()


def step_06_rejected(engine: BondingEngine):
    step_header(6, "Rejection", "A bond in non-whitelisted collateral changes nothing.")
    log_size = len(engine.ledger.transaction_log)
    try:
        engine.bond("alice", "DAI", Decimal("100"))
    except NotWhitelisted as e:
        print(f"    rejected: {e}")
    print(f"    log size unchanged: {len(engine.ledger.transaction_log) == log_size}")
    show_balances(engine.ledger, ["alice"], ["DAI"])
    wait_for_enter()


def step_07_partial_claim(engine: BondingEngine):
    step_header(7, "Partial Claim", "Halfway through vesting, half of the position is claimable.")
    engine.ledger.advance_time(CONFIG.start_time + CONFIG.vesting_period / 2)
    print(f"    claimable: {engine.get_claimable('alice')} NATIVE")
    paid = engine.claim_all("alice")
    print(f"    claimed:   {paid} NATIVE")
    show_balances(engine.ledger, ["alice"], ["NATIVE"])
    wait_for_enter()


def step_08_final_claim(engine: BondingEngine):
    step_header(8, "Final Claim", "After vesting ends, the remainder is paid and the position closes.")
    engine.ledger.advance_time(CONFIG.start_time + CONFIG.vesting_period)
    paid = engine.claim_all("alice")
    position = engine.get_positions("alice")[0]
    print(f"    claimed:   {paid} NATIVE")
    print(f"    closed:    {position.closed}")
    show_balances(engine.ledger, ["alice"], ["NATIVE"])
    wait_for_enter()


def step_09_audit(engine: BondingEngine):
    step_header(9, "Audit", "Outstanding obligations and bookkeeping invariants.")
    for name, value in engine.get_supply_pressure().items():
        print(f"    {name:<22} {value}")
    result = engine.verify_invariants()
    print(f"    invariants valid:      {result['valid']}")
    wait_for_enter()


def step_10_history(engine: BondingEngine):
    step_header(10, "History", "clone_at() rebuilds the state as of an earlier time.")
    midway = engine.ledger.clone_at(CONFIG.start_time + CONFIG.vesting_period / 2)
    print("    midway:")
    show_balances(midway, ["alice"], ["USDC", "NATIVE"])
    print("    now:")
    show_balances(engine.ledger, ["alice"], ["USDC", "NATIVE"])


def main():
    ledger = step_01_ledger()
    engine = step_02_engine(ledger)
    step_03_whitelist(engine)
    step_04_quote(engine)
    step_05_bond(engine)
    step_06_rejected(engine)
    step_07_partial_claim(engine)
    step_08_final_claim(engine)
    step_09_audit(engine)
    step_10_history(engine)
    print("\n  Done. Run the tests with: pytest tests/\n")


if __name__ == "__main__":
    main()

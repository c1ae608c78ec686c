"""
test_ledger_operations.py - Unit tests for Ledger class operations

Tests:
- Registration
- Transaction execution (moves and records)
- Optimistic record checks
- Savepoints and rollback
- Subscribers
- Historical reconstruction
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from bondledger import (
    Ledger, Move, StateChange, ExecuteResult, SYSTEM_WALLET, token, build_transaction,
    LedgerError, InsufficientFunds, StaleState, AssetNotRegistered, WalletNotRegistered,
)
from tests.factories import T0


@pytest.fixture
def usdc_ledger():
    ledger = Ledger("test", T0, verbose=False)
    ledger.register_asset(token("USDC", "USD Coin", decimals=6))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("1000"), "USDC", SYSTEM_WALLET, "alice", "faucet")
    ]))
    return ledger


class TestRegistration:

    def test_system_wallet_auto_registered(self):
        assert Ledger("test", verbose=False).is_registered(SYSTEM_WALLET)

    def test_duplicate_wallet_raises(self, usdc_ledger):
        with pytest.raises(ValueError, match="already registered"):
            usdc_ledger.register_wallet("alice")

    def test_ensure_wallet_is_idempotent(self, usdc_ledger):
        usdc_ledger.ensure_wallet("carol")
        usdc_ledger.ensure_wallet("carol")
        assert "carol" in usdc_ledger.list_wallets()

    def test_duplicate_asset_raises(self, usdc_ledger):
        with pytest.raises(ValueError, match="already registered"):
            usdc_ledger.register_asset(token("USDC", "Again"))

    def test_unknown_asset_and_wallet(self, usdc_ledger):
        with pytest.raises(AssetNotRegistered):
            usdc_ledger.get_balance("alice", "XYZ")
        with pytest.raises(WalletNotRegistered):
            usdc_ledger.get_balance("nobody", "USDC")

    def test_set_balance_requires_test_mode(self, usdc_ledger):
        with pytest.raises(LedgerError, match="test_mode"):
            usdc_ledger.set_balance("alice", "USDC", Decimal("1"))


class TestExecute:

    def test_transfer_applied(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("250"), "USDC", "alice", "bob", "pay")])
        assert usdc_ledger.execute(tx) == ExecuteResult.APPLIED
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("750")
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("250")

    def test_duplicate_intent_applied_once(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("250"), "USDC", "alice", "bob", "pay")])
        usdc_ledger.execute(tx)
        assert usdc_ledger.execute(tx) == ExecuteResult.ALREADY_APPLIED
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("250")

    def test_overdraft_rejected(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("1001"), "USDC", "alice", "bob", "pay")])
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("1000")

    def test_overdraft_strict_raises(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("1001"), "USDC", "alice", "bob", "pay")])
        with pytest.raises(InsufficientFunds, match="alice"):
            usdc_ledger.execute(tx, strict=True)

    def test_unregistered_wallet_rejected(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "nobody", "pay")])
        with pytest.raises(WalletNotRegistered):
            usdc_ledger.execute(tx, strict=True)

    def test_records_created_updated_deleted(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [StateChange("k", None, {'v': 1})]))
        assert usdc_ledger.get_record("k") == {'v': 1}
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [StateChange("k", {'v': 1}, {'v': 2})]))
        assert usdc_ledger.get_record("k") == {'v': 2}
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [StateChange("k", {'v': 2}, None)]))
        assert usdc_ledger.get_record("k") is None

    def test_get_record_returns_copy(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [StateChange("k", None, {'v': [1]})]))
        record = usdc_ledger.get_record("k")
        record['v'].append(2)
        assert usdc_ledger.get_record("k") == {'v': [1]}

    def test_stale_old_state_rejected(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [StateChange("k", None, {'v': 1})]))
        stale = build_transaction(usdc_ledger, [], [StateChange("k", {'v': 0}, {'v': 5})])
        with pytest.raises(StaleState, match="k"):
            usdc_ledger.execute(stale, strict=True)
        assert usdc_ledger.get_record("k") == {'v': 1}

    def test_chained_changes_to_same_record(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [], [
            StateChange("k", None, {'v': 1}),
            StateChange("k", {'v': 1}, {'v': 2}),
        ])
        assert usdc_ledger.execute(tx) == ExecuteResult.APPLIED
        assert usdc_ledger.get_record("k") == {'v': 2}

    def test_moves_and_records_all_or_nothing(self, usdc_ledger):
        tx = build_transaction(
            usdc_ledger,
            [Move(Decimal("10"), "USDC", "alice", "bob", "pay")],
            [StateChange("k", {'v': 99}, {'v': 100})],
        )
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("0")

    def test_list_records_by_prefix(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [], [
            StateChange("position:alice:1", None, {}),
            StateChange("position:alice:0", None, {}),
            StateChange("totals", None, {}),
        ]))
        assert usdc_ledger.list_records("position:") == ["position:alice:0", "position:alice:1"]

    def test_holders_index_drops_emptied_wallets(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [
            Move(Decimal("1000"), "USDC", "alice", "bob", "pay_all")
        ]))
        assert usdc_ledger.get_positions("USDC") == {
            SYSTEM_WALLET: Decimal("-1000"),
            "bob": Decimal("1000"),
        }

    def test_double_entry_holds(self, usdc_ledger):
        assert usdc_ledger.verify_double_entry()['valid']
        assert usdc_ledger.total_supply("USDC") == Decimal("0")


class TestSavepoints:

    def test_atomic_rolls_back_on_error(self, usdc_ledger):
        sequence = usdc_ledger.next_sequence
        with pytest.raises(RuntimeError):
            with usdc_ledger.atomic():
                usdc_ledger.execute(build_transaction(usdc_ledger, [
                    Move(Decimal("100"), "USDC", "alice", "bob", "pay")
                ], [StateChange("k", None, {'v': 1})]), strict=True)
                raise RuntimeError("boom")
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("1000")
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("0")
        assert usdc_ledger.get_record("k") is None
        assert usdc_ledger.next_sequence == sequence
        assert len(usdc_ledger.transaction_log) == sequence

    def test_rolled_back_intent_can_be_retried(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("100"), "USDC", "alice", "bob", "pay")])
        with pytest.raises(RuntimeError):
            with usdc_ledger.atomic():
                usdc_ledger.execute(tx)
                raise RuntimeError("boom")
        assert usdc_ledger.execute(tx) == ExecuteResult.APPLIED

    def test_atomic_keeps_work_on_success(self, usdc_ledger):
        with usdc_ledger.atomic():
            usdc_ledger.execute(build_transaction(usdc_ledger, [
                Move(Decimal("100"), "USDC", "alice", "bob", "pay")
            ]))
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("100")

    def test_rollback_to_returns_unwound(self, usdc_ledger):
        start = usdc_ledger.next_sequence
        for i in range(3):
            usdc_ledger.execute(build_transaction(usdc_ledger, [
                Move(Decimal("10"), "USDC", "alice", "bob", f"pay{i}")
            ]))
        unwound = usdc_ledger.rollback_to(start + 1)
        assert [tx.sequence_number for tx in unwound] == [start + 2, start + 1]
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("10")


class TestSubscribers:

    def test_subscriber_sees_applied_transactions(self, usdc_ledger):
        seen = []
        usdc_ledger.subscribe(seen.append)
        usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "bob", "p")]))
        usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("5000"), "USDC", "alice", "bob", "q")]))
        assert len(seen) == 1
        assert seen[0].references == frozenset({"p"})

    def test_savepoint_delays_delivery_until_commit(self, usdc_ledger):
        seen = []
        usdc_ledger.subscribe(seen.append)
        with usdc_ledger.atomic():
            usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "bob", "p")]))
            with usdc_ledger.atomic():
                usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("2"), "USDC", "alice", "bob", "q")]))
            assert seen == []
        assert [tx.references for tx in seen] == [frozenset({"p"}), frozenset({"q"})]

    def test_rolled_back_transactions_never_delivered(self, usdc_ledger):
        seen = []
        usdc_ledger.subscribe(seen.append)
        with pytest.raises(RuntimeError):
            with usdc_ledger.atomic():
                usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "bob", "p")]))
                raise RuntimeError("abort")
        assert seen == []

    def test_inner_rollback_drops_only_inner_work(self, usdc_ledger):
        seen = []
        usdc_ledger.subscribe(seen.append)
        with usdc_ledger.atomic():
            usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "bob", "kept")]))
            with pytest.raises(RuntimeError):
                with usdc_ledger.atomic():
                    usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("2"), "USDC", "alice", "bob", "lost")]))
                    raise RuntimeError("abort")
        assert [tx.references for tx in seen] == [frozenset({"kept"})]
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("1")


class TestCloneAt:

    def test_clone_at_reconstructs_past(self, usdc_ledger):
        usdc_ledger.advance_time(T0 + timedelta(days=1))
        usdc_ledger.execute(build_transaction(usdc_ledger, [
            Move(Decimal("300"), "USDC", "alice", "bob", "pay")
        ], [StateChange("k", None, {'v': 1})]))
        past = usdc_ledger.clone_at(T0)
        assert past.get_balance("alice", "USDC") == Decimal("1000")
        assert past.get_record("k") is None
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("700")

    def test_time_cannot_go_backwards(self, usdc_ledger):
        with pytest.raises(ValueError, match="backwards"):
            usdc_ledger.advance_time(T0 - timedelta(seconds=1))

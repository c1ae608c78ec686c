"""
test_core_types.py - Unit tests for core data structures

Tests:
- Move validation
- StateChange field diffs
- Intent ids (determinism, request ids)
- Asset precision and rounding
"""

import pytest
from datetime import datetime
from decimal import Decimal

from bondledger import (
    Move, StateChange, TransactionOrigin, OriginType, PendingTransaction, Asset,
    build_transaction, with_request_id, token, to_decimal,
)
from tests.fake_view import FakeView


class TestMove:

    def test_valid_move(self):
        move = Move(Decimal("10"), "USDC", "alice", "bob", "pay")
        assert move.quantity == Decimal("10")
        assert "alice→bob" in repr(move)

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1"), Decimal("NaN"), Decimal("Infinity")])
    def test_rejects_non_positive_or_non_finite(self, quantity):
        with pytest.raises(ValueError):
            Move(quantity, "USDC", "alice", "bob", "pay")

    def test_rejects_float_quantity(self):
        with pytest.raises(ValueError, match="must be Decimal"):
            Move(10.0, "USDC", "alice", "bob", "pay")

    def test_rejects_self_transfer(self):
        with pytest.raises(ValueError, match="different"):
            Move(Decimal("1"), "USDC", "alice", "alice", "pay")

    def test_rejects_empty_reference(self):
        with pytest.raises(ValueError, match="reference"):
            Move(Decimal("1"), "USDC", "alice", "bob", " ")


class TestStateChange:

    def test_changed_fields(self):
        sc = StateChange("totals", {'owed': 1, 'claimed': 0}, {'owed': 1, 'claimed': 1})
        assert sc.changed_fields() == {'claimed': (0, 1)}

    def test_create_and_delete(self):
        created = StateChange("k", None, {'a': 1})
        deleted = StateChange("k", {'a': 1}, None)
        assert created.changed_fields() == {'a': (None, 1)}
        assert deleted.changed_fields() == {'a': (1, None)}


class TestIntentId:

    def test_same_content_same_intent(self):
        view = FakeView()
        moves = [Move(Decimal("1"), "USDC", "alice", "bob", "pay")]
        assert build_transaction(view, moves).intent_id == build_transaction(view, moves).intent_id

    def test_decimal_representation_does_not_matter(self):
        view = FakeView()
        a = build_transaction(view, [Move(Decimal("1.0"), "USDC", "alice", "bob", "pay")])
        b = build_transaction(view, [Move(Decimal("1.00"), "USDC", "alice", "bob", "pay")])
        assert a.intent_id == b.intent_id

    def test_request_id_distinguishes_identical_content(self):
        view = FakeView()
        pending = build_transaction(view, [Move(Decimal("1"), "USDC", "alice", "bob", "pay")])
        first = with_request_id(pending, "bond:1")
        second = with_request_id(pending, "bond:2")
        assert first.intent_id != second.intent_id
        assert first.intent_id != pending.intent_id
        assert first.origin.request_id == "bond:1"
        assert first.moves == pending.moves

    def test_state_change_content_is_hashed(self):
        view = FakeView()
        a = build_transaction(view, [], [StateChange("k", None, {'v': Decimal("1")})])
        b = build_transaction(view, [], [StateChange("k", None, {'v': Decimal("2")})])
        assert a.intent_id != b.intent_id

    def test_build_transaction_copies_snapshots(self):
        view = FakeView()
        state = {'v': 1}
        pending = build_transaction(view, [], [StateChange("k", None, state)])
        state['v'] = 2
        assert pending.state_changes[0].new_state == {'v': 1}

    def test_default_origin_is_engine(self):
        pending = build_transaction(FakeView(), [Move(Decimal("1"), "USDC", "a", "b", "r")])
        assert pending.origin == TransactionOrigin(OriginType.ENGINE, "engine")

    def test_empty(self):
        pending = PendingTransaction((), (), TransactionOrigin(OriginType.ENGINE, "x"), datetime(2025, 1, 1))
        assert pending.is_empty()


class TestAsset:

    def test_quantum(self):
        assert token("USDC", "USD Coin", decimals=6).quantum == Decimal("0.000001")

    def test_round_truncates(self):
        usdc = token("USDC", "USD Coin", decimals=6)
        assert usdc.round(Decimal("1.0000019")) == Decimal("1.000001")

    def test_invalid_decimals(self):
        with pytest.raises(ValueError):
            Asset("X", "X", decimals=-1)

    def test_to_decimal_avoids_float_artifacts(self):
        assert to_decimal(0.1) == Decimal("0.1")
        with pytest.raises(ValueError):
            to_decimal(True)

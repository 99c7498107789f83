"""
test_collection.py - Unit tests for Collection

Tests:
- add_item() name validation
- complete_sale() / revert_sale(): both ledgers change together
- Rollback when the fund step fails
- export_document() / import_document() and the current base name
- Observers (including failing observers) and snapshot()/restore()
- Entry rejection of text a workbook cell cannot hold
"""

import asyncio
import pytest
from decimal import Decimal

from hobby_ledger import (
    Collection, Stage, Item, SoldItem,
    ValidationError, DecodeError, EmptyDocumentError, ExclusivityViolation,
)

from tests.fakes import StepClock, strike_freedom, state_of, ids


class TestAddItem:
    @pytest.mark.parametrize("name", [None, "", "   ", 42])
    def test_name_required(self, collection, name):
        with pytest.raises(ValidationError, match="name"):
            collection.add_item({"name": name, "purchasePrice": 100})
        assert collection.items.is_empty()

    def test_missing_name_key(self, collection):
        with pytest.raises(ValidationError):
            collection.add_item({"purchasePrice": 100})

    def test_add(self, collection):
        kit = collection.add_item(strike_freedom())
        assert collection.find_by_id(kit.id) == kit
        assert collection.items.stage_of(kit.id) is Stage.HELD


class TestCompleteSale:
    """Listed -> Sold and the profit entry happen together."""

    def test_complete_sale(self, listed_kit):
        collection, kit = listed_kit
        sold, entry = collection.complete_sale(kit.id, 70000, "당근마켓")
        assert isinstance(sold, SoldItem)
        assert collection.items.sold == (sold,)
        assert entry.amount == Decimal("20000")
        assert collection.funds.balance == Decimal("20000")
        assert collection.funds.history == (entry,)

    def test_not_listed_is_noop(self, collection):
        kit = collection.add_item(strike_freedom())
        assert collection.complete_sale(kit.id, 70000, "x") is None
        assert collection.funds.history == ()
        assert collection.items.stage_of(kit.id) is Stage.HELD

    def test_second_call_is_noop(self, listed_kit):
        collection, kit = listed_kit
        collection.complete_sale(kit.id, 70000, "x")
        assert collection.complete_sale(kit.id, 70000, "x") is None
        assert len(collection.funds.history) == 1

    def test_invalid_price_changes_nothing(self, listed_kit):
        collection, kit = listed_kit
        with pytest.raises(ValidationError):
            collection.complete_sale(kit.id, "a lot", "x")
        assert collection.items.stage_of(kit.id) is Stage.LISTED
        assert collection.funds.history == ()

    def test_fund_failure_rolls_back_item(self, listed_kit, monkeypatch):
        collection, kit = listed_kit

        def fail(sold_item):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(collection.funds, "record_sale_profit", fail)
        with pytest.raises(RuntimeError):
            collection.complete_sale(kit.id, 70000, "x")
        assert collection.items.listed == (kit,)
        assert collection.items.sold == ()


class TestRevertSale:
    """Sold -> Listed and the opposite entry happen together."""

    def test_revert(self, listed_kit):
        collection, kit = listed_kit
        collection.complete_sale(kit.id, 70000, "x")
        relisted, entry = collection.revert_sale(kit.id)
        assert relisted == kit
        assert entry.amount == Decimal("-20000")
        assert collection.funds.balance == Decimal("0")
        assert len(collection.funds.history) == 2
        assert collection.items.listed == (kit,)

    def test_revert_uses_current_sale_details(self, listed_kit):
        """An edited sale price is what gets reversed."""
        collection, kit = listed_kit
        collection.complete_sale(kit.id, 70000, "x")
        collection.update_item(kit.id, {"salePrice": 65000})
        _, entry = collection.revert_sale(kit.id)
        assert entry.amount == Decimal("-15000")

    def test_not_sold_is_noop(self, listed_kit):
        collection, kit = listed_kit
        assert collection.revert_sale(kit.id) is None
        assert collection.funds.history == ()

    def test_fund_failure_rolls_back_item(self, listed_kit, monkeypatch):
        collection, kit = listed_kit
        sold, _ = collection.complete_sale(kit.id, 70000, "x")

        def fail(sold_item):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(collection.funds, "revert_sale_profit", fail)
        with pytest.raises(RuntimeError):
            collection.revert_sale(kit.id)
        assert collection.items.sold == (sold,)
        assert collection.items.listed == ()
        assert collection.funds.balance == Decimal("20000")


class TestAdjustFund:
    def test_adjust(self, collection):
        entry = collection.adjust_fund(5000, "deposit")
        assert collection.funds.history == (entry,)

    def test_invalid_adjust(self, collection):
        with pytest.raises(ValidationError):
            collection.adjust_fund("five", "deposit")


class TestDocuments:
    """Export and import through files."""

    def test_export_file_name(self, listed_kit, tmp_path):
        collection, _ = listed_kit
        path = collection.export_document(tmp_path, "my_gundams")
        assert path.parent == tmp_path
        assert path.name == "250723_163000_my_gundams.xlsx"
        assert path.exists()
        assert collection.current_base_name == "my_gundams"

    def test_export_reuses_current_base_name(self, listed_kit, tmp_path):
        collection, _ = listed_kit
        collection.export_document(tmp_path, "my_gundams")
        second = collection.export_document(tmp_path)
        assert second.name.endswith("_my_gundams.xlsx")

    def test_export_requires_base_name(self, listed_kit, tmp_path):
        collection, _ = listed_kit
        with pytest.raises(ValidationError):
            collection.export_document(tmp_path, "  ")

    def test_export_empty_state(self, collection, tmp_path):
        with pytest.raises(EmptyDocumentError):
            collection.export_document(tmp_path, "empty")
        assert list(tmp_path.iterdir()) == []
        assert collection.current_base_name is None

    def test_import_replaces_state(self, populated, tmp_path):
        path = populated.export_document(tmp_path, "my_gundams")
        target = Collection(clock=StepClock(), verbose=False)
        target.add_item({"name": "Will be replaced"})
        target.adjust_fund(1, "will be replaced")
        target.import_document(path)
        assert state_of(target) == state_of(populated)
        assert target.current_base_name == "my_gundams"

    def test_import_bumps_id_counter(self, populated, tmp_path):
        path = populated.export_document(tmp_path, "kits")
        target = Collection(verbose=False)
        target.import_document(path)
        new = target.add_item({"name": "New"})
        assert new.id not in ids(populated.items.held + populated.items.listed + populated.items.sold)

    def test_failed_import_changes_nothing(self, populated, tmp_path):
        bad = tmp_path / "250723_163000_broken.xlsx"
        bad.write_bytes(b"not a workbook")
        before = state_of(populated)
        with pytest.raises(DecodeError):
            populated.import_document(bad)
        assert state_of(populated) == before
        assert populated.current_base_name is None

    def test_import_missing_file(self, collection, tmp_path):
        with pytest.raises(DecodeError):
            collection.import_document(tmp_path / "absent.xlsx")

    def test_import_async(self, populated, tmp_path):
        path = populated.export_document(tmp_path, "async_kits")
        target = Collection(verbose=False)
        asyncio.run(target.import_document_async(path))
        assert state_of(target) == state_of(populated)
        assert target.current_base_name == "async_kits"

    def test_verbose_export_line(self, tmp_path, capsys):
        collection = Collection(clock=StepClock(), verbose=True)
        collection.add_item({"name": "Zaku"})
        collection.export_document(tmp_path, "kits")
        assert "EXPORTED: 250723_163000_kits.xlsx" in capsys.readouterr().out


class TestObservers:
    def test_events(self, collection):
        events = []
        collection.subscribe(lambda event, source: events.append(event))
        kit = collection.add_item({"name": "Zaku", "purchasePrice": 100})
        collection.move_to_listed(kit.id)
        collection.complete_sale(kit.id, 150, "x")
        collection.revert_sale(kit.id)
        collection.move_to_held(kit.id)
        collection.update_item(kit.id, {"details": "built"})
        collection.adjust_fund(10, "deposit")
        collection.delete_item(kit.id)
        assert events == [
            'add', 'move_to_listed', 'complete_sale', 'revert_sale',
            'move_to_held', 'update', 'adjust', 'delete',
        ]

    def test_noops_not_notified(self, collection):
        events = []
        collection.subscribe(lambda event, source: events.append(event))
        collection.delete_item(1)
        collection.revert_sale(1)
        assert events == []

    def test_unsubscribe(self, collection):
        events = []
        unsubscribe = collection.subscribe(lambda event, source: events.append(event))
        unsubscribe()
        unsubscribe()
        collection.add_item({"name": "Zaku"})
        assert events == []

    def test_failing_observer_does_not_fail_sale(self, listed_kit):
        collection, kit = listed_kit

        def disk_full(event, source):
            raise OSError("disk full")

        collection.subscribe(disk_full)
        sold, entry = collection.complete_sale(kit.id, 70000, "X")
        assert ids(collection.items.sold) == [kit.id]
        assert collection.funds.balance == Decimal("20000")
        assert entry.amount == Decimal("20000")
        assert [(event, str(exc)) for event, exc in collection.observer_errors] == [
            ('complete_sale', "disk full"),
        ]

    def test_failing_observer_does_not_skip_others(self, collection):
        events = []

        def broken(event, source):
            raise RuntimeError("boom")

        collection.subscribe(broken)
        collection.subscribe(lambda event, source: events.append(event))
        collection.adjust_fund(100, "deposit")
        collection.revert_sale(1)
        assert events == ['adjust']
        assert collection.funds.balance == Decimal("100")
        assert len(collection.observer_errors) == 1

    def test_failing_observer_reported_when_verbose(self, capsys):
        collection = Collection(clock=StepClock(), verbose=True)
        collection.subscribe(lambda event, source: 1 / 0)
        collection.adjust_fund(100, "deposit")
        assert "✗ OBSERVER FAILED (adjust)" in capsys.readouterr().out


class TestTextValidation:
    """Text a workbook cell cannot hold is refused at entry."""

    def test_control_character_in_details(self, collection):
        with pytest.raises(ValidationError, match="control characters"):
            collection.add_item({"name": "Zaku", "details": "box\x07damaged"})
        assert collection.items.is_empty()

    def test_control_character_in_reason(self, collection):
        with pytest.raises(ValidationError):
            collection.adjust_fund(1, "bad\x01")
        assert collection.funds.history == ()

    def test_control_character_in_sale_medium(self, listed_kit):
        collection, kit = listed_kit
        with pytest.raises(ValidationError):
            collection.complete_sale(kit.id, 70000, "X\x1b")
        assert collection.items.stage_of(kit.id) is Stage.LISTED
        assert collection.funds.balance == Decimal("0")

    @pytest.mark.parametrize("medium", ["", "   "])
    def test_blank_sale_medium(self, listed_kit, medium):
        collection, kit = listed_kit
        with pytest.raises(ValidationError, match="Sale medium"):
            collection.complete_sale(kit.id, 70000, medium)
        assert collection.items.stage_of(kit.id) is Stage.LISTED
        assert collection.funds.history == ()

    def test_accepted_text_exports(self, collection, tmp_path):
        collection.add_item({
            "name": "Zaku", "details": "box damaged\nmissing decals\tB",
            "purchaseLocation": "=Akihabara",
        })
        path = collection.export_document(tmp_path, "kits")
        restored = Collection(clock=StepClock(), verbose=False)
        restored.import_document(path)
        assert restored.items.held == collection.items.held


class TestSnapshots:
    def test_restore_round_trip(self, populated):
        snapshot = populated.snapshot()
        target = Collection(verbose=False)
        target.restore(snapshot)
        assert state_of(target) == state_of(populated)

    def test_restore_is_all_or_nothing(self, populated):
        before = state_of(populated)
        with pytest.raises(ValidationError):
            populated.restore({
                'items': {'held': [Item(id=1)], 'listed': [], 'sold': []},
                'funds': {'balance': "not money", 'history': []},
            })
        assert state_of(populated) == before

    def test_restore_duplicates_rejected(self, collection):
        with pytest.raises(ExclusivityViolation):
            collection.restore({'items': {'held': [Item(id=1)], 'listed': [Item(id=1)], 'sold': []}})

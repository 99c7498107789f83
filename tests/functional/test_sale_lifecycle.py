"""
test_sale_lifecycle.py - End-to-end collection scenario tests

Tests complete item lifecycles:
- Purchase, listing, sale and reversal of a single kit
- A season of trading with deposits, losses and deletions
- Save, restart and reload through a workbook and the session cache
- Filtering the lists a presentation layer shows
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal

from hobby_ledger import (
    Collection, SessionCache, Stage, SoldItem,
    filter_items, ALL_GRADES,
)

from tests.fakes import StepClock, strike_freedom, state_of, ids


class TestSingleKitLifecycle:
    """The Strike Freedom example, step by step."""

    def test_buy_list_sell_revert(self, collection):
        kit = collection.add_item({"name": "Strike Freedom", "grade": "MG", "purchasePrice": 50000})
        assert collection.funds.stock_value == Decimal("50000")
        assert collection.funds.total_assets == Decimal("50000")

        collection.move_to_listed(kit.id)
        assert collection.items.stage_of(kit.id) is Stage.LISTED

        collection.complete_sale(kit.id, sale_price=70000, sale_medium="당근마켓")
        assert collection.funds.balance == Decimal("20000")
        assert len(collection.funds.history) == 1
        assert collection.funds.history[0].amount == Decimal("20000")
        assert collection.funds.realized_profit == Decimal("20000")
        assert collection.funds.stock_value == Decimal("0")
        assert collection.funds.total_assets == Decimal("20000")

        collection.revert_sale(kit.id)
        assert collection.funds.balance == Decimal("0")
        assert len(collection.funds.history) == 2
        assert collection.items.stage_of(kit.id) is Stage.LISTED
        relisted = collection.find_by_id(kit.id)
        assert not isinstance(relisted, SoldItem)
        assert relisted == kit
        assert collection.funds.stock_value == Decimal("50000")

    def test_change_of_mind_before_sale(self, collection):
        kit = collection.add_item(strike_freedom())
        collection.move_to_listed(kit.id)
        collection.move_to_held(kit.id)
        assert collection.items.held == (kit,)
        assert collection.funds.estimated_sale_value == Decimal("0")
        assert collection.funds.history == ()

    def test_delete_on_empty_collection(self, collection):
        assert collection.delete_item(1) is None
        assert collection.items.is_empty()
        assert collection.funds.history == ()


class TestTradingSeason:
    """Several kits bought and sold, with manual fund adjustments."""

    def test_season(self, collection):
        collection.adjust_fund(100000, "birthday money")
        kits = [
            collection.add_item({"name": "Nu Gundam", "grade": "RG", "purchasePrice": 35000}),
            collection.add_item({"name": "Sazabi", "grade": "MG", "purchasePrice": 60000}),
            collection.add_item({"name": "Zaku II", "grade": "HG", "purchasePrice": 15000}),
            collection.add_item({"name": "Barbatos", "grade": "MG", "purchasePrice": 45000}),
        ]
        for kit in kits[1:]:
            collection.move_to_listed(kit.id)

        collection.complete_sale(kits[1].id, 90000, "중고나라")       # +30000
        collection.update_item(kits[1].id, {"shippingCost": 4000})
        collection.complete_sale(kits[2].id, 10000, "기타")           # -5000
        collection.adjust_fund(-20000, "paint and tools")
        collection.delete_item(kits[3].id)

        funds = collection.funds
        assert funds.balance == Decimal("105000")
        assert [e.amount for e in funds.history] == [
            Decimal("-20000"), Decimal("-5000"), Decimal("30000"), Decimal("100000"),
        ]
        # Realized profit reflects the later shipping edit; the fund entry does not.
        assert funds.realized_profit == Decimal("21000")
        assert funds.stock_value == Decimal("35000")
        assert funds.total_assets == Decimal("140000")
        assert funds.verify_balance()['valid']

        # Reverting after the edit debits the profit as it stands now.
        collection.revert_sale(kits[1].id)
        assert funds.balance == Decimal("79000")
        assert ids(collection.items.listed) == [kits[1].id]


class TestSaveAndReload:
    """State survives export/import and a session restart."""

    def test_export_import_cycle(self, populated, tmp_path):
        path = populated.export_document(tmp_path, "my_gundams")
        assert path.name.endswith("_my_gundams.xlsx")

        later = Collection(clock=StepClock(datetime(2025, 8, 1, 9, 0)), verbose=False)
        later.import_document(path)
        assert state_of(later) == state_of(populated)

        kit = later.items.listed[0]
        later.complete_sale(kit.id, 85000, "당근마켓")
        second = later.export_document(tmp_path)
        assert second.name == "250801_090001_my_gundams.xlsx"

    def test_async_import(self, populated, tmp_path):
        path = populated.export_document(tmp_path, "kits")

        async def reload():
            target = Collection(verbose=False)
            await target.import_document_async(path)
            return target

        target = asyncio.run(reload())
        assert state_of(target) == state_of(populated)

    def test_session_restart(self, tmp_path):
        path = tmp_path / "session.json"
        first = Collection(clock=StepClock(), verbose=False)
        cache = SessionCache(first, path)
        cache.attach()
        kit = first.add_item(strike_freedom())
        first.move_to_listed(kit.id)
        first.complete_sale(kit.id, 70000, "기타")

        second = Collection(verbose=False)
        assert SessionCache(second, path).load()
        assert state_of(second) == state_of(first)
        assert second.funds.balance == Decimal("20000")
        second.revert_sale(kit.id)
        assert second.funds.balance == Decimal("0")


class TestFilteredViews:
    def test_filter_each_stage(self, populated):
        assert [i.name for i in filter_items(populated.items.held, grade="RG")] == ["Nu Gundam"]
        assert filter_items(populated.items.listed, search_term="freedom", grade=ALL_GRADES)
        assert [i.name for i in filter_items(populated.items.sold, search_term="중고")] == ["Sazabi"]
        assert filter_items(populated.items.held, grade="MG") == ()

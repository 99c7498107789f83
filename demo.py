#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Hobby Ledger Step by Step

A walk through the life of a collection. Each step builds on the previous
one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Items      - Adding kits, listing them, changing your mind
  4-6:  The Fund   - Selling, reverting a sale, manual adjustments
  7-8:  Views      - Derived totals, search and grade filters
  9-10: Documents  - Saving to .xlsx and loading it back

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
import sys
import tempfile

from hobby_ledger import (
    Collection, Item,
    ValidationError, EmptyDocumentError,
    filter_items, ALL_GRADES, SALE_MEDIUM_OPTIONS,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 7, 23, 16, 30, 0)

    # The kit followed through the tutorial
    kit_purchase_price: Decimal = Decimal("50000")
    kit_desired_price: Decimal = Decimal("80000")
    kit_sale_price: Decimal = Decimal("70000")

    # Fund
    opening_deposit: Decimal = Decimal("100000")
    tools_expense: Decimal = Decimal("-15000")

    base_name: str = "my_gundams"


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


class DemoClock:
    """Advances one minute per reading so every entry has its own timestamp."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_item(item: Item):
    price = item.purchase_price if item.purchase_price is not None else "-"
    print(f"    #{item.id:<3} {item.name:<18} [{item.grade:<6}] bought {price}")


def show_collections(collection: Collection):
    for label, records in (
        ("Held", collection.items.held),
        ("Listed", collection.items.listed),
        ("Sold", collection.items.sold),
    ):
        print(f"  {label} ({len(records)}):")
        for item in records:
            show_item(item)


def show_fund(collection: Collection):
    summary = collection.funds.summary()
    print(f"  Balance:              {summary['balance']:>12}")
    print(f"  Stock value:          {summary['stock_value']:>12}")
    print(f"  Realized profit:      {summary['realized_profit']:>12}")
    print(f"  Estimated sale value: {summary['estimated_sale_value']:>12}")
    print(f"  Total assets:         {summary['total_assets']:>12}")


# ============================================================================
# PHASE 1: ITEMS (Steps 1-3)
# ============================================================================

def step_01_add_items():
    """Create a collection and add a few kits."""
    step_header(1, "Adding Kits",
        "Every new item starts in Held and gets a unique id.")

    collection = Collection(clock=DemoClock(CONFIG.start_time), verbose=True)
    kit = collection.add_item({
        "name": "Strike Freedom", "grade": "MG",
        "purchasePrice": CONFIG.kit_purchase_price,
        "desiredSalePrice": CONFIG.kit_desired_price,
        "purchaseLocation": "Hobby shop",
        "imageUrls": ["https://img.example/strike-freedom.jpg"],
    })
    collection.add_item({"name": "Nu Gundam", "grade": "RG", "purchasePrice": 35000})
    collection.add_item({"name": "Zaku II", "grade": "HG", "purchasePrice": 15000})

    section_header("A kit without a name is rejected")
    try:
        collection.add_item({"grade": "PG", "purchasePrice": 250000})
    except ValidationError as exc:
        print(f"  ValidationError: {exc}")

    section_header("Collections")
    show_collections(collection)
    return collection, kit


def step_02_list_for_sale(collection: Collection, kit: Item):
    step_header(2, "Listing for Sale",
        "Listing moves an item from Held to Listed; nothing else changes.")
    collection.move_to_listed(kit.id)
    zaku = collection.items.held[-1]
    collection.move_to_listed(zaku.id)
    show_collections(collection)
    return collection


def step_03_change_of_mind(collection: Collection):
    step_header(3, "Changing Your Mind",
        "Listed items can go back to Held. Repeating a move is a no-op.")
    zaku = collection.items.listed[-1]
    collection.move_to_held(zaku.id)
    again = collection.move_to_held(zaku.id)
    print(f"\n  Second move_to_held returned: {again}")
    show_collections(collection)
    return collection


# ============================================================================
# PHASE 2: THE FUND (Steps 4-6)
# ============================================================================

def step_04_sell(collection: Collection, kit: Item):
    step_header(4, "Completing a Sale",
        "A sale moves the item to Sold and credits its net profit to the fund.")
    print(f"  Selling for {CONFIG.kit_sale_price} on {SALE_MEDIUM_OPTIONS[0]}...\n")
    sold, entry = collection.complete_sale(kit.id, CONFIG.kit_sale_price, SALE_MEDIUM_OPTIONS[0])
    print(f"\n  Entry: {entry}")
    show_fund(collection)
    return collection


def step_05_revert(collection: Collection, kit: Item):
    step_header(5, "Reverting a Sale",
        "Reverting puts the item back in Listed and debits exactly what was credited.")
    relisted, entry = collection.revert_sale(kit.id)
    print(f"\n  Entry: {entry}")
    print(f"  Relisted item unchanged: {relisted == kit}")
    show_fund(collection)

    section_header("History keeps both entries (most recent first)")
    for e in collection.funds.history:
        print(f"  {e.timestamp:%H:%M}  {e.amount:>+10}  {e.reason}")

    section_header("Selling again, for real this time")
    collection.complete_sale(kit.id, CONFIG.kit_sale_price, SALE_MEDIUM_OPTIONS[1])
    return collection


def step_06_adjustments(collection: Collection):
    step_header(6, "Manual Adjustments",
        "Deposits and withdrawals are recorded with a reason, like every other change.")
    collection.adjust_fund(CONFIG.opening_deposit, "birthday money")
    collection.adjust_fund(CONFIG.tools_expense, "nippers and paint")

    section_header("An adjustment without a reason is rejected")
    try:
        collection.adjust_fund(1000, "")
    except ValidationError as exc:
        print(f"  ValidationError: {exc}")

    check = collection.funds.verify_balance()
    print(f"\n  Balance equals history total: {check['valid']} ({check['history_total']})")
    return collection


# ============================================================================
# PHASE 3: VIEWS (Steps 7-8)
# ============================================================================

def step_07_totals(collection: Collection):
    step_header(7, "Derived Totals",
        "Stock value, realized profit and total assets are computed on every read.")
    show_fund(collection)
    return collection


def step_08_filters(collection: Collection):
    step_header(8, "Search and Grade Filters",
        "Filtered lists are built from the collections without changing them.")
    for term, grade in (("gundam", ALL_GRADES), (None, "HG"), ("freedom", "MG")):
        everything = (*collection.items.held, *collection.items.listed, *collection.items.sold)
        found = filter_items(everything, search_term=term, grade=grade)
        print(f"  search={term!r:<10} grade={grade:<4} -> {[i.name for i in found]}")
    return collection


# ============================================================================
# PHASE 4: DOCUMENTS (Steps 9-10)
# ============================================================================

def step_09_export(collection: Collection, directory: Path) -> Path:
    step_header(9, "Saving to a Workbook",
        "The whole state goes into one .xlsx file with five sheets.")
    path = collection.export_document(directory, CONFIG.base_name)
    print(f"\n  Wrote {path.name} ({path.stat().st_size} bytes)")

    section_header("An empty collection cannot be saved")
    try:
        Collection(verbose=False).export_document(directory, "empty")
    except EmptyDocumentError as exc:
        print(f"  EmptyDocumentError: {exc}")
    return path


def step_10_import(original: Collection, path: Path):
    step_header(10, "Loading It Back",
        "Import replaces everything and remembers the base file name.")
    restored = Collection(clock=DemoClock(CONFIG.start_time + timedelta(days=1)), verbose=True)
    restored.import_document(path)
    print(f"\n  Base name: {restored.current_base_name}")
    same = (
        restored.items.snapshot() == original.items.snapshot()
        and restored.funds.history == original.funds.history
        and restored.funds.balance == original.funds.balance
    )
    print(f"  Identical to the saved state: {same}")
    show_fund(restored)


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       HOBBY LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("""
    Press Enter to advance through each step.

    PHASES:
      1-3:  Items      - Adding, listing, changing your mind
      4-6:  The Fund   - Sales, reversals, adjustments
      7-8:  Views      - Totals and filters
      9-10: Documents  - .xlsx export and import
    """)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    collection, kit = step_01_add_items()
    wait_for_enter()

    collection = step_02_list_for_sale(collection, kit)
    wait_for_enter()

    collection = step_03_change_of_mind(collection)
    wait_for_enter()

    collection = step_04_sell(collection, kit)
    wait_for_enter()

    collection = step_05_revert(collection, kit)
    wait_for_enter()

    collection = step_06_adjustments(collection)
    wait_for_enter()

    collection = step_07_totals(collection)
    wait_for_enter()

    collection = step_08_filters(collection)
    wait_for_enter()

    with tempfile.TemporaryDirectory() as directory:
        path = step_09_export(collection, Path(directory))
        wait_for_enter()
        step_10_import(collection, path)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See hobby_ledger/collection.py for the composite operations
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()

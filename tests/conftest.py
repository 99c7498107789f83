"""
conftest.py - Shared pytest fixtures for hobby ledger tests

Provides common fixtures used across unit and functional tests:
- A deterministic clock so entry timestamps and file names are predictable
- Empty ledgers and collections
- Collections with a listed kit, or with one item in every stage
"""

import pytest

from hobby_ledger import Collection, ItemLedger, FundLedger

from tests.fakes import StepClock, strike_freedom


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Step clock starting 2025-07-23 16:30:00, one second per call."""
    return StepClock()


@pytest.fixture
def item_ledger():
    """Empty item ledger."""
    return ItemLedger(verbose=False)


@pytest.fixture
def fund_ledger(item_ledger, clock):
    """Fund ledger reading from item_ledger."""
    return FundLedger(item_ledger, clock=clock, verbose=False)


@pytest.fixture
def collection(clock):
    """Empty collection with a deterministic clock."""
    return Collection(clock=clock, verbose=False)


# =============================================================================
# POPULATED FIXTURES
# =============================================================================

@pytest.fixture
def listed_kit(collection):
    """Collection holding one listed Strike Freedom (purchase 50000)."""
    kit = collection.add_item(strike_freedom())
    collection.move_to_listed(kit.id)
    return collection, kit


@pytest.fixture
def populated(collection):
    """
    Collection with one item in each stage and a manual deposit.

    Held:   Nu Gundam (RG, 35000)
    Listed: Strike Freedom (MG, 50000, asking 80000)
    Sold:   Sazabi (MG, 60000 -> 90000, shipping 4000, fees 1000)
    Fund:   +10000 deposit, +25000 sale profit
    """
    collection.adjust_fund(10000, "initial deposit")
    collection.add_item({"name": "Nu Gundam", "grade": "RG", "purchasePrice": 35000})
    listed = collection.add_item(strike_freedom())
    collection.move_to_listed(listed.id)
    sazabi = collection.add_item({
        "name": "Sazabi", "grade": "MG", "purchasePrice": 60000,
        "shippingCost": 4000, "otherFees": 1000,
    })
    collection.move_to_listed(sazabi.id)
    collection.complete_sale(sazabi.id, 90000, "중고나라")
    return collection

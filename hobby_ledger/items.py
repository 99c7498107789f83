"""
items.py - The Item Ledger

ItemLedger owns the three disjoint item collections (Held, Listed, Sold) and
the pure operations that add, move, update and remove records. It knows
nothing about money; see funds.py for the Fund Ledger and collection.py for
the composite sale/reversal operations.

Membership invariant (checked after every mutation):
    Every known id lives in exactly one collection, exactly once.

Idempotence contract:
    Every id-based mutator (move_to_listed, move_to_held, sell, revert,
    update, delete) is a no-op when the id is not where the operation expects
    it. Such calls return None instead of raising, so a UI callback can fire
    twice without harm. A non-None return value means the operation applied.
"""

from __future__ import annotations
from collections import Counter
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .core import (
    Item, SoldItem,
    UNSPECIFIED_GRADE, SALE_FIELDS,
    ValidationError, ExclusivityViolation,
    normalize_keys,
)


class Stage(Enum):
    """The collection an item currently belongs to."""
    HELD = "held"
    LISTED = "listed"
    SOLD = "sold"


# Fields accepted by add(); anything else in the input mapping is ignored.
_ADDABLE_FIELDS = (
    'grade', 'name', 'quantity', 'purchase_price', 'desired_sale_price',
    'purchase_location', 'details', 'image_urls', 'shipping_cost', 'other_fees',
)


class ItemLedger:
    """
    Holds the Held, Listed and Sold collections.

    Implements the ItemsView protocol through the held, listed and sold
    properties, which return immutable tuples. Records themselves are frozen
    dataclasses, so nothing outside this class can change an item in place.

    Thread Safety:
        Not thread-safe on its own. Collection serializes composite operations.

    Example:
        items = ItemLedger(verbose=False)
        kit = items.add({"name": "Strike Freedom", "grade": "MG", "purchasePrice": 50000})
        items.move_to_listed(kit.id)
        sold = items.sell(kit.id, sale_price=70000, sale_medium="X")
    """

    def __init__(self, verbose: bool = False, first_id: int = 1):
        """
        Create an empty item ledger.

        Args:
            verbose: Print a line for each applied transition (default: False)
            first_id: Id assigned to the first added item (default: 1)
        """
        self.verbose = verbose
        self._lists: Dict[Stage, List[Item]] = {stage: [] for stage in Stage}
        self._next_id = first_id

    # ========================================================================
    # ItemsView PROTOCOL IMPLEMENTATION (read-only)
    # ========================================================================

    @property
    def held(self) -> Tuple[Item, ...]:
        return tuple(self._lists[Stage.HELD])

    @property
    def listed(self) -> Tuple[Item, ...]:
        return tuple(self._lists[Stage.LISTED])

    @property
    def sold(self) -> Tuple[SoldItem, ...]:
        return tuple(self._lists[Stage.SOLD])

    def items_in(self, stage: Stage) -> Tuple[Item, ...]:
        """Return the records of one collection."""
        return tuple(self._lists[stage])

    def find_by_id(self, item_id: int) -> Optional[Item]:
        """
        Look an item up across all three collections.

        Returns:
            The record (Item or SoldItem), or None if no collection holds the id.
        """
        located = self._locate(item_id)
        if located is None:
            return None
        stage, index = located
        return self._lists[stage][index]

    def stage_of(self, item_id: int) -> Optional[Stage]:
        """Return the collection holding item_id, or None."""
        located = self._locate(item_id)
        return located[0] if located else None

    def is_empty(self) -> bool:
        return not any(self._lists.values())

    def __len__(self) -> int:
        return sum(len(records) for records in self._lists.values())

    def __contains__(self, item_id: object) -> bool:
        return self._locate(item_id) is not None

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def add(self, data: Mapping[str, Any]) -> Item:
        """
        Create a new item in Held.

        Keys may be attribute names (purchase_price) or document column
        names (purchasePrice). Missing fields take their defaults: grade
        UNSPECIFIED_GRADE, quantity 1, monetary fields None, no images.
        The name is stored as given, even when absent; an empty name
        becomes None.

        Args:
            data: Field values for the new item. An "id" key is ignored.

        Returns:
            The created Item, with its assigned id.

        Raises:
            ValidationError: If a field value cannot be stored (e.g. a
                negative purchase price or non-numeric quantity).
        """
        values = normalize_keys(data)
        kwargs = {key: values[key] for key in _ADDABLE_FIELDS if key in values}
        if not kwargs.get('grade'):
            kwargs['grade'] = UNSPECIFIED_GRADE
        if kwargs.get('quantity') is None:
            kwargs['quantity'] = 1
        if kwargs.get('image_urls') is None:
            kwargs['image_urls'] = ()
        for key in ('purchase_location', 'details'):
            if kwargs.get(key) is None:
                kwargs[key] = ""

        try:
            item = Item(id=self._next_id, **kwargs)
        except (ValueError, TypeError) as exc:
            raise ValidationError(str(exc)) from exc

        self._next_id += 1
        self._lists[Stage.HELD].append(item)
        self._check_invariant()
        self._trace("+", "ADDED", item)
        return item

    def move_to_listed(self, item_id: int) -> Optional[Item]:
        """Move an item from Held to Listed. No-op if it is not in Held."""
        return self._move(item_id, Stage.HELD, Stage.LISTED)

    def move_to_held(self, item_id: int) -> Optional[Item]:
        """Move an item from Listed back to Held. No-op if it is not in Listed."""
        return self._move(item_id, Stage.LISTED, Stage.HELD)

    def sell(self, item_id: int, sale_price: Any, sale_medium: str) -> Optional[SoldItem]:
        """
        Move an item from Listed to Sold, attaching the sale details.

        Does not touch any fund ledger; Collection.complete_sale() pairs this
        with the profit entry.

        Returns:
            The new SoldItem, or None if the id is not in Listed.

        Raises:
            ValidationError: If sale_price is not numeric or sale_medium is
                missing or blank. Nothing is moved in that case.
        """
        index = self._index_in(Stage.LISTED, item_id)
        if index is None:
            return None
        _require_sale_medium(sale_medium)
        try:
            sold = self._lists[Stage.LISTED][index].with_sale(sale_price, sale_medium)
        except (ValueError, TypeError) as exc:
            raise ValidationError(str(exc)) from exc

        del self._lists[Stage.LISTED][index]
        self._lists[Stage.SOLD].append(sold)
        self._check_invariant()
        self._trace("✓", "SOLD", sold)
        return sold

    def revert(self, item_id: int) -> Optional[SoldItem]:
        """
        Undo a sale: move the item from Sold back to Listed.

        Only sale_price and sale_medium are stripped; every other field is
        returned unchanged.

        Returns:
            The SoldItem that was removed (with its sale details, so the
            caller can reverse its profit), or None if the id is not in Sold.
        """
        index = self._index_in(Stage.SOLD, item_id)
        if index is None:
            return None
        sold = self._lists[Stage.SOLD].pop(index)
        self._lists[Stage.LISTED].append(sold.without_sale())
        self._check_invariant()
        self._trace("↺", "REVERTED", sold)
        return sold

    def update(self, item_id: int, updates: Mapping[str, Any]) -> Optional[Item]:
        """
        Merge field values into an item wherever it lives.

        The record keeps its position in its collection. The id cannot be
        changed, and sale fields can only be set on Sold records.

        Returns:
            The updated record, or None if the id is unknown.

        Raises:
            ValidationError: On unknown fields, an id change, sale fields on
                an unsold item, or values the record rejects.
        """
        located = self._locate(item_id)
        if located is None:
            return None
        stage, index = located
        record = self._lists[stage][index]

        changes = normalize_keys(updates)
        if changes.get('id', item_id) != item_id:
            raise ValidationError(f"Item id {item_id} cannot be changed")
        changes.pop('id', None)
        allowed = set(_ADDABLE_FIELDS)
        if stage is Stage.SOLD:
            allowed |= SALE_FIELDS
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError(f"Cannot update fields {unknown} on a {stage.value} item")
        if 'sale_medium' in changes:
            _require_sale_medium(changes['sale_medium'])

        try:
            updated = record.merged(changes)
        except (ValueError, TypeError) as exc:
            raise ValidationError(str(exc)) from exc

        self._lists[stage][index] = updated
        self._check_invariant()
        return updated

    def delete(self, item_id: int) -> Optional[Item]:
        """
        Remove an item from whichever collection holds it.

        Returns:
            The removed record, or None if the id is unknown.
        """
        located = self._locate(item_id)
        if located is None:
            return None
        stage, index = located
        removed = self._lists[stage].pop(index)
        self._check_invariant()
        self._trace("-", "DELETED", removed)
        return removed

    # ========================================================================
    # BULK STATE
    # ========================================================================

    def snapshot(self) -> Dict[str, List[Item]]:
        """Return the three collections as lists keyed by stage value."""
        return {stage.value: list(records) for stage, records in self._lists.items()}

    def restore(
        self,
        held: List[Item],
        listed: List[Item],
        sold: List[SoldItem],
    ) -> None:
        """
        Replace all three collections at once.

        The id counter is moved past every restored id so new items never
        reuse one.

        Raises:
            ExclusivityViolation: If an id appears more than once across the
                given lists. The ledger is left unchanged.
            ValidationError: If sold contains a record without sale details
                or held/listed contain SoldItems.
        """
        if any(isinstance(item, SoldItem) for item in (*held, *listed)):
            raise ValidationError("Held and Listed records cannot carry sale details")
        if not all(isinstance(item, SoldItem) for item in sold):
            raise ValidationError("Sold records must carry sale details")
        new_lists = {
            Stage.HELD: list(held),
            Stage.LISTED: list(listed),
            Stage.SOLD: list(sold),
        }
        duplicates = _duplicate_ids(new_lists)
        if duplicates:
            raise ExclusivityViolation(f"Ids present more than once: {duplicates}")

        self._lists = new_lists
        all_ids = [item.id for records in new_lists.values() for item in records]
        if all_ids:
            self._next_id = max(self._next_id, max(all_ids) + 1)

    def verify_exclusive(self) -> Dict[str, Any]:
        """
        Check that every id lives in exactly one collection, exactly once.

        Returns:
            Dict with keys:
            - 'valid': bool
            - 'duplicates': sorted list of ids seen more than once
        """
        duplicates = _duplicate_ids(self._lists)
        return {'valid': not duplicates, 'duplicates': duplicates}

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _move(self, item_id: int, source: Stage, dest: Stage) -> Optional[Item]:
        index = self._index_in(source, item_id)
        if index is None:
            return None
        item = self._lists[source].pop(index)
        self._lists[dest].append(item)
        self._check_invariant()
        self._trace("→", f"{source.value.upper()} → {dest.value.upper()}", item)
        return item

    def _index_in(self, stage: Stage, item_id: object) -> Optional[int]:
        for index, item in enumerate(self._lists[stage]):
            if item.id == item_id:
                return index
        return None

    def _locate(self, item_id: object) -> Optional[Tuple[Stage, int]]:
        for stage in Stage:
            index = self._index_in(stage, item_id)
            if index is not None:
                return stage, index
        return None

    def _check_invariant(self) -> None:
        duplicates = _duplicate_ids(self._lists)
        if duplicates:
            raise ExclusivityViolation(f"Ids present more than once: {duplicates}")

    def _trace(self, icon: str, action: str, item: Item) -> None:
        if self.verbose:
            print(f"{icon} {action}: #{item.id} {item.name} [{item.grade}]")


def _require_sale_medium(sale_medium: Any) -> None:
    if not isinstance(sale_medium, str) or not sale_medium.strip():
        raise ValidationError("Sale medium is required")


def _duplicate_ids(lists: Mapping[Stage, List[Item]]) -> List[int]:
    counts = Counter(item.id for records in lists.values() for item in records)
    return sorted(item_id for item_id, count in counts.items() if count > 1)

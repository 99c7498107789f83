"""
collection.py - Item and Fund Ledgers working together

Collection is the entry point a presentation layer talks to. It owns one
ItemLedger and one FundLedger (wired by dependency injection) and adds the
operations that must touch both:

    complete_sale(id, sale_price, sale_medium)
        Listed -> Sold, then credit the net profit
    revert_sale(id)
        Sold -> Listed, then debit the same net profit

Each composite runs under a single lock, so no other mutation can land
between the item step and the fund step. Documents are imported under the
same lock and replace both ledgers in one step.

Observers registered with subscribe() are called after every applied
mutation; the session cache uses this to persist snapshots. An observer
that raises does not fail the mutation: the error is kept in
observer_errors (event, exception) and reported when verbose.
"""

from __future__ import annotations
from datetime import datetime
from pathlib import Path
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .core import (
    Item, SoldItem, LedgerEntry,
    ValidationError,
)
from .items import ItemLedger, Stage
from .funds import FundLedger
from . import codec


# Observer signature: (event name, collection) -> None
Observer = Callable[[str, "Collection"], None]


class Collection:
    """
    A hobbyist's whole state: items in three stages plus the hobby fund.

    Example:
        collection = Collection(verbose=False)
        kit = collection.add_item({"name": "Strike Freedom", "purchasePrice": 50000})
        collection.move_to_listed(kit.id)
        collection.complete_sale(kit.id, sale_price=70000, sale_medium="X")
        collection.funds.balance          # Decimal('20000')
        collection.revert_sale(kit.id)
        collection.funds.balance          # Decimal('0')
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        verbose: bool = True,
    ):
        """
        Create an empty collection.

        Args:
            clock: Timestamp source for fund entries and export file names
                (default: datetime.now)
            verbose: Print a line for each applied transition (default: True)
        """
        self.clock = clock or datetime.now
        self.verbose = verbose
        self.items = ItemLedger(verbose=verbose)
        self.funds = FundLedger(self.items, clock=self.clock, verbose=verbose)
        self.current_base_name: Optional[str] = None
        self._lock = threading.RLock()
        self._observers: List[Observer] = []
        self.observer_errors: List[Tuple[str, Exception]] = []

    # ========================================================================
    # OBSERVERS
    # ========================================================================

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a callback run after every applied mutation.

        Returns:
            A function that unregisters the callback.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, event: str) -> None:
        # The mutation is already committed; a failing observer cannot undo it.
        for observer in list(self._observers):
            try:
                observer(event, self)
            except Exception as exc:
                self.observer_errors.append((event, exc))
                if self.verbose:
                    print(f"✗ OBSERVER FAILED ({event}): {exc!r}")

    def _applied(self, event: str, result):
        if result is not None:
            self._notify(event)
        return result

    # ========================================================================
    # ITEM OPERATIONS
    # ========================================================================

    def add_item(self, data: Mapping[str, Any]) -> Item:
        """
        Validate and add a new item to Held.

        Raises:
            ValidationError: If the name is missing or blank.
        """
        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Item name is required")
        with self._lock:
            return self._applied('add', self.items.add(data))

    def move_to_listed(self, item_id: int) -> Optional[Item]:
        with self._lock:
            return self._applied('move_to_listed', self.items.move_to_listed(item_id))

    def move_to_held(self, item_id: int) -> Optional[Item]:
        with self._lock:
            return self._applied('move_to_held', self.items.move_to_held(item_id))

    def update_item(self, item_id: int, updates: Mapping[str, Any]) -> Optional[Item]:
        with self._lock:
            return self._applied('update', self.items.update(item_id, updates))

    def delete_item(self, item_id: int) -> Optional[Item]:
        with self._lock:
            return self._applied('delete', self.items.delete(item_id))

    def find_by_id(self, item_id: int) -> Optional[Item]:
        return self.items.find_by_id(item_id)

    # ========================================================================
    # COMPOSITE OPERATIONS
    # ========================================================================

    def complete_sale(
        self,
        item_id: int,
        sale_price: Any,
        sale_medium: str,
    ) -> Optional[Tuple[SoldItem, LedgerEntry]]:
        """
        Finalize the sale of a listed item and credit its net profit.

        Both steps apply or neither does: if the profit entry cannot be
        recorded the item is put back in Listed.

        Returns:
            (sold item, ledger entry), or None if the id is not in Listed.

        Raises:
            ValidationError: If the sale details are invalid.
        """
        with self._lock:
            saved = self.items.snapshot()
            sold = self.items.sell(item_id, sale_price, sale_medium)
            if sold is None:
                return None
            try:
                entry = self.funds.record_sale_profit(sold)
            except Exception:
                self._restore_items(saved)
                raise
            self._notify('complete_sale')
            return sold, entry

    def revert_sale(self, item_id: int) -> Optional[Tuple[Item, LedgerEntry]]:
        """
        Undo a finalized sale: back to Listed, and debit the profit it made.

        Returns:
            (relisted item, ledger entry), or None if the id is not in Sold.
        """
        with self._lock:
            saved = self.items.snapshot()
            sold = self.items.revert(item_id)
            if sold is None:
                return None
            try:
                entry = self.funds.revert_sale_profit(sold)
            except Exception:
                self._restore_items(saved)
                raise
            self._notify('revert_sale')
            return self.items.find_by_id(item_id), entry

    def _restore_items(self, saved: Mapping[str, List[Item]]) -> None:
        self.items.restore(
            saved[Stage.HELD.value],
            saved[Stage.LISTED.value],
            saved[Stage.SOLD.value],
        )

    def adjust_fund(self, amount: Any, reason: str) -> LedgerEntry:
        """Manual deposit or withdrawal. See FundLedger.adjust()."""
        with self._lock:
            entry = self.funds.adjust(amount, reason)
            self._notify('adjust')
            return entry

    # ========================================================================
    # DOCUMENTS
    # ========================================================================

    def export_document(
        self,
        directory: Union[str, Path],
        base_name: Optional[str] = None,
    ) -> Path:
        """
        Write the whole state to a timestamped workbook in directory.

        Args:
            directory: Where to write the file
            base_name: Base file name; defaults to current_base_name

        Returns:
            Path of the written file, named "<YYMMDD_HHMMSS>_<base>.xlsx"

        Raises:
            ValidationError: If no base name is given and none is current.
            EmptyDocumentError: If there are no items at all.
        """
        base = (base_name or self.current_base_name or "").strip()
        if not base:
            raise ValidationError("A base file name is required")
        with self._lock:
            path = Path(directory) / codec.build_filename(base, self.clock())
            path.write_bytes(codec.encode(self.items, self.funds))
            self.current_base_name = base
            self._notify('export')
        if self.verbose:
            print(f"✓ EXPORTED: {path.name}")
        return path

    def import_bytes(self, data: bytes, filename: str) -> codec.Document:
        """
        Replace the whole state with a decoded workbook.

        Raises:
            DecodeError: If the workbook cannot be decoded. Nothing changes.
        """
        document = codec.decode(data)
        with self._lock:
            document.apply_to(self.items, self.funds)
            self.current_base_name = codec.base_name_from_filename(filename)
            self._notify('import')
        if self.verbose:
            print(f"✓ IMPORTED: {Path(filename).name}")
        return document

    def import_document(self, path: Union[str, Path]) -> codec.Document:
        """Read a workbook file and replace the whole state with it."""
        path = Path(path)
        return self.import_bytes(codec.read_document_bytes(path), path.name)

    async def import_document_async(self, path: Union[str, Path]) -> codec.Document:
        """
        Like import_document(), but the file read does not block the event loop.

        Decoding and applying the document happen synchronously after the read.
        """
        path = Path(path)
        data = await codec.read_document_async(path)
        return self.import_bytes(data, path.name)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """Both ledgers' state plus the current base file name."""
        return {
            'items': self.items.snapshot(),
            'funds': self.funds.snapshot(),
            'current_base_name': self.current_base_name,
        }

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """
        Bulk-restore both ledgers from a snapshot() shaped mapping.

        Either both ledgers are replaced or neither is. Observers are not
        notified.
        """
        items = snapshot.get('items', {})
        funds = snapshot.get('funds', {})
        with self._lock:
            saved_items = self.items.snapshot()
            self.items.restore(
                list(items.get(Stage.HELD.value, [])),
                list(items.get(Stage.LISTED.value, [])),
                list(items.get(Stage.SOLD.value, [])),
            )
            try:
                self.funds.restore(funds.get('balance', 0), funds.get('history', []))
            except Exception:
                self._restore_items(saved_items)
                raise
            self.current_base_name = snapshot.get('current_base_name')

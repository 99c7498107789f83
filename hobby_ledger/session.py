"""
session.py - Session cache

Keeps a JSON snapshot of a Collection on disk so the state survives a
restart without an explicit export:

    cache = SessionCache(collection, "~/.hobby_ledger/session.json")
    cache.load()      # bulk-restore on start, if a snapshot exists
    cache.attach()    # persist the whole snapshot after every mutation

Snapshots use the same field names as exported documents. Money is stored
as strings so Decimal values come back exactly.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .core import (
    Item, SoldItem, LedgerEntry,
    COLUMN_NAMES, ATTRIBUTE_NAMES, MONEY_FIELDS,
    DecodeError, HobbyLedgerError,
)
from .collection import Collection
from .items import Stage


SNAPSHOT_VERSION = 1


def _encode_item(item: Item) -> Dict[str, Any]:
    encoded = {}
    for attribute, value in item.to_dict().items():
        if attribute in MONEY_FIELDS and value is not None:
            value = str(value)
        elif attribute == 'image_urls':
            value = list(value)
        encoded[COLUMN_NAMES[attribute]] = value
    return encoded


def _decode_item(data: Mapping[str, Any], sold: bool) -> Item:
    values = {ATTRIBUTE_NAMES[key]: value for key, value in data.items() if key in ATTRIBUTE_NAMES}
    if sold:
        return SoldItem(**values)
    return Item(**values)


def encode_snapshot(snapshot: Mapping[str, Any]) -> str:
    """Serialize a Collection.snapshot() to JSON text."""
    items = snapshot['items']
    funds = snapshot['funds']
    return json.dumps({
        'version': SNAPSHOT_VERSION,
        'items': {
            stage.value: [_encode_item(item) for item in items[stage.value]]
            for stage in Stage
        },
        'funds': {
            'balance': str(funds['balance']),
            'history': [
                {
                    'timestamp': entry.timestamp.isoformat(),
                    'amount': str(entry.amount),
                    'reason': entry.reason,
                }
                for entry in funds['history']
            ],
        },
        'current_base_name': snapshot.get('current_base_name'),
    }, ensure_ascii=False, indent=2)


def decode_snapshot(text: str) -> Dict[str, Any]:
    """
    Parse JSON text written by encode_snapshot() into Collection.restore() shape.

    Raises:
        DecodeError: If the text is not a valid snapshot.
    """
    try:
        data = json.loads(text)
        items = data.get('items', {})
        funds = data.get('funds', {})
        return {
            'items': {
                stage.value: [
                    _decode_item(row, stage is Stage.SOLD)
                    for row in items.get(stage.value, [])
                ]
                for stage in Stage
            },
            'funds': {
                'balance': Decimal(str(funds.get('balance', "0"))),
                'history': [
                    LedgerEntry(
                        timestamp=datetime.fromisoformat(row['timestamp']),
                        amount=Decimal(str(row['amount'])),
                        reason=row['reason'],
                    )
                    for row in funds.get('history', [])
                ],
            },
            'current_base_name': data.get('current_base_name'),
        }
    except (ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as exc:
        raise DecodeError(f"Invalid session snapshot: {exc}") from exc


class SessionCache:
    """
    Mirrors a Collection into a JSON file.

    Args:
        collection: The collection to restore into and persist
        path: Snapshot file location (parent directories are created)
        verbose: Print a line when a snapshot is restored (default: False)
    """

    def __init__(
        self,
        collection: Collection,
        path: Union[str, Path],
        verbose: bool = False,
    ):
        self.collection = collection
        self.path = Path(path).expanduser()
        self.verbose = verbose
        self._unsubscribe: Optional[Callable[[], None]] = None

    def load(self) -> bool:
        """
        Restore the collection from the snapshot file, if there is one.

        Returns:
            True if a snapshot was restored, False if the file does not exist.

        Raises:
            DecodeError: If the file exists but cannot be decoded. The
                collection is left unchanged.
        """
        if not self.path.exists():
            return False
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DecodeError(f"Cannot read {self.path}: {exc}") from exc
        snapshot = decode_snapshot(text)
        try:
            self.collection.restore(snapshot)
        except HobbyLedgerError as exc:
            raise DecodeError(f"Invalid session snapshot: {exc}") from exc
        if self.verbose:
            print(f"✓ RESTORED session from {self.path}")
        return True

    def save(self) -> None:
        """Write the collection's current snapshot, replacing the file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(encode_snapshot(self.collection.snapshot()), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def attach(self) -> None:
        """Start saving after every mutation of the collection."""
        if self._unsubscribe is None:
            self._unsubscribe = self.collection.subscribe(lambda event, collection: self.save())

    def detach(self) -> None:
        """Stop saving on mutation."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

"""
hobby_ledger - Collectible Inventory and Hobby Fund Ledger

Tracks collectible items through held -> listed -> sold and keeps a hobby fund
whose balance is derived from sale profits, with a reversal path that exactly
undoes a sale and an .xlsx document codec for saving and loading everything.

Usage:
    from hobby_ledger import Collection

    collection = Collection()
    kit = collection.add_item({"name": "Strike Freedom", "grade": "MG",
                               "purchasePrice": 50000})
    collection.move_to_listed(kit.id)
    collection.complete_sale(kit.id, sale_price=70000, sale_medium="X")
    collection.funds.balance            # Decimal('20000')
    collection.revert_sale(kit.id)      # back to Listed, balance 0

    path = collection.export_document(".", "my_gundams")
    collection.import_document(path)
"""

# Core types
from .core import (
    Item,
    SoldItem,
    LedgerEntry,
    ItemsView,
    HobbyLedgerError,
    ValidationError,
    DecodeError,
    EmptyDocumentError,
    ExclusivityViolation,
    net_profit,
    to_decimal,
    UNSPECIFIED_GRADE,
    GRADE_OPTIONS,
    SALE_MEDIUM_OPTIONS,
    ALL_GRADES,
    SHEET_HELD,
    SHEET_LISTED,
    SHEET_SOLD,
    SHEET_FUND_SUMMARY,
    SHEET_FUND_HISTORY,
)

# Ledgers
from .items import ItemLedger, Stage
from .funds import FundLedger
from .collection import Collection

# Documents
from .codec import (
    Document,
    encode,
    decode,
    build_filename,
    base_name_from_filename,
    read_document_async,
)

# Projections
from .projections import filter_items, matches_grade, matches_search

# Session cache
from .session import SessionCache, encode_snapshot, decode_snapshot

__all__ = [
    # Core
    'Item', 'SoldItem', 'LedgerEntry', 'ItemsView',
    'HobbyLedgerError', 'ValidationError', 'DecodeError', 'EmptyDocumentError',
    'ExclusivityViolation',
    'net_profit', 'to_decimal',
    'UNSPECIFIED_GRADE', 'GRADE_OPTIONS', 'SALE_MEDIUM_OPTIONS', 'ALL_GRADES',
    'SHEET_HELD', 'SHEET_LISTED', 'SHEET_SOLD', 'SHEET_FUND_SUMMARY', 'SHEET_FUND_HISTORY',
    # Ledgers
    'ItemLedger', 'Stage', 'FundLedger', 'Collection',
    # Documents
    'Document', 'encode', 'decode', 'build_filename', 'base_name_from_filename',
    'read_document_async',
    # Projections
    'filter_items', 'matches_grade', 'matches_search',
    # Session cache
    'SessionCache', 'encode_snapshot', 'decode_snapshot',
]

__version__ = '1.0.0'

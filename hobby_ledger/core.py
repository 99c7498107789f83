"""
Core types and pure functions for the hobby ledger.

This module provides the foundational pieces shared by every other module:
1. Configuration constants: grades, sale media, document sheet names
2. Exceptions: HobbyLedgerError and the domain-specific error types
3. Immutable records: Item, SoldItem, LedgerEntry
4. Protocols: ItemsView for read-only access to the three item collections
5. Pure helpers: to_decimal, net_profit, field name conversion

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
import math
from typing import (
    Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable
)

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Money is kept as Decimal so that a sale followed by its reversal returns the
# balance to exactly its previous value.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_HOBBY_DECIMAL_CONTEXT = getcontext()
_HOBBY_DECIMAL_CONTEXT.prec = 50
_HOBBY_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Grade assigned when none is given.
UNSPECIFIED_GRADE = "N/A"

GRADE_OPTIONS = ('HG', 'RG', 'MG', 'PG', 'SD', 'RE/100', 'Hi-RM', 'Mega')

SALE_MEDIUM_OPTIONS = ('당근마켓', '중고나라', '기타')

# Grade filter value meaning "every grade".
ALL_GRADES = "All"

# Document sheet names, in export order.
SHEET_HELD = "Held"
SHEET_LISTED = "Listed"
SHEET_SOLD = "Sold"
SHEET_FUND_SUMMARY = "FundSummary"
SHEET_FUND_HISTORY = "FundHistory"

DOCUMENT_SHEETS = (
    SHEET_HELD, SHEET_LISTED, SHEET_SOLD, SHEET_FUND_SUMMARY, SHEET_FUND_HISTORY,
)

# Sheet names written by earlier versions of the application.
LEGACY_SHEET_NAMES = {
    SHEET_HELD: '보관목록',
    SHEET_LISTED: '판매목록',
    SHEET_SOLD: '판매완료',
    SHEET_FUND_SUMMARY: '자금요약',
    SHEET_FUND_HISTORY: '취미자금내역',
}

BALANCE_COLUMN = "balance"
LEGACY_BALANCE_COLUMN = "현재 취미 자금 잔액"

FILENAME_TIMESTAMP_FORMAT = "%y%m%d_%H%M%S"
DOCUMENT_EXTENSION = ".xlsx"

# Tolerance for balance invariant checks.
MONEY_TOLERANCE = Decimal("1e-9")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HobbyLedgerError(Exception):
    """Base exception for all hobby ledger errors."""
    pass


class ValidationError(HobbyLedgerError):
    """Raised when an operation receives invalid input. No state is changed."""
    pass


class DecodeError(HobbyLedgerError):
    """Raised when a document or snapshot cannot be decoded. No state is changed."""
    pass


class EmptyDocumentError(HobbyLedgerError):
    """Raised when exporting a state that holds no items at all."""
    pass


class ExclusivityViolation(HobbyLedgerError):
    """Raised when an item id is found in more than one collection."""
    pass


# ============================================================================
# FIELD NAMES
# ============================================================================

# Python attribute -> document column name.
COLUMN_NAMES: Dict[str, str] = {
    'id': 'id',
    'grade': 'grade',
    'name': 'name',
    'quantity': 'quantity',
    'purchase_price': 'purchasePrice',
    'desired_sale_price': 'desiredSalePrice',
    'purchase_location': 'purchaseLocation',
    'details': 'details',
    'image_urls': 'imageUrls',
    'shipping_cost': 'shippingCost',
    'other_fees': 'otherFees',
    'sale_price': 'salePrice',
    'sale_medium': 'saleMedium',
}

ATTRIBUTE_NAMES: Dict[str, str] = {v: k for k, v in COLUMN_NAMES.items()}

MONEY_FIELDS = frozenset({
    'purchase_price', 'desired_sale_price', 'shipping_cost', 'other_fees', 'sale_price',
})

SALE_FIELDS = frozenset({'sale_price', 'sale_medium'})


def normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map document-style (camelCase) keys to attribute names.

    Keys that are already attribute names pass through unchanged; unknown
    keys are kept as-is so callers can reject or ignore them.
    """
    return {ATTRIBUTE_NAMES.get(key, key): value for key, value in data.items()}


# ============================================================================
# PURE HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric value to a finite Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Raises:
        ValueError: If value is None, a bool, non-numeric, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Not a finite number: {value!r}")
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    else:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def optional_decimal(value: Any) -> Optional[Decimal]:
    """Like to_decimal, but None and "" map to None."""
    if value is None or value == "":
        return None
    return to_decimal(value)


def check_text(label: str, value: Any) -> None:
    """
    Reject control characters that a workbook cell cannot hold.

    Tab, newline and carriage return are allowed; the rest of the C0 range
    is not.

    Raises:
        ValueError: If value is a string containing such a character.
    """
    if isinstance(value, str) and ILLEGAL_CHARACTERS_RE.search(value):
        raise ValueError(f"{label} contains control characters: {value!r}")


def _or_zero(value: Optional[Decimal]) -> Decimal:
    return Decimal("0") if value is None else value


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True, kw_only=True)
class Item:
    """
    A collectible item held, listed for sale, or (as a SoldItem) sold.

    Attributes:
        id: Process-unique identifier, assigned by ItemLedger.add().
        grade: Grade label (e.g. "MG"); UNSPECIFIED_GRADE when not given.
        name: Display name. Required by validation, but stored as given;
            an empty name is stored as None.
        quantity: Number of pieces in this record (positive).
        purchase_price: What was paid, or None if unknown.
        desired_sale_price: Asking price, or None.
        purchase_location: Free text.
        details: Free text.
        image_urls: Ordered image references.
        shipping_cost: Shipping paid at sale time, or None.
        other_fees: Other fees paid at sale time, or None.

    Monetary fields are coerced to Decimal in __post_init__.
    """
    id: int
    name: Optional[str] = None
    grade: str = UNSPECIFIED_GRADE
    quantity: int = 1
    purchase_price: Optional[Decimal] = None
    desired_sale_price: Optional[Decimal] = None
    purchase_location: str = ""
    details: str = ""
    image_urls: Tuple[str, ...] = ()
    shipping_cost: Optional[Decimal] = None
    other_fees: Optional[Decimal] = None

    def __post_init__(self):
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValueError(f"Item id must be int, got {type(self.id).__name__}")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Item quantity must be int, got {self.quantity!r}")
        if self.quantity < 1:
            raise ValueError(f"Item quantity must be positive, got {self.quantity}")
        for name in ('purchase_price', 'desired_sale_price', 'shipping_cost', 'other_fees'):
            object.__setattr__(self, name, optional_decimal(getattr(self, name)))
        for name in ('purchase_price', 'shipping_cost', 'other_fees'):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"Item {name} cannot be negative, got {value}")
        if isinstance(self.image_urls, str):
            raise ValueError("Item image_urls must be a sequence of strings, not a string")
        object.__setattr__(self, 'image_urls', tuple(self.image_urls))
        # An empty cell reads back as no name.
        if self.name == "":
            object.__setattr__(self, 'name', None)
        for name in ('name', 'grade', 'purchase_location', 'details'):
            check_text(f"Item {name}", getattr(self, name))

    def with_sale(self, sale_price: Any, sale_medium: str) -> SoldItem:
        """Return this item as a SoldItem carrying the given sale details."""
        values = {f.name: getattr(self, f.name) for f in fields(Item)}
        return SoldItem(**values, sale_price=sale_price, sale_medium=sale_medium)

    def merged(self, updates: Mapping[str, Any]) -> Item:
        """Return a copy with updates applied (validated by __post_init__)."""
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Attribute-name dictionary of this record."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True, slots=True, kw_only=True)
class SoldItem(Item):
    """
    An Item plus the two fields set when its sale is finalized.

    Attributes:
        sale_price: Price the item sold for.
        sale_medium: Where it sold (marketplace name).
    """
    sale_price: Decimal
    sale_medium: str

    def __post_init__(self):
        Item.__post_init__(self)
        object.__setattr__(self, 'sale_price', to_decimal(self.sale_price))
        if self.sale_medium is None:
            raise ValueError("SoldItem sale_medium is required")
        check_text("SoldItem sale_medium", self.sale_medium)

    def without_sale(self) -> Item:
        """Strip sale_price and sale_medium, returning the plain Item."""
        return Item(**{f.name: getattr(self, f.name) for f in fields(Item)})


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """
    One immutable, timestamped, reasoned change to the fund balance.

    Attributes:
        timestamp: When the change was recorded.
        amount: Signed delta applied to the balance.
        reason: Human-readable reason (never empty).
    """
    timestamp: datetime
    amount: Decimal
    reason: str

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            raise ValueError(f"LedgerEntry amount must be Decimal, got {type(self.amount)}")
        if not self.amount.is_finite():
            raise ValueError(f"LedgerEntry amount must be finite, got {self.amount}")
        if not isinstance(self.reason, str) or not self.reason.strip():
            raise ValueError("LedgerEntry reason cannot be empty")
        check_text("LedgerEntry reason", self.reason)

    def __repr__(self) -> str:
        return f"LedgerEntry({self.timestamp.isoformat()} {self.amount:+} {self.reason!r})"


def net_profit(item: SoldItem) -> Decimal:
    """
    Net profit of a sale: sale price minus purchase price, shipping and fees.

    Missing values count as zero. This is the single profit formula used both
    for the per-sale ledger entry and for the realized profit aggregate.
    """
    return (
        _or_zero(item.sale_price)
        - _or_zero(item.purchase_price)
        - _or_zero(item.shipping_cost)
        - _or_zero(item.other_fees)
    )


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ItemsView(Protocol):
    """
    Read-only interface to the three item collections.

    FundLedger receives one of these instead of reaching into a global store.
    ItemLedger implements it.
    """

    @property
    def held(self) -> Tuple[Item, ...]:
        """Items kept, not offered for sale."""
        ...

    @property
    def listed(self) -> Tuple[Item, ...]:
        """Items currently offered for sale."""
        ...

    @property
    def sold(self) -> Tuple[SoldItem, ...]:
        """Items whose sale has been finalized."""
        ...

"""
codec.py - Workbook export and import

Serializes the full state (three item collections, fund balance, fund
history) into an .xlsx workbook with five sheets and reads it back:

    Held, Listed, Sold    one row per record, header row of column names
    FundSummary           one row: balance
    FundHistory           one row per LedgerEntry, most recent first

Cells hold scalars only. The image reference list of an item is stored as a
JSON array string in its imageUrls cell and decoded back into a tuple.
Timestamps are stored as ISO-8601 strings and money as decimal text, so
both survive unchanged. Numeric money cells from hand-edited or older
files are still accepted.

Import is all-or-nothing: decode() builds a complete Document without
touching any ledger, and only Document.apply_to() replaces state. Anything
unreadable raises DecodeError. Missing sheets are treated as empty, so
partial documents and those written by earlier versions of the application
(see LEGACY_SHEET_NAMES) still load.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from io import BytesIO
import json
import math
from pathlib import Path
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from .core import (
    Item, SoldItem, LedgerEntry, ItemsView,
    COLUMN_NAMES, ATTRIBUTE_NAMES, MONEY_FIELDS,
    SHEET_HELD, SHEET_LISTED, SHEET_SOLD, SHEET_FUND_SUMMARY, SHEET_FUND_HISTORY,
    DOCUMENT_SHEETS,
    LEGACY_SHEET_NAMES, BALANCE_COLUMN, LEGACY_BALANCE_COLUMN,
    FILENAME_TIMESTAMP_FORMAT, DOCUMENT_EXTENSION,
    UNSPECIFIED_GRADE,
    DecodeError, EmptyDocumentError,
    optional_decimal, to_decimal,
)
from .items import ItemLedger
from .funds import FundLedger


ITEM_COLUMNS: Tuple[str, ...] = tuple(COLUMN_NAMES[f.name] for f in fields(Item))
SOLD_COLUMNS: Tuple[str, ...] = tuple(COLUMN_NAMES[f.name] for f in fields(SoldItem))
HISTORY_COLUMNS: Tuple[str, ...] = ('timestamp', 'amount', 'reason')

# "250723_163000_my_gundams" -> "my_gundams"
_TIMESTAMPED_NAME = re.compile(r"^\d{6}_\d{6}_(.+)$")


@dataclass(frozen=True)
class Document:
    """
    A fully decoded workbook, not yet applied to any ledger.

    Attributes:
        held: Records of the Held sheet
        listed: Records of the Listed sheet
        sold: Records of the Sold sheet
        balance: Fund balance from FundSummary (0 if absent)
        history: Fund entries from FundHistory, most recent first
        missing_sheets: Sheets the workbook did not contain
    """
    held: Tuple[Item, ...] = ()
    listed: Tuple[Item, ...] = ()
    sold: Tuple[SoldItem, ...] = ()
    balance: Decimal = Decimal("0")
    history: Tuple[LedgerEntry, ...] = ()
    missing_sheets: Tuple[str, ...] = field(default=(), compare=False)

    def apply_to(self, items: ItemLedger, funds: FundLedger) -> None:
        """Replace the state of both ledgers with this document's content."""
        items.restore(list(self.held), list(self.listed), list(self.sold))
        funds.restore(self.balance, self.history)


# ============================================================================
# FILE NAMES
# ============================================================================

def build_filename(base_name: str, now: datetime) -> str:
    """
    Name an exported file: "<YYMMDD>_<HHMMSS>_<base_name>.xlsx".

    Example:
        build_filename("my_gundams", datetime(2025, 7, 23, 16, 30))
        # '250723_163000_my_gundams.xlsx'
    """
    return f"{now.strftime(FILENAME_TIMESTAMP_FORMAT)}_{base_name}{DOCUMENT_EXTENSION}"


def base_name_from_filename(filename: str) -> str:
    """
    Recover the base name from an exported file name.

    The extension and the timestamp prefix are stripped. A name without
    the prefix is returned whole (minus its extension); this never raises.

    Example:
        base_name_from_filename("250723_163000_my_gundams.xlsx")  # 'my_gundams'
        base_name_from_filename("inventory.xlsx")                 # 'inventory'
    """
    name = Path(filename).name
    if name.lower().endswith(DOCUMENT_EXTENSION):
        name = name[:-len(DOCUMENT_EXTENSION)]
    match = _TIMESTAMPED_NAME.match(name)
    return match.group(1) if match else name


# ============================================================================
# ENCODING
# ============================================================================

def _money_text(value: Optional[Decimal]) -> Optional[str]:
    # Decimal text survives exactly; a numeric cell keeps only 15 digits.
    return None if value is None else str(value)


def _cell_value(attribute: str, value: Any) -> Any:
    if attribute == 'image_urls':
        return json.dumps(list(value), ensure_ascii=False)
    if attribute in MONEY_FIELDS:
        return _money_text(value)
    return value


def _write_rows(sheet: Worksheet, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    sheet.append(list(columns))
    for row in rows:
        sheet.append(list(row))
        # Text is stored as typed, never as a formula or an error code.
        for cell in sheet[sheet.max_row]:
            if isinstance(cell.value, str) and cell.data_type != 's':
                cell.data_type = 's'


def _item_rows(records: Iterable[Item], columns: Sequence[str]) -> Iterable[List[Any]]:
    for record in records:
        yield [
            _cell_value(ATTRIBUTE_NAMES[column], getattr(record, ATTRIBUTE_NAMES[column]))
            for column in columns
        ]


def build_workbook(items: ItemsView, funds: FundLedger) -> Workbook:
    """
    Build the five-sheet workbook for the given state.

    Raises:
        EmptyDocumentError: If all three item collections are empty.
    """
    if not (items.held or items.listed or items.sold):
        raise EmptyDocumentError("There are no items to save")

    workbook = Workbook()
    held_sheet = workbook.active
    held_sheet.title = SHEET_HELD
    _write_rows(held_sheet, ITEM_COLUMNS, _item_rows(items.held, ITEM_COLUMNS))
    _write_rows(
        workbook.create_sheet(SHEET_LISTED), ITEM_COLUMNS,
        _item_rows(items.listed, ITEM_COLUMNS),
    )
    _write_rows(
        workbook.create_sheet(SHEET_SOLD), SOLD_COLUMNS,
        _item_rows(items.sold, SOLD_COLUMNS),
    )
    _write_rows(workbook.create_sheet(SHEET_FUND_SUMMARY), (BALANCE_COLUMN,), [[_money_text(funds.balance)]])
    _write_rows(
        workbook.create_sheet(SHEET_FUND_HISTORY), HISTORY_COLUMNS,
        ([e.timestamp.isoformat(), _money_text(e.amount), e.reason] for e in funds.history),
    )
    return workbook


def encode(items: ItemsView, funds: FundLedger) -> bytes:
    """Serialize the state to .xlsx bytes. See build_workbook()."""
    buffer = BytesIO()
    build_workbook(items, funds).save(buffer)
    return buffer.getvalue()


# ============================================================================
# DECODING
# ============================================================================

def _find_sheet(workbook: Workbook, name: str) -> Optional[Worksheet]:
    for candidate in (name, LEGACY_SHEET_NAMES[name]):
        if candidate in workbook.sheetnames:
            return workbook[candidate]
    return None


def _read_rows(sheet: Optional[Worksheet]) -> List[Dict[str, Any]]:
    """Rows as dicts keyed by the header row; blank rows are skipped."""
    if sheet is None:
        return []
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        return []
    columns = [str(c).strip() if c is not None else None for c in header]
    records = []
    for values in rows:
        if all(v is None or v == "" for v in values):
            continue
        records.append({
            column: value
            for column, value in zip(columns, values)
            if column is not None
        })
    return records


def _decode_image_urls(value: Any) -> Tuple[str, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, str) and value.lstrip().startswith("["):
        urls = json.loads(value)
        if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise ValueError(f"imageUrls must be a list of strings, got {value!r}")
        return tuple(urls)
    # A bare string is a single reference.
    return (str(value),)


def _cell_number(value: Any) -> Any:
    # Numeric cells (older files, hand edits) are written with 16 significant
    # digits, which can expose binary noise (9.3 reads back as
    # 9.300000000000001). Excel keeps 15.
    if isinstance(value, float) and math.isfinite(value):
        return format(value, '.15g')
    return value


def _decode_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _decode_item(row: Dict[str, Any], sold: bool) -> Item:
    values: Dict[str, Any] = {}
    for column, raw in row.items():
        attribute = ATTRIBUTE_NAMES.get(column)
        if attribute is None:
            continue
        if attribute in MONEY_FIELDS:
            values[attribute] = optional_decimal(_cell_number(raw))
        elif attribute == 'image_urls':
            values[attribute] = _decode_image_urls(raw)
        elif attribute in ('id', 'quantity'):
            if raw is not None and raw != "":
                number = to_decimal(_cell_number(raw))
                if number != number.to_integral_value():
                    raise ValueError(f"{column} must be a whole number, got {raw!r}")
                values[attribute] = int(number)
        elif attribute == 'name':
            values[attribute] = None if raw is None else str(raw)
        else:
            values[attribute] = _decode_text(raw)

    if 'id' not in values:
        raise ValueError("row has no id")
    if not values.get('grade'):
        values['grade'] = UNSPECIFIED_GRADE
    if sold:
        values.setdefault('sale_medium', "")
        return SoldItem(**values)
    values.pop('sale_price', None)
    values.pop('sale_medium', None)
    return Item(**values)


def _decode_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise ValueError(f"Not a timestamp: {value!r}")


def _decode_entry(row: Dict[str, Any]) -> LedgerEntry:
    timestamp = row.get('timestamp', row.get('date'))
    return LedgerEntry(
        timestamp=_decode_timestamp(timestamp),
        amount=to_decimal(_cell_number(row.get('amount'))),
        reason=_decode_text(row.get('reason')),
    )


def _decode_balance(rows: List[Dict[str, Any]]) -> Decimal:
    if not rows:
        return Decimal("0")
    first = rows[0]
    value = first.get(BALANCE_COLUMN, first.get(LEGACY_BALANCE_COLUMN))
    return optional_decimal(_cell_number(value)) or Decimal("0")


def _load(data: bytes) -> Workbook:
    try:
        return load_workbook(filename=BytesIO(data))
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError, TypeError) as exc:
        raise DecodeError(f"Not a readable workbook: {exc}") from exc


def decode(data: bytes) -> Document:
    """
    Decode .xlsx bytes into a Document.

    Raises:
        DecodeError: If the bytes are not a workbook, a row cannot be
            decoded, or an id appears more than once across the item sheets.
    """
    workbook = _load(data)
    sheets = {
        name: _find_sheet(workbook, name)
        for name in DOCUMENT_SHEETS
    }
    missing = tuple(name for name, sheet in sheets.items() if sheet is None)

    decoded: Dict[str, Any] = {}
    current = SHEET_HELD
    try:
        for current, attribute, sold in (
            (SHEET_HELD, 'held', False),
            (SHEET_LISTED, 'listed', False),
            (SHEET_SOLD, 'sold', True),
        ):
            decoded[attribute] = tuple(_decode_item(row, sold) for row in _read_rows(sheets[current]))
        current = SHEET_FUND_SUMMARY
        decoded['balance'] = _decode_balance(_read_rows(sheets[current]))
        current = SHEET_FUND_HISTORY
        decoded['history'] = tuple(_decode_entry(row) for row in _read_rows(sheets[current]))
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise DecodeError(f"Sheet {current}: {exc}") from exc

    ids = [item.id for name in ('held', 'listed', 'sold') for item in decoded[name]]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise DecodeError(f"Item ids appear more than once: {duplicates}")

    return Document(missing_sheets=missing, **decoded)


# ============================================================================
# FILE ACCESS
# ============================================================================

def read_document_bytes(path: Path) -> bytes:
    """
    Read a document file.

    Raises:
        DecodeError: If the file cannot be read.
    """
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise DecodeError(f"Cannot read {path}: {exc}") from exc


async def read_document_async(path: Path) -> bytes:
    """Read a document file without blocking the event loop."""
    return await asyncio.to_thread(read_document_bytes, path)

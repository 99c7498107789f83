"""
funds.py - The Fund Ledger

FundLedger keeps the hobby fund: a cash balance and the append-only history
of entries that produced it. It is the only module that changes the balance.

Key responsibilities:
    - Every balance change goes through adjust() and records exactly one
      LedgerEntry, so balance == sum(entry.amount for entry in history)
    - Sale profit and its reversal use one net profit formula and cancel
      exactly
    - Stock value, realized profit, estimated sale value and total assets are
      computed from the injected ItemsView on every read, never stored
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .core import (
    ItemsView, LedgerEntry, SoldItem,
    MONEY_TOLERANCE,
    ValidationError,
    check_text, net_profit, to_decimal,
)


def _sum(values: Iterable[Optional[Decimal]]) -> Decimal:
    return sum((v for v in values if v is not None), Decimal("0"))


class FundLedger:
    """
    Hobby fund balance with a full audit trail.

    Design Principles:
        - Always logs: the balance never changes without a history entry.
        - Lazy aggregates: values derived from the item collections are
          recomputed from the ItemsView each time they are read.

    Thread Safety:
        Not thread-safe on its own. Collection serializes composite operations.

    Example:
        items = ItemLedger()
        funds = FundLedger(items)
        funds.adjust(10000, "initial deposit")
        funds.total_assets
    """

    def __init__(
        self,
        items: ItemsView,
        clock: Optional[Callable[[], datetime]] = None,
        verbose: bool = False,
    ):
        """
        Create a fund ledger with a zero balance.

        Args:
            items: Read-only access to the item collections, used for the
                derived aggregates
            clock: Returns the timestamp for new entries (default: datetime.now)
            verbose: Print a line for each adjustment (default: False)
        """
        self.items = items
        self.clock = clock or datetime.now
        self.verbose = verbose
        self._balance = Decimal("0")
        self._history: List[LedgerEntry] = []

    # ========================================================================
    # STATE (read-only)
    # ========================================================================

    @property
    def balance(self) -> Decimal:
        """Current fund balance."""
        return self._balance

    @property
    def history(self) -> Tuple[LedgerEntry, ...]:
        """All entries, most recent first."""
        return tuple(self._history)

    # ========================================================================
    # DERIVED AGGREGATES
    # ========================================================================

    @property
    def stock_value(self) -> Decimal:
        """Sum of purchase prices over Held and Listed."""
        return _sum(item.purchase_price for item in (*self.items.held, *self.items.listed))

    @property
    def realized_profit(self) -> Decimal:
        """Sum of net profit over Sold."""
        return sum((net_profit(item) for item in self.items.sold), Decimal("0"))

    @property
    def estimated_sale_value(self) -> Decimal:
        """Sum of desired sale prices over Listed."""
        return _sum(item.desired_sale_price for item in self.items.listed)

    @property
    def total_assets(self) -> Decimal:
        """Fund balance plus stock value."""
        return self._balance + self.stock_value

    def summary(self) -> Dict[str, Decimal]:
        """All figures in one dict, for display."""
        return {
            'balance': self.balance,
            'stock_value': self.stock_value,
            'realized_profit': self.realized_profit,
            'estimated_sale_value': self.estimated_sale_value,
            'total_assets': self.total_assets,
        }

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def adjust(self, amount: Any, reason: str) -> LedgerEntry:
        """
        Add a signed amount to the balance and record why.

        Args:
            amount: Signed delta (int, float, str or Decimal)
            reason: Non-empty description

        Returns:
            The LedgerEntry that was recorded

        Raises:
            ValidationError: If amount is not a finite number or reason is
                empty or holds control characters. The balance and
                history are unchanged.
        """
        try:
            delta = to_decimal(amount)
        except ValueError as exc:
            self._reject(f"amount {amount!r} is not numeric")
            raise ValidationError(f"Adjustment amount must be numeric: {amount!r}") from exc
        if not isinstance(reason, str) or not reason.strip():
            self._reject("empty reason")
            raise ValidationError("Adjustment reason cannot be empty")
        try:
            check_text("Adjustment reason", reason)
        except ValueError as exc:
            self._reject("control characters in reason")
            raise ValidationError(str(exc)) from exc

        entry = LedgerEntry(timestamp=self.clock(), amount=delta, reason=reason)
        self._balance += delta
        self._history.insert(0, entry)
        if self.verbose:
            print(f"$ {entry.amount:+} ({entry.reason}) → balance {self._balance}")
        return entry

    def record_sale_profit(self, sold_item: SoldItem) -> LedgerEntry:
        """Credit the net profit of a finalized sale."""
        return self.adjust(net_profit(sold_item), f"sale of {sold_item.name}")

    def revert_sale_profit(self, sold_item: SoldItem) -> LedgerEntry:
        """
        Debit the net profit of a sale being reversed.

        Given the same field values, this exactly cancels record_sale_profit().
        """
        return self.adjust(-net_profit(sold_item), f"sale reversed: {sold_item.name}")

    # ========================================================================
    # BULK STATE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """Return balance and history (most recent first)."""
        return {'balance': self._balance, 'history': list(self._history)}

    def restore(self, balance: Any, history: Iterable[LedgerEntry]) -> None:
        """
        Replace the balance and history wholesale.

        Used when loading a document or a session snapshot. The stored
        balance is taken as given; verify_balance() reports whether it agrees
        with the history.

        Raises:
            ValidationError: If balance is not numeric. Nothing changes.
        """
        try:
            new_balance = to_decimal(balance)
        except ValueError as exc:
            raise ValidationError(f"Balance must be numeric: {balance!r}") from exc
        self._history = list(history)
        self._balance = new_balance

    def verify_balance(self, tolerance: Decimal = MONEY_TOLERANCE) -> Dict[str, Any]:
        """
        Check that the balance equals the sum of all history amounts.

        Returns:
            Dict with keys:
            - 'valid': bool
            - 'balance': the stored balance
            - 'history_total': sum of entry amounts
            - 'difference': balance - history_total
        """
        history_total = sum((entry.amount for entry in self._history), Decimal("0"))
        difference = self._balance - history_total
        return {
            'valid': abs(difference) <= tolerance,
            'balance': self._balance,
            'history_total': history_total,
            'difference': difference,
        }

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")

"""
projections.py - Search and grade filtering over item lists

Pure functions for building the filtered lists a presentation layer shows.
They read records and return new tuples; no ledger state is touched.
"""

from __future__ import annotations
from typing import Iterable, Optional, Tuple

from .core import Item, SoldItem, ALL_GRADES


def matches_grade(item: Item, grade: Optional[str]) -> bool:
    """True if grade is ALL_GRADES (or empty) or equals the item's grade."""
    return not grade or grade == ALL_GRADES or item.grade == grade


def matches_search(item: Item, search_term: Optional[str]) -> bool:
    """
    Case-insensitive substring match over the item's text fields.

    Searched fields: name, grade, purchase location, details, and for sold
    items the sale medium. A blank search term matches everything.
    """
    if not search_term or not search_term.strip():
        return True
    needle = search_term.lower()
    haystack = [item.name, item.grade, item.purchase_location, item.details]
    if isinstance(item, SoldItem):
        haystack.append(item.sale_medium)
    return any(text and needle in text.lower() for text in haystack)


def filter_items(
    items: Iterable[Item],
    search_term: Optional[str] = None,
    grade: Optional[str] = ALL_GRADES,
) -> Tuple[Item, ...]:
    """
    Return the items passing both the grade filter and the search term.

    Example:
        filter_items(collection.items.held, search_term="freedom", grade="MG")
    """
    return tuple(
        item for item in items
        if matches_grade(item, grade) and matches_search(item, search_term)
    )

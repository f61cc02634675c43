"""
Expense duplicate detection

An expense is a duplicate when another expense has the same date, an amount within
one cent, and a supplier name that matches exactly, by containment, or by
Levenshtein similarity.
"""

from datetime import date
from typing import Any, Optional, Union

from .similarity import normalize_name, similarity

SUPPLIER_SIMILARITY_THRESHOLD = 0.7
AMOUNT_TOLERANCE = 0.01


def is_similar_supplier(
    supplier_a: str, supplier_b: str, threshold: float = SUPPLIER_SIMILARITY_THRESHOLD
) -> tuple[bool, Optional[str]]:
    """
    Compare two supplier names.
    Returns (is_similar, match_type) where match_type is exact, contains, fuzzy or None.
    """
    a = normalize_name(supplier_a)
    b = normalize_name(supplier_b)

    if a == b:
        return True, "exact"

    if a and b and (a in b or b in a):
        return True, "contains"

    if similarity(a, b) >= threshold:
        return True, "fuzzy"

    return False, None


def _field(record: Any, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _same_date(a: Union[str, date, None], b: Union[str, date, None]) -> bool:
    if a is None or b is None:
        return False
    return str(a) == str(b)


def find_duplicate_expense(
    new_expense: Any,
    existing_expenses: list,
    threshold: float = SUPPLIER_SIMILARITY_THRESHOLD,
) -> dict:
    """
    Find the first existing expense that duplicates new_expense.

    Candidates must share the date and have an amount within AMOUNT_TOLERANCE before
    any supplier comparison is made. Records may be dicts or ORM objects with
    date, supplier and amount.
    """
    candidates = [
        expense
        for expense in existing_expenses
        if _same_date(_field(expense, "date"), _field(new_expense, "date"))
        and abs(float(_field(expense, "amount") or 0) - float(_field(new_expense, "amount") or 0))
        < AMOUNT_TOLERANCE
    ]

    for candidate in candidates:
        is_similar, match_type = is_similar_supplier(
            _field(new_expense, "supplier") or "",
            _field(candidate, "supplier") or "",
            threshold,
        )
        if is_similar:
            return {"is_duplicate": True, "existing_expense": candidate, "match_type": match_type}

    return {"is_duplicate": False, "existing_expense": None, "match_type": None}


def find_duplicate_expenses(
    new_expenses: list,
    existing_expenses: list,
    threshold: float = SUPPLIER_SIMILARITY_THRESHOLD,
) -> list[dict]:
    """Batch variant of find_duplicate_expense; each result carries the input index"""
    results = []
    for index, expense in enumerate(new_expenses):
        result = find_duplicate_expense(expense, existing_expenses, threshold)
        result["index"] = index
        results.append(result)
    return results

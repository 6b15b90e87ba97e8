"""Transaction auto-categorization — pure business logic.

Assigns a category to a transaction created without one by matching its
description against a fixed per-type keyword table. Matching is a
case-insensitive substring test; categories are tried in declaration order
and the first hit wins, so a keyword listed under two categories always
resolves to the earlier one ("utility" → Essentials, never Utilities).

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging

from okanassist.data.models import CategoryCatalog, TransactionType

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"

# Order matters: first matching category wins.
CATEGORY_KEYWORDS: dict[TransactionType, list[tuple[str, tuple[str, ...]]]] = {
    TransactionType.EXPENSE: [
        ("Food & Dining", (
            "restaurant", "food", "coffee", "lunch", "dinner", "breakfast",
            "cafe", "pizza", "burger", "grocery", "groceries", "supermarket",
            "bakery", "ifood", "comida", "restaurante",
        )),
        ("Transportation", (
            "uber", "lyft", "taxi", "99pop", "gas station", "fuel", "gasoline",
            "metro", "subway", "bus", "train", "parking", "toll", "airport",
            "flight", "transporte",
        )),
        ("Shopping", (
            "amazon", "store", "shop", "mall", "clothes", "shoes", "market",
            "mercado", "loja",
        )),
        ("Entertainment", (
            "cinema", "movie", "netflix", "spotify", "game", "concert",
            "theater", "disney", "entretenimento",
        )),
        ("Essentials", (
            "rent", "utility", "electricity", "water bill", "internet",
            "phone bill", "insurance", "conta", "fatura",
        )),
        ("Healthcare", (
            "pharmacy", "doctor", "hospital", "dentist", "medicine", "clinic",
            "farmacia",
        )),
        ("Education", (
            "course", "school", "tuition", "book", "udemy", "university",
        )),
        # Legacy category kept for rows created before "Essentials" existed.
        ("Utilities", (
            "utility", "gas bill", "sewage",
        )),
    ],
    TransactionType.INCOME: [
        ("Salary", ("salary", "paycheck", "payroll", "salario", "wage")),
        ("Freelance", ("freelance", "client", "invoice", "contract", "consulting")),
        ("Investment", ("dividend", "interest", "investment", "stock", "crypto")),
        ("Gift", ("gift", "present", "presente")),
        ("Refund", ("refund", "cashback", "reimbursement", "estorno")),
    ],
}


def categorize(description: str, transaction_type: TransactionType) -> str:
    """Return the first category whose keywords appear in `description`."""
    text = (description or "").lower()
    for category, keywords in CATEGORY_KEYWORDS.get(transaction_type, []):
        if any(keyword in text for keyword in keywords):
            logger.debug("Auto-categorized '%s' as %s", description, category)
            return category
    return DEFAULT_CATEGORY


def categories_for(transaction_type: TransactionType) -> list[str]:
    """All categories for a type in declaration order, plus the default."""
    names = [name for name, _ in CATEGORY_KEYWORDS.get(transaction_type, [])]
    return names + [DEFAULT_CATEGORY]


def default_catalog() -> CategoryCatalog:
    """The built-in catalog, used when the server offers none."""
    return CategoryCatalog(
        expense=categories_for(TransactionType.EXPENSE),
        income=categories_for(TransactionType.INCOME),
    )

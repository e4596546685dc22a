"""
Category Normalizer

Maps the vision model's free-text category guess onto one of the
canonical category names.

DESIGN DECISION: We use ordered keyword matching rather than ML because:
1. More transparent to user
2. Easier to debug
3. The model is already asked to answer with a canonical name, so
   this only cleans up near misses

The table is scanned top to bottom and the first keyword contained in the
guess wins. Order is part of the contract: "電車で外食" contains both
電車 and 外食, and resolves to 食費 because 外食 is listed first.
"""

from typing import Optional

from kakeibo_lens.models.ledger import CATCH_ALL_CATEGORY_NAME, DEFAULT_CATEGORIES


CATCH_ALL_CATEGORY = CATCH_ALL_CATEGORY_NAME

CANONICAL_CATEGORY_NAMES: tuple[str, ...] = tuple(
    spec["name"] for spec in DEFAULT_CATEGORIES
)

CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    # Food
    ("食費", "食費"),
    ("食事", "食費"),
    ("食料", "食費"),
    ("食材", "食費"),
    ("外食", "食費"),
    # Daily necessities
    ("日用品", "日用品"),
    ("生活用品", "日用品"),
    ("雑貨", "日用品"),
    # Transport
    ("交通費", "交通費"),
    ("交通", "交通費"),
    ("電車", "交通費"),
    ("バス", "交通費"),
    ("タクシー", "交通費"),
    ("ガソリン", "交通費"),
    # Entertainment
    ("娯楽", "娯楽"),
    ("趣味", "娯楽"),
    ("レジャー", "娯楽"),
    ("エンタメ", "娯楽"),
    # Medical
    ("医療費", "医療費"),
    ("医療", "医療費"),
    ("病院", "医療費"),
    ("薬", "医療費"),
    # Education
    ("教育費", "教育費"),
    ("教育", "教育費"),
    ("学費", "教育費"),
    ("書籍", "教育費"),
    # Utilities
    ("光熱費", "光熱費"),
    ("電気", "光熱費"),
    ("ガス", "光熱費"),
    ("水道", "光熱費"),
    # Communication
    ("通信費", "通信費"),
    ("通信", "通信費"),
    ("電話", "通信費"),
    ("インターネット", "通信費"),
    (CATCH_ALL_CATEGORY, CATCH_ALL_CATEGORY),
)


def normalize_category_name(guess: Optional[str]) -> str:
    """
    Resolve a category guess to a canonical category name.

    Never raises; anything unrecognized resolves to the catch-all.
    """
    if not guess:
        return CATCH_ALL_CATEGORY

    normalized = guess.lower().strip()
    if not normalized:
        return CATCH_ALL_CATEGORY

    for keyword, canonical in CATEGORY_KEYWORDS:
        if keyword.lower() in normalized:
            return canonical

    return CATCH_ALL_CATEGORY

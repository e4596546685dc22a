"""Category name normalization."""

from kakeibo_lens.categorization.normalizer import (
    CANONICAL_CATEGORY_NAMES,
    CATCH_ALL_CATEGORY,
    CATEGORY_KEYWORDS,
    normalize_category_name,
)

__all__ = [
    "CANONICAL_CATEGORY_NAMES",
    "CATCH_ALL_CATEGORY",
    "CATEGORY_KEYWORDS",
    "normalize_category_name",
]

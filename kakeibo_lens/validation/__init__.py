"""Validation of analyzed ledger lines."""

from kakeibo_lens.validation.validator import (
    EntryValidator,
    get_user_friendly_summary,
    parse_ledger_date,
)

__all__ = ["EntryValidator", "get_user_friendly_summary", "parse_ledger_date"]

"""
Kakeibo Lens - Source Package

A household ledger ("kakeibo") assistant: photograph a handwritten
ledger page, let a vision model read the lines, and keep, summarize and
chart the entries locally.

DESIGN PRINCIPLES:
1. The vision model proposes, the validator decides
2. Fail early, fail visibly
3. No silent corrections (every fallback is reported)
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kakeibo Lens Team"

"""
Categories Module - Two-level category tree.

Features:
- Categories and subcategories
- Display ordering
- Per-category moderators
"""

from agora.modules.categories.service import CategoryService

__all__ = ["CategoryService"]

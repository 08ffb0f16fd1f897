"""
Search Module - Topic and reply search.

Features:
- Term and exclusion queries with filters
- Relevance ranking and highlights
- Search history and suggestions
- Saved searches
"""

from agora.modules.search.service import SearchService

__all__ = ["SearchService"]

"""Database utilities for chatmem.

- FilterBuilder: Dynamic WHERE clause construction for metadata filters
"""

from chatmem.db.filter_builder import FILTERABLE_COLUMNS, FilterBuilder

__all__ = ["FILTERABLE_COLUMNS", "FilterBuilder"]

"""Filter builder for dynamic WHERE clause construction."""

from typing import Any

# Metadata filter keys accepted by the durable store, mapped to their columns.
FILTERABLE_COLUMNS = {
    "user_id": "user_id",
    "chat_id": "chat_id",
    "role": "role",
    "turn_id": "turn_id",
}


class FilterBuilder:
    """Build dynamic WHERE clauses with automatic parameter indexing.

    Example:
        fb = FilterBuilder(start_idx=3)  # $1 and $2 reserved for vector and limit
        fb.add_metadata_filter({"user_id": "u1", "chat_id": "c1"})

        where_clause = fb.build()
        all_values = [embedding, limit] + fb.values
    """

    def __init__(self, start_idx: int = 1):
        """Initialize the filter builder.

        Args:
            start_idx: Starting parameter index (e.g., 3 if $1 and $2 are reserved)
        """
        self._conditions: list[str] = []
        self._values: list[Any] = []
        self._param_idx = start_idx

    @property
    def values(self) -> list[Any]:
        return self._values

    def add_param(self, condition_template: str, value: Any) -> "FilterBuilder":
        """Add a condition with a single parameter.

        Args:
            condition_template: SQL with ${} placeholder for the param index
            value: Parameter value
        """
        condition = condition_template.replace("${}", f"${self._param_idx}")
        self._conditions.append(condition)
        self._values.append(value)
        self._param_idx += 1
        return self

    def add_metadata_filter(self, metadata_filter: dict[str, Any] | None) -> "FilterBuilder":
        """Add equality conditions for a metadata filter dict.

        Raises:
            ValueError: If the filter names a key the store cannot filter on
        """
        for key, value in (metadata_filter or {}).items():
            column = FILTERABLE_COLUMNS.get(key)
            if column is None:
                raise ValueError(
                    f"Unsupported filter key: {key}. Use: {sorted(FILTERABLE_COLUMNS)}"
                )
            if value is not None:
                self.add_param(f"{column} = ${{}}", value)
        return self

    def build(self) -> str:
        """Build the WHERE clause body (conditions joined with AND)."""
        if not self._conditions:
            return "TRUE"
        return " AND ".join(self._conditions)

"""Tests for the WHERE clause builder."""

import pytest

from chatmem.db import FilterBuilder


class TestFilterBuilder:
    def test_empty_is_true(self):
        assert FilterBuilder().build() == "TRUE"

    def test_param_indexing(self):
        fb = FilterBuilder(start_idx=3)
        fb.add_param("user_id = ${}", "u1").add_param("role = ${}", "user")

        assert fb.build() == "user_id = $3 AND role = $4"
        assert fb.values == ["u1", "user"]

    def test_metadata_filter_skips_none(self):
        fb = FilterBuilder().add_metadata_filter({"user_id": "u1", "chat_id": None})

        assert fb.build() == "user_id = $1"
        assert fb.values == ["u1"]

    def test_metadata_filter_unknown_key(self):
        with pytest.raises(ValueError, match="Unsupported filter key"):
            FilterBuilder().add_metadata_filter({"tags": "x"})

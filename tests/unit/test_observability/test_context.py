"""Tests for correlation ID context management."""

import asyncio

import pytest

from infobot.observability.context import (
    clear_correlation_id,
    correlation_id_context,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    """Set, get and clear."""

    def teardown_method(self):
        clear_correlation_id()

    def test_set_explicit_id(self):
        """Should return and store the given id."""
        assert set_correlation_id("abc") == "abc"
        assert get_correlation_id() == "abc"

    def test_set_generates_uuid(self):
        """Should generate a UUID4 when none is given."""
        corr_id = set_correlation_id()
        assert len(corr_id) == 36
        assert get_correlation_id() == corr_id

    def test_clear(self):
        set_correlation_id("abc")
        clear_correlation_id()
        assert get_correlation_id() is None


class TestCorrelationIdContext:
    """Scoped correlation ids."""

    def test_restores_previous_value(self):
        set_correlation_id("outer")
        with correlation_id_context("inner") as corr_id:
            assert corr_id == "inner"
            assert get_correlation_id() == "inner"
        assert get_correlation_id() == "outer"
        clear_correlation_id()

    def test_restores_on_error(self):
        clear_correlation_id()
        with pytest.raises(ValueError):
            with correlation_id_context("inner"):
                raise ValueError("boom")
        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_child_tasks_inherit_id(self):
        """Source tasks gathered in a cycle see the cycle's id."""

        async def read_id():
            return get_correlation_id()

        with correlation_id_context("check_cycle-1"):
            results = await asyncio.gather(read_id(), read_id())

        assert results == ["check_cycle-1", "check_cycle-1"]

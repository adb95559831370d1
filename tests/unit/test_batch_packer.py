"""Tests for greedy token-budget batch packing."""

from __future__ import annotations

import pytest

from docflow.core.exceptions import ConfigurationError
from docflow.engine.batch_packer import BatchPacker
from docflow.models.tasks import WorkItem


def _items(tokens: list[int], importance: list[float] | None = None) -> list[WorkItem]:
    importance = importance or [0.0] * len(tokens)
    return [
        WorkItem(id=f"f{i}", path=f"src/f{i}.py", importance=imp, estimated_tokens=t)
        for i, (t, imp) in enumerate(zip(tokens, importance))
    ]


@pytest.fixture
def packer():
    return BatchPacker()


class TestOrdering:
    def test_descending_importance(self, packer):
        items = _items([1, 1, 1], importance=[10, 50, 30])
        batches = packer.pack(items, token_budget=10**9, max_items_per_batch=10)
        assert [i.importance for i in batches[0].items] == [50, 30, 10]

    def test_ties_keep_input_order(self, packer):
        items = _items([1, 1, 1, 1], importance=[5, 9, 5, 5])
        batches = packer.pack(items, token_budget=100, max_items_per_batch=10)
        assert [i.id for i in batches[0].items] == ["f1", "f0", "f2", "f3"]


class TestLimits:
    def test_token_budget_closes_batch_before_item_cap(self, packer):
        batches = packer.pack(_items([400, 400, 400, 300]), token_budget=1000, max_items_per_batch=3)
        assert [[i.estimated_tokens for i in b.items] for b in batches] == [[400, 400], [400, 300]]
        assert [b.total_estimated_tokens for b in batches] == [800, 700]

    def test_item_cap_closes_batch(self, packer):
        batches = packer.pack(_items([1] * 5), token_budget=1000, max_items_per_batch=2)
        assert [len(b.items) for b in batches] == [2, 2, 1]

    def test_exact_budget_fits(self, packer):
        batches = packer.pack(_items([500, 500]), token_budget=1000, max_items_per_batch=8)
        assert len(batches) == 1

    @pytest.mark.parametrize("tokens", [
        [100, 900, 50, 700, 300, 1200, 20],
        [999, 2, 999, 1],
        [1000, 1000, 1001, 0, 0],
    ])
    def test_non_overflow_batches_respect_budget(self, packer, tokens):
        batches = packer.pack(_items(tokens), token_budget=1000, max_items_per_batch=3)
        for batch in batches:
            if batch.is_singleton_overflow:
                assert len(batch.items) == 1
                assert batch.items[0].estimated_tokens > 1000
            else:
                assert sum(i.estimated_tokens for i in batch.items) <= 1000
                assert len(batch.items) <= 3
        assert sum(len(b.items) for b in batches) == len(tokens)


class TestOverflow:
    def test_single_large_item(self, packer):
        batches = packer.pack(_items([5000]), token_budget=1000, max_items_per_batch=8)
        assert len(batches) == 1
        assert batches[0].is_singleton_overflow is True
        assert batches[0].total_estimated_tokens == 5000
        assert batches[0].batch_id == "batch_1_large"

    def test_overflow_closes_open_batch(self, packer):
        batches = packer.pack(_items([100, 5000, 100]), token_budget=1000, max_items_per_batch=8)
        assert [b.batch_id for b in batches] == ["batch_1", "batch_2_large", "batch_3"]
        assert [b.sequence_number for b in batches] == [1, 2, 3]


class TestEdgeCases:
    def test_empty_items(self, packer):
        assert packer.pack([], token_budget=1000, max_items_per_batch=8) == []

    @pytest.mark.parametrize("budget,max_items", [(0, 8), (-1, 8), (1000, 0), (1000, -3)])
    def test_invalid_limits(self, packer, budget, max_items):
        with pytest.raises(ConfigurationError):
            packer.pack(_items([1]), token_budget=budget, max_items_per_batch=max_items)

    def test_negative_tokens_rejected_by_model(self):
        with pytest.raises(ValueError):
            WorkItem(id="x", path="x", estimated_tokens=-1)

"""Tests for pipeline definitions and the built-in step catalogs."""

from __future__ import annotations

import pytest

from docflow.core.exceptions import ConfigurationError, NotFoundError
from docflow.engine.pipelines import PIPELINES, get_pipeline
from docflow.models.pipeline import PipelineDefinition, StepDefinition


@pytest.mark.parametrize("mode,count", [("init", 8), ("create", 6), ("fix", 6), ("analyze", 4)])
def test_builtin_catalogs(mode, count):
    pipeline = get_pipeline(mode)
    assert pipeline.step_ids == list(range(1, count + 1))
    assert pipeline.step(1).depends_on == set()
    assert pipeline.step(count).depends_on == {count - 1}


def test_get_pipeline_returns_copy():
    pipeline = get_pipeline("init")
    pipeline.steps[0].title = "changed"
    assert PIPELINES["init"].steps[0].title != "changed"


def test_unknown_mode():
    with pytest.raises(ConfigurationError):
        get_pipeline("deploy")


def test_unknown_step():
    with pytest.raises(NotFoundError):
        get_pipeline("fix").step(7)


def test_steps_sorted_by_id():
    pipeline = PipelineDefinition(mode="x", steps=[
        StepDefinition(step_id=2, name="b", depends_on={1}),
        StepDefinition(step_id=1, name="a"),
    ])
    assert pipeline.step_ids == [1, 2]


@pytest.mark.parametrize("steps", [
    [],
    [StepDefinition(step_id=1, name="a"), StepDefinition(step_id=1, name="b")],
    [StepDefinition(step_id=1, name="a", depends_on={1})],
    [StepDefinition(step_id=1, name="a", depends_on={5})],
    [
        StepDefinition(step_id=1, name="a", depends_on={3}),
        StepDefinition(step_id=2, name="b", depends_on={1}),
        StepDefinition(step_id=3, name="c", depends_on={2}),
    ],
])
def test_invalid_graphs(steps):
    with pytest.raises(ConfigurationError):
        PipelineDefinition(mode="bad", steps=steps)

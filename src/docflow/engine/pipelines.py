"""Built-in step catalogs for each workflow mode."""

from __future__ import annotations

from docflow.core.exceptions import ConfigurationError
from docflow.models.pipeline import PipelineDefinition

INIT_PIPELINE = PipelineDefinition.linear("init", [
    ("scan_structure", "Project structure analysis"),
    ("detect_language", "Language detection"),
    ("scan_files", "File content read-through"),
    ("generate_architecture", "Base architecture document"),
    ("analyze_modules", "Module analysis"),
    ("generate_prompts", "Language-specific prompts"),
    ("generate_module_docs", "Per-module documents"),
    ("generate_contracts", "Integration contracts"),
])

CREATE_PIPELINE = PipelineDefinition.linear("create", [
    ("analyze_requirements", "Requirement breakdown"),
    ("generate_tech_design", "Technical design document"),
    ("generate_todo", "Development task list"),
    ("generate_architecture", "Feature architecture document"),
    ("generate_modules", "Feature module documents"),
    ("update_contracts", "Integration contract update"),
])

FIX_PIPELINE = PipelineDefinition.linear("fix", [
    ("identify_scope", "Problem scope"),
    ("find_docs", "Related document lookup"),
    ("assess_impact", "Impact assessment"),
    ("design_solution", "Fix design"),
    ("apply_changes", "Code update"),
    ("update_docs", "Document sync"),
])

ANALYZE_PIPELINE = PipelineDefinition.linear("analyze", [
    ("quality_scan", "Code quality"),
    ("performance_scan", "Performance"),
    ("security_scan", "Security"),
    ("deps_scan", "Dependencies"),
])

PIPELINES: dict[str, PipelineDefinition] = {
    p.mode: p for p in (INIT_PIPELINE, CREATE_PIPELINE, FIX_PIPELINE, ANALYZE_PIPELINE)
}


def get_pipeline(mode: str) -> PipelineDefinition:
    try:
        return PIPELINES[mode].model_copy(deep=True)
    except KeyError:
        raise ConfigurationError(
            f"Unknown workflow mode {mode!r}; expected one of {sorted(PIPELINES)}"
        ) from None

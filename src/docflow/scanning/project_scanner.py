"""Walks a project directory and produces prioritized WorkItems.

Importance favours entry points and config files near the project root and
mid-sized files; tiny files and deep paths rank lower.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path

from docflow.core.exceptions import ConfigurationError
from docflow.models.tasks import WorkItem
from docflow.scanning.tokens import DEFAULT_TOKENS_PER_BYTE, estimate_tokens_for_size

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset([
    ".js", ".ts", ".jsx", ".tsx", ".mjs",
    ".py", ".java", ".go", ".rs", ".cpp", ".c", ".cs",
    ".php", ".rb", ".swift", ".kt", ".scala",
    ".json", ".yaml", ".yml", ".toml", ".xml",
    ".md", ".txt", ".sql", ".sh",
    ".vue", ".svelte", ".html", ".css", ".scss",
])

EXCLUDED = (
    ".git", ".svn", "node_modules", "__pycache__", ".pytest_cache",
    "venv", ".venv", "build", "dist", "target", "out",
    ".DS_Store", ".idea", ".vscode", "*.log", "*.tmp",
    "coverage", "logs",
)

ENTRY_STEMS = frozenset(["main", "app", "index", "server", "__main__"])
CONFIG_NAMES = frozenset(["package.json", "pyproject.toml", "tsconfig.json", "setup.cfg"])

# Matched against whole words of the path; first match wins, so order matters.
CATEGORY_WORDS: dict[str, frozenset[str]] = {
    "test": frozenset(["test", "tests", "spec", "specs"]),
    "route": frozenset(["route", "routes", "router", "routers", "endpoint", "endpoints", "api"]),
    "controller": frozenset(["controller", "controllers", "handler", "handlers"]),
    "service": frozenset(["service", "services", "provider", "providers", "manager", "client"]),
    "model": frozenset(["model", "models", "schema", "schemas", "entity", "entities", "dto"]),
    "utility": frozenset(["util", "utils", "helper", "helpers", "common", "tools"]),
    "documentation": frozenset(["readme", "changelog", "license", "docs", "doc"]),
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_WORD_SPLIT = re.compile(r"[^a-z0-9]+")


def path_words(relative_path: str) -> set[str]:
    """Lowercased words of every path segment, file extension dropped."""
    directory, _, name = relative_path.rpartition("/")
    stem = name.rsplit(".", 1)[0] if "." in name.lstrip(".") else name
    words: set[str] = set()
    for segment in [*directory.split("/"), stem]:
        spaced = _CAMEL_BOUNDARY.sub(" ", segment).lower()
        words.update(w for w in _WORD_SPLIT.split(spaced) if w)
    return words


def categorize(relative_path: str) -> str:
    name = relative_path.rsplit("/", 1)[-1].lower()
    if name.split(".", 1)[0] in ENTRY_STEMS:
        return "entry"
    if name in CONFIG_NAMES or name.startswith(".env"):
        return "config"
    words = path_words(relative_path)
    for category, vocabulary in CATEGORY_WORDS.items():
        if words & vocabulary:
            return category
    return "source"


def importance(category: str, depth: int, size_bytes: int) -> float:
    score = 10.0
    if category == "entry":
        score += 50
    elif category == "config":
        score += 40
    score -= depth * 5
    if size_bytes < 100:
        score -= 10
    elif 1000 < size_bytes < 50000:
        score += 10
    return max(1.0, score)


def _excluded(part: str) -> bool:
    return any(fnmatch.fnmatch(part, pattern) for pattern in EXCLUDED)


def scan_work_items(
    root: str | Path,
    tokens_per_byte: float = DEFAULT_TOKENS_PER_BYTE,
    extensions: frozenset[str] = SOURCE_EXTENSIONS,
) -> list[WorkItem]:
    """Every eligible file under root as a WorkItem, in path order."""
    root = Path(root)
    if not root.is_dir():
        raise ConfigurationError(f"Not a directory: {root}")

    items: list[WorkItem] = []
    for dirpath, dirnames, filenames in os.walk(root):
        # pruned in place so excluded trees are never descended into
        dirnames[:] = sorted(d for d in dirnames if not _excluded(d))
        for filename in filenames:
            path = Path(dirpath, filename)
            if _excluded(filename) or path.suffix.lower() not in extensions:
                continue
            if not path.is_file():
                continue
            relative = path.relative_to(root)
            rel = relative.as_posix()
            size = path.stat().st_size
            category = categorize(rel)
            items.append(WorkItem(
                id=rel,
                path=rel,
                category=category,
                importance=importance(category, len(relative.parts) - 1, size),
                estimated_tokens=estimate_tokens_for_size(size, tokens_per_byte),
            ))
    items.sort(key=lambda item: item.path)
    logger.info("Scanned %s: %d work items", root, len(items))
    return items

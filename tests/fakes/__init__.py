"""Shared test doubles: re-exports of the memory backends and the mock processor."""

from __future__ import annotations

from docflow.persistence.memory_backend import MemoryArtifactStore, MemoryProjectStore
from docflow.processors.mock_processor import MockTaskProcessor

__all__ = ["MemoryArtifactStore", "MemoryProjectStore", "MockTaskProcessor"]

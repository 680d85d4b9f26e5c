# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Unit tests for AnalysisCache.

Tests cover:
- Round trip through the backing store
- Age-based staleness
- Incremental patching and full relationship refresh
- Swallowed persistence failures
- Statistics tracking
"""

import time
from pathlib import Path
from typing import Dict
from unittest.mock import MagicMock

import pytest

from project_context.cache import AnalysisCache, CacheStatistics
from project_context.models import (
    DependencyRelationship,
    ProjectAnalysis,
    ProjectStack,
    ProjectStructure,
    RelationshipType,
)
from project_context.relationship_resolver import RelationshipResolver
from project_context.storage import ANALYSIS_KEY, InMemoryStore


def _write(root: Path, files: Dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def _analysis(root: Path, analyzed_at: float = None) -> ProjectAnalysis:
    return ProjectAnalysis(
        stack=ProjectStack(language="typescript"),
        structure=ProjectStructure(other=["lib/a.ts", "lib/b.ts", "lib/c.ts"]),
        relationships=[
            DependencyRelationship("lib/a.ts", "lib/b.ts", RelationshipType.IMPORT),
            DependencyRelationship("lib/c.ts", "lib/a.ts", RelationshipType.IMPORT),
        ],
        root_path=str(root),
        analyzed_at=time.time() if analyzed_at is None else analyzed_at,
    )


@pytest.fixture
def cache(tmp_path):
    return AnalysisCache(InMemoryStore(), RelationshipResolver(tmp_path), tmp_path)


class TestGetPut:
    """Tests for storing and retrieving the analysis."""

    def test_empty_cache_misses(self, cache):
        assert cache.get() is None
        assert cache.get_statistics().misses == 1

    def test_round_trip(self, cache, tmp_path):
        analysis = _analysis(tmp_path)

        cache.put(analysis)

        assert cache.get() == analysis

    def test_get_returns_independent_copies(self, cache, tmp_path):
        cache.put(_analysis(tmp_path))

        first = cache.get()
        first.relationships.clear()

        assert len(cache.get().relationships) == 2

    def test_record_carries_cached_at(self, tmp_path):
        store = InMemoryStore()
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        cache.put(_analysis(tmp_path))

        assert "cached_at" in store.get_item(ANALYSIS_KEY)

    def test_clear(self, cache, tmp_path):
        cache.put(_analysis(tmp_path))
        cache.clear()
        assert cache.get() is None


class TestStaleness:
    """Tests for is_stale()."""

    def test_missing_is_stale(self, cache):
        assert cache.is_stale()

    def test_fresh_analysis(self, cache, tmp_path):
        cache.put(_analysis(tmp_path))
        assert not cache.is_stale()

    def test_old_analysis(self, cache, tmp_path):
        cache.put(_analysis(tmp_path, analyzed_at=time.time() - 600))
        assert cache.is_stale()

    def test_window_override(self, cache, tmp_path):
        cache.put(_analysis(tmp_path, analyzed_at=time.time() - 60))
        assert not cache.is_stale()
        assert cache.is_stale(max_age_seconds=30)


class TestPatchFile:
    """Tests for incremental patching."""

    def test_patch_changed_file(self, cache, tmp_path):
        """Test that a file's edges are replaced by its current imports."""
        _write(tmp_path, {"lib/a.ts": "import c from './c';\n"})
        original = _analysis(tmp_path, analyzed_at=1000.0)
        cache.put(original)

        cache.patch_file("lib/a.ts")

        patched = cache.get()
        edges = {(r.from_file, r.to_file) for r in patched.relationships}
        assert edges == {("lib/a.ts", "lib/c.ts")}
        assert patched.analyzed_at == 1000.0
        assert patched.structure == original.structure

    def test_patch_deleted_file(self, cache, tmp_path):
        """Test that every edge touching a deleted file is removed."""
        _write(tmp_path, {"lib/b.ts": ""})
        cache.put(_analysis(tmp_path))

        cache.patch_file("lib/a.ts")

        assert cache.get().relationships == []

    def test_patch_untouched_file_keeps_other_edges(self, cache, tmp_path):
        cache.put(_analysis(tmp_path))

        cache.patch_file("lib/unrelated.ts")

        assert len(cache.get().relationships) == 2

    def test_patch_without_cache_is_noop(self, cache):
        cache.patch_file("lib/a.ts")
        assert cache.get() is None
        assert cache.get_statistics().patches == 0


class TestRefresh:
    """Tests for refresh_all_relationships()."""

    def test_rebuilds_relationships(self, cache, tmp_path):
        _write(
            tmp_path,
            {"lib/a.ts": "", "lib/b.ts": "import a from './a';\n", "lib/c.ts": ""},
        )
        cache.put(_analysis(tmp_path, analyzed_at=1000.0))

        cache.refresh_all_relationships()

        refreshed = cache.get()
        assert {(r.from_file, r.to_file) for r in refreshed.relationships} == {
            ("lib/b.ts", "lib/a.ts")
        }
        assert refreshed.analyzed_at > 1000.0
        assert refreshed.stack.language == "typescript"

    def test_refresh_without_cache_is_noop(self, cache):
        cache.refresh_all_relationships()
        assert cache.get_statistics().refreshes == 0


class TestPersistenceFailures:
    """Tests that store failures degrade to misses instead of raising."""

    def test_failed_write_is_swallowed(self, tmp_path):
        store = MagicMock()
        store.set_item.side_effect = OSError("disk full")
        store.get_item.return_value = None
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        cache.put(_analysis(tmp_path))

        assert cache.get() is None
        stats = cache.get_statistics()
        assert stats.persistence_errors == 1
        assert stats.writes == 0

    def test_failed_read_is_a_miss(self, tmp_path):
        store = MagicMock()
        store.get_item.side_effect = ValueError("corrupt")
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        assert cache.get() is None
        assert cache.is_stale()
        assert cache.get_statistics().persistence_errors == 2

    def test_malformed_record_is_a_miss(self, tmp_path):
        store = InMemoryStore()
        store.set_item(ANALYSIS_KEY, {"unexpected": True})
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        assert cache.get() is None
        assert cache.get_statistics().persistence_errors == 1

    @pytest.mark.parametrize(
        "overrides",
        [
            {"stack": ["bad"]},
            {"structure": "contracts"},
            {"relationships": {"from": "a.ts"}},
            {"relationships": ["a.ts -> b.ts"]},
            {"analyzed_at": "yesterday"},
            {"analyzed_at": None},
        ],
    )
    def test_wrongly_typed_record_is_a_miss(self, tmp_path, overrides):
        """Test that a record with wrongly typed fields reads as absent and stale."""
        record = _analysis(tmp_path).to_dict()
        record.update(overrides)
        store = InMemoryStore()
        store.set_item(ANALYSIS_KEY, record)
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        assert cache.get() is None
        assert cache.is_stale() is True
        assert cache.get_statistics().persistence_errors == 2

    def test_non_dict_record_is_a_miss(self, tmp_path):
        store = InMemoryStore()
        store.set_item(ANALYSIS_KEY, ["not", "a", "record"])
        cache = AnalysisCache(store, RelationshipResolver(tmp_path), tmp_path)

        assert cache.get() is None


class TestStatistics:
    """Tests for statistics tracking."""

    def test_counters(self, cache, tmp_path):
        cache.get()
        cache.put(_analysis(tmp_path))
        cache.get()
        cache.patch_file("lib/a.ts")
        cache.refresh_all_relationships()

        stats = cache.get_statistics()

        assert stats == CacheStatistics(
            hits=1, misses=1, writes=3, patches=1, refreshes=1, persistence_errors=0
        )

    def test_snapshot_is_independent(self, cache):
        stats = cache.get_statistics()
        stats.hits = 99
        assert cache.get_statistics().hits == 0

    def test_to_dict(self):
        assert CacheStatistics(hits=2).to_dict()["hits"] == 2

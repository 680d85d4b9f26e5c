# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Analysis cache: the persisted ProjectAnalysis slot with a staleness policy.

The cache holds at most one ProjectAnalysis per project, stored under
ANALYSIS_KEY as {...analysis, "cached_at": <timestamp>}. Consumers always
receive a copy.

Key Features:
- Age-based staleness (now - analyzed_at > max_age)
- Incremental per-file patching of relationships
- Full relationship refresh without re-detecting stack or structure
- Statistics tracking for cache performance

Error Policy:
- Persistence failures are logged and swallowed; a failed write shows up
  as a later miss, a failed read as a miss.

Thread Safety:
- Single _lock serializes every read-modify-write within one process
- Across processes the slot is last-writer-wins
"""

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from project_context.models import ProjectAnalysis
from project_context.relationship_resolver import RelationshipResolver
from project_context.storage import ANALYSIS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 300.0


@dataclass
class CacheStatistics:
    """Counters describing cache behavior since construction."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    patches: int = 0
    refreshes: int = 0
    persistence_errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AnalysisCache:
    """Cached ProjectAnalysis with staleness checks and incremental patching.

    Usage:
        cache = AnalysisCache(store, resolver, project_root, max_age_seconds=300)
        if cache.is_stale():
            cache.put(analyzer.analyze())
        analysis = cache.get()
        cache.patch_file("src/index.ts")
    """

    def __init__(
        self,
        store: KeyValueStore,
        resolver: RelationshipResolver,
        project_root: Path,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ) -> None:
        """Initialize the analysis cache.

        Args:
            store: Key-value store the analysis is persisted in.
            resolver: Resolver used for patching and full refreshes.
            project_root: Root the cached repo-relative paths refer to.
            max_age_seconds: Default staleness window.
        """
        self._store = store
        self._resolver = resolver
        self.project_root = Path(project_root)
        self.max_age_seconds = max_age_seconds

        self._stats = CacheStatistics()
        self._lock = Lock()

        logger.debug(f"AnalysisCache initialized with max_age={max_age_seconds}s")

    def _load(self) -> Optional[ProjectAnalysis]:
        """Read and deserialize the stored analysis (caller holds _lock)."""
        try:
            record = self._store.get_item(ANALYSIS_KEY)
        except Exception as e:
            self._stats.persistence_errors += 1
            logger.warning(f"Failed to read cached analysis: {e}")
            return None

        if record is None:
            return None

        try:
            record.pop("cached_at", None)
            return ProjectAnalysis.from_dict(record)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self._stats.persistence_errors += 1
            logger.warning(f"Discarding malformed cached analysis: {e}")
            return None

    def _save(self, analysis: ProjectAnalysis) -> bool:
        """Serialize and write the analysis (caller holds _lock)."""
        record = analysis.to_dict()
        record["cached_at"] = time.time()
        try:
            self._store.set_item(ANALYSIS_KEY, record)
        except Exception as e:
            self._stats.persistence_errors += 1
            logger.warning(f"Failed to store analysis: {e}")
            return False
        self._stats.writes += 1
        return True

    def get(self) -> Optional[ProjectAnalysis]:
        """Get the cached analysis.

        Returns:
            A copy of the cached analysis, or None on miss or read failure.
        """
        with self._lock:
            analysis = self._load()
            if analysis is None:
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return analysis

    def put(self, analysis: ProjectAnalysis) -> None:
        """Store an analysis, replacing the previous one."""
        with self._lock:
            if self._save(analysis):
                logger.debug(
                    f"Cached analysis with {len(analysis.relationships)} relationships"
                )

    def is_stale(self, max_age_seconds: Optional[float] = None) -> bool:
        """Check whether the cached analysis is older than the staleness window.

        Args:
            max_age_seconds: Window override. Defaults to the configured window.

        Returns:
            True if no analysis is cached or it is older than the window.
        """
        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        with self._lock:
            analysis = self._load()
        if analysis is None:
            return True
        return time.time() - analysis.analyzed_at > max_age

    def patch_file(self, rel_path: str) -> None:
        """Recompute the relationships of a single file.

        Every edge touching rel_path (either endpoint) is removed. If the file
        still exists, its outgoing edges are recomputed from the current
        content. analyzed_at and the structure are left unchanged.

        Args:
            rel_path: Repo-relative path of the changed file.
        """
        start_time = time.time()

        with self._lock:
            analysis = self._load()
            if analysis is None:
                logger.debug(f"No cached analysis, skipping patch for {rel_path}")
                return

            before = len(analysis.relationships)
            analysis.relationships = [
                rel for rel in analysis.relationships if not rel.touches(rel_path)
            ]
            removed = before - len(analysis.relationships)

            full_path = self.project_root / rel_path
            added = 0
            if full_path.is_file():
                try:
                    content = full_path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug(f"Cannot read {rel_path} for patching: {e}")
                else:
                    new_edges = self._resolver.resolve_file(
                        rel_path, content, analysis.structure
                    )
                    analysis.relationships.extend(new_edges)
                    added = len(new_edges)

            self._save(analysis)
            self._stats.patches += 1

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Patched {rel_path}: removed {removed}, added {added} relationships "
            f"in {elapsed_ms:.1f}ms"
        )

    def refresh_all_relationships(self) -> None:
        """Replace every relationship with a full rebuild on the cached structure.

        Stack and structure are kept; analyzed_at is refreshed.
        """
        with self._lock:
            analysis = self._load()
            if analysis is None:
                logger.debug("No cached analysis, nothing to refresh")
                return

            analysis.relationships = self._resolver.resolve_all(analysis.structure)
            analysis.unscanned_files = self._resolver.last_unscanned_count
            analysis.analyzed_at = time.time()
            self._save(analysis)
            self._stats.refreshes += 1

        logger.info(f"Refreshed relationships: {len(analysis.relationships)} total")

    def clear(self) -> None:
        """Remove the cached analysis."""
        with self._lock:
            try:
                self._store.remove_item(ANALYSIS_KEY)
            except Exception as e:
                self._stats.persistence_errors += 1
                logger.warning(f"Failed to clear cached analysis: {e}")

    def get_statistics(self) -> CacheStatistics:
        """Get a snapshot of cache statistics."""
        with self._lock:
            return CacheStatistics(**asdict(self._stats))

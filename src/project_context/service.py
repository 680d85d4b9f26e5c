# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""ProjectContextService - Business logic layer for the MCP server.

This module implements the coordinator that owns every analytical component
and exposes the operations callers use.

Key Responsibilities:
- Initialize and coordinate subsystems (analyzer, cache, tracker, watcher, store)
- Run or reuse full project analyses under the staleness policy
- Apply incremental updates when files are written or deleted
- Answer context queries (summary, related files, dependents, auto-load set)
- Manage component lifecycle (file watcher start/stop, shutdown)

Error Policy:
- Filesystem and persistence failures degrade to empty/omitted results
  inside the components; they never reach callers of this service.
- Caller-supplied paths are validated; invalid paths raise ValueError.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from project_context.analyzer import ProjectAnalyzer
from project_context.cache import AnalysisCache, CacheStatistics
from project_context.config import Config
from project_context.context_tracker import (
    ContextStateTracker,
    FileRelationships,
    ProjectContext,
    normalize_path,
)
from project_context.file_watcher import FileWatcher
from project_context.ignore_rules import IgnoreRules
from project_context.log_config import get_cache_dir
from project_context.models import BrokenRelationship, ContextState, ProjectAnalysis
from project_context.relationship_resolver import RelationshipResolver
from project_context.relationship_validator import RelationshipValidator
from project_context.storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

# Security constants
_MAX_FILEPATH_LENGTH = 4096  # Maximum filepath length to prevent DoS


class AnalyzeResult:
    """Result of an analyze() call."""

    def __init__(self, analysis: ProjectAnalysis, cached: bool):
        """Initialize analyze result.

        Args:
            analysis: The project analysis (a copy safe to mutate)
            cached: True if the analysis came from the cache
        """
        self.analysis = analysis
        self.cached = cached

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for MCP response."""
        return {
            "data": self.analysis.to_dict(),
            "message": (
                f"Project analysis {'(cached)' if self.cached else 'complete'}:\n"
                f"{format_analysis(self.analysis)}"
            ),
            "cached": self.cached,
        }


def format_analysis(analysis: ProjectAnalysis) -> str:
    """Format an analysis as a plain-text report.

    Example output:
        Stack Detection:
          Contract Framework: hardhat
          ...
        Relationships: 42 dependencies tracked
    """
    stack = analysis.stack
    structure = analysis.structure
    lines: List[str] = []

    lines.append("Stack Detection:")
    lines.append(f"  Contract Framework: {stack.contract_framework or 'none'}")
    lines.append(f"  Backend Framework: {stack.backend_framework or 'none'}")
    lines.append(f"  Frontend Framework: {stack.frontend_framework or 'none'}")
    lines.append(f"  Language: {stack.language or 'unknown'}")
    lines.append(f"  Package Manager: {stack.package_manager or 'unknown'}")
    if stack.monorepo:
        lines.append("  Monorepo: yes")

    lines.append("\nProject Structure:")
    lines.append(f"  Contracts: {len(structure.contracts)} files")
    lines.append(f"  Backend: {len(structure.backend)} files")
    lines.append(f"  Frontend: {len(structure.frontend)} files")
    lines.append(f"  Tests: {len(structure.tests)} files")
    lines.append(f"  Config: {len(structure.config)} files")
    lines.append(f"  Scripts: {len(structure.scripts)} files")
    lines.append(f"  Other: {len(structure.other)} files")

    lines.append(f"\nRelationships: {len(analysis.relationships)} dependencies tracked")
    if analysis.unscanned_files:
        lines.append(
            f"  Note: {analysis.unscanned_files} files were not scanned for imports "
            f"(import scan limit reached)"
        )

    return "\n".join(lines)


class ProjectContextService:
    """Business logic coordinator for project analysis and working context.

    Owned Components:
    - ProjectAnalyzer: Full scans (stack, structure, relationships)
    - AnalysisCache: Persisted analysis with staleness and patching
    - ContextStateTracker: Focus, recent files and relevance queries
    - RelationshipValidator: Broken-relationship detection
    - FileWatcher: Optional filesystem monitoring

    Design Constraint:
    Service layer is storage-agnostic. Uses the KeyValueStore interface, so
    tests inject InMemoryStore while production uses JsonFileStore.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        project_root: Optional[Path] = None,
        store: Optional[KeyValueStore] = None,
        data_root: Optional[Path] = None,
        analyzer: Optional[ProjectAnalyzer] = None,
        file_watcher: Optional[FileWatcher] = None,
    ):
        """Initialize the service with its dependencies.

        Supports dependency injection for testing while providing sensible
        defaults for production use.

        Args:
            config: Configuration object (default: loaded from the project root)
            project_root: Project to analyze (default: cwd)
            store: Key-value store (default: JsonFileStore under the data root)
            data_root: Data root for the default store (default: ~/.project_context/)
            analyzer: ProjectAnalyzer instance (default: creates new analyzer)
            file_watcher: FileWatcher instance (default: created on first start)
        """
        self._project_root = Path(project_root).resolve() if project_root else Path.cwd()
        self.config = config or Config.for_project(self._project_root)

        self.store = (
            store
            if store is not None
            else JsonFileStore(get_cache_dir(self._project_root, data_root))
        )

        self._ignore_rules = IgnoreRules(
            self._project_root, user_patterns=self.config.ignore_patterns
        )
        self._resolver = RelationshipResolver(
            self._project_root,
            import_scan_limit=self.config.import_scan_limit,
            config_edge_limit=self.config.config_edge_limit,
        )
        self._analyzer = (
            analyzer
            if analyzer is not None
            else ProjectAnalyzer(
                self._project_root,
                config=self.config,
                ignore_rules=self._ignore_rules,
                resolver=self._resolver,
            )
        )

        self.cache = AnalysisCache(
            self.store,
            self._resolver,
            self._project_root,
            max_age_seconds=self.config.cache_max_age_seconds,
        )
        self.tracker = ContextStateTracker(
            self.store,
            self.cache,
            self._project_root,
            recent_files_limit=self.config.recent_files_limit,
        )
        self._validator = RelationshipValidator(self._project_root)

        self._file_watcher = file_watcher
        self._watcher_running = False

        logger.info(f"ProjectContextService initialized for {self._project_root}")

    @property
    def project_root(self) -> Path:
        return self._project_root

    def _validate_filepath(self, filepath: str) -> str:
        """Validate a caller-supplied path and make it repo-relative.

        Args:
            filepath: Absolute or repo-relative path.

        Returns:
            Repo-relative POSIX path.

        Raises:
            ValueError: If filepath is empty, contains control characters,
                exceeds length limits or points outside the project root.
        """
        if not filepath:
            raise ValueError("Filepath must not be empty")

        # Check for control characters first (null bytes, etc.)
        if any(ord(c) < 32 and c not in ("\t", "\n", "\r") for c in filepath):
            raise ValueError("Invalid characters in filepath")

        if len(filepath) > _MAX_FILEPATH_LENGTH:
            raise ValueError(f"Filepath too long: {len(filepath)} > {_MAX_FILEPATH_LENGTH}")

        rel_path = normalize_path(filepath, self._project_root)
        if rel_path == ".." or rel_path.startswith("../") or "/../" in rel_path:
            raise ValueError("Path traversal not allowed")
        return rel_path

    def analyze(self, force: bool = False) -> AnalyzeResult:
        """Get the project analysis, running a full scan if needed.

        Args:
            force: Skip the cache and always rescan.

        Returns:
            AnalyzeResult with cached=True when the cached analysis was fresh.
        """
        if not force and not self.cache.is_stale():
            cached = self.cache.get()
            if cached is not None:
                logger.debug("Using cached project analysis")
                return AnalyzeResult(cached, cached=True)

        analysis = self._analyzer.analyze()
        self.cache.put(analysis)
        return AnalyzeResult(analysis.copy(), cached=False)

    def get_analysis(self) -> Optional[ProjectAnalysis]:
        """Get the cached analysis without triggering a scan."""
        return self.cache.get()

    def refresh_all_relationships(self) -> None:
        self.cache.refresh_all_relationships()

    def on_file_written(self, file_path: str) -> None:
        """Update the cache and recent files after a file was created or modified."""
        rel_path = self._validate_filepath(file_path)
        self.cache.patch_file(rel_path)
        self.tracker.add_recent(rel_path)

    def on_file_deleted(self, file_path: str) -> None:
        """Update the cache and focus after a file was deleted."""
        rel_path = self._validate_filepath(file_path)
        self.cache.patch_file(rel_path)
        self.tracker.invalidate_file(rel_path)

    def handle_file_event(self, rel_path: str, deleted: bool) -> None:
        """FileWatcher callback dispatching to on_file_written / on_file_deleted."""
        if deleted:
            self.on_file_deleted(rel_path)
        else:
            self.on_file_written(rel_path)

    def validate(self) -> List[BrokenRelationship]:
        """Check the cached relationships against the filesystem.

        Returns:
            Broken relationships, or [] if nothing is cached.
        """
        analysis = self.cache.get()
        if analysis is None:
            return []
        start_time = time.time()
        broken = self._validator.validate(analysis)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"Validated {len(analysis.relationships)} relationships in {elapsed_ms:.1f}ms"
        )
        return broken

    def set_focus(self, files: List[str]) -> Optional[ProjectContext]:
        """Set the files being worked on.

        Records each file as recently used and derives the active layer from
        the first file.

        Returns:
            Context for the new focus, or None if no analysis is cached.
        """
        rel_paths = [self._validate_filepath(f) for f in files]
        self.tracker.set_focus(rel_paths)
        return self.tracker.get_file_context(rel_paths)

    def get_context_state(self) -> ContextState:
        return self.tracker.get_state()

    def get_context_summary(self, max_length: Optional[int] = None) -> str:
        if max_length is None:
            max_length = self.config.summary_max_length
        return self.tracker.summarize(max_length=max_length)

    def get_related_files(
        self, focus: Optional[List[str]] = None, max_files: Optional[int] = None
    ) -> List[str]:
        if focus is not None:
            focus = [self._validate_filepath(f) for f in focus]
        if max_files is None:
            max_files = self.config.related_files_limit
        return self.tracker.get_related(focus, max_files=max_files)

    def get_files_to_auto_load(self) -> List[str]:
        return self.tracker.get_files_to_auto_load()

    def find_dependents(self, file_path: str) -> List[str]:
        """Find every file that transitively imports file_path."""
        return self.tracker.find_transitive_dependents(self._validate_filepath(file_path))

    def get_file_relationships(self, file_path: str) -> FileRelationships:
        return self.tracker.get_file_relationships(self._validate_filepath(file_path))

    def get_cache_statistics(self) -> CacheStatistics:
        return self.cache.get_statistics()

    def start_file_watcher(self) -> None:
        """Start the file watcher; changes are patched into the cache as they happen."""
        if self._watcher_running:
            return
        if self._file_watcher is None:
            self._file_watcher = FileWatcher(self._project_root, self._ignore_rules)
        self._file_watcher.register_change_callback(self.handle_file_event)
        self._file_watcher.start()
        self._watcher_running = True

    def stop_file_watcher(self) -> None:
        """Stop the file watcher."""
        if self._watcher_running and self._file_watcher is not None:
            self._file_watcher.stop()
            self._file_watcher.unregister_change_callback(self.handle_file_event)
            self._watcher_running = False

    def is_watching(self) -> bool:
        return self._watcher_running

    def shutdown(self) -> None:
        """Shutdown the service and release resources.

        The persisted analysis and context state are kept for the next session.
        """
        logger.info("ProjectContextService shutting down...")
        self.stop_file_watcher()
        stats = self.cache.get_statistics()
        logger.info(f"Cache statistics at shutdown: {stats.to_dict()}")
        logger.info("ProjectContextService shutdown complete")

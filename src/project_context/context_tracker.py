# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Context state tracking: what the user is working on right now.

The tracker owns the session-scoped ContextState (focus files, MRU recent
files, active layer) and answers relevance queries against the cached
ProjectAnalysis:
- get_related: files linked to the focus by an edge, plus same-directory siblings
- find_transitive_dependents: everything that (transitively) imports a file
- summarize: a short natural-language description for prompts
- get_files_to_auto_load: focus + related + layer-appropriate config files

State is persisted under CONTEXT_STATE_KEY; persistence failures are logged
and swallowed, and a failed read yields a fresh default state.
"""

import logging
import os
import posixpath
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from project_context.cache import AnalysisCache
from project_context.models import ContextState, Layer, ProjectAnalysis, RelationshipType
from project_context.storage import CONTEXT_STATE_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_RECENT_FILES_LIMIT = 20
DEFAULT_RELATED_FILES_LIMIT = 10

# Related files returned by get_file_context
FILE_CONTEXT_RELATED_LIMIT = 15

# Same-directory siblings added per focus file
SIBLINGS_PER_FOCUS_FILE = 3

# Recent files used as focus when no explicit focus is set
RECENT_FALLBACK_COUNT = 3

AUTO_LOAD_RELATED_COUNT = 5
AUTO_LOAD_CONFIG_COUNT = 2

# Config filename fragments worth auto-loading for each layer
LAYER_CONFIG_MARKERS: Dict[str, tuple] = {
    Layer.CONTRACT: ("hardhat", "foundry", "Anchor"),
    Layer.BACKEND: ("tsconfig", "package.json"),
    Layer.FRONTEND: ("tsconfig", "package.json"),
}


def normalize_path(file_path: str, project_root: Path) -> str:
    """Make a path repo-relative with forward slashes.

    Absolute paths are made relative to project_root; relative paths are
    taken as already repo-relative.
    """
    if os.path.isabs(file_path):
        file_path = os.path.relpath(file_path, project_root)
    return file_path.replace(os.sep, "/")


@dataclass
class FileRelationships:
    """Direct import neighbors of one file."""

    imports: List[str] = field(default_factory=list)
    imported_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"imports": list(self.imports), "imported_by": list(self.imported_by)}


@dataclass
class ProjectContext:
    """Analysis, state and related files for a set of focus files."""

    analysis: ProjectAnalysis
    state: ContextState
    related_files: List[str]


class ContextStateTracker:
    """Tracks focus and recent files and answers relevance queries.

    Usage:
        tracker = ContextStateTracker(store, cache, project_root)
        tracker.set_focus(["src/api/users.ts"])
        related = tracker.get_related()
        summary = tracker.summarize(max_length=300)
    """

    def __init__(
        self,
        store: KeyValueStore,
        cache: AnalysisCache,
        project_root: Path,
        recent_files_limit: int = DEFAULT_RECENT_FILES_LIMIT,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Key-value store the state is persisted in.
            cache: Analysis cache queried for relationships and structure.
            project_root: Root that repo-relative paths refer to.
            recent_files_limit: Capacity of the recent-files MRU list.
        """
        self._store = store
        self._cache = cache
        self.project_root = Path(project_root)
        self.recent_files_limit = recent_files_limit
        self._lock = Lock()

    def _normalize(self, file_path: str) -> str:
        return normalize_path(file_path, self.project_root)

    def _exists(self, rel_path: str) -> bool:
        return (self.project_root / rel_path).exists()

    def _load_state(self) -> ContextState:
        try:
            record = self._store.get_item(CONTEXT_STATE_KEY)
        except Exception as e:
            logger.warning(f"Failed to read context state: {e}")
            return ContextState()

        if record is None:
            return ContextState()
        try:
            return ContextState.from_dict(record)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed context state: {e}")
            return ContextState()

    def _save_state(self, state: ContextState) -> None:
        try:
            self._store.set_item(CONTEXT_STATE_KEY, state.to_dict())
        except Exception as e:
            logger.warning(f"Failed to store context state: {e}")

    def get_state(self) -> ContextState:
        """Get the current context state (a default state if none is stored)."""
        with self._lock:
            return self._load_state()

    def update_state(self, **updates: Any) -> ContextState:
        """Merge field updates into the state and persist it.

        Args:
            **updates: ContextState field values (current_focus, recent_files,
                active_layer).

        Returns:
            The updated state; last_updated is always refreshed.

        Raises:
            AttributeError: If an update names an unknown field.
        """
        with self._lock:
            state = self._load_state()
            for name, value in updates.items():
                if not hasattr(state, name):
                    raise AttributeError(f"ContextState has no field '{name}'")
                setattr(state, name, value)
            state.last_updated = time.time()
            self._save_state(state)
            return state

    def add_recent(self, file_path: str) -> None:
        """Move a file to the front of the recent-files list.

        The list never holds duplicates and is truncated to the configured
        capacity.
        """
        normalized = self._normalize(file_path)
        with self._lock:
            state = self._load_state()
            recent = [f for f in state.recent_files if f != normalized]
            recent.insert(0, normalized)
            state.recent_files = recent[: self.recent_files_limit]
            state.last_updated = time.time()
            self._save_state(state)

    def set_focus(self, files: List[str]) -> None:
        """Set the current focus and record each file as recently used."""
        normalized = [self._normalize(f) for f in files]
        self.update_state(current_focus=normalized)
        for file_path in normalized:
            self.add_recent(file_path)

    def invalidate_file(self, file_path: str) -> None:
        """Drop a file from the current focus.

        An emptied focus is cleared entirely. The cached analysis is not touched.
        """
        normalized = self._normalize(file_path)
        with self._lock:
            state = self._load_state()
            if not state.current_focus or normalized not in state.current_focus:
                return
            remaining = [f for f in state.current_focus if f != normalized]
            state.current_focus = remaining or None
            state.last_updated = time.time()
            self._save_state(state)
        logger.debug(f"Removed {normalized} from current focus")

    @staticmethod
    def detect_layer(file_path: str, analysis: ProjectAnalysis) -> Optional[str]:
        """Get the layer a file belongs to.

        Returns:
            Layer value, or None for scripts, other and untracked files.
        """
        structure = analysis.structure
        if file_path in structure.contracts:
            return Layer.CONTRACT
        if file_path in structure.backend:
            return Layer.BACKEND
        if file_path in structure.frontend:
            return Layer.FRONTEND
        if file_path in structure.tests:
            return Layer.TEST
        if file_path in structure.config:
            return Layer.CONFIG
        return None

    def get_related(
        self, focus: Optional[List[str]] = None, max_files: int = DEFAULT_RELATED_FILES_LIMIT
    ) -> List[str]:
        """Get files related to the focus.

        The focus defaults to the stored focus, then to the three most recent
        files. Related files are the other endpoint of every edge touching a
        focus file plus up to three same-directory siblings per focus file.
        The result is truncated to max_files before non-existent files are
        filtered out, so it may be shorter than max_files.

        Args:
            focus: Focus files. None means "use the stored context".
            max_files: Maximum number of candidates considered.

        Returns:
            Existing repo-relative paths, in discovery order.
        """
        analysis = self._cache.get()
        if analysis is None:
            return []

        if focus is None:
            state = self.get_state()
            if state.current_focus is not None:
                focus = state.current_focus
            else:
                focus = state.recent_files[:RECENT_FALLBACK_COUNT]
        if not focus:
            return []

        structure = analysis.structure
        sibling_pool = (
            structure.contracts + structure.backend + structure.frontend + structure.tests
        )

        # dict preserves discovery order
        related: Dict[str, None] = {}
        for focus_file in focus:
            normalized = self._normalize(focus_file)

            for rel in analysis.relationships:
                if rel.touches(normalized):
                    related[rel.other_end(normalized)] = None

            directory = posixpath.dirname(normalized)
            siblings = [
                f for f in sibling_pool if posixpath.dirname(f) == directory and f != normalized
            ]
            for sibling in siblings[:SIBLINGS_PER_FOCUS_FILE]:
                related[sibling] = None

        candidates = list(related)[:max_files]
        return [f for f in candidates if self._exists(f)]

    def get_file_relationships(self, file_path: str) -> FileRelationships:
        """Get the direct import neighbors of a file."""
        analysis = self._cache.get()
        if analysis is None:
            return FileRelationships()

        normalized = self._normalize(file_path)
        result = FileRelationships()
        for rel in analysis.relationships:
            if rel.relationship_type != RelationshipType.IMPORT:
                continue
            if rel.from_file == normalized:
                result.imports.append(rel.to_file)
            if rel.to_file == normalized:
                result.imported_by.append(rel.from_file)
        return result

    def find_transitive_dependents(
        self, file_path: str, analysis: Optional[ProjectAnalysis] = None
    ) -> List[str]:
        """Find every file that imports file_path directly or transitively.

        Follows reverse import edges with an explicit stack and visited set,
        so cycles terminate. The start file itself is included only when it
        is reachable from itself through a cycle.

        Args:
            file_path: File whose dependents are wanted.
            analysis: Analysis to query. Defaults to the cached analysis.

        Returns:
            Dependents in discovery order, without duplicates.
        """
        if analysis is None:
            analysis = self._cache.get()
        if analysis is None:
            return []

        start = self._normalize(file_path)

        importers: Dict[str, List[str]] = defaultdict(list)
        for rel in analysis.relationships:
            if rel.relationship_type == RelationshipType.IMPORT:
                importers[rel.to_file].append(rel.from_file)

        dependents: List[str] = []
        seen = set()
        visited = {start}
        stack = [start]

        while stack:
            current = stack.pop()
            for importer in importers.get(current, []):
                if importer not in seen:
                    seen.add(importer)
                    dependents.append(importer)
                if importer not in visited:
                    visited.add(importer)
                    stack.append(importer)

        return dependents

    def get_file_context(self, files: List[str]) -> Optional[ProjectContext]:
        """Focus on files and get their context.

        Updates the stored focus and derives the active layer from the first
        file.

        Returns:
            ProjectContext, or None if no analysis is cached.
        """
        analysis = self._cache.get()
        if analysis is None:
            return None

        normalized = [self._normalize(f) for f in files]
        active_layer = self.detect_layer(normalized[0], analysis) if normalized else None
        related = self.get_related(normalized, max_files=FILE_CONTEXT_RELATED_LIMIT)

        state = self.update_state(current_focus=normalized, active_layer=active_layer)
        return ProjectContext(analysis=analysis, state=state, related_files=related)

    def summarize(self, max_length: int = 500) -> str:
        """Build a one-paragraph description of the project and current focus.

        Example:
            "Stack: Contracts: hardhat, Frontend: nextjs. Currently working on:
            contract layer. Focus files: contracts/Token.sol. Structure:
            2 contracts, 14 frontend files"

        Args:
            max_length: Maximum summary length. Longer summaries are cut to
                exactly max_length characters, ending in "...".

        Returns:
            The summary, or "" if no analysis is cached.
        """
        analysis = self._cache.get()
        if analysis is None:
            return ""
        state = self.get_state()

        parts: List[str] = []

        stack = analysis.stack
        stack_parts = []
        if stack.contract_framework:
            stack_parts.append(f"Contracts: {stack.contract_framework}")
        if stack.backend_framework:
            stack_parts.append(f"Backend: {stack.backend_framework}")
        if stack.frontend_framework:
            stack_parts.append(f"Frontend: {stack.frontend_framework}")
        if stack_parts:
            parts.append(f"Stack: {', '.join(stack_parts)}")

        if state.active_layer:
            parts.append(f"Currently working on: {state.active_layer} layer")

        if state.current_focus:
            parts.append(f"Focus files: {', '.join(state.current_focus[:3])}")

        structure = analysis.structure
        structure_parts = []
        if structure.contracts:
            structure_parts.append(f"{len(structure.contracts)} contracts")
        if structure.backend:
            structure_parts.append(f"{len(structure.backend)} backend files")
        if structure.frontend:
            structure_parts.append(f"{len(structure.frontend)} frontend files")
        if structure_parts:
            parts.append(f"Structure: {', '.join(structure_parts)}")

        summary = ". ".join(parts)
        if len(summary) > max_length:
            if max_length <= 3:
                return "..."[:max_length]
            summary = summary[: max_length - 3] + "..."
        return summary

    def get_files_to_auto_load(self) -> List[str]:
        """Get files worth loading as working context.

        Combines the current focus, the top related files and up to two
        config files matching the active layer. The stored focus is not
        modified.

        Returns:
            Existing repo-relative paths, without duplicates.
        """
        analysis = self._cache.get()
        if analysis is None:
            return []
        state = self.get_state()

        files: Dict[str, None] = {}
        for focus_file in state.current_focus or []:
            files[focus_file] = None

        related = self.get_related(max_files=FILE_CONTEXT_RELATED_LIMIT)
        for related_file in related[:AUTO_LOAD_RELATED_COUNT]:
            files[related_file] = None

        markers = LAYER_CONFIG_MARKERS.get(state.active_layer or "", ())
        if markers:
            config_files = [
                f for f in analysis.structure.config if any(m in f for m in markers)
            ]
            for config_file in config_files[:AUTO_LOAD_CONFIG_COUNT]:
                files[config_file] = None

        return [f for f in files if self._exists(f)]

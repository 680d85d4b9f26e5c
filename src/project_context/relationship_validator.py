# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Relationship validation: flags edges that no longer hold.

Checks per edge, in order:
1. Source file missing on disk -> file_missing (no further checks for that edge)
2. Import target not on disk, even after trying resolution extensions and
   index files -> import_not_found
3. Direct bidirectional import pair (A -> B and B -> A) -> circular_dependency,
   reported once per unordered pair

Longer cycles (A -> B -> C -> A) are not detected.
"""

import logging
from pathlib import Path
from typing import FrozenSet, List, Set, Tuple

from project_context.models import (
    BrokenReason,
    BrokenRelationship,
    ProjectAnalysis,
    RelationshipType,
)
from project_context.relationship_resolver import RESOLUTION_EXTENSIONS

logger = logging.getLogger(__name__)


class RelationshipValidator:
    """Validates the relationships of a ProjectAnalysis against the filesystem.

    Validation is read-only: the analysis is never modified and findings are
    never persisted.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)

    def _exists(self, rel_path: str) -> bool:
        try:
            return (self.project_root / rel_path).exists()
        except (OSError, ValueError):
            # Unrepresentable paths (e.g. embedded NUL) cannot exist
            return False

    def validate(self, analysis: ProjectAnalysis) -> List[BrokenRelationship]:
        """Find broken relationships.

        Args:
            analysis: Analysis whose relationships are checked.

        Returns:
            Findings in edge order.
        """
        known_files = set(analysis.structure.all_files())
        import_pairs: Set[Tuple[str, str]] = {
            (rel.from_file, rel.to_file)
            for rel in analysis.relationships
            if rel.relationship_type == RelationshipType.IMPORT
        }
        reported_cycles: Set[FrozenSet[str]] = set()
        broken: List[BrokenRelationship] = []

        for rel in analysis.relationships:
            if not self._exists(rel.from_file):
                broken.append(
                    BrokenRelationship(
                        rel.from_file, rel.to_file, rel.relationship_type, BrokenReason.FILE_MISSING
                    )
                )
                continue

            if rel.relationship_type != RelationshipType.IMPORT:
                continue

            if not self._exists(rel.to_file) and not self._resolves(rel.to_file, known_files):
                broken.append(
                    BrokenRelationship(
                        rel.from_file,
                        rel.to_file,
                        rel.relationship_type,
                        BrokenReason.IMPORT_NOT_FOUND,
                    )
                )

            pair = frozenset((rel.from_file, rel.to_file))
            if (rel.to_file, rel.from_file) in import_pairs and pair not in reported_cycles:
                reported_cycles.add(pair)
                broken.append(
                    BrokenRelationship(
                        rel.from_file,
                        rel.to_file,
                        rel.relationship_type,
                        BrokenReason.CIRCULAR_DEPENDENCY,
                    )
                )

        if broken:
            logger.info(f"Validation found {len(broken)} broken relationships")
        return broken

    def _resolves(self, target: str, known_files: Set[str]) -> bool:
        """Check the extension and index-file fallbacks for an import target.

        A candidate counts only if it exists on disk and is a known file.
        """
        candidates = [target + ext for ext in RESOLUTION_EXTENSIONS]
        candidates.extend(f"{target}/index{ext}" for ext in RESOLUTION_EXTENSIONS)
        return any(c in known_files and self._exists(c) for c in candidates)

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Full project scan: stack detection, structure mapping and relationship resolution."""

import logging
import time
from pathlib import Path
from typing import Optional

from project_context.config import Config
from project_context.ignore_rules import IgnoreRules
from project_context.models import ProjectAnalysis
from project_context.relationship_resolver import RelationshipResolver
from project_context.stack_detector import StackDetector
from project_context.structure_mapper import StructureMapper, scan_files

logger = logging.getLogger(__name__)


class ProjectAnalyzer:
    """Produces a fresh ProjectAnalysis for a project root.

    The tree is walked once; the file list is shared by the stack detector
    and the structure mapper.
    """

    def __init__(
        self,
        project_root: Path,
        config: Optional[Config] = None,
        ignore_rules: Optional[IgnoreRules] = None,
        resolver: Optional[RelationshipResolver] = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            project_root: Directory to analyze.
            config: Configuration (defaults when None).
            ignore_rules: Ignore rules. Built from config.ignore_patterns if None.
            resolver: Relationship resolver. Built from config limits if None.
        """
        self.project_root = Path(project_root).resolve()
        self.config = config or Config.for_project(self.project_root)
        self.ignore_rules = ignore_rules or IgnoreRules(
            self.project_root, user_patterns=self.config.ignore_patterns
        )
        self.resolver = resolver or RelationshipResolver(
            self.project_root,
            import_scan_limit=self.config.import_scan_limit,
            config_edge_limit=self.config.config_edge_limit,
        )
        self.stack_detector = StackDetector(self.project_root, self.ignore_rules)
        self.structure_mapper = StructureMapper(self.project_root, self.ignore_rules)

    def analyze(self) -> ProjectAnalysis:
        """Run a full scan.

        Returns:
            New ProjectAnalysis stamped with the current time.
        """
        start_time = time.time()

        files = scan_files(self.project_root, self.ignore_rules)
        stack = self.stack_detector.detect(files)
        structure = self.structure_mapper.map(files)
        relationships = self.resolver.resolve_all(structure)

        analysis = ProjectAnalysis(
            stack=stack,
            structure=structure,
            relationships=relationships,
            root_path=str(self.project_root),
            analyzed_at=time.time(),
            unscanned_files=self.resolver.last_unscanned_count,
        )

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Analyzed {self.project_root}: {structure.total_files()} files, "
            f"{len(relationships)} relationships in {elapsed_ms:.1f}ms"
        )
        return analysis

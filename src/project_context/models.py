# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the project dependency graph and context cache.

This module defines the foundational data structures used throughout the system:
- ProjectStack: Detected technology facts (frameworks, language, package manager)
- ProjectStructure: Disjoint categorization of tracked files into layers
- DependencyRelationship: Directed, typed edge between two files
- ProjectAnalysis: Aggregate root cached as a single unit
- ContextState: Session-scoped focus / recent-files state
- BrokenRelationship: Validation finding (derived, never persisted)

Enum-like classes (RelationshipType, Layer, BrokenReason, ...) hold string
constants so that every model serializes to JSON-compatible primitives.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class RelationshipType:
    """Types of relationships between files.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    IMPORT = "import"  # import/require/export-from of another file or package
    CONTRACT = "contract"
    CONFIG = "config"  # script -> contract, file -> tsconfig.json
    TEST = "test"  # test -> contract it exercises
    UNKNOWN = "unknown"


class Layer:
    """Architectural layers a file can belong to."""

    CONTRACT = "contract"
    BACKEND = "backend"
    FRONTEND = "frontend"
    TEST = "test"
    CONFIG = "config"


class BrokenReason:
    """Reasons a relationship can be reported as broken."""

    FILE_MISSING = "file_missing"
    IMPORT_NOT_FOUND = "import_not_found"
    CIRCULAR_DEPENDENCY = "circular_dependency"


class ContractFramework:
    HARDHAT = "hardhat"
    FOUNDRY = "foundry"
    ANCHOR = "anchor"
    TRUFFLE = "truffle"
    BROWNIE = "brownie"


class BackendFramework:
    EXPRESS = "express"
    NEXTJS = "nextjs"
    FASTIFY = "fastify"
    NEST = "nest"
    FASTAPI = "fastapi"
    DJANGO = "django"
    FLASK = "flask"


class FrontendFramework:
    NEXTJS = "nextjs"
    REACT = "react"
    VUE = "vue"
    SVELTE = "svelte"
    SOLID = "solid"


class Language:
    """Primary languages, in tie-break preference order."""

    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    SOLIDITY = "solidity"
    RUST = "rust"
    PYTHON = "python"

    PREFERENCE_ORDER = (TYPESCRIPT, JAVASCRIPT, SOLIDITY, RUST, PYTHON)


class PackageManager:
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"
    BUN = "bun"


@dataclass(frozen=True)
class ProjectStack:
    """Detected technology facts for a project.

    Immutable snapshot: recomputed wholesale by StackDetector, never patched.
    Every framework/language field is None when detection found nothing.
    """

    contract_framework: Optional[str] = None
    backend_framework: Optional[str] = None
    frontend_framework: Optional[str] = None
    language: Optional[str] = None
    package_manager: Optional[str] = None
    monorepo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "contract_framework": self.contract_framework,
            "backend_framework": self.backend_framework,
            "frontend_framework": self.frontend_framework,
            "language": self.language,
            "package_manager": self.package_manager,
            "monorepo": self.monorepo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectStack":
        """Deserialize from JSON-compatible dict."""
        return cls(
            contract_framework=data.get("contract_framework"),
            backend_framework=data.get("backend_framework"),
            frontend_framework=data.get("frontend_framework"),
            language=data.get("language"),
            package_manager=data.get("package_manager"),
            monorepo=bool(data.get("monorepo", False)),
        )


# Category names in classification order, followed by the catch-all.
STRUCTURE_CATEGORIES = ("contracts", "backend", "frontend", "tests", "config", "scripts", "other")


@dataclass
class ProjectStructure:
    """Seven disjoint lists of repo-relative POSIX paths.

    Invariant: every tracked source file appears in exactly one list.
    StructureMapper guarantees this by first-match-wins classification.
    """

    contracts: List[str] = field(default_factory=list)
    backend: List[str] = field(default_factory=list)
    frontend: List[str] = field(default_factory=list)
    tests: List[str] = field(default_factory=list)
    config: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    other: List[str] = field(default_factory=list)

    def categories(self) -> Dict[str, List[str]]:
        """Return the category lists keyed by category name, in classification order."""
        return {name: getattr(self, name) for name in STRUCTURE_CATEGORIES}

    def all_files(self) -> List[str]:
        """Get the known-file universe used for import resolution.

        Config files are excluded: they are not import targets.

        Returns:
            Files from every category except config.
        """
        return (
            self.contracts + self.backend + self.frontend + self.tests + self.scripts + self.other
        )

    def total_files(self) -> int:
        return sum(len(files) for files in self.categories().values())

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {name: list(files) for name, files in self.categories().items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectStructure":
        """Deserialize from JSON-compatible dict."""
        return cls(**{name: list(data.get(name, [])) for name in STRUCTURE_CATEGORIES})


@dataclass
class DependencyRelationship:
    """A directed edge between two files.

    Multiple edges between the same ordered pair and type may coexist.
    For bare package imports, to_file holds the package name and never
    resolves to a real file.
    """

    from_file: str  # Repo-relative path of the dependent file
    to_file: str  # Repo-relative path (or bare package name) depended upon
    relationship_type: str  # RelationshipType value

    def touches(self, path: str) -> bool:
        """Check whether path is either endpoint of this edge."""
        return self.from_file == path or self.to_file == path

    def other_end(self, path: str) -> str:
        """Get the endpoint opposite to path."""
        return self.to_file if self.from_file == path else self.from_file

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {"from": self.from_file, "to": self.to_file, "type": self.relationship_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyRelationship":
        """Deserialize from JSON-compatible dict.

        Raises:
            KeyError: If required fields are missing from data dict.
        """
        return cls(
            from_file=data["from"],
            to_file=data["to"],
            relationship_type=data.get("type", RelationshipType.UNKNOWN),
        )


@dataclass
class ProjectAnalysis:
    """Aggregate root of a full project scan; the unit of caching.

    Lifecycle:
    - Created by a full scan (ProjectAnalyzer.analyze)
    - Relationships replaced wholesale by AnalysisCache.refresh_all_relationships
    - Relationships patched by AnalysisCache.patch_file
    Consumers receive copies (see copy()), never the cached object.
    """

    stack: ProjectStack
    structure: ProjectStructure
    relationships: List[DependencyRelationship]
    root_path: str
    analyzed_at: float  # Unix timestamp of the last full scan

    # Files skipped by the import-scan budget (0 = the scan covered everything)
    unscanned_files: int = 0

    def copy(self) -> "ProjectAnalysis":
        """Return a deep copy safe to hand out to consumers."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "stack": self.stack.to_dict(),
            "structure": self.structure.to_dict(),
            "relationships": [rel.to_dict() for rel in self.relationships],
            "root_path": self.root_path,
            "analyzed_at": self.analyzed_at,
            "unscanned_files": self.unscanned_files,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectAnalysis":
        """Deserialize from JSON-compatible dict.

        Raises:
            KeyError: If required fields are missing from data dict.
            ValueError: If a field has the wrong type.
        """
        stack = data.get("stack", {})
        structure = data.get("structure", {})
        relationships = data.get("relationships", [])
        analyzed_at = data["analyzed_at"]

        if not isinstance(stack, dict) or not isinstance(structure, dict):
            raise ValueError("stack and structure must be objects")
        if not isinstance(relationships, list) or not all(
            isinstance(rel, dict) for rel in relationships
        ):
            raise ValueError("relationships must be a list of objects")
        if isinstance(analyzed_at, bool) or not isinstance(analyzed_at, (int, float)):
            raise ValueError(f"analyzed_at must be a number, got {analyzed_at!r}")

        return cls(
            stack=ProjectStack.from_dict(stack),
            structure=ProjectStructure.from_dict(structure),
            relationships=[DependencyRelationship.from_dict(rel) for rel in relationships],
            root_path=data["root_path"],
            analyzed_at=float(analyzed_at),
            unscanned_files=data.get("unscanned_files", 0),
        )


@dataclass
class ContextState:
    """Session-scoped working context, persisted separately from the analysis.

    recent_files is an MRU list: most-recent-first, no duplicates, bounded.
    """

    recent_files: List[str] = field(default_factory=list)
    current_focus: Optional[List[str]] = None
    active_layer: Optional[str] = None  # Layer value
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "recent_files": list(self.recent_files),
            "last_updated": self.last_updated,
        }
        if self.current_focus is not None:
            result["current_focus"] = list(self.current_focus)
        if self.active_layer is not None:
            result["active_layer"] = self.active_layer
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextState":
        """Deserialize from JSON-compatible dict."""
        focus = data.get("current_focus")
        return cls(
            recent_files=list(data.get("recent_files", [])),
            current_focus=list(focus) if focus is not None else None,
            active_layer=data.get("active_layer"),
            last_updated=data.get("last_updated", time.time()),
        )


@dataclass
class BrokenRelationship:
    """A relationship flagged by RelationshipValidator."""

    from_file: str
    to_file: str
    relationship_type: str
    reason: str  # BrokenReason value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "from": self.from_file,
            "to": self.to_file,
            "type": self.relationship_type,
            "reason": self.reason,
        }

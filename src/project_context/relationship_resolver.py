# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Relationship resolution: infers dependency edges between tracked files.

Four edge families are produced:
- import: textual import/require/export-from specifiers resolved against the
  known-file universe (ProjectStructure.all_files())
- test: test -> contract, matched by normalized basename
- config (scripts): script -> contract, when the script mentions the contract
- config (tsconfig): backend/frontend .ts/.tsx file -> governing tsconfig.json

Import extraction is pattern-based, not a parser. ImportExtractor is the seam
where a stricter implementation can be substituted.
"""

import logging
import posixpath
import re
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Set

from project_context.models import DependencyRelationship, ProjectStructure, RelationshipType

logger = logging.getLogger(__name__)

# Files whose imports are scanned
IMPORT_SCAN_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

# Extensions tried when resolving an extensionless specifier
RESOLUTION_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

TSCONFIG_FILENAME = "tsconfig.json"

DEFAULT_IMPORT_SCAN_LIMIT = 100
DEFAULT_CONFIG_EDGE_LIMIT = 20

# Groups: 1 = import [... from] "x", 2 = require("x"), 3 = export ... from "x"
IMPORT_PATTERN = re.compile(
    r"""import\s+(?:.*\s+from\s+)?["']([^"']+)["']"""
    r"""|require\s*\(\s*["']([^"']+)["']\s*\)"""
    r"""|from\s+["']([^"']+)["']"""
)

_CONTRACT_SUFFIX = re.compile(r"\.(sol|rs)$")
_TEST_SUFFIX = re.compile(r"\.(test|spec)\.(ts|js|tsx|jsx|sol|rs)$")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class ImportExtractor:
    """Extracts module specifiers from source text.

    The default implementation is the regex approximation described in the
    module docstring; it may report specifiers inside comments or strings.
    """

    def extract(self, content: str) -> List[str]:
        """Get every import specifier in content, in source order.

        Args:
            content: Source file text.

        Returns:
            Raw specifiers (duplicates preserved).
        """
        specifiers: List[str] = []
        for match in IMPORT_PATTERN.finditer(content):
            specifier = match.group(1) or match.group(2) or match.group(3)
            if specifier:
                specifiers.append(specifier)
        return specifiers


def contract_name(contract_path: str) -> str:
    """Normalize a contract path to its comparable name.

    Example:
        "contracts/My-Token.sol" -> "MyToken"
    """
    basename = PurePosixPath(contract_path).name
    return _NON_ALNUM.sub("", _CONTRACT_SUFFIX.sub("", basename))


def normalize_test_name(test_path: str) -> str:
    """Normalize a test path to the name of what it tests.

    Example:
        "test/my_token.test.ts" -> "mytoken"
    """
    basename = PurePosixPath(test_path).name
    return _NON_ALNUM.sub("", _TEST_SUFFIX.sub("", basename))


def is_import_scanned(path: str) -> bool:
    return path.endswith(IMPORT_SCAN_EXTENSIONS)


class RelationshipResolver:
    """Builds dependency edges for a whole structure or a single file.

    Usage:
        resolver = RelationshipResolver(project_root)
        edges = resolver.resolve_all(structure)
        print(resolver.last_unscanned_count)

    Read failures are logged at debug level and the affected file simply
    contributes no edges.
    """

    def __init__(
        self,
        project_root: Path,
        import_scan_limit: int = DEFAULT_IMPORT_SCAN_LIMIT,
        config_edge_limit: int = DEFAULT_CONFIG_EDGE_LIMIT,
        extractor: Optional[ImportExtractor] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            project_root: Directory the repo-relative paths are relative to.
            import_scan_limit: Max files scanned for imports per full rebuild
                (0 = unlimited).
            config_edge_limit: Max file -> tsconfig.json edges per tsconfig.
            extractor: Import specifier extractor. Defaults to ImportExtractor().
        """
        self.project_root = Path(project_root)
        self.import_scan_limit = import_scan_limit
        self.config_edge_limit = config_edge_limit
        self.extractor = extractor or ImportExtractor()

        # Files skipped by the scan budget in the most recent resolve_all()
        self.last_unscanned_count = 0

    def extract_import_specifiers(self, content: str) -> List[str]:
        return self.extractor.extract(content)

    def _read(self, path: str) -> Optional[str]:
        """Read a repo-relative file as UTF-8, or None on failure."""
        full_path = self.project_root / path
        try:
            return full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot read {path}, skipping: {e}")
            return None

    def resolve_all(self, structure: ProjectStructure) -> List[DependencyRelationship]:
        """Rebuild every edge for a structure.

        Args:
            structure: Classified project files.

        Returns:
            Edges in family order: imports, per-contract test and script
            edges, then tsconfig edges.
        """
        known_files = set(structure.all_files())
        relationships: List[DependencyRelationship] = []

        sources = structure.backend + structure.frontend + structure.other
        candidates = [f for f in sources if is_import_scanned(f)]
        if self.import_scan_limit and len(candidates) > self.import_scan_limit:
            to_scan = candidates[: self.import_scan_limit]
            self.last_unscanned_count = len(candidates) - self.import_scan_limit
            logger.warning(
                f"Import scan limited to {self.import_scan_limit} files, "
                f"{self.last_unscanned_count} files not scanned for imports"
            )
        else:
            to_scan = candidates
            self.last_unscanned_count = 0

        for path in to_scan:
            content = self._read(path)
            if content is not None:
                relationships.extend(self._import_edges(path, content, known_files))

        # Each script is read at most once, however many contracts there are
        script_contents: Dict[str, Optional[str]] = {}
        for contract in structure.contracts:
            name = contract_name(contract)
            if not name:
                continue

            for test in structure.tests:
                if name.lower() in normalize_test_name(test).lower():
                    relationships.append(
                        DependencyRelationship(test, contract, RelationshipType.TEST)
                    )

            for script in structure.scripts:
                if script not in script_contents:
                    script_contents[script] = self._read(script)
                content = script_contents[script]
                if content is not None and _mentions_contract(content, contract, name):
                    relationships.append(
                        DependencyRelationship(script, contract, RelationshipType.CONFIG)
                    )

        relationships.extend(self._tsconfig_edges(structure))

        logger.debug(
            f"Resolved {len(relationships)} relationships "
            f"({len(to_scan)} files scanned for imports)"
        )
        return relationships

    def resolve_file(
        self, path: str, content: str, structure: ProjectStructure
    ) -> List[DependencyRelationship]:
        """Compute the outgoing edges of a single file.

        Used by incremental patching; edges pointing at path from other files
        are not recomputed here.

        Args:
            path: Repo-relative path of the file.
            content: Current file content.
            structure: Cached structure providing the known-file universe.

        Returns:
            Edges whose from_file is path.
        """
        relationships: List[DependencyRelationship] = []

        if is_import_scanned(path):
            known_files = set(structure.all_files())
            known_files.add(path)
            relationships.extend(self._import_edges(path, content, known_files))

        if path in structure.tests:
            subject = normalize_test_name(path).lower()
            for contract in structure.contracts:
                name = contract_name(contract)
                if name and name.lower() in subject:
                    relationships.append(
                        DependencyRelationship(path, contract, RelationshipType.TEST)
                    )

        if path in structure.scripts:
            for contract in structure.contracts:
                name = contract_name(contract)
                if name and _mentions_contract(content, contract, name):
                    relationships.append(
                        DependencyRelationship(path, contract, RelationshipType.CONFIG)
                    )

        if path.endswith((".ts", ".tsx")) and (
            path in structure.backend or path in structure.frontend
        ):
            relationships.extend(
                rel for rel in self._tsconfig_edges(structure) if rel.from_file == path
            )

        return relationships

    def _import_edges(
        self, path: str, content: str, known_files: Set[str]
    ) -> List[DependencyRelationship]:
        """Resolve the import specifiers of one file."""
        relationships: List[DependencyRelationship] = []

        for specifier in self.extract_import_specifiers(content):
            if "node_modules" in specifier or specifier.startswith("@types/"):
                continue

            if specifier.startswith((".", "/")):
                target = resolve_specifier(path, specifier, known_files)
                if target is not None:
                    relationships.append(
                        DependencyRelationship(path, target, RelationshipType.IMPORT)
                    )
            elif "." not in specifier and "/" not in specifier:
                # Bare package name (possibly a workspace package); never a file
                relationships.append(
                    DependencyRelationship(path, specifier, RelationshipType.IMPORT)
                )

        return relationships

    def _tsconfig_edges(self, structure: ProjectStructure) -> List[DependencyRelationship]:
        """Link backend/frontend TypeScript files to the tsconfig.json above them."""
        relationships: List[DependencyRelationship] = []
        typescript_files = [
            f for f in structure.backend + structure.frontend if f.endswith((".ts", ".tsx"))
        ]

        for config_file in structure.config:
            if PurePosixPath(config_file).name != TSCONFIG_FILENAME:
                continue

            config_dir = posixpath.dirname(config_file)
            governed = [f for f in typescript_files if _is_within(f, config_dir)]
            for path in governed[: self.config_edge_limit]:
                relationships.append(
                    DependencyRelationship(path, config_file, RelationshipType.CONFIG)
                )

        return relationships


def resolve_specifier(importer: str, specifier: str, known_files: Set[str]) -> Optional[str]:
    """Resolve a relative or root-absolute specifier to a known file.

    "./x" and "../x" are relative to the importing file's directory; "/x" is
    relative to the project root.

    Args:
        importer: Repo-relative path of the importing file.
        specifier: Import specifier starting with "." or "/".
        known_files: Known-file universe.

    Returns:
        The first matching candidate path, or None.
    """
    if specifier.startswith("/"):
        base = specifier[1:]
    else:
        base = posixpath.join(posixpath.dirname(importer), specifier)

    normalized = posixpath.normpath(base.replace("\\", "/")).strip("/")
    if not normalized or normalized == ".":
        return None

    candidates = [normalized]
    candidates.extend(normalized + ext for ext in RESOLUTION_EXTENSIONS)
    candidates.extend(f"{normalized}/index{ext}" for ext in RESOLUTION_EXTENSIONS)

    for candidate in candidates:
        if candidate in known_files:
            return candidate
    return None


def _mentions_contract(content: str, contract: str, name: str) -> bool:
    return name in content or contract in content


def _is_within(path: str, directory: str) -> bool:
    """Check whether path lives in directory or below it ("" is the root)."""
    if not directory:
        return True
    return path.startswith(directory + "/")

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structure mapper: partitions tracked files into architectural categories.

Classification applies ordered glob pattern sets:

    contracts -> backend -> frontend -> tests -> config -> scripts

Patterns inside one category are unioned; across categories the first match
wins, so a file claimed earlier is never reconsidered. Every remaining file
with a source extension is assigned to `other`. The result is deterministic
for a given filesystem state and rule order, and the seven lists are disjoint.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pathspec

from project_context.ignore_rules import IgnoreRules
from project_context.models import ProjectStructure

logger = logging.getLogger(__name__)

# Extensions that make up the source-file universe for the `other` catch-all
SOURCE_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", ".py", ".rs", ".sol")

_WEB = "{ts,js,tsx,jsx,vue,svelte}"

# Ordered (category, patterns) rules. Braces are expanded before matching.
CATEGORY_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        "contracts",
        (
            "contracts/**/*.{sol,rs}",
            "src/**/*.{sol,rs}",
            "scripts/**/*.sol",
            "programs/**/*.rs",
        ),
    ),
    (
        "backend",
        (
            "{backend,server,api}/**/*.{ts,js,tsx,jsx,py}",
            "src/{api,server,backend}/**/*.{ts,js,tsx,jsx}",
            "app/api/**/*.{ts,js,tsx,jsx}",
        ),
    ),
    (
        "frontend",
        (
            f"{{frontend,client,web}}/**/*.{_WEB}",
            f"src/{{components,pages,app}}/**/*.{_WEB}",
            f"{{app,pages,components}}/**/*.{_WEB}",
        ),
    ),
    (
        "tests",
        (
            "**/*.{test,spec}.{ts,js,tsx,jsx,sol,rs,py}",
            "{test,tests}/**/*.{ts,js,tsx,jsx,sol,rs,py}",
            "__tests__/**/*.{ts,js,tsx,jsx,py}",
        ),
    ),
    (
        "config",
        (
            "**/*.config.{ts,js,json}",
            "**/*config.{ts,js,json}",
            "**/tsconfig.json",
            "**/package.json",
            "**/hardhat.config.*",
            "**/foundry.toml",
            "**/Anchor.toml",
            "**/next.config.*",
        ),
    ),
    (
        "scripts",
        (
            "scripts/**/*.{ts,js,py,sh}",
            "**/deploy.*",
            "**/migrate.*",
            "**/seed.*",
        ),
    ),
)


def expand_braces(pattern: str) -> List[str]:
    """Expand shell-style brace alternatives in a glob pattern.

    Example:
        "src/*.{ts,js}" -> ["src/*.ts", "src/*.js"]

    Nested braces are not supported.

    Args:
        pattern: Glob pattern possibly containing {a,b} groups.

    Returns:
        List of brace-free patterns, in expansion order.
    """
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    end = pattern.find("}", start)
    if end == -1:
        return [pattern]

    prefix, body, suffix = pattern[:start], pattern[start + 1 : end], pattern[end + 1 :]
    expanded: List[str] = []
    for alternative in body.split(","):
        expanded.extend(expand_braces(prefix + alternative + suffix))
    return expanded


def compile_patterns(patterns: Sequence[str]) -> pathspec.PathSpec:
    """Compile brace-style glob patterns into a gitwildmatch PathSpec."""
    lines: List[str] = []
    for pattern in patterns:
        lines.extend(expand_braces(pattern))
    return pathspec.GitIgnoreSpec.from_lines(lines)


def scan_files(project_root: Path, ignore_rules: IgnoreRules) -> List[str]:
    """List every non-ignored file under the project root.

    Ignored directories are pruned during the walk rather than filtered
    afterwards. Unreadable directories are skipped.

    Args:
        project_root: Directory to walk.
        ignore_rules: Rules deciding which paths are excluded.

    Returns:
        Sorted repo-relative POSIX paths.
    """
    root = Path(project_root)
    files: List[str] = []

    def _on_error(error: OSError) -> None:
        logger.debug(f"Skipping unreadable directory: {error}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        # Prune in place so os.walk never descends into ignored directories
        dirnames[:] = sorted(
            d for d in dirnames if not ignore_rules.should_prune_dir(_join(rel_dir, d))
        )

        for filename in filenames:
            rel_path = _join(rel_dir, filename)
            if not ignore_rules.should_ignore(rel_path):
                files.append(rel_path)

    files.sort()
    return files


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


class StructureMapper:
    """Maps a project tree onto ProjectStructure categories.

    Usage:
        mapper = StructureMapper(project_root, IgnoreRules(project_root))
        structure = mapper.map()
    """

    def __init__(self, project_root: Path, ignore_rules: Optional[IgnoreRules] = None) -> None:
        """Initialize the mapper.

        Args:
            project_root: Directory to classify.
            ignore_rules: Ignore rules. Defaults to IgnoreRules(project_root).
        """
        self.project_root = Path(project_root)
        self.ignore_rules = ignore_rules or IgnoreRules(self.project_root)
        self._rules: List[Tuple[str, pathspec.PathSpec]] = [
            (category, compile_patterns(patterns)) for category, patterns in CATEGORY_RULES
        ]

    def map(self, files: Optional[Sequence[str]] = None) -> ProjectStructure:
        """Classify files into the seven categories.

        Args:
            files: Pre-scanned repo-relative paths. If None, the tree is scanned.

        Returns:
            ProjectStructure whose lists are sorted and pairwise disjoint.
        """
        all_files = list(files) if files is not None else scan_files(
            self.project_root, self.ignore_rules
        )
        return self.classify(all_files)

    def classify(self, files: Sequence[str]) -> ProjectStructure:
        """Apply the ordered category rules to a list of paths."""
        assigned: Dict[str, List[str]] = {category: [] for category, _ in self._rules}
        claimed = set()

        for category, spec in self._rules:
            for path in files:
                if path in claimed:
                    continue
                if spec.match_file(path):
                    assigned[category].append(path)
                    claimed.add(path)

        other = [
            path for path in files if path not in claimed and path.endswith(SOURCE_EXTENSIONS)
        ]

        structure = ProjectStructure(
            contracts=sorted(assigned["contracts"]),
            backend=sorted(assigned["backend"]),
            frontend=sorted(assigned["frontend"]),
            tests=sorted(assigned["tests"]),
            config=sorted(assigned["config"]),
            scripts=sorted(assigned["scripts"]),
            other=sorted(other),
        )

        logger.debug(
            "Mapped structure: "
            + ", ".join(f"{name}={len(paths)}" for name, paths in structure.categories().items())
        )
        return structure

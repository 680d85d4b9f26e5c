# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Ignore rules shared by the structure mapper, stack detector and file watcher.

A path is ignored when any of the following match:
- ALWAYS_IGNORED directory names (build output, dependency directories,
  version control, tool-private directories), anywhere in the path
- ROOT_IGNORED directory names, only as the first path component
- Python virtualenvs (any directory holding a pyvenv.cfg)
- The project's .gitignore (gitwildmatch semantics via pathspec)
- User-configured ignore patterns (same syntax as .gitignore)
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional

import pathspec

logger = logging.getLogger(__name__)

# Longest .gitignore line accepted (prevents pathological patterns)
_MAX_PATTERN_LENGTH = 1000


class IgnoreRules:
    """Decides which repo-relative paths are excluded from scanning.

    Usage:
        rules = IgnoreRules(project_root, user_patterns=["*.generated.ts"])
        if not rules.should_ignore("src/index.ts"):
            ...
    """

    ALWAYS_IGNORED = frozenset(
        {
            "node_modules",
            "dist",
            "build",
            ".next",
            ".git",
            ".coder",
            "__pycache__",
            ".venv",
            ".tox",
            ".pytest_cache",
            ".mypy_cache",
            ".ruff_cache",
            "target",
            "coverage",
        }
    )

    # Static export output, ignored only directly under the project root
    ROOT_IGNORED = frozenset({"out"})

    def __init__(
        self,
        project_root: Path,
        user_patterns: Optional[Iterable[str]] = None,
        use_gitignore: bool = True,
    ) -> None:
        """Initialize ignore rules.

        Args:
            project_root: Project root directory (where .gitignore lives).
            user_patterns: Additional gitignore-style patterns.
            use_gitignore: Whether to honor the project's .gitignore.
        """
        self.project_root = Path(project_root).resolve()
        self.gitignore_patterns: List[str] = self._load_gitignore() if use_gitignore else []
        self.user_patterns: List[str] = list(user_patterns or [])

        self._spec = pathspec.GitIgnoreSpec.from_lines(
            self.gitignore_patterns + self.user_patterns
        )
        self._virtualenv_dirs: Dict[str, bool] = {}

    def _load_gitignore(self) -> List[str]:
        """Load .gitignore patterns, skipping blanks, comments and overlong lines.

        Returns:
            Pattern lines in file order (order matters for negations).
        """
        gitignore_path = self.project_root / ".gitignore"
        patterns: List[str] = []

        if not gitignore_path.exists():
            logger.debug(f"No .gitignore found at {gitignore_path}")
            return patterns

        try:
            with open(gitignore_path, encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue

                    if len(line) > _MAX_PATTERN_LENGTH:
                        logger.warning(
                            f".gitignore line {line_num}: Pattern too long "
                            f"(>{_MAX_PATTERN_LENGTH} chars), skipping"
                        )
                        continue

                    patterns.append(line)
        except UnicodeDecodeError as e:
            logger.error(f"Failed to decode .gitignore (encoding error): {e}")
        except OSError as e:
            logger.warning(f"Failed to read .gitignore: {e}")

        logger.debug(f"Loaded {len(patterns)} patterns from .gitignore")
        return patterns

    def should_ignore(self, rel_path: str) -> bool:
        """Check whether a file path should be excluded.

        Args:
            rel_path: POSIX path relative to the project root.

        Returns:
            True if the path is ignored.
        """
        rel = rel_path.replace("\\", "/").strip("/")
        if not rel:
            return False

        parts = PurePosixPath(rel).parts
        if any(part in self.ALWAYS_IGNORED for part in parts):
            return True
        if len(parts) > 1 and parts[0] in self.ROOT_IGNORED:
            return True
        if any(
            self._is_virtualenv("/".join(parts[:depth])) for depth in range(1, len(parts))
        ):
            return True

        return self._spec.match_file(rel)

    def should_prune_dir(self, rel_dir: str) -> bool:
        """Check whether a directory should not be descended into.

        Args:
            rel_dir: POSIX directory path relative to the project root.

        Returns:
            True if the whole directory is ignored.
        """
        rel = rel_dir.replace("\\", "/").strip("/")
        if not rel:
            return False

        if PurePosixPath(rel).name in self.ALWAYS_IGNORED or rel in self.ROOT_IGNORED:
            return True
        if self._is_virtualenv(rel):
            return True

        return self._spec.match_file(f"{rel}/")

    def _is_virtualenv(self, rel_dir: str) -> bool:
        """Check whether a directory is a Python virtualenv (memoized)."""
        if rel_dir not in self._virtualenv_dirs:
            marker = self.project_root / rel_dir / "pyvenv.cfg"
            self._virtualenv_dirs[rel_dir] = marker.is_file()
        return self._virtualenv_dirs[rel_dir]

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared on-disk layout for the project context cache.

Everything the package writes lives under a single data root
(default: ~/.project_context/):
- cache/<project-id>/  persisted analysis and context state (one JSON file per key)
- logs/                Python logging output written by setup_logging()
"""

import hashlib
from pathlib import Path
from typing import Optional

# Default data root directory (user home)
DEFAULT_DATA_ROOT = Path.home() / ".project_context"

# Subdirectory names
CACHE_SUBDIR = "cache"
LOGS_SUBDIR = "logs"


def get_default_data_root() -> Path:
    """Get the default data root directory.

    Returns:
        Path to ~/.project_context/
    """
    return DEFAULT_DATA_ROOT


def validate_filename_component(value: str, name: str = "value") -> None:
    """Validate a string for safe use in filenames.

    Checks for path traversal attacks and invalid characters.

    Args:
        value: The string to validate.
        name: Name of the parameter for error messages.

    Raises:
        ValueError: If value is empty, contains path separators, parent
                   references, or null bytes.
    """
    if not value:
        raise ValueError(f"{name} must not be empty")
    if "\0" in value:
        raise ValueError(f"{name} contains null bytes: {value}")
    if "/" in value or "\\" in value or ":" in value:
        raise ValueError(f"{name} must not contain path separators: {value}")
    if ".." in value:
        raise ValueError(f"{name} must not contain parent references: {value}")


def project_id(project_root: Path) -> str:
    """Build a stable directory name for a project root.

    Args:
        project_root: Project root directory.

    Returns:
        "<dirname>-<12 hex chars of the resolved path's sha1>"
    """
    resolved = Path(project_root).resolve()
    digest = hashlib.sha1(str(resolved).encode("utf-8")).hexdigest()[:12]
    name = resolved.name or "root"
    return f"{name}-{digest}"


def get_cache_dir(project_root: Path, data_root: Optional[Path] = None) -> Path:
    """Get the cache directory for one project.

    Args:
        project_root: Project whose analysis is cached.
        data_root: Data root directory. If None, uses default.

    Returns:
        Path to {data_root}/cache/{project_id}/
    """
    root = data_root or DEFAULT_DATA_ROOT
    return root / CACHE_SUBDIR / project_id(project_root)


def get_logs_dir(data_root: Optional[Path] = None) -> Path:
    """Get the Python logging output directory.

    Args:
        data_root: Data root directory. If None, uses default.

    Returns:
        Path to {data_root}/logs/
    """
    root = data_root or DEFAULT_DATA_ROOT
    return root / LOGS_SUBDIR


def ensure_data_directories(data_root: Optional[Path] = None) -> None:
    """Create the data root and its subdirectories if they don't exist.

    Args:
        data_root: Data root directory. If None, uses default.
    """
    root = data_root or DEFAULT_DATA_ROOT
    root.mkdir(parents=True, exist_ok=True)
    (root / CACHE_SUBDIR).mkdir(exist_ok=True)
    (root / LOGS_SUBDIR).mkdir(exist_ok=True)

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Stack detection: which frameworks, language and package manager a project uses.

Each field of ProjectStack is filled by an independent probe. Probes check
signals in a fixed priority order:

    explicit config file > dependency-manifest entry > directory heuristic > absent

A probe never raises: malformed manifests and unexpected filesystem errors
degrade that single field to None (monorepo: False) and are logged.
"""

import json
import logging
import tomllib
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from project_context.ignore_rules import IgnoreRules
from project_context.models import (
    BackendFramework,
    ContractFramework,
    FrontendFramework,
    Language,
    PackageManager,
    ProjectStack,
)
from project_context.structure_mapper import scan_files

logger = logging.getLogger(__name__)

T = TypeVar("T")

# File extensions counted for each language
LANGUAGE_EXTENSIONS: Dict[str, tuple] = {
    Language.TYPESCRIPT: (".ts", ".tsx"),
    Language.JAVASCRIPT: (".js", ".jsx", ".mjs", ".cjs"),
    Language.SOLIDITY: (".sol",),
    Language.RUST: (".rs",),
    Language.PYTHON: (".py",),
}

# package.json dependency -> framework, checked in order
CONTRACT_PACKAGES = (
    ("hardhat", ContractFramework.HARDHAT),
    ("@nomicfoundation/hardhat-toolbox", ContractFramework.HARDHAT),
    ("@coral-xyz/anchor", ContractFramework.ANCHOR),
    ("@anchor-lang/anchor", ContractFramework.ANCHOR),
    ("truffle", ContractFramework.TRUFFLE),
)

BACKEND_PACKAGES = (
    ("next", BackendFramework.NEXTJS),
    ("express", BackendFramework.EXPRESS),
    ("fastify", BackendFramework.FASTIFY),
    ("@nestjs/core", BackendFramework.NEST),
)

PYTHON_BACKEND_PACKAGES = (
    ("fastapi", BackendFramework.FASTAPI),
    ("uvicorn", BackendFramework.FASTAPI),
    ("django", BackendFramework.DJANGO),
    ("flask", BackendFramework.FLASK),
)

FRONTEND_PACKAGES = (
    ("next", FrontendFramework.NEXTJS),
    ("react", FrontendFramework.REACT),
    ("react-dom", FrontendFramework.REACT),
    ("vue", FrontendFramework.VUE),
    ("svelte", FrontendFramework.SVELTE),
    ("solid-js", FrontendFramework.SOLID),
)

NEXT_CONFIG_FILES = ("next.config.js", "next.config.ts", "next.config.mjs")

# Root-level entries that mark a workspace layout
MONOREPO_INDICATORS = ("apps", "packages", "lerna.json", "pnpm-workspace.yaml", "rush.json")

# Manifests that count towards "more than one of the same kind"
MANIFEST_NAMES = ("package.json", "Cargo.toml", "pyproject.toml")


class StackDetector:
    """Detects a project's technology stack from files on disk.

    Usage:
        stack = StackDetector(project_root).detect()
        if stack.contract_framework == ContractFramework.HARDHAT:
            ...

    The directory-pattern heuristics need the list of tracked files; pass it
    to detect() when it is already available to avoid a second tree walk.
    """

    def __init__(self, project_root: Path, ignore_rules: Optional[IgnoreRules] = None) -> None:
        self.project_root = Path(project_root)
        self.ignore_rules = ignore_rules or IgnoreRules(self.project_root)
        self._files: List[str] = []
        self._package_json: Optional[Dict[str, Any]] = None

    def detect(self, files: Optional[Sequence[str]] = None) -> ProjectStack:
        """Run every probe and assemble the stack.

        Args:
            files: Repo-relative paths of tracked files. Scanned if None.

        Returns:
            ProjectStack snapshot.
        """
        if files is None:
            files = self._safe(
                "file scan", lambda: scan_files(self.project_root, self.ignore_rules), []
            )
        self._files = list(files)
        self._package_json = self._safe("package.json", self._load_package_json, None)

        stack = ProjectStack(
            contract_framework=self._safe(
                "contract framework", self.detect_contract_framework, None
            ),
            backend_framework=self._safe("backend framework", self.detect_backend_framework, None),
            frontend_framework=self._safe(
                "frontend framework", self.detect_frontend_framework, None
            ),
            language=self._safe("language", self.detect_language, None),
            package_manager=self._safe("package manager", self.detect_package_manager, None),
            monorepo=self._safe("monorepo", self.detect_monorepo, False),
        )
        logger.info(f"Detected stack for {self.project_root}: {stack.to_dict()}")
        return stack

    def _safe(self, name: str, probe: Callable[[], T], default: T) -> T:
        """Run a probe, degrading to default on any error."""
        try:
            return probe()
        except Exception as e:
            logger.warning(f"Stack probe '{name}' failed, treating as unknown: {e}")
            return default

    def _exists(self, *names: str) -> bool:
        return any((self.project_root / name).exists() for name in names)

    def _load_package_json(self) -> Optional[Dict[str, Any]]:
        """Load the root package.json.

        Returns:
            Parsed manifest, or None if absent or malformed.
        """
        path = self.project_root / "package.json"
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Malformed package.json at {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"package.json at {path} is not a JSON object")
            return None
        return data

    def _package_deps(self) -> Dict[str, Any]:
        """Merged dependencies + devDependencies of the root package.json."""
        if not self._package_json:
            return {}
        deps: Dict[str, Any] = {}
        for section in ("dependencies", "devDependencies"):
            values = self._package_json.get(section)
            if isinstance(values, dict):
                deps.update(values)
        return deps

    def _python_requirements(self) -> List[str]:
        """Lower-cased requirement names from requirements*.txt and pyproject.toml."""
        names: List[str] = []

        for path in sorted(self.project_root.glob("requirements*.txt")):
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Cannot read {path}: {e}")
                continue
            for line in lines:
                line = line.split("#", 1)[0].strip()
                if line and not line.startswith("-"):
                    names.append(_requirement_name(line))

        pyproject = self.project_root / "pyproject.toml"
        if pyproject.exists():
            try:
                with open(pyproject, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Malformed pyproject.toml at {pyproject}: {e}")
                data = {}

            project = data.get("project", {})
            for requirement in project.get("dependencies", []) or []:
                if isinstance(requirement, str):
                    names.append(_requirement_name(requirement))

            poetry = data.get("tool", {}).get("poetry", {})
            for requirement in (poetry.get("dependencies") or {}).keys():
                names.append(requirement.lower())

        return names

    def _files_named(self, *basenames: str) -> List[str]:
        return [f for f in self._files if PurePosixPath(f).name in basenames]

    def detect_contract_framework(self) -> Optional[str]:
        if self._exists("hardhat.config.ts", "hardhat.config.js"):
            return ContractFramework.HARDHAT
        if self._exists("foundry.toml"):
            return ContractFramework.FOUNDRY
        if self._exists("Anchor.toml"):
            return ContractFramework.ANCHOR
        if self._exists("truffle-config.js", "truffle.js"):
            return ContractFramework.TRUFFLE

        deps = self._package_deps()
        for package, framework in CONTRACT_PACKAGES:
            if package in deps:
                return framework

        if self._exists("brownie-config.yaml", "brownie-config.yml"):
            return ContractFramework.BROWNIE

        # Solidity sources without a recognizable framework stay unknown
        return None

    def detect_backend_framework(self) -> Optional[str]:
        if self._exists(*NEXT_CONFIG_FILES):
            return BackendFramework.NEXTJS

        deps = self._package_deps()
        for package, framework in BACKEND_PACKAGES:
            if package in deps:
                return framework

        requirements = self._python_requirements()
        for package, framework in PYTHON_BACKEND_PACKAGES:
            if package in requirements:
                return framework

        python_entries = self._files_named("app.py", "main.py", "manage.py", "wsgi.py", "asgi.py")
        if python_entries:
            names = {PurePosixPath(f).name for f in python_entries}
            if "manage.py" in names or "wsgi.py" in names:
                return BackendFramework.DJANGO
            if "asgi.py" in names:
                return BackendFramework.FASTAPI
            return BackendFramework.FLASK

        if self._files_named("server.js", "server.ts", "app.js", "app.ts"):
            return BackendFramework.EXPRESS

        return None

    def detect_frontend_framework(self) -> Optional[str]:
        if self._exists(*NEXT_CONFIG_FILES):
            return FrontendFramework.NEXTJS

        deps = self._package_deps()
        for package, framework in FRONTEND_PACKAGES:
            if package in deps:
                return framework

        react_files = [
            f
            for f in self._files
            if f.endswith((".jsx", ".tsx"))
            or _has_dir_component(f, "components")
            or _has_dir_component(f, "pages")
        ]
        if react_files:
            has_next_layout = any(
                _has_dir_component(f, "pages") or _has_dir_component(f, "app") for f in react_files
            )
            return FrontendFramework.NEXTJS if has_next_layout else FrontendFramework.REACT

        if any(f.endswith(".vue") for f in self._files):
            return FrontendFramework.VUE

        return None

    def detect_language(self) -> Optional[str]:
        counts = {
            language: sum(1 for f in self._files if f.endswith(extensions))
            for language, extensions in LANGUAGE_EXTENSIONS.items()
        }

        if self._exists("tsconfig.json") and counts[Language.TYPESCRIPT] > 0:
            return Language.TYPESCRIPT

        max_count = max(counts.values())
        if max_count == 0:
            return None
        # First language in preference order with the max count wins ties
        for language in Language.PREFERENCE_ORDER:
            if counts[language] == max_count:
                return language
        return None

    def detect_package_manager(self) -> Optional[str]:
        if self._exists("pnpm-lock.yaml"):
            return PackageManager.PNPM
        if self._exists("yarn.lock"):
            return PackageManager.YARN
        if self._exists("bun.lockb", "bun.lock"):
            return PackageManager.BUN
        if self._exists("package-lock.json"):
            return PackageManager.NPM
        if self._package_json and self._package_json.get("workspaces"):
            return PackageManager.NPM
        return None

    def detect_monorepo(self) -> bool:
        if self._package_json and self._package_json.get("workspaces"):
            return True

        if self._exists(*MONOREPO_INDICATORS):
            return True

        for manifest in MANIFEST_NAMES:
            if len(self._files_named(manifest)) > 1:
                return True

        return False


def _requirement_name(requirement: str) -> str:
    """Extract the distribution name from a PEP 508 requirement string."""
    name = requirement.strip()
    for separator in ("[", "=", "<", ">", "!", "~", ";", " ", "@"):
        name = name.split(separator, 1)[0]
    return name.strip().lower()


def _has_dir_component(path: str, directory: str) -> bool:
    return directory in PurePosixPath(path).parts[:-1]

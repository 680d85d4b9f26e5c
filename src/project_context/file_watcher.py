# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File system watcher feeding incremental cache updates.

This module turns watchdog events into "file written" / "file deleted"
notifications for the service:
- Watchdog library for cross-platform file watching
- Shared IgnoreRules (.gitignore, always-ignored directories, user patterns)
- Sensitive files are never reported
- Only source files that can carry relationships are reported

Event mapping:
- created / modified -> written
- deleted            -> deleted
- moved              -> deleted (old path) + written (new path)

Known Limitations:
- No debouncing: an editor save that emits several events patches the cache
  several times (each patch is cheap and idempotent)
- No automatic restart on watcher failure
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

import pathspec
from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from project_context.ignore_rules import IgnoreRules

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Callback signature: (rel_path: str, deleted: bool) -> None
ChangeCallback = Callable[[str, bool], None]


class FileWatcher:
    """Watches a project tree and reports changes to relationship-bearing files.

    Usage:
        watcher = FileWatcher(project_root, ignore_rules)
        watcher.register_change_callback(service.handle_file_event)
        watcher.start()
        ...
        watcher.stop()
    """

    # Sensitive files that should never be reported
    SENSITIVE_PATTERNS = (
        ".env",
        ".env.*",
        "credentials.json",
        "*.key",
        "*.pem",
        "*.p12",
        "*.pfx",
        "id_rsa",
        "id_ed25519",
        "secrets.yaml",
        "secrets.yml",
        ".npmrc",
        ".aws/",
    )

    # Extensions that can carry relationships
    SUPPORTED_EXTENSIONS = {
        ".ts": "typescript",
        ".tsx": "typescript",
        ".js": "javascript",
        ".jsx": "javascript",
        ".py": "python",
        ".rs": "rust",
        ".sol": "solidity",
    }

    def __init__(self, project_root: Path, ignore_rules: Optional[IgnoreRules] = None):
        """Initialize FileWatcher.

        Args:
            project_root: Root directory to watch.
            ignore_rules: Ignore rules. Defaults to IgnoreRules(project_root).
        """
        self.project_root = Path(project_root).resolve()
        self.ignore_rules = ignore_rules or IgnoreRules(self.project_root)
        self._sensitive = pathspec.GitIgnoreSpec.from_lines(self.SENSITIVE_PATTERNS)

        self._change_callbacks: List[ChangeCallback] = []

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _FileEventHandler(self)

        logger.info(f"FileWatcher initialized for {self.project_root}")

    def to_relative(self, file_path: str) -> Optional[str]:
        """Convert an absolute event path to a repo-relative POSIX path.

        Returns:
            Relative path, or None if the path is outside the project root.
        """
        try:
            return Path(file_path).resolve().relative_to(self.project_root).as_posix()
        except (ValueError, OSError):
            return None

    def should_report(self, rel_path: str) -> bool:
        """Check whether a change to rel_path should be reported.

        Args:
            rel_path: Repo-relative POSIX path.

        Returns:
            True for supported, non-ignored, non-sensitive files.
        """
        if not self.is_supported_file(rel_path):
            return False
        if self.ignore_rules.should_ignore(rel_path):
            return False
        if self._sensitive.match_file(rel_path):
            logger.debug(f"Ignoring sensitive file: {rel_path}")
            return False
        return True

    def is_supported_file(self, file_path: str) -> bool:
        return Path(file_path).suffix in self.SUPPORTED_EXTENSIONS

    def get_language(self, file_path: str) -> Optional[str]:
        return self.SUPPORTED_EXTENSIONS.get(Path(file_path).suffix)

    def register_change_callback(self, callback: ChangeCallback) -> None:
        """Register a callback for file changes.

        Thread Safety:
            Callbacks are invoked synchronously from the watcher thread and
            should return quickly.

        Args:
            callback: Function taking (rel_path, deleted).
        """
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)
            logger.debug(f"Registered change callback: {callback}")

    def unregister_change_callback(self, callback: ChangeCallback) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)
            logger.debug(f"Unregistered change callback: {callback}")

    def notify(self, file_path: str, deleted: bool) -> None:
        """Report a change to every callback if the file is relevant.

        Args:
            file_path: Absolute path from the watchdog event.
            deleted: Whether the file was removed.
        """
        rel_path = self.to_relative(file_path)
        if rel_path is None or not self.should_report(rel_path):
            return

        logger.debug(
            f"Event: {'deleted' if deleted else 'written'} - {rel_path} "
            f"(language: {self.get_language(rel_path)})"
        )
        for callback in self._change_callbacks:
            try:
                callback(rel_path, deleted)
            except Exception as e:
                # One failing callback must not starve the others
                logger.error(f"Change callback failed for {rel_path}: {e}")

    def start(self) -> None:
        """Start watching file system.

        Raises:
            RuntimeError: If watcher is already running
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("FileWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.project_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version

        logger.info(f"FileWatcher started, monitoring {self.project_root}")

    def stop(self) -> None:
        """Stop watching file system.

        Blocks until observer thread terminates (with timeout).
        """
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("FileWatcher stopped")

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class _FileEventHandler(FileSystemEventHandler):
    """Internal event handler for watchdog; delegates to FileWatcher.notify."""

    def __init__(self, watcher: FileWatcher):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(str(event.src_path), deleted=False)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(str(event.src_path), deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(str(event.src_path), deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename events as delete (old) + write (new)."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return

        self.watcher.notify(str(event.src_path), deleted=True)
        self.watcher.notify(str(event.dest_path), deleted=False)

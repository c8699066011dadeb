"""Durable, retry-wrapped file primitives rooted at a workspace directory."""

import posixpath
from pathlib import Path
from typing import Callable, List, Optional

from ..core.retry import RetryConfig, with_retry
from .filesystem import FileSystem, LocalFileSystem

TEMP_SUFFIX = ".tmp"


class PersistentStore:
    """
    Read/write/list/remove/append over a :class:`FileSystem`.

    All paths are workspace-relative POSIX strings (``"tasks/index.json"``).
    Every primitive retries transient OS failures with exponential backoff
    and raises :class:`~forge.core.exceptions.StoreIOError` once the retry
    budget is spent; any other error propagates unchanged.
    """

    def __init__(
        self,
        root: Path,
        filesystem: Optional[FileSystem] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the store.

        Args:
            root: Workspace directory all paths are relative to
            filesystem: Filesystem capability (default: local disk)
            retry_config: Retry budget and backoff (uses defaults if None)
            sleep: Sleep function used between retries, injectable for tests
        """
        self.root = Path(root)
        self.filesystem: FileSystem = filesystem or LocalFileSystem()
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

    def resolve(self, path: str) -> Path:
        """Map a workspace-relative path onto the filesystem."""
        normalized = posixpath.normpath(path) if path else "."
        if normalized.startswith("/") or normalized == ".." or normalized.startswith("../"):
            raise ValueError(f"Path escapes the workspace: {path}")
        if normalized == ".":
            return self.root
        return self.root / normalized

    def read(self, path: str) -> bytes:
        target = self.resolve(path)
        return self._retry(lambda: self.filesystem.read_bytes(target), "read", path)

    def read_text(self, path: str) -> str:
        return self.read(path).decode("utf-8")

    def write(self, path: str, data: bytes) -> None:
        target = self.resolve(path)

        def _write() -> None:
            self.filesystem.make_dirs(target.parent)
            self.filesystem.write_bytes(target, data)

        self._retry(_write, "write", path)

    def write_text(self, path: str, text: str) -> None:
        self.write(path, text.encode("utf-8"))

    def append(self, path: str, data: bytes) -> None:
        target = self.resolve(path)

        def _append() -> None:
            self.filesystem.make_dirs(target.parent)
            self.filesystem.append_bytes(target, data)

        self._retry(_append, "append", path)

    def append_text(self, path: str, text: str) -> None:
        self.append(path, text.encode("utf-8"))

    def list(self, path: str = "") -> List[str]:
        """List entry names under ``path`` in lexicographic order.

        Returns an empty list when the directory does not exist. Leftover
        temp files from interrupted writes are skipped.
        """
        target = self.resolve(path)

        def _list() -> List[str]:
            if not self.filesystem.exists(target):
                return []
            names = self.filesystem.list_dir(target)
            return sorted(name for name in names if not name.endswith(TEMP_SUFFIX))

        return self._retry(_list, "list", path)

    def remove(self, path: str) -> None:
        """Remove a file or directory tree; no-op if absent."""
        target = self.resolve(path)

        def _remove() -> None:
            if not self.filesystem.exists(target):
                return
            try:
                self.filesystem.remove(target)
            except FileNotFoundError:
                # Removed concurrently; the end state is what was asked for
                return

        self._retry(_remove, "remove", path)

    def exists(self, path: str) -> bool:
        target = self.resolve(path)
        return self._retry(lambda: self.filesystem.exists(target), "exists", path)

    def is_dir(self, path: str) -> bool:
        target = self.resolve(path)
        return self._retry(lambda: self.filesystem.is_dir(target), "is_dir", path)

    def copy_tree(self, src: str, dest: str) -> List[str]:
        """Copy a file or directory tree inside the workspace.

        Returns:
            Workspace-relative paths of the files written
        """
        if self.is_dir(src):
            copied: List[str] = []
            for name in self.list(src):
                copied.extend(
                    self.copy_tree(posixpath.join(src, name), posixpath.join(dest, name))
                )
            return copied

        self.write(dest, self.read(src))
        return [dest]

    def _retry(self, operation, description: str, path: str):
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return with_retry(
            operation,
            self.retry_config,
            description=description,
            path=path,
            **kwargs,
        )

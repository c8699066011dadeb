"""Workspace storage primitives."""

from .filesystem import FileSystem, LocalFileSystem
from .store import PersistentStore

__all__ = ["FileSystem", "LocalFileSystem", "PersistentStore"]

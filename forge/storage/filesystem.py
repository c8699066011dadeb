"""Filesystem capability backing the persistent store.

The store above this layer only talks to the :class:`FileSystem` protocol,
so tests can swap in an in-memory implementation.
"""

import shutil
from pathlib import Path
from typing import List, Protocol, Union

PathLike = Union[str, Path]


class FileSystem(Protocol):
    """Raw filesystem primitives. Implementations raise ``OSError`` subclasses."""

    def read_bytes(self, path: PathLike) -> bytes: ...

    def write_bytes(self, path: PathLike, data: bytes) -> None: ...

    def append_bytes(self, path: PathLike, data: bytes) -> None: ...

    def list_dir(self, path: PathLike) -> List[str]: ...

    def exists(self, path: PathLike) -> bool: ...

    def is_dir(self, path: PathLike) -> bool: ...

    def make_dirs(self, path: PathLike) -> None: ...

    def remove(self, path: PathLike) -> None: ...


class LocalFileSystem:
    """:class:`FileSystem` on top of the local disk."""

    def read_bytes(self, path: PathLike) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: PathLike, data: bytes) -> None:
        # Write to a sibling temp file, then rename (atomic on POSIX)
        target = Path(path)
        temp_file = target.with_name(target.name + ".tmp")
        temp_file.write_bytes(data)
        temp_file.replace(target)

    def append_bytes(self, path: PathLike, data: bytes) -> None:
        with open(path, "ab") as f:
            f.write(data)

    def list_dir(self, path: PathLike) -> List[str]:
        return [entry.name for entry in Path(path).iterdir()]

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def is_dir(self, path: PathLike) -> bool:
        return Path(path).is_dir()

    def make_dirs(self, path: PathLike) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: PathLike) -> None:
        target = Path(path)
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()

"""File sources the engine reads a snapshot from.

The loader and lock generator never touch the filesystem directly; they ask
a source for repo-relative POSIX paths. ``DirectorySource`` reads a checkout,
``MappingSource`` serves an in-memory snapshot.
"""

from __future__ import annotations

import pathlib
from typing import Dict, List, Mapping, Union


class FileSource:
    """Read-only access to a snapshot of repo-relative files."""

    def read(self, rel: str) -> bytes:
        """Return file bytes, raising FileNotFoundError when absent."""
        raise NotImplementedError

    def exists(self, rel: str) -> bool:
        raise NotImplementedError

    def list_files(self, rel_dir: str, suffix: str = ".json") -> List[str]:
        """Every file under ``rel_dir`` (recursive) ending in ``suffix``, sorted."""
        raise NotImplementedError


class DirectorySource(FileSource):
    def __init__(self, root: Union[str, pathlib.Path]):
        self.root = pathlib.Path(root).resolve()

    def _abs(self, rel: str) -> pathlib.Path:
        return self.root.joinpath(*[p for p in rel.split("/") if p])

    def read(self, rel: str) -> bytes:
        p = self._abs(rel)
        if not p.is_file():
            raise FileNotFoundError(rel)
        return p.read_bytes()

    def exists(self, rel: str) -> bool:
        return self._abs(rel).is_file()

    def list_files(self, rel_dir: str, suffix: str = ".json") -> List[str]:
        base = self._abs(rel_dir)
        if not base.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in base.rglob(f"*{suffix}")
            if p.is_file()
        )

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.root)!r})"


class MappingSource(FileSource):
    def __init__(self, files: Mapping[str, Union[bytes, str]]):
        self._files: Dict[str, bytes] = {
            k: v.encode("utf-8") if isinstance(v, str) else bytes(v)
            for k, v in files.items()
        }

    def read(self, rel: str) -> bytes:
        try:
            return self._files[rel]
        except KeyError:
            raise FileNotFoundError(rel) from None

    def exists(self, rel: str) -> bool:
        return rel in self._files

    def list_files(self, rel_dir: str, suffix: str = ".json") -> List[str]:
        prefix = rel_dir.rstrip("/") + "/"
        return sorted(k for k in self._files if k.startswith(prefix) and k.endswith(suffix))

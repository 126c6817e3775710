"""File access for the library folder."""

from __future__ import annotations

import dataclasses
import logging
import os
import posixpath
from pathlib import Path, PurePosixPath
from typing import Collection, Iterable, List, Optional, Set

from .errors import ConfigError, LibraryFileNotFound, LibraryPathError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class FileMeta:
    """Change-detection fingerprint of a watched file."""

    size: int
    mtime_ns: int


@dataclasses.dataclass(frozen=True)
class FileEntry:
    relative_path: str
    size: int
    mtime_ns: int

    @property
    def meta(self) -> FileMeta:
        return FileMeta(self.size, self.mtime_ns)


def parse_extensions(value: Optional[str | Iterable[str]]) -> Set[str]:
    """Lowercase extension set without dots from a CSV string or an iterable."""
    if not value:
        return set()
    parts = value.split(",") if isinstance(value, str) else value
    out: Set[str] = set()
    for p in parts:
        t = str(p).strip().lower().lstrip(".")
        if t:
            out.add(t)
    return out


def extension_of(path: str | Path) -> str:
    name = Path(path).name
    dot = name.rfind(".")
    return "" if dot < 0 else name[dot + 1:].lower()


def ensure_library_dir(path: str | Path) -> Path:
    """Create the library directory if missing; refuse a non-directory path."""
    p = Path(path).expanduser().absolute()
    if p.exists():
        if not p.is_dir():
            raise ConfigError(f"Configured library path exists but is not a directory: {p}")
    else:
        p.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created library directory at {p}")
    return p


class LibraryFiles:
    """Lists and resolves files under the library root.

    Relative paths are always POSIX-style (``docs/a.txt``) and never leave the root.
    """

    def __init__(self, root: str | Path, default_extensions: Optional[Collection[str]] = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.default_extensions = parse_extensions(default_extensions)

    def list_files(self, extensions: Optional[Collection[str]] = None) -> List[FileEntry]:
        """Recursively list regular files, filtered by an extension allow-list.

        ``None`` uses the default extensions; an empty set allows everything.
        """
        allowed = self.default_extensions if extensions is None else parse_extensions(extensions)
        entries: List[FileEntry] = []
        if not self.root.is_dir():
            return entries

        for dirpath, dirnames, filenames in os.walk(self.root, followlinks=False):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for fn in filenames:
                p = Path(dirpath) / fn
                if allowed and extension_of(p) not in allowed:
                    continue
                try:
                    st = p.stat()
                except OSError as e:
                    logger.warning(f"Failed to read attributes for {p}: {e}")
                    continue
                if not p.is_file():
                    continue
                rel = p.relative_to(self.root).as_posix()
                entries.append(FileEntry(rel, st.st_size, st.st_mtime_ns))

        entries.sort(key=lambda e: e.relative_path)
        return entries

    def live_sources(self, extensions: Optional[Collection[str]] = None) -> Set[str]:
        return {e.relative_path for e in self.list_files(extensions)}

    def normalize_relative(self, relative_path: str) -> str:
        """Canonical POSIX form of a relative path, rejecting traversal."""
        if not relative_path or not relative_path.strip():
            raise LibraryPathError("Path must not be empty")
        rel = relative_path.strip().replace("\\", "/")
        pure = PurePosixPath(rel)
        if pure.is_absolute() or (pure.parts and pure.parts[0].endswith(":")):
            raise LibraryPathError(f"Path must be relative to the library root: {relative_path}")
        self.resolve(rel)
        # lexical, so a symlink keeps the name list_files reports for it
        canonical = posixpath.normpath(pure.as_posix())
        if canonical == ".":
            raise LibraryPathError(f"Path names the library root: {relative_path}")
        return canonical

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for ``relative_path``; raises LibraryPathError if it escapes the root."""
        rel = relative_path.replace("\\", "/")
        p = (self.root / rel).resolve()
        if p != self.root and self.root not in p.parents:
            raise LibraryPathError(f"Path escapes library root: {relative_path}")
        return p

    def require_file(self, relative_path: str) -> Path:
        p = self.resolve(relative_path)
        if not p.is_file():
            raise LibraryFileNotFound(f"Not a regular file: {relative_path}")
        return p

    def stat(self, relative_path: str) -> FileMeta:
        st = self.require_file(relative_path).stat()
        return FileMeta(st.st_size, st.st_mtime_ns)

"""
Artifact cache: decides whether a target's output is already up to date.

The cache never writes. It asks a FileSystem whether the output exists and,
under the mtime policy, whether it is at least as new as the source.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from vignette_builder.contexts.compiling.exceptions import CacheCheckError
from vignette_builder.contexts.compiling.targets import Target


class FreshnessPolicy(str, Enum):
    """How an existing output is judged up to date."""

    EXISTS = "exists"  # any existing output is fresh, delete it to rebuild
    MTIME = "mtime"  # output must not be older than its source


class FileSystem(Protocol):
    """Backing store queried by the cache. Paths are relative to the store's root."""

    def exists(self, path: Path) -> bool: ...

    def mtime(self, path: Path) -> Optional[float]: ...


class LocalFileSystem:
    """FileSystem over a real directory."""

    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root)

    def resolve(self, path: Path) -> Path:
        return self.root / path

    def exists(self, path: Path) -> bool:
        return self.mtime(path) is not None

    def mtime(self, path: Path) -> Optional[float]:
        """Modification time of path, or None if it does not exist."""
        try:
            return os.stat(self.resolve(path)).st_mtime
        except (FileNotFoundError, NotADirectoryError):
            return None


class MemoryFileSystem:
    """In-memory FileSystem mapping relative paths to modification times."""

    def __init__(self, files: Optional[Dict[Union[str, Path], float]] = None):
        self.files: Dict[Path, float] = {Path(p): t for p, t in (files or {}).items()}

    def touch(self, path: Union[str, Path], mtime: float = 0.0) -> None:
        self.files[Path(path)] = mtime

    def remove(self, path: Union[str, Path]) -> None:
        self.files.pop(Path(path), None)

    def exists(self, path: Path) -> bool:
        return Path(path) in self.files

    def mtime(self, path: Path) -> Optional[float]:
        return self.files.get(Path(path))


class ArtifactCache:
    """
    Freshness check for targets.

    Args:
        filesystem: Store holding sources and outputs
        policy: FreshnessPolicy.EXISTS (default) or FreshnessPolicy.MTIME
    """

    def __init__(
        self,
        filesystem: Optional[FileSystem] = None,
        policy: Union[FreshnessPolicy, str] = FreshnessPolicy.EXISTS,
    ):
        self.filesystem = filesystem if filesystem is not None else LocalFileSystem()
        self.policy = FreshnessPolicy(policy)

    def is_fresh(self, target: Target) -> bool:
        """
        True iff the target's output can be reused.

        Raises:
            CacheCheckError: If the backing store cannot be queried
        """
        try:
            output_mtime = self.filesystem.mtime(target.output_path)
            if output_mtime is None:
                return False
            if self.policy is FreshnessPolicy.EXISTS:
                return True

            source_mtime = self.filesystem.mtime(target.source_path)
        except OSError as e:
            raise CacheCheckError(target.name, target.output_path, e) from e

        # A missing source cannot be newer than the output
        return source_mtime is None or output_mtime >= source_mtime

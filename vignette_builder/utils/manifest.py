"""
Vignette manifest loading.

The manifest is a YAML file listing the vignettes of a collection, their
dependencies, the renderer to use, and the collection links point into.

Example vignettes.yaml:

    collection:
      name: simpleSingleCell
      url_template: https://bioconductor.org/packages/release/workflows/vignettes/{collection}/inst/doc/{document}
    renderer: ["Rscript", "-e", "rmarkdown::render(commandArgs(TRUE)[1])"]
    source_ext: .Rmd
    vignettes:
      - intro
      - name: reads
        depends_on: [intro]
"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dotenv import load_dotenv
from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException
from yaml import YAMLError

from vignette_builder.contexts.compiling.exceptions import ManifestError
from vignette_builder.contexts.compiling.executor import DEFAULT_RENDERER, order_targets
from vignette_builder.contexts.compiling.targets import DEFAULT_SOURCE_EXT, Target
from vignette_builder.contexts.linking.resolver import DocumentCollection

load_dotenv()
VIGNETTE_MANIFEST = Path(os.getenv("VIGNETTE_MANIFEST", "vignettes.yaml"))
VIGNETTE_SOURCE_EXT = os.getenv("VIGNETTE_SOURCE_EXT", DEFAULT_SOURCE_EXT)


@dataclass
class Manifest:
    """
    Parsed vignette manifest.

    Attributes:
        targets: Vignettes in manifest order
        renderer: Renderer command
        collection: Collection that cross-links point into
    """

    targets: List[Target] = field(default_factory=list)
    renderer: Tuple[str, ...] = DEFAULT_RENDERER
    collection: DocumentCollection = field(default_factory=DocumentCollection)

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.targets]

    def get(self, name: str) -> Optional[Target]:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def select(self, names: Iterable[str]) -> List[Target]:
        """
        Targets for the given names plus everything they transitively depend on.

        Raises:
            ManifestError: If a name is not in the manifest
        """
        wanted = set()
        stack = list(names)
        while stack:
            name = stack.pop()
            if name in wanted:
                continue
            target = self.get(name)
            if target is None:
                raise ManifestError(f"Unknown vignette: {name}")
            wanted.add(name)
            stack.extend(target.depends_on)
        return order_targets(t for t in self.targets if t.name in wanted)


def parse_renderer(value: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Renderer from a shell-style string or a list of arguments."""
    parts = shlex.split(value) if isinstance(value, str) else [str(v) for v in value]
    if not parts:
        raise ManifestError("renderer must not be empty")
    return tuple(parts)


def _parse_depends_on(name: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(d) for d in value)
    raise ManifestError(f"depends_on of '{name}' must be a name or a list of names: {value!r}")


def _parse_vignette(entry: Any, source_ext: str) -> Target:
    if isinstance(entry, str):
        return Target(name=entry, source_ext=source_ext)
    if isinstance(entry, dict) and "name" in entry:
        name = str(entry["name"])
        return Target(
            name=name,
            source_ext=entry.get("source_ext", source_ext),
            depends_on=_parse_depends_on(name, entry.get("depends_on")),
        )
    raise ManifestError(f"Invalid vignette entry: {entry!r}")


def parse_manifest(data: Dict[str, Any]) -> Manifest:
    """
    Build a Manifest from a plain dict.

    Raises:
        ManifestError: If required fields are missing or malformed
    """
    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a mapping")

    vignettes = data.get("vignettes")
    if not isinstance(vignettes, list) or not vignettes:
        raise ManifestError("Manifest must list at least one vignette under 'vignettes'")

    source_ext = data.get("source_ext", VIGNETTE_SOURCE_EXT)
    try:
        targets = [_parse_vignette(entry, source_ext) for entry in vignettes]
    except ValueError as e:
        raise ManifestError(str(e)) from e

    names = [t.name for t in targets]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ManifestError(f"Duplicate vignette names: {', '.join(duplicates)}")

    renderer = parse_renderer(data["renderer"]) if data.get("renderer") else DEFAULT_RENDERER

    collection_data = data.get("collection") or {}
    try:
        collection = DocumentCollection(**collection_data)
    except (TypeError, ValueError) as e:
        raise ManifestError(f"Invalid collection: {e}") from e

    return Manifest(targets=targets, renderer=renderer, collection=collection)


def load_manifest(path: Optional[Path] = None) -> Manifest:
    """
    Load a manifest YAML file.

    Args:
        path: Manifest path (default: VIGNETTE_MANIFEST env variable, else vignettes.yaml)

    Raises:
        ManifestError: If the file is missing, not valid YAML, or malformed
    """
    path = Path(path) if path is not None else VIGNETTE_MANIFEST
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")

    try:
        data = OmegaConf.to_container(OmegaConf.load(path), resolve=True)
    except (OmegaConfBaseException, YAMLError) as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    return parse_manifest(data)


def discover_targets(workdir: Path, source_ext: str = VIGNETTE_SOURCE_EXT) -> List[Target]:
    """Targets for every source document in workdir, sorted by name."""
    return [
        Target(name=path.name[: -len(source_ext)], source_ext=source_ext)
        for path in sorted(Path(workdir).glob(f"*{source_ext}"))
        if path.is_file()
    ]

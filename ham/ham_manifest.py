"""
Project manifests: a `ham.yml` file at the root of a Ham project directory.

    name: hello
    version: "1.0.0"
    main: main.ham
    max_call_depth: 512
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

MANIFEST_NAME = "ham.yml"
DEFAULT_MAIN = "main.ham"


class ManifestError(Exception):
    """The manifest could not be read or is malformed."""


@dataclass
class Manifest:
    root: Path
    name: Optional[str] = None
    version: Optional[str] = None
    main: str = DEFAULT_MAIN
    max_call_depth: Optional[int] = None

    @property
    def entry_path(self) -> Path:
        return self.root / self.main

    @classmethod
    def from_file(cls, file_path) -> 'Manifest':
        p = Path(file_path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"cannot read manifest {p}: {e.strerror or e}") from e
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestError(f"invalid YAML in manifest {p}: {e}") from e
        return cls.from_dict(data, p.parent)

    @classmethod
    def from_dict(cls, data, root: Path) -> 'Manifest':
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ManifestError("manifest must be a mapping")

        version = data.get("version")
        if version is not None:
            if isinstance(version, bool) or not isinstance(version, (str, int, float)):
                raise ManifestError("manifest 'version' must be a string")
            version = str(version)

        main = data.get("main", DEFAULT_MAIN)
        if not isinstance(main, str) or not main:
            raise ManifestError("manifest 'main' must be a file name")

        depth = data.get("max_call_depth")
        if depth is not None and (isinstance(depth, bool) or not isinstance(depth, int) or depth <= 0):
            raise ManifestError("manifest 'max_call_depth' must be a positive integer")

        name = data.get("name")
        return cls(
            root=Path(root),
            name=str(name) if name is not None else None,
            version=version,
            main=main,
            max_call_depth=depth,
        )


def find_manifest(directory) -> Path:
    """Returns the manifest path of a project directory."""
    path = Path(directory) / MANIFEST_NAME
    if not path.is_file():
        raise ManifestError(f"no {MANIFEST_NAME} found in {directory}")
    return path

"""Data models for dependency classification and resolution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

SOFT_RANGE = "*"
LATEST = "latest"


class Classification(Enum):
    """How strictly a dependency must come from the managed cache."""
    SOFT = "soft"
    HARD = "hard"


class ResolutionTarget(Enum):
    """Where a dependency is resolved from at run time."""
    AMBIENT = "ambient"
    CACHE = "cache"


@dataclass(frozen=True)
class DependencyRequest:
    """A ``--with`` addition: ``name`` (soft) or ``name@version`` (hard)."""
    name: str
    version: Optional[str]
    raw: str

    @property
    def is_soft(self) -> bool:
        return self.version is None

    @classmethod
    def parse(cls, token: str) -> "DependencyRequest":
        """Split on the last '@' past position 0 so scoped names stay whole."""
        token = token.strip()
        at = token.rfind("@")
        if at > 0:
            name, version = token[:at], token[at + 1:].strip()
            return cls(name=name, version=version or None, raw=token)
        return cls(name=token, version=None, raw=token)


@dataclass
class ClassifiedDependencies:
    """Merged dependency maps with a soft/hard tag per name."""
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    classification: Dict[str, Classification] = field(default_factory=dict)

    @property
    def soft(self) -> List[str]:
        return [n for n, c in self.classification.items() if c is Classification.SOFT]

    @property
    def hard(self) -> List[str]:
        return [n for n, c in self.classification.items() if c is Classification.HARD]

    @property
    def is_empty(self) -> bool:
        return not self.dependencies and not self.dev_dependencies


@dataclass(frozen=True)
class ResolvedDependency:
    """Final decision for one dependency."""
    name: str
    range: str
    classification: Classification
    target: ResolutionTarget
    path: Optional[str] = None  # ambient package directory when target is AMBIENT


@dataclass
class ResolutionPlan:
    """Per-dependency resolution decisions for one run."""
    entries: Dict[str, ResolvedDependency] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)

    def add(self, resolved: ResolvedDependency) -> None:
        self.entries[resolved.name] = resolved

    def target_of(self, name: str) -> ResolutionTarget:
        return self.entries[name].target

    @property
    def to_install(self) -> Dict[str, str]:
        """Dependencies the cache must provide."""
        return {
            n: e.range for n, e in self.entries.items()
            if e.target is ResolutionTarget.CACHE
        }

    @property
    def needs_install(self) -> bool:
        return bool(self.to_install) or bool(self.dev_dependencies)

    @property
    def hard_names(self) -> List[str]:
        return [n for n, e in self.entries.items() if e.classification is Classification.HARD]

    @property
    def ambient_dirs(self) -> List[str]:
        """Distinct node_modules directories holding ambient packages."""
        dirs: List[str] = []
        for entry in self.entries.values():
            if entry.target is ResolutionTarget.AMBIENT and entry.path:
                modules_dir = _modules_dir_of(entry.name, entry.path)
                if modules_dir not in dirs:
                    dirs.append(modules_dir)
        return dirs


def _modules_dir_of(name: str, package_path: str) -> str:
    # @scope/pkg lives two levels below node_modules
    depth = 2 if name.startswith("@") and "/" in name else 1
    path = package_path
    for _ in range(depth):
        path = os.path.dirname(path)
    return path

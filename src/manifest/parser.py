"""Inline package block parsing.

A script may open with a block such as::

    #!/usr/bin/env -S npx nhx
    /*/ // <package>
    { dependencies: { semver: "^7.5.4" } }
    /*/ // </package>

The block body is relaxed JSON (JSON5): unquoted keys, trailing commas and
comments are accepted. Scripts without a block, or with an open marker but no
close marker, simply have no inline manifest.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import json5

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from errors import ManifestParseError

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, str] = MappingProxyType({})


@dataclass(frozen=True)
class DependencyManifest:
    """Parsed inline manifest. Built once per run and never mutated."""

    dependencies: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    dev_dependencies: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    engines: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    has_inline_declaration: bool = False


EMPTY_MANIFEST = DependencyManifest()


def _locate_block(content: str) -> Optional[List[str]]:
    """Return the lines between the open and close markers, or None."""
    lines = content.split("\n")
    if content.startswith(Constants.SHEBANG):
        lines = lines[1:]

    start = next((i for i, line in enumerate(lines) if line.strip()), None)
    if start is None or not lines[start].lstrip().startswith(Constants.MANIFEST_OPEN_MARKER):
        return None

    for end in range(start + 1, len(lines)):
        if lines[end].strip().startswith(Constants.MANIFEST_CLOSE_MARKER):
            return lines[start + 1:end]
    return None


def _string_map(data: Dict[str, Any], key: str) -> Mapping[str, str]:
    value = data.get(key)
    if value is None:
        return _EMPTY
    if not isinstance(value, dict):
        raise ManifestParseError(f"'{key}' must be an object, got {type(value).__name__}")
    result: Dict[str, str] = {}
    for name, spec in value.items():
        # bool is an int subclass but never a version
        if isinstance(spec, bool) or not isinstance(spec, (str, int, float)):
            raise ManifestParseError(
                f"'{key}.{name}' must be a string or number, got {type(spec).__name__}"
            )
        result[str(name)] = str(spec)
    return MappingProxyType(result)


def parse_manifest(content: str) -> DependencyManifest:
    """Extract the inline manifest from script source text.

    Args:
        content: Full script source.

    Returns:
        DependencyManifest: EMPTY_MANIFEST when the script has no complete block.

    Raises:
        ManifestParseError: If a complete block holds invalid relaxed JSON or a
            value of the wrong shape.
    """
    block = _locate_block(content)
    if block is None:
        return EMPTY_MANIFEST

    try:
        data = json5.loads("\n".join(block))
    except ValueError as e:
        raise ManifestParseError(str(e)) from e

    if not isinstance(data, dict):
        raise ManifestParseError(f"expected an object, got {type(data).__name__}")

    manifest = DependencyManifest(
        dependencies=_string_map(data, "dependencies"),
        dev_dependencies=_string_map(data, "devDependencies"),
        engines=_string_map(data, "engines"),
        has_inline_declaration=True,
    )
    if is_debug_enabled(logger):
        logger.debug(
            "Inline manifest parsed",
            extra=extra_context(
                event="parse",
                component="manifest",
                dependencies=len(manifest.dependencies),
                dev_dependencies=len(manifest.dev_dependencies),
                engines=",".join(sorted(manifest.engines)) or None,
            ),
        )
    return manifest


def parse_manifest_file(path: str) -> DependencyManifest:
    """Read a script from disk and parse its inline manifest."""
    with open(path, "r", encoding="utf-8") as fh:
        return parse_manifest(fh.read())


def _package_name(name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9\-._~]", "-", name.lower()).lstrip("._")
    return cleaned or "script"


def create_package_json(
    dependencies: Mapping[str, str],
    dev_dependencies: Mapping[str, str],
    name: str = "script",
) -> Dict[str, Any]:
    """Build the package.json written into a cache entry."""
    return {
        "name": _package_name(name),
        "version": "1.0.0",
        "private": True,
        "type": "module",
        "dependencies": dict(dependencies),
        "devDependencies": dict(dev_dependencies),
    }

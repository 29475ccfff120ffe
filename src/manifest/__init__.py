"""Inline package block parsing."""

from .parser import (
    EMPTY_MANIFEST,
    DependencyManifest,
    create_package_json,
    parse_manifest,
    parse_manifest_file,
)

__all__ = [
    "EMPTY_MANIFEST",
    "DependencyManifest",
    "create_package_json",
    "parse_manifest",
    "parse_manifest_file",
]

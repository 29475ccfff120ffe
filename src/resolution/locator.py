"""Ambient package lookup: node_modules directories above the working directory."""

from __future__ import annotations

import logging
import os
from typing import Optional

from constants import Constants

logger = logging.getLogger(__name__)


def find_local_package(name: str, start_dir: Optional[str] = None) -> Optional[str]:
    """Walk upward from ``start_dir`` looking for ``node_modules/<name>``.

    Args:
        name: Package name, scoped names included (``@scope/pkg``).
        start_dir: Directory to start from. Defaults to the working directory.

    Returns:
        str | None: The package directory of the nearest match, or None once
        the filesystem root has been checked.
    """
    directory = os.path.abspath(start_dir or os.getcwd())
    parts = name.split("/")
    while True:
        candidate = os.path.join(directory, Constants.NODE_MODULES_DIR, *parts)
        if os.path.isdir(candidate):
            logger.debug("Found ambient %s at %s", name, candidate)
            return candidate
        parent = os.path.dirname(directory)
        if parent == directory:
            return None
        directory = parent

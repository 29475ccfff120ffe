"""Local script discovery and stdin scripts."""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
import tempfile
from typing import List, Optional, TextIO

from constants import Constants

logger = logging.getLogger(__name__)

_LOCAL = re.compile(r"^\.{0,2}[/\\]")


def is_local(target: str) -> bool:
    """``./x``, ``../x`` and absolute paths are local scripts."""
    return bool(_LOCAL.match(target)) or os.path.isabs(target)


def _candidates(target: str) -> List[str]:
    return [target] + [target + ext for ext in Constants.SCRIPT_EXTENSIONS]


def matching_scripts(target: str) -> List[str]:
    """Every existing file the target could refer to."""
    return [c for c in _candidates(target) if os.path.isfile(c)]


def find_script(target: str) -> Optional[str]:
    """First existing of ``target`` and ``target`` + each known extension."""
    matches = matching_scripts(target)
    return matches[0] if matches else None


def read_stdin_script(stream: Optional[TextIO] = None) -> str:
    """Save a script piped on stdin to a temporary ``.mts`` file."""
    content = (stream or sys.stdin).read()
    directory = tempfile.mkdtemp(prefix="nhx-")
    path = os.path.join(directory, Constants.STDIN_SCRIPT_NAME)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    return path


def discard_stdin_script(path: str) -> None:
    """Remove the temporary directory created by read_stdin_script."""
    directory = os.path.dirname(path)
    try:
        shutil.rmtree(directory)
    except OSError as exc:
        logger.debug("Failed to remove %s: %s", directory, exc)

"""Run an npm package's executable, e.g. ``nhx cowsay hi``.

The package is installed into a throw-away directory under the store root,
its ``bin`` entry is located, run with node, and the directory is removed.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import time
import uuid
from typing import Any, Dict, Optional, Sequence

from constants import Constants
from errors import TargetError
from npm.client import NpmClient
from runtime.executor import build_descriptor, execute
from runtime.negotiator import CURRENT_RUNTIME, runtime_key

logger = logging.getLogger(__name__)

_GIT_SPEC = re.compile(r"^(git\+|github:|gitlab:)")


def _read_package_json(pkg_dir: str) -> Dict[str, Any]:
    try:
        with open(os.path.join(pkg_dir, Constants.PACKAGE_JSON_FILE), "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def package_name_from_spec(spec: str) -> str:
    """``cowsay@1.5.0`` -> ``cowsay``; ``@scope/pkg@2`` -> ``@scope/pkg``."""
    at = spec.rfind("@")
    return spec[:at] if at > 0 else spec


def _find_git_package(modules_dir: str) -> Optional[str]:
    try:
        entries = sorted(os.listdir(modules_dir))
    except OSError:
        return None
    for entry in entries:
        if entry.startswith("."):
            continue
        pkg_dir = os.path.join(modules_dir, entry)
        if os.path.isdir(pkg_dir) and _read_package_json(pkg_dir).get("bin"):
            return pkg_dir
    return None


def find_bin(install_dir: str, spec: str, bin_name: Optional[str] = None) -> Optional[str]:
    """Locate the executable a package declares.

    Preference: a string ``bin``; ``bin[bin_name]``; ``bin[<package basename>]``;
    the first declared entry.
    """
    modules_dir = os.path.join(install_dir, Constants.NODE_MODULES_DIR)
    if _GIT_SPEC.match(spec):
        pkg_dir = _find_git_package(modules_dir)
        if pkg_dir is None:
            return None
        pkg_name = os.path.basename(pkg_dir)
    else:
        pkg_name = package_name_from_spec(spec)
        pkg_dir = os.path.join(modules_dir, *pkg_name.split("/"))

    bins = _read_package_json(pkg_dir).get("bin")
    if not bins:
        return None
    if isinstance(bins, str):
        return os.path.join(pkg_dir, bins)
    if not isinstance(bins, dict):
        return None

    for name in (bin_name, pkg_name.split("/")[-1]):
        if name and isinstance(bins.get(name), str):
            return os.path.join(pkg_dir, bins[name])
    first = next(iter(bins.values()), None)
    return os.path.join(pkg_dir, first) if isinstance(first, str) else None


def execute_package(
    spec: str,
    args: Sequence[str] = (),
    run_postinstall: bool = False,
    bin_name: Optional[str] = None,
    npm: Optional[NpmClient] = None,
    store_root: Optional[str] = None,
) -> int:
    """Install ``spec`` into a temporary directory and run its executable.

    Raises:
        InstallError: If npm cannot install the package.
        TargetError: If the package declares no usable executable.
    """
    npm = npm or NpmClient()
    key = f"pkg-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"
    directory = os.path.join(
        store_root or Constants.STORE_DIR, runtime_key(CURRENT_RUNTIME, npm.node_version()), key
    )
    os.makedirs(directory)

    try:
        with open(os.path.join(directory, Constants.PACKAGE_JSON_FILE), "w", encoding="utf-8") as fh:
            json.dump({"name": "nhx-exec", "version": "1.0.0", "private": True}, fh)
        npm.install(directory, package=spec, run_postinstall=run_postinstall, quiet=True)

        executable = find_bin(directory, spec, bin_name)
        if not executable:
            raise TargetError(f"No executable found for {spec}")
        logger.info("Running %s from %s", os.path.basename(executable), spec)
        return execute(build_descriptor(executable, args))
    finally:
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            logger.debug("Failed to remove %s: %s", directory, exc)

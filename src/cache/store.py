"""Content-addressed store of installed dependency sets.

Layout::

    <root>/<runtime_key>/<digest>/
        package.json      description handed to npm
        nhx-meta.json     the exact dependency set behind <digest>
        node_modules/     installed tree
        .nhx-complete     completion marker, written last

An entry is only ever trusted once its marker exists. Entries are populated in
a private staging directory next to the canonical path and renamed into place
in one step, so a reader never sees a half-written entry and concurrent
installers of the same key at worst duplicate work. Entries are immutable
once complete; a different dependency set always hashes to a new digest.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from errors import CacheIntegrityError
from manifest.parser import create_package_json

logger = logging.getLogger(__name__)

Installer = Callable[[str], None]


@dataclass(frozen=True)
class CacheKey:
    """Digest of a dependency set plus the runtime it was installed for."""
    digest: str
    runtime_key: str


def canonical_dependency_set(
    dependencies: Mapping[str, str],
    dev_dependencies: Mapping[str, str],
    runtime: str,
) -> Dict[str, Any]:
    """Order-independent description of what an entry holds."""
    return {
        "dependencies": {k: dependencies[k] for k in sorted(dependencies)},
        "devDependencies": {k: dev_dependencies[k] for k in sorted(dev_dependencies)},
        "runtime": runtime,
    }


def derive_cache_key(
    dependencies: Mapping[str, str],
    dev_dependencies: Mapping[str, str],
    runtime: str,
) -> CacheKey:
    """Hash the canonical dependency set. Request order never matters."""
    payload = json.dumps(
        canonical_dependency_set(dependencies, dev_dependencies, runtime),
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[: Constants.CACHE_KEY_LENGTH]
    return CacheKey(digest=digest, runtime_key=runtime)


def _write_json_atomic(path: str, data: Any) -> None:
    directory = os.path.dirname(path)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)
        fh.write("\n")
    os.replace(tmp, path)


@dataclass
class CacheEntry:
    """A directory in the store addressed by a CacheKey."""
    key: CacheKey
    path: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def modules_dir(self) -> str:
        return os.path.join(self.path, Constants.NODE_MODULES_DIR)

    @property
    def marker_path(self) -> str:
        return os.path.join(self.path, Constants.CACHE_COMPLETE_MARKER)

    def is_complete(self) -> bool:
        return os.path.isfile(self.marker_path)


class CacheStore:
    """Lazily populated store rooted at ``root``."""

    def __init__(self, root: Optional[str] = None):
        self.root = root or Constants.CACHE_DIR

    @property
    def shims_dir(self) -> str:
        return os.path.join(self.root, Constants.SHIMS_DIR)

    def entry_for(self, key: CacheKey) -> CacheEntry:
        return CacheEntry(key=key, path=os.path.join(self.root, key.runtime_key, key.digest))

    def lookup(self, key: CacheKey, expected: Optional[Dict[str, Any]] = None) -> Optional[CacheEntry]:
        """Return the complete entry for ``key`` or None.

        Raises:
            CacheIntegrityError: If the entry's metadata records a different
                dependency set than ``expected``.
        """
        entry = self.entry_for(key)
        if not entry.is_complete():
            return None
        meta_path = os.path.join(entry.path, Constants.CACHE_METADATA_FILE)
        try:
            with open(meta_path, "r", encoding="utf-8") as fh:
                entry.metadata = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Cache entry %s has unreadable metadata: %s", entry.path, exc)
            entry.metadata = {}
        if expected is not None and entry.metadata:
            recorded = {k: entry.metadata.get(k) for k in expected}
            if recorded != expected:
                raise CacheIntegrityError(
                    f"Cache entry {entry.path} records a different dependency set"
                )
        return entry

    def ensure(
        self,
        dependencies: Mapping[str, str],
        dev_dependencies: Mapping[str, str],
        runtime: str,
        installer: Installer,
        name: str = "script",
    ) -> CacheEntry:
        """Return a complete entry for the dependency set, installing on a miss.

        Args:
            dependencies: Dependencies to install (ambient ones excluded).
            dev_dependencies: devDependencies from the manifest.
            runtime: Runtime key the entry is installed for.
            installer: Called once with the staging directory; must raise on
                failure.
            name: Name recorded in the generated package.json.

        Raises:
            InstallError: Propagated from ``installer``; no marker is written.
        """
        expected = canonical_dependency_set(dependencies, dev_dependencies, runtime)
        key = derive_cache_key(dependencies, dev_dependencies, runtime)

        existing = self.lookup(key, expected)
        if existing is not None:
            logger.info("Using cached dependencies at %s", existing.path)
            if is_debug_enabled(logger):
                logger.debug(
                    "Cache hit",
                    extra=extra_context(event="cache", component="store", outcome="hit", key=key.digest),
                )
            return existing

        if is_debug_enabled(logger):
            logger.debug(
                "Cache miss",
                extra=extra_context(event="cache", component="store", outcome="miss", key=key.digest),
            )
        entry = self.entry_for(key)
        staging = self._populate(entry, expected, dependencies, dev_dependencies, installer, name)
        return self._finalize(entry, staging, expected)

    def _populate(
        self,
        entry: CacheEntry,
        expected: Dict[str, Any],
        dependencies: Mapping[str, str],
        dev_dependencies: Mapping[str, str],
        installer: Installer,
        name: str,
    ) -> str:
        parent = os.path.dirname(entry.path)
        os.makedirs(parent, exist_ok=True)
        staging = os.path.join(
            parent, f"{entry.key.digest}.staging-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        )
        os.makedirs(staging)

        try:
            _write_json_atomic(
                os.path.join(staging, Constants.PACKAGE_JSON_FILE),
                create_package_json(dependencies, dev_dependencies, name),
            )
            metadata = dict(expected, key=entry.key.digest, created=time.time())
            _write_json_atomic(os.path.join(staging, Constants.CACHE_METADATA_FILE), metadata)

            logger.info("Installing %d dependencies into the script cache", len(dependencies) + len(dev_dependencies))
            installer(staging)

            _write_json_atomic(
                os.path.join(staging, Constants.CACHE_COMPLETE_MARKER),
                {"key": entry.key.digest, "completed": time.time()},
            )
        except BaseException:
            self._discard(staging)
            raise
        return staging

    def _finalize(self, entry: CacheEntry, staging: str, expected: Dict[str, Any]) -> CacheEntry:
        for attempt in range(2):
            try:
                os.rename(staging, entry.path)
                break
            except OSError:
                winner = self.lookup(entry.key, expected)
                if winner is not None:
                    logger.debug("Concurrent install of %s finished first; using it", entry.key.digest)
                    self._discard(staging)
                    return winner
                if attempt or not os.path.isdir(entry.path):
                    self._discard(staging)
                    raise
                # Incomplete directory left behind by an interrupted run.
                stale = f"{entry.path}.stale-{uuid.uuid4().hex[:8]}"
                logger.warning("Replacing incomplete cache entry %s", entry.path)
                try:
                    os.rename(entry.path, stale)
                except OSError as exc:
                    logger.debug("Could not move %s aside: %s", entry.path, exc)
                else:
                    self._discard(stale)

        completed = self.lookup(entry.key, expected)
        if completed is None:
            raise CacheIntegrityError(f"Cache entry {entry.path} is missing its completion marker")
        return completed

    @staticmethod
    def _discard(path: str) -> None:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.debug("Failed to remove %s: %s", path, exc)

"""Merge manifest and ``--with`` dependencies and decide where each resolves from.

Manifest entries are always hard: they already carry a range. A ``--with``
request without a version is soft and prefers an ambient copy; one with a
version is hard and always comes from the cache. ``latest`` is pinned to a
concrete version before anything is hashed so the cache key stays stable.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from common.logging_utils import extra_context, is_debug_enabled
from manifest.parser import DependencyManifest
from resolution.locator import find_local_package
from resolution.models import (
    LATEST,
    SOFT_RANGE,
    Classification,
    ClassifiedDependencies,
    DependencyRequest,
    ResolutionPlan,
    ResolutionTarget,
    ResolvedDependency,
)

logger = logging.getLogger(__name__)

VersionQuery = Callable[[str, str], Optional[str]]
Locator = Callable[[str], Optional[str]]


def _pin_latest(name: str, version_query: Optional[VersionQuery]) -> str:
    resolved = version_query(name, LATEST) if version_query else None
    if resolved:
        logger.debug("Resolved %s@latest to %s", name, resolved)
        return resolved
    logger.warning("Could not resolve %s@latest to a version; installing the 'latest' tag", name)
    return LATEST


def classify(
    manifest: DependencyManifest,
    requests: Iterable[DependencyRequest],
    version_query: Optional[VersionQuery] = None,
) -> ClassifiedDependencies:
    """Build the merged, tagged dependency set for one run.

    Args:
        manifest: Parsed inline manifest.
        requests: ``--with`` requests in command-line order.
        version_query: ``(name, tag) -> version`` used to pin ``latest``.

    Returns:
        ClassifiedDependencies: Never raises; unresolvable entries fall through
        to installation.
    """
    result = ClassifiedDependencies(
        dependencies=dict(manifest.dependencies),
        dev_dependencies=dict(manifest.dev_dependencies),
        classification={name: Classification.HARD for name in manifest.dependencies},
    )

    for req in requests:
        if req.is_soft:
            if result.classification.get(req.name) is Classification.HARD:
                # A bare --with adds nothing to an entry that already carries a range.
                continue
            result.dependencies[req.name] = SOFT_RANGE
            result.classification[req.name] = Classification.SOFT
            continue

        version = req.version
        if version == LATEST:
            version = _pin_latest(req.name, version_query)
        result.dependencies[req.name] = version
        result.classification[req.name] = Classification.HARD

    if is_debug_enabled(logger):
        logger.debug(
            "Dependencies classified",
            extra=extra_context(
                event="decision",
                component="classifier",
                action="classify",
                soft=",".join(result.soft) or None,
                hard=",".join(result.hard) or None,
            ),
        )
    return result


def plan_resolution(
    classified: ClassifiedDependencies,
    locate: Locator = find_local_package,
) -> ResolutionPlan:
    """Decide AMBIENT or CACHE per dependency.

    Only soft dependencies are looked up in the workspace. A soft dependency
    that is not found stays soft but is installed into the cache for this run.
    """
    plan = ResolutionPlan(dev_dependencies=dict(classified.dev_dependencies))
    for name, rng in classified.dependencies.items():
        kind = classified.classification.get(name, Classification.HARD)
        path = locate(name) if kind is Classification.SOFT else None
        if path:
            plan.add(ResolvedDependency(name, rng, kind, ResolutionTarget.AMBIENT, path))
        else:
            plan.add(ResolvedDependency(name, rng, kind, ResolutionTarget.CACHE))

    logger.info(
        "Resolution plan: %d ambient, %d from cache",
        len(plan.entries) - len(plan.to_install),
        len(plan.to_install),
    )
    return plan

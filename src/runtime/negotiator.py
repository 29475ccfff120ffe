"""Pick the Node version a script runs under from its ``engines.node`` constraint.

The answer is data: either "use the node already on PATH" or a target string
handed to ``npx node@<target>``. Nothing is installed here.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import semantic_version

from errors import RuntimeResolutionError

logger = logging.getLogger(__name__)

_MAJOR_ONLY = re.compile(r"^\d+$")
_LITERAL = re.compile(r"(?<![\w.-])v?(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?")
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class RuntimeTarget:
    """Resolved runtime: ``version`` None means the invoking node."""
    version: Optional[str] = None

    @property
    def is_current(self) -> bool:
        return self.version is None

    def __str__(self) -> str:
        return self.version or "current"


CURRENT_RUNTIME = RuntimeTarget()


def _parse_version(version: Optional[str]) -> Optional[semantic_version.Version]:
    if not version:
        return None
    try:
        return semantic_version.Version.coerce(version.strip().lstrip("v"))
    except ValueError:
        return None


def satisfies(version: Optional[str], spec: str) -> bool:
    """True when ``version`` matches the npm range ``spec``."""
    parsed = _parse_version(version)
    if parsed is None:
        return False
    try:
        return semantic_version.NpmSpec(spec).match(parsed)
    except ValueError:
        return False


def valid_range(spec: str) -> Optional[semantic_version.NpmSpec]:
    """Parse an npm range, returning None when it is not a valid range."""
    try:
        return semantic_version.NpmSpec(spec)
    except ValueError:
        return None


def _lower_bound_candidates(spec: str) -> List[semantic_version.Version]:
    candidates = {semantic_version.Version(major=0, minor=0, patch=0)}
    for match in _LITERAL.finditer(spec):
        parts = [match.group(1), match.group(2), match.group(3)]
        nums = [int(p) if p and p.isdigit() else 0 for p in parts]
        base = semantic_version.Version(major=nums[0], minor=nums[1], patch=nums[2])
        candidates.update({base, base.next_patch(), base.next_minor(), base.next_major()})
    return sorted(candidates)


def min_version(spec: str) -> Optional[semantic_version.Version]:
    """Lowest stable version satisfying the npm range ``spec``.

    The lowest match of any comparator set is one of its bounds, a bound
    bumped past an exclusive ``>``, or 0.0.0, so probing those suffices.
    """
    npm_spec = valid_range(spec)
    if npm_spec is None:
        return None
    for candidate in _lower_bound_candidates(spec):
        if npm_spec.match(candidate):
            return candidate
    return None


def negotiate_runtime(constraint: Optional[str], current_version: Optional[str]) -> RuntimeTarget:
    """Resolve an ``engines.node`` constraint against the invoking node.

    Args:
        constraint: Constraint text, e.g. "18", ">=18 <19", "^18.0.0".
        current_version: Version of the invoking node, None when unknown.

    Returns:
        RuntimeTarget: CURRENT_RUNTIME when the invoking node satisfies the
        constraint, otherwise the major version (or literal) to request.

    Raises:
        RuntimeResolutionError: If the constraint is a valid range no version
            can satisfy.
    """
    if constraint is None or not str(constraint).strip():
        return CURRENT_RUNTIME
    spec = str(constraint).strip()

    if _MAJOR_ONLY.match(spec):
        if satisfies(current_version, f"^{spec}"):
            return CURRENT_RUNTIME
        logger.info("Node %s requested, running under node@%s", current_version or "unknown", spec)
        return RuntimeTarget(spec)

    if valid_range(spec) is None:
        logger.debug("Engine constraint %r is not a range; passing it through", spec)
        return RuntimeTarget(spec)

    if satisfies(current_version, spec):
        return CURRENT_RUNTIME

    lowest = min_version(spec)
    if lowest is None:
        raise RuntimeResolutionError(f"No Node version satisfies engines.node '{spec}'")
    target = str(lowest.major)
    logger.info("Node %s does not satisfy '%s', running under node@%s", current_version or "unknown", spec, target)
    return RuntimeTarget(target)


def runtime_key(target: RuntimeTarget, current_version: Optional[str]) -> str:
    """Directory name grouping cache entries by runtime."""
    if target.is_current:
        parsed = _parse_version(current_version)
        if parsed is None:
            return "node-current"
        return f"node-{parsed.major}.{parsed.minor}"
    return "node-" + _UNSAFE_KEY_CHARS.sub("_", target.version or "")

"""Dependency classification and ambient lookup."""

from .classifier import classify, plan_resolution
from .locator import find_local_package
from .models import (
    Classification,
    ClassifiedDependencies,
    DependencyRequest,
    ResolutionPlan,
    ResolutionTarget,
    ResolvedDependency,
)

__all__ = [
    "classify",
    "plan_resolution",
    "find_local_package",
    "Classification",
    "ClassifiedDependencies",
    "DependencyRequest",
    "ResolutionPlan",
    "ResolutionTarget",
    "ResolvedDependency",
]

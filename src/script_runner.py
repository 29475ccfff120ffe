"""Run a script (or bare node invocation) with its inline and ``--with`` dependencies.

Flow: parse the inline manifest, classify dependencies, look soft ones up in
the workspace, negotiate the node version, make sure the cache holds the rest,
build the interceptor launch configuration and hand one execution descriptor
to the executor.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from cache.store import CacheStore
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from manifest.parser import EMPTY_MANIFEST, DependencyManifest, parse_manifest_file
from npm.client import NpmClient
from resolution.classifier import classify, plan_resolution
from resolution.locator import find_local_package
from resolution.models import DependencyRequest, ResolutionPlan
from runtime.executor import ExecutionDescriptor, build_descriptor, execute
from runtime.interceptor import build_launch_config
from runtime.negotiator import RuntimeTarget, negotiate_runtime, runtime_key

logger = logging.getLogger(__name__)


@dataclass
class RunScriptOptions:
    """Caller-supplied knobs for one run."""
    with_deps: List[str] = field(default_factory=list)
    node_args: List[str] = field(default_factory=list)
    engines: List[str] = field(default_factory=list)
    run_postinstall: bool = False


def parse_engine_flags(values: Iterable[str]) -> Dict[str, str]:
    """Turn ``node:18`` / ``node@>=18 <20`` flags into ``{"node": ...}``.

    The separator is whichever of ':' or '@' comes first.
    """
    engines: Dict[str, str] = {}
    for value in values:
        value = value.strip()
        cuts = [i for i in (value.find(":"), value.find("@")) if i > 0]
        if not cuts:
            logger.warning("Ignoring engine flag without a version: %s", value)
            continue
        cut = min(cuts)
        engines[value[:cut].strip()] = value[cut + 1:].strip()
    return engines


def merge_engines(manifest_engines: Mapping[str, str], flags: Iterable[str]) -> Dict[str, str]:
    """Command-line engine flags override the manifest's ``engines``."""
    merged = dict(manifest_engines)
    merged.update(parse_engine_flags(flags))
    return merged


class ScriptRunner:
    """Prepares and launches one script run."""

    def __init__(self, npm: Optional[NpmClient] = None, store: Optional[CacheStore] = None):
        self.npm = npm or NpmClient()
        self.store = store or CacheStore()

    def resolve(
        self,
        manifest: DependencyManifest,
        options: RunScriptOptions,
        locate=find_local_package,
    ) -> ResolutionPlan:
        requests = [DependencyRequest.parse(token) for token in options.with_deps]
        classified = classify(manifest, requests, self.npm.view_version)
        return plan_resolution(classified, locate)

    def negotiate(self, manifest: DependencyManifest, options: RunScriptOptions) -> RuntimeTarget:
        engines = merge_engines(manifest.engines, options.engines)
        constraint = engines.get("node")
        if not constraint:
            return negotiate_runtime(None, None)
        return negotiate_runtime(constraint, self.npm.node_version())

    def prepare(
        self,
        script_path: Optional[str],
        args: Sequence[str] = (),
        options: Optional[RunScriptOptions] = None,
    ) -> ExecutionDescriptor:
        """Do everything short of spawning the process.

        Raises:
            ManifestParseError: Before any install work.
            InstallError: When the cache cannot be populated.
            RuntimeResolutionError: When no node version fits ``engines.node``.
        """
        options = options or RunScriptOptions()
        manifest = parse_manifest_file(script_path) if script_path else EMPTY_MANIFEST
        target = self.negotiate(manifest, options)

        if not manifest.has_inline_declaration and not options.with_deps:
            return build_descriptor(script_path, args, options.node_args, target=target)

        plan = self.resolve(manifest, options)
        modules_dir = None
        if plan.needs_install:
            entry = self.store.ensure(
                plan.to_install,
                plan.dev_dependencies,
                runtime_key(target, self.npm.node_version()),
                installer=lambda cwd: self.npm.install(cwd, run_postinstall=options.run_postinstall),
                name=os.path.basename(script_path) if script_path else "eval",
            )
            modules_dir = entry.modules_dir

        launch = build_launch_config(
            modules_dir,
            plan.ambient_dirs,
            plan.hard_names,
            shims_dir=self.store.shims_dir,
            inherited_node_path=os.environ.get(Constants.NODE_PATH_ENV),
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Launch prepared",
                extra=extra_context(
                    event="decision",
                    component="script_runner",
                    action="prepare",
                    runtime=str(target),
                    modules=modules_dir,
                    ambient=len(plan.ambient_dirs),
                ),
            )
        return build_descriptor(script_path, args, options.node_args, launch, target)

    def run(
        self,
        script_path: Optional[str],
        args: Sequence[str] = (),
        options: Optional[RunScriptOptions] = None,
    ) -> int:
        """Prepare and launch; returns the script's own exit code."""
        return execute(self.prepare(script_path, args, options))


def run_script(
    script_path: Optional[str],
    args: Sequence[str] = (),
    options: Optional[RunScriptOptions] = None,
) -> int:
    """Module-level entry point used by the CLI."""
    return ScriptRunner().run(script_path, args, options)

"""Launch configuration that points node's module resolution at the cache.

Two small artifacts are generated:

* an ESM resolve hook, loaded with ``--experimental-loader``, covering
  ``import`` statements and ``import()`` calls;
* a CommonJS preload, loaded with ``--require``, covering ``require()``.

Hard dependencies resolve from the cache tree first, so an unrelated copy in
the workspace is never picked up. Every other bare specifier uses node's own
resolution and only falls back to the cache tree, then the workspace
``node_modules`` directories of resolved soft dependencies, when that fails.
ESM resolution ignores ``NODE_PATH``, so the loader is emitted whenever
anything is redirected. Relative,
absolute, URL and ``node:`` specifiers are never touched.

Artifacts are content-addressed files under the cache root so concurrent runs
can share them; the cache entries themselves are never modified here.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from constants import Constants

logger = logging.getLogger(__name__)

_JS_HELPERS = textwrap.dedent("""\
    const isBare = (spec) => !/^[./\\\\]|^[a-zA-Z][a-zA-Z0-9+.-]*:/.test(spec);
    const pkgName = (spec) =>
      spec.startsWith('@') ? spec.split('/').slice(0, 2).join('/') : spec.split('/')[0];
""")

ESM_LOADER_TEMPLATE = Template(textwrap.dedent("""\
    import { join } from 'node:path';
    import { pathToFileURL } from 'node:url';
    const modules = $modules;
    const searchDirs = $search_dirs;
    const hardDeps = new Set($hard_deps);
    const parentIn = (dir) => pathToFileURL(join(dir, '_')).href;
""") + _JS_HELPERS + textwrap.dedent("""\
    export async function resolve(spec, ctx, next) {
      const bare = isBare(spec);
      if (bare && modules && hardDeps.has(pkgName(spec))) {
        try { return await next(spec, { ...ctx, parentURL: parentIn(modules) }); } catch {}
      }
      try {
        return await next(spec, ctx);
      } catch (e) {
        if (e && e.code === 'ERR_MODULE_NOT_FOUND' && bare) {
          for (const dir of searchDirs) {
            try { return await next(spec, { ...ctx, parentURL: parentIn(dir) }); } catch {}
          }
        }
        throw e;
      }
    }
"""))

CJS_PRELOAD_TEMPLATE = Template(textwrap.dedent("""\
    const Module = require('module');
    const modules = $modules;
    const hardDeps = new Set($hard_deps);
    const original = Module._resolveFilename;
""") + _JS_HELPERS + textwrap.dedent("""\
    Module._resolveFilename = function (request, parent, isMain, options) {
      if (isBare(request) && hardDeps.has(pkgName(request))) {
        const paths = [modules, ...((options && options.paths) || [])];
        try { return original.call(this, request, parent, isMain, { ...options, paths }); } catch {}
      }
      return original.call(this, request, parent, isMain, options);
    };
"""))


@dataclass(frozen=True)
class LaunchConfig:
    """Node flags and environment overlay for one launch."""
    node_args: Tuple[str, ...] = ()
    env_overlay: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    artifacts: Tuple[str, ...] = ()

    def apply(self, base_env: Mapping[str, str]) -> dict:
        """Return a copy of ``base_env`` with the overlay applied."""
        env = dict(base_env)
        env.update(self.env_overlay)
        return env


def render_loader(
    modules_dir: Optional[str], search_dirs: Sequence[str], hard_deps: Sequence[str]
) -> str:
    return ESM_LOADER_TEMPLATE.substitute(
        modules=json.dumps(modules_dir),
        search_dirs=json.dumps(list(search_dirs)),
        hard_deps=json.dumps(sorted(hard_deps)),
    )


def render_preload(modules_dir: str, hard_deps: Sequence[str]) -> str:
    return CJS_PRELOAD_TEMPLATE.substitute(
        modules=json.dumps(modules_dir), hard_deps=json.dumps(sorted(hard_deps))
    )


def build_search_path(
    modules_dir: Optional[str],
    ambient_dirs: Iterable[str],
    inherited: Optional[str] = None,
) -> str:
    """NODE_PATH value: cache tree first, ambient directories after, then inherited."""
    paths: List[str] = [modules_dir] if modules_dir else []
    for directory in ambient_dirs:
        if directory not in paths:
            paths.append(directory)
    if inherited:
        paths.append(inherited)
    return os.pathsep.join(paths)


def write_artifact(shims_dir: str, content: str, suffix: str) -> str:
    """Write ``content`` to a content-addressed file and return its path."""
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
    path = os.path.join(shims_dir, f"{digest}{suffix}")
    if os.path.isfile(path):
        return path
    os.makedirs(shims_dir, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".shim-", suffix=suffix, dir=shims_dir)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(content)
    os.replace(tmp, path)
    return path


def build_launch_config(
    modules_dir: Optional[str],
    ambient_dirs: Sequence[str],
    hard_deps: Sequence[str],
    shims_dir: Optional[str] = None,
    inherited_node_path: Optional[str] = None,
) -> LaunchConfig:
    """Build node flags and the NODE_PATH overlay for a resolution plan.

    Args:
        modules_dir: Cache entry ``node_modules`` directory, None if nothing
            was installed.
        ambient_dirs: Workspace ``node_modules`` directories holding resolved
            soft dependencies.
        hard_deps: Names that must resolve from the cache tree.
        shims_dir: Where interceptor artifacts are written.
        inherited_node_path: NODE_PATH of the calling environment.

    Returns:
        LaunchConfig: Empty when there is nothing to redirect.
    """
    if not modules_dir and not ambient_dirs:
        return LaunchConfig()

    overlay = {
        Constants.NODE_PATH_ENV: build_search_path(modules_dir, ambient_dirs, inherited_node_path)
    }
    search_dirs = build_search_path(modules_dir, ambient_dirs).split(os.pathsep)

    shims = shims_dir or os.path.join(Constants.CACHE_DIR, Constants.SHIMS_DIR)
    node_args: List[str] = []
    artifacts: List[str] = []

    if modules_dir and hard_deps:
        preload = write_artifact(shims, render_preload(modules_dir, hard_deps), ".cjs")
        node_args += ["--require", preload]
        artifacts.append(preload)

    loader = write_artifact(shims, render_loader(modules_dir, search_dirs, hard_deps), ".mjs")
    node_args += ["--experimental-loader", Path(loader).as_uri(), "--no-warnings"]
    artifacts.append(loader)

    logger.debug("Interceptor artifacts: %s", ", ".join(artifacts))
    return LaunchConfig(
        node_args=tuple(node_args),
        env_overlay=MappingProxyType(overlay),
        artifacts=tuple(artifacts),
    )

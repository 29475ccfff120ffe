"""Thin wrapper around the npm and node executables.

Every interaction with the package manager goes through NpmClient so the rest
of the code deals in return values and typed errors instead of subprocesses.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from errors import InstallError

logger = logging.getLogger(__name__)


class NpmClient:
    """Runs npm for installs and version queries, and node for its version."""

    def __init__(self, npm_bin: Optional[str] = None, node_bin: Optional[str] = None):
        self.npm_bin = npm_bin or Constants.NPM_BIN
        self.node_bin = node_bin or Constants.NODE_BIN
        self._registry: Optional[str] = None
        self._node_version: Optional[str] = None
        self._node_version_checked = False

    def registry(self) -> str:
        """Return the registry npm is configured with, or '' when unknown."""
        if self._registry is None:
            try:
                result = subprocess.run(
                    [self.npm_bin, "config", "get", "registry"],
                    capture_output=True,
                    text=True,
                    check=False,
                )
                self._registry = result.stdout.strip() if result.returncode == 0 else ""
            except OSError as exc:
                logger.debug("npm config get registry failed: %s", exc)
                self._registry = ""
        return self._registry

    def install_env(self) -> Dict[str, str]:
        """Environment for npm install, pinning the registry when unset."""
        env = os.environ.copy()
        if not env.get(Constants.NPM_REGISTRY_ENV):
            registry = self.registry()
            if registry:
                env[Constants.NPM_REGISTRY_ENV] = registry
        return env

    def _install_args(self, package: Optional[str], run_postinstall: bool) -> List[str]:
        args = [self.npm_bin, "install"]
        if package:
            args += [package, "--no-save"]
        if not run_postinstall:
            args.append("--ignore-scripts")
        return args

    def _attempt(self, argv: List[str], cwd: str, env: Dict[str, str], silent: bool) -> bool:
        if silent:
            streams = {"stdout": subprocess.DEVNULL, "stderr": subprocess.DEVNULL}
        else:
            # Keep the script's stdout clean: installer chatter goes to stderr.
            streams = {"stdout": sys.stderr, "stderr": sys.stderr}
        try:
            result = subprocess.run(argv, cwd=cwd, env=env, check=False, **streams)  # noqa: S603
        except OSError as exc:
            logger.debug("Could not spawn %s: %s", argv[0], exc)
            return False
        return result.returncode == 0

    def install(
        self,
        cwd: str,
        package: Optional[str] = None,
        run_postinstall: bool = False,
        quiet: bool = False,
    ) -> None:
        """Install into ``cwd``: offline first, then once with the network.

        Args:
            cwd: Directory holding the package.json to install.
            package: Optional single package spec to add without saving.
            run_postinstall: Allow lifecycle scripts.
            quiet: Also suppress output of the network attempt.

        Raises:
            InstallError: If both attempts fail.
        """
        base = self._install_args(package, run_postinstall)
        env = self.install_env()

        with Timer() as t:
            ok = self._attempt(base + ["--offline"], cwd, env, silent=True)
            mode = "offline"
            if not ok:
                logger.info("Offline install failed, retrying with network access")
                ok = self._attempt(base + ["--prefer-offline"], cwd, env, silent=quiet)
                mode = "network"

        if is_debug_enabled(logger):
            logger.debug(
                "npm install finished",
                extra=extra_context(
                    event="install",
                    component="npm",
                    action="install",
                    outcome="success" if ok else "failure",
                    mode=mode,
                    target=package,
                    duration_ms=t.duration_ms(),
                ),
            )
        if not ok:
            suffix = f" for {package}" if package else ""
            raise InstallError(f"npm install failed{suffix}")

    def view_version(self, name: str, tag: str = "latest") -> Optional[str]:
        """Resolve a dist-tag (or range) to a concrete version.

        Asks npm first and falls back to the registry packument.

        Returns:
            str | None: The version, or None when neither source answers.
        """
        try:
            result = subprocess.run(
                [self.npm_bin, "view", f"{name}@{tag}", "version"],
                capture_output=True,
                text=True,
                env=self.install_env(),
                timeout=Constants.VERSION_QUERY_TIMEOUT,
                check=False,
            )
            lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
            if result.returncode == 0 and lines:
                # Ranges print "name@x.y.z 'x.y.z'" per match; the last line is the highest.
                return lines[-1].split()[-1].strip("'\"")
            logger.debug("npm view %s@%s returned %s", name, tag, result.returncode)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("npm view %s@%s failed: %s", name, tag, exc)

        return self._registry_dist_tag(name, tag)

    def _registry_dist_tag(self, name: str, tag: str) -> Optional[str]:
        base = os.environ.get(Constants.NPM_REGISTRY_ENV) or self.registry() or Constants.REGISTRY_URL_NPM
        url = f"{base.rstrip('/')}/{quote(name, safe='@')}"
        try:
            res = requests.get(url, timeout=Constants.REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            logger.debug("Registry lookup for %s failed: %s", name, exc)
            return None
        if res.status_code != 200:
            logger.debug("Registry lookup for %s returned HTTP %s", name, res.status_code)
            return None
        try:
            tags = res.json().get("dist-tags", {})
        except ValueError:
            return None
        version = tags.get(tag)
        return str(version) if version else None

    def node_version(self) -> Optional[str]:
        """Return the version of the default node executable without the 'v'."""
        if not self._node_version_checked:
            self._node_version_checked = True
            try:
                result = subprocess.run(
                    [self.node_bin, "--version"],
                    capture_output=True,
                    text=True,
                    check=False,
                )
                if result.returncode == 0 and result.stdout.strip():
                    self._node_version = result.stdout.strip().lstrip("v")
            except OSError as exc:
                logger.debug("Could not query %s --version: %s", self.node_bin, exc)
        return self._node_version

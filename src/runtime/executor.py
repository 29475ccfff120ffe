"""Build and run the final node (or ``npx node@N``) command."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

from constants import Constants
from errors import LaunchFailure
from runtime.interceptor import LaunchConfig
from runtime.negotiator import CURRENT_RUNTIME, RuntimeTarget

logger = logging.getLogger(__name__)

# Addressed to nhx alone, so they are passed on to the child.
_FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)
# A terminal delivers these to the whole foreground process group, child included.
_GROUP_SIGNALS = (signal.SIGINT,)


@dataclass(frozen=True)
class ExecutionDescriptor:
    """Everything needed to spawn the target process."""
    argv: Tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


def build_descriptor(
    script: Optional[str],
    args: Sequence[str] = (),
    node_args: Sequence[str] = (),
    launch: Optional[LaunchConfig] = None,
    target: RuntimeTarget = CURRENT_RUNTIME,
    base_env: Optional[Mapping[str, str]] = None,
) -> ExecutionDescriptor:
    """Compose argv and environment.

    Interceptor flags come before the caller's node flags so a caller's own
    ``--require``/``--import`` hooks still run after ours.
    """
    launch = launch or LaunchConfig()
    tail = list(launch.node_args) + list(node_args)
    if script:
        tail.append(script)
    tail += list(args)

    if target.is_current:
        argv = [Constants.NODE_BIN] + tail
    else:
        argv = [Constants.NPX_BIN, "--yes", f"node@{target.version}"] + tail

    env = launch.apply(os.environ if base_env is None else base_env)
    return ExecutionDescriptor(argv=tuple(argv), env=MappingProxyType(env))


def normalize_exit_code(returncode: int) -> int:
    """Map a signal death (negative return code) to the shell's 128+N."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


def execute(descriptor: ExecutionDescriptor) -> int:
    """Run the descriptor with inherited stdio and return its exit code.

    SIGTERM and SIGHUP received while waiting are forwarded to the child.
    SIGINT is ignored by nhx while the child runs: the terminal already sends
    it to the child. The child's own exit status is what gets returned.

    Raises:
        LaunchFailure: If the executable cannot be spawned.
    """
    logger.debug("Running: %s", " ".join(descriptor.argv))
    try:
        proc = subprocess.Popen(list(descriptor.argv), env=dict(descriptor.env))  # noqa: S603
    except FileNotFoundError as exc:
        raise LaunchFailure(f"Failed to launch {descriptor.argv[0]}: executable not found") from exc
    except PermissionError as exc:
        raise LaunchFailure(f"Failed to launch {descriptor.argv[0]}: permission denied") from exc
    except OSError as exc:
        raise LaunchFailure(f"Failed to launch {descriptor.argv[0]}: {exc}") from exc

    def _forward(signum, _frame):
        if proc.poll() is None:
            proc.send_signal(signum)

    def _ignore(_signum, _frame):
        pass

    previous = {}
    try:
        handlers = [(s, _forward) for s in _FORWARDED_SIGNALS] + [(s, _ignore) for s in _GROUP_SIGNALS]
        for signum, handler in handlers:
            try:
                previous[signum] = signal.signal(signum, handler)
            except ValueError:
                # Not the main thread; the child still shares our process group.
                break
        while True:
            try:
                returncode = proc.wait()
                break
            except KeyboardInterrupt:
                # Raised before our handler was installed; the child got it too.
                continue
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)

    code = normalize_exit_code(returncode)
    logger.debug("Child exited with %s", code)
    return code


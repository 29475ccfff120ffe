"""Runtime selection, module-resolution interception and process launch."""

from .executor import ExecutionDescriptor, build_descriptor, execute, normalize_exit_code
from .interceptor import LaunchConfig, build_launch_config, build_search_path
from .negotiator import CURRENT_RUNTIME, RuntimeTarget, min_version, negotiate_runtime, runtime_key

__all__ = [
    "ExecutionDescriptor",
    "build_descriptor",
    "execute",
    "normalize_exit_code",
    "LaunchConfig",
    "build_launch_config",
    "build_search_path",
    "CURRENT_RUNTIME",
    "RuntimeTarget",
    "min_version",
    "negotiate_runtime",
    "runtime_key",
]

"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FAILURE = 1
    LAUNCH_FAILURE = 127
    INTERRUPTED = 130


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    # Inline manifest markers
    MANIFEST_OPEN_MARKER = "/*/ // <package>"
    MANIFEST_CLOSE_MARKER = "/*/ // </package>"
    SHEBANG = "#!"

    SCRIPT_EXTENSIONS = [".js", ".cjs", ".ts", ".mjs", ".mts"]
    STDIN_SCRIPT_NAME = "script.mts"

    PACKAGE_JSON_FILE = "package.json"
    NODE_MODULES_DIR = "node_modules"
    CACHE_METADATA_FILE = "nhx-meta.json"
    CACHE_COMPLETE_MARKER = ".nhx-complete"
    SHIMS_DIR = "shims"

    CACHE_DIR = os.path.join(os.path.expanduser("~"), ".nhx", "script-cache")
    STORE_DIR = os.path.join(os.path.expanduser("~"), ".nhx", "store")
    CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".config", "nhx", "nhx.yml")
    CACHE_KEY_LENGTH = 16

    NODE_BIN = "node"
    NPM_BIN = "npm"
    NPX_BIN = "npx"
    NODE_PATH_ENV = "NODE_PATH"
    NPM_REGISTRY_ENV = "NPM_CONFIG_REGISTRY"
    REGISTRY_URL_NPM = "https://registry.npmjs.org/"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL = "WARNING"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for registry HTTP requests
    VERSION_QUERY_TIMEOUT = 60

    ENV_CACHE_DIR = "NHX_CACHE_DIR"
    ENV_STORE_DIR = "NHX_STORE_DIR"
    ENV_NODE = "NHX_NODE"
    ENV_NPM = "NHX_NPM"
    ENV_NPX = "NHX_NPX"
    ENV_LOG_LEVEL = "NHX_LOG_LEVEL"
    ENV_CONFIG = "NHX_CONFIG"


# YAML keys -> Constants attributes
_CONFIG_KEYS = {
    "cache_dir": "CACHE_DIR",
    "store_dir": "STORE_DIR",
    "node": "NODE_BIN",
    "npm": "NPM_BIN",
    "npx": "NPX_BIN",
    "log_level": "LOG_LEVEL",
    "registry_url": "REGISTRY_URL_NPM",
    "request_timeout": "REQUEST_TIMEOUT",
}

# Environment variables -> Constants attributes
_ENV_KEYS = {
    Constants.ENV_CACHE_DIR: "CACHE_DIR",
    Constants.ENV_STORE_DIR: "STORE_DIR",
    Constants.ENV_NODE: "NODE_BIN",
    Constants.ENV_NPM: "NPM_BIN",
    Constants.ENV_NPX: "NPX_BIN",
    Constants.ENV_LOG_LEVEL: "LOG_LEVEL",
}


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML config file if one exists.

    Args:
        path: Explicit config path. Falls back to NHX_CONFIG, then the
            per-user default location.

    Returns:
        dict: Parsed mapping, empty when no file is present.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidate = path or os.environ.get(Constants.ENV_CONFIG) or Constants.CONFIG_FILE
    if not os.path.isfile(candidate):
        if path:
            logger.warning("Config file not found: %s", candidate)
        return {}

    with open(candidate, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", candidate)
        return {}
    logger.debug("Loaded config from %s", candidate)
    return data


def load_config(path: Optional[str] = None) -> None:
    """Apply YAML config and environment overrides onto Constants.

    Precedence, lowest first: class defaults, YAML file, environment.
    """
    cfg = _load_yaml_config(path)
    for key, attr in _CONFIG_KEYS.items():
        value = cfg.get(key)
        if value is None:
            continue
        if attr == "REQUEST_TIMEOUT":
            value = int(value)
        elif attr in ("CACHE_DIR", "STORE_DIR"):
            value = os.path.expanduser(str(value))
        setattr(Constants, attr, value)

    for env_name, attr in _ENV_KEYS.items():
        value = os.environ.get(env_name)
        if value and value.strip():
            if attr in ("CACHE_DIR", "STORE_DIR"):
                value = os.path.expanduser(value.strip())
            setattr(Constants, attr, value.strip())

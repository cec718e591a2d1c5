"""Contains auxiliary functions, the configuration and a stage timer.

Usage:
    timer = Timer()
    timer.start()
    # process to be measured
    timer.stop("process_name")
"""

import copy
import logging
import tempfile
import time
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from uuid import uuid4

import toml

from diffmethyl.utils.files import get_resource_path

__all__ = [
    "CONFIG",
    "DIFFMETHYL_TMP_DIR",
    "Timer",
    "get_app_version",
    "load_config",
    "make_log_file",
]


def get_app_version():
    """Retrieve the app version from the package metadata."""
    try:
        return version("diffmethyl")
    except PackageNotFoundError:
        return "unknown"


logger = logging.getLogger(__name__)

version_str = get_app_version().replace(".", "_")
DIFFMETHYL_TMP_DIR = Path(tempfile.gettempdir()) / f"diffmethyl-{version_str}"
LOG_DIR = DIFFMETHYL_TMP_DIR / "log"

LOG_DIR.mkdir(parents=True, exist_ok=True)


def make_log_file(suffix):
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = uuid4().hex[:8]
    log_file = LOG_DIR / f"{suffix}-{timestamp}-{unique_id}.log"
    log_file.touch(exist_ok=True)
    return log_file


class Timer:
    """Measures the time elapsed between pipeline stages in seconds."""

    def __init__(self):
        self.time0 = time.time()

    def start(self):
        """Resets timer."""
        self.time0 = time.time()

    def stop(self, text=None):
        """Logs and returns elapsed time, then resets the timer."""
        delta_time = time.time() - self.time0
        if text is None:
            logger.info("Time passed: %.2f s", delta_time)
        else:
            logger.info("%s finished in %.2f s", text, delta_time)
        self.time0 = time.time()
        return delta_time


def _deep_update(base, other):
    """Recursively merges the dict 'other' into a copy of 'base'."""
    result = copy.deepcopy(base)
    for key, value in other.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path=None):
    """Loads the package's config.toml, optionally overlaid by a user file.

    Args:
        path (str or Path, optional): User TOML file. Its values replace the
            package defaults key by key; sections are merged recursively.

    Returns:
        dict: The merged configuration.
    """
    config_path = get_resource_path("diffmethyl", "data/config.toml")
    config = toml.load(config_path)
    if path is None:
        return config
    path = Path(path).expanduser()
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)
    logger.info("Loading config file %s", path)
    return _deep_update(config, toml.load(path))


CONFIG = load_config()

"""diffmethyl.utils package.

This package provides utility functions for file handling, configuration,
logging and parallel processing.
"""

from .files import (
    ensure_directory_exists,
    get_resource_path,
    read_dataframe,
)
from .parallel import chunk_bounds, get_optimal_core_count, parallel_map
from .varia import (
    CONFIG,
    DIFFMETHYL_TMP_DIR,
    Timer,
    get_app_version,
    load_config,
    make_log_file,
)

__all__ = [
    "CONFIG",
    "DIFFMETHYL_TMP_DIR",
    "Timer",
    "chunk_bounds",
    "ensure_directory_exists",
    "get_app_version",
    "get_optimal_core_count",
    "get_resource_path",
    "load_config",
    "make_log_file",
    "parallel_map",
    "read_dataframe",
]

"""diffmethyl package.

This package provides tools for the differential methylation analysis of two
sample groups measured on Illumina methylation arrays.
"""

import logging

from diffmethyl.analysis import (
    AnalysisResult,
    load_inputs,
    run_analysis,
    summarize,
    write_results,
)
from diffmethyl.dtypes import (
    Annotation,
    DuplicateKeyError,
    MethylData,
    RawData,
    SampleSheet,
)
from diffmethyl.utils import make_log_file

LOG_FILE = make_log_file("stdout")


def setup_logging():
    logger = logging.getLogger("diffmethyl")

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    # File handler
    file_handler = logging.FileHandler(LOG_FILE, mode="a")
    file_handler.setLevel(logging.INFO)

    # Formatter with no milliseconds
    log_format = "%(asctime)s [%(module)s] %(message)s"
    formatter = logging.Formatter(log_format, "%H:%M:%S")
    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    # Prevent root logger propagation
    logger.propagate = False

    logger.debug("Logging is set up")


setup_logging()

__all__ = [
    "AnalysisResult",
    "Annotation",
    "DuplicateKeyError",
    "LOG_FILE",
    "MethylData",
    "RawData",
    "SampleSheet",
    "load_inputs",
    "run_analysis",
    "summarize",
    "write_results",
]

"""Module providing access to the data types of the analysis."""

from .annotation import Annotation, normalize_chromosome
from .intensities import MethylData, RawData, probe_indices
from .keys import (
    PROBE_KEY,
    RECORD_KEYS,
    SAMPLE_KEY,
    DuplicateKeyError,
    validate_unique_keys,
)
from .probes import Channel, InfiniumDesignType, ProbeType
from .samples import SampleSheet, extract_sentrix_id

__all__ = [
    "Annotation",
    "Channel",
    "DuplicateKeyError",
    "InfiniumDesignType",
    "MethylData",
    "PROBE_KEY",
    "ProbeType",
    "RECORD_KEYS",
    "RawData",
    "SAMPLE_KEY",
    "SampleSheet",
    "extract_sentrix_id",
    "normalize_chromosome",
    "probe_indices",
    "validate_unique_keys",
]

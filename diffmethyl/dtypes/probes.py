"""Module for handling probe types and probe channels.

Usage:
    design = InfiniumDesignType.from_string("II")
    probe_types = ProbeType.classify(names, design_types)
"""

from enum import IntEnum, unique

import numpy as np
import pandas as pd

NONE = -1

CONTROL_PREFIXES = ("ctl", "neg", "BSC", "NON")


@unique
class Channel(IntEnum):
    """Specifies the fluorescence color (red or green) of type I probes."""

    GRN = 0
    RED = 1

    def __str__(self):
        return self.name.capitalize()

    @staticmethod
    def pd_from_string(col):
        """Converts 'Grn'/'Red' manifest strings to channel values."""
        channel_map = {
            "Grn": Channel.GRN.value,
            "Red": Channel.RED.value,
            "grn": Channel.GRN.value,
            "red": Channel.RED.value,
        }
        if pd.api.types.is_numeric_dtype(col):
            return col.fillna(NONE).astype("int32")
        return col.map(channel_map).fillna(NONE).astype("int32")


@unique
class InfiniumDesignType(IntEnum):
    """The Illumina arrays use two probe chemistries."""

    I = 1
    II = 2

    def __str__(self):
        return self.name

    @staticmethod
    def pd_from_string(col):
        """Converts 'I'/'II' manifest strings to design type values."""
        design_map = {
            "I": InfiniumDesignType.I.value,
            "II": InfiniumDesignType.II.value,
        }
        if pd.api.types.is_numeric_dtype(col):
            return col.fillna(NONE).astype("int32")
        return col.map(design_map).fillna(NONE).astype("int32")


@unique
class ProbeType(IntEnum):
    """Represents probe type, distinguishing between regular and SNP probes.

    The probe type depends on the Infinium_Design_Type (I or II) and the probe
    name. Probes starting with 'rs' are categorized as SNP probes, names with
    a control prefix as control probes, everything else as methylation probe.
    """

    ONE = 1
    TWO = 2
    SNP_ONE = 3
    SNP_TWO = 4
    CONTROL = 5

    def __str__(self):
        return self.name

    @staticmethod
    def classify(names, design_types):
        """Vectorized probe type assignment.

        Args:
            names (array-like): Probe names (IlmnID).
            design_types (array-like): Infinium design type values (1 or 2,
                -1 if unknown).

        Returns:
            numpy.ndarray: Probe type values (int8).
        """
        names = pd.Series(names, dtype=object).fillna("").astype(str)
        design_types = np.asarray(design_types)
        is_one = design_types == InfiniumDesignType.I.value
        is_two = design_types == InfiniumDesignType.II.value
        is_snp = names.str.startswith("rs").values
        is_control = names.str.startswith(CONTROL_PREFIXES).values

        result = np.full(len(names), ProbeType.CONTROL.value, dtype="int8")
        result[is_one] = ProbeType.ONE.value
        result[is_two] = ProbeType.TWO.value
        result[is_snp & is_one] = ProbeType.SNP_ONE.value
        result[is_snp & is_two] = ProbeType.SNP_TWO.value
        result[is_control | (is_snp & ~is_one & ~is_two)] = (
            ProbeType.CONTROL.value
        )
        return result

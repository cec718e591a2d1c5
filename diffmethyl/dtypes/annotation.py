"""Module for handling the probe annotation of Illumina methylation arrays.

This module contains a single class ``Annotation`` providing the probe and
control probe tables the analysis needs: bead addresses, probe chemistry,
color channel, genomic position and the number of CpGs in the probe body.
The tables are read from already exported manifest tables; the raw Illumina
manifest archives are not parsed here.
"""

import logging

import numpy as np
import pandas as pd

from diffmethyl.dtypes.keys import PROBE_KEY, validate_unique_keys
from diffmethyl.dtypes.probes import (
    NONE,
    Channel,
    InfiniumDesignType,
    ProbeType,
)
from diffmethyl.utils.files import read_dataframe

logger = logging.getLogger(__name__)

__all__ = ["Annotation", "normalize_chromosome"]

CHROMOSOME_ORDER = {
    **{f"chr{i}": i for i in range(1, 23)},
    "chrX": 23,
    "chrY": 24,
    "chrM": 25,
}
UNPLACED = len(CHROMOSOME_ORDER) + 1

PROBE_TABLE_COLUMNS = [
    PROBE_KEY,
    "Chromosome",
    "Start",
    "Infinium_Design_Type",
    "AddressA_ID",
    "AddressB_ID",
]

CONTROL_COLUMNS = (
    "Address_ID",
    "Control_Type",
    "Color",
    "Extended_Type",
)


def normalize_chromosome(col):
    """Converts chromosome names like '1', 1, 'chr1', 'x' to 'chr1', 'chrX'.

    Unknown values become missing.
    """
    values = (
        col.astype("string")
        .str.strip()
        .str.replace(r"\.0$", "", regex=True)
        .str.replace(r"^chr", "", case=False, regex=True)
        .str.upper()
        .replace({"MT": "M"})
    )
    result = "chr" + values
    return result.where(result.isin(list(CHROMOSOME_ORDER)))


class Annotation:
    """Provides an object interface to the probe annotation of an array.

    Manifest-style column names are accepted and converted to the internal
    format: 'Name' replaces 'IlmnID' (they differ in EPICv2), 'CHR'/'Chr'
    become 'Chromosome', 'MAPINFO' becomes 'Start', design types 'I'/'II' and
    channels 'Red'/'Grn' are encoded as integers. If the probe sequences are
    available, the number of CpGs in the probe body ('N_CpG', used by SWAN)
    is derived from them.

    Args:
        data_frame (pandas.DataFrame): Probe annotation. Required columns are
            'IlmnID' (or 'Name'), 'AddressA_ID', 'AddressB_ID' and
            'Infinium_Design_Type'.
        control_data_frame (pandas.DataFrame, optional): Control probes with
            columns 'Address_ID' and 'Control_Type' (and optionally 'Color'
            and 'Extended_Type').

    Raises:
        KeyError: If required columns are missing.
        DuplicateKeyError: If a probe ID occurs more than once.

    Examples:
        >>> annotation = Annotation.from_files("probes.csv", "controls.csv")
        >>> type_1_red = annotation.probe_info(ProbeType.ONE, Channel.RED)
        >>> negative = annotation.control_address("NEGATIVE")
    """

    def __init__(self, data_frame, control_data_frame=None):
        self._data_frame = Annotation._process_probes(data_frame)
        validate_unique_keys(self._data_frame, PROBE_KEY, "annotation")
        if control_data_frame is None:
            control_data_frame = pd.DataFrame(columns=CONTROL_COLUMNS)
        self._control_data_frame = Annotation._process_controls(
            control_data_frame
        )
        self._methyl_probes = None

    @classmethod
    def from_files(cls, probes_path, controls_path=None):
        """Reads probe and control probe tables from disk."""
        logger.info("Reading annotation %s", probes_path)
        data_frame = read_dataframe(probes_path)
        control_data_frame = None
        if controls_path is not None:
            logger.info("Reading control probes %s", controls_path)
            control_data_frame = read_dataframe(controls_path)
        return cls(data_frame, control_data_frame)

    @property
    def data_frame(self):
        """Pandas data frame of all annotated probes."""
        return self._data_frame

    @property
    def control_data_frame(self):
        """Pandas data frame of all control probes."""
        return self._control_data_frame

    @property
    def methylation_probes(self):
        """All type I and II probes, ordered by genomic position."""
        if self._methyl_probes is None:
            is_methyl = self._data_frame["Probe_Type"].isin(
                [ProbeType.ONE.value, ProbeType.TWO.value]
            )
            self._methyl_probes = self._data_frame.loc[
                is_methyl, PROBE_KEY
            ].values
        return self._methyl_probes

    @property
    def probe_table(self):
        """Probe fields carried into the joined long-format table."""
        return self._data_frame[PROBE_TABLE_COLUMNS].copy()

    def control_address(self, control_type=None):
        """Returns address IDs of all control probes of the specified type."""
        if control_type is None:
            return self._control_data_frame.Address_ID
        if not isinstance(control_type, (list, tuple)):
            control_type = [control_type]
        return self._control_data_frame[
            self._control_data_frame.Control_Type.isin(control_type)
        ].Address_ID

    def probe_info(self, probe_type, channel=None):
        """Retrieves information about probes of a specified type and channel.

        Args:
            probe_type (ProbeType): The type of probe (I, II, SnpI, SnpII,
                Control).
            channel (Channel, optional): The color channel (RED or GRN).
                Defaults to None.

        Returns:
            DataFrame: DataFrame containing information about the specified
                probes.

        Raises:
            TypeError: If probe_type is not a valid ProbeType or if channel is
            not a valid Channel.
        """
        if not isinstance(probe_type, ProbeType):
            msg = "probe_type is not a valid ProbeType"
            raise TypeError(msg)

        if channel is not None and not isinstance(channel, Channel):
            msg = "channel not a valid Channel"
            raise TypeError(msg)

        data_frame = self._data_frame
        probe_type_mask = data_frame["Probe_Type"].values == probe_type.value

        if channel is None:
            return data_frame[probe_type_mask]

        channel_mask = data_frame["Color_Channel"].values == channel.value
        return data_frame[probe_type_mask & channel_mask]

    @staticmethod
    def _process_probes(data_frame):
        """Transforms manifest columns to the internal annotation format."""
        data_frame = data_frame.copy()
        if "Name" in data_frame.columns:
            # IlmnID and Name are different in EPICv2
            data_frame[PROBE_KEY] = data_frame["Name"]
            data_frame = data_frame.drop(columns=["Name"])
        rename_map = {
            "MAPINFO": "Start",
            "CHR": "Chromosome",
            "Chr": "Chromosome",
        }
        data_frame = data_frame.rename(columns=rename_map)

        required = [
            PROBE_KEY,
            "AddressA_ID",
            "AddressB_ID",
            "Infinium_Design_Type",
        ]
        missing = [col for col in required if col not in data_frame.columns]
        if missing:
            msg = f"Annotation is missing the column(s) {missing}."
            raise KeyError(msg)

        data_frame[PROBE_KEY] = data_frame[PROBE_KEY].astype(str)
        data_frame["Infinium_Design_Type"] = (
            InfiniumDesignType.pd_from_string(
                data_frame["Infinium_Design_Type"]
            )
        )
        if "Color_Channel" in data_frame.columns:
            data_frame["Color_Channel"] = Channel.pd_from_string(
                data_frame["Color_Channel"]
            )
        else:
            data_frame["Color_Channel"] = NONE

        if "Chromosome" in data_frame.columns:
            data_frame["Chromosome"] = normalize_chromosome(
                data_frame["Chromosome"]
            )
        else:
            data_frame["Chromosome"] = pd.Series(
                pd.NA, index=data_frame.index, dtype="string"
            )
        if "Start" not in data_frame.columns:
            data_frame["Start"] = NONE

        if "N_CpG" not in data_frame.columns:
            data_frame["N_CpG"] = Annotation._count_cpgs(data_frame)

        for col in [
            "AddressA_ID",
            "AddressB_ID",
            "Start",
            "N_CpG",
        ]:
            data_frame[col] = (
                pd.to_numeric(data_frame[col], errors="coerce")
                .fillna(NONE)
                .astype("int32")
            )

        data_frame["Probe_Type"] = ProbeType.classify(
            data_frame[PROBE_KEY].values,
            data_frame["Infinium_Design_Type"].values,
        )

        drop_cols = ["AlleleA_ProbeSeq", "AlleleB_ProbeSeq"]
        data_frame = data_frame.drop(
            columns=[col for col in drop_cols if col in data_frame.columns]
        )

        chrom_rank = (
            data_frame["Chromosome"]
            .map(CHROMOSOME_ORDER)
            .fillna(UNPLACED)
            .astype(int)
        )
        order = np.lexsort((data_frame["Start"].values, chrom_rank.values))
        return data_frame.iloc[order].reset_index(drop=True)

    @staticmethod
    def _count_cpgs(data_frame):
        """Number of CpGs in the probe body derived from the probe sequences.

        For type I probes the methylated allele (B) sequence contains one
        'CG' for the target CpG, type II probes encode every body CpG as 'R'.
        """
        n_cpg = pd.Series(NONE, index=data_frame.index, dtype="int32")
        design = data_frame["Infinium_Design_Type"]
        if "AlleleB_ProbeSeq" in data_frame.columns:
            type_1_n = np.maximum(
                0,
                data_frame["AlleleB_ProbeSeq"].fillna("").str.count("CG") - 1,
            )
            is_type_1 = design == InfiniumDesignType.I.value
            n_cpg[is_type_1] = type_1_n[is_type_1]
        if "AlleleA_ProbeSeq" in data_frame.columns:
            # R Stands for CG in AlleleA_ProbeSeq
            type_2_n = data_frame["AlleleA_ProbeSeq"].fillna("").str.count("R")
            is_type_2 = design == InfiniumDesignType.II.value
            n_cpg[is_type_2] = type_2_n[is_type_2]
        return n_cpg

    @staticmethod
    def _process_controls(data_frame):
        """Checks and encodes the control probe table."""
        data_frame = data_frame.copy()
        missing = [
            col
            for col in ["Address_ID", "Control_Type"]
            if col not in data_frame.columns
        ]
        if missing:
            msg = f"Control probes are missing the column(s) {missing}."
            raise KeyError(msg)
        for col in CONTROL_COLUMNS:
            if col not in data_frame.columns:
                data_frame[col] = ""
        data_frame = data_frame[list(CONTROL_COLUMNS)]
        # Use int32 to improve performance of indexing
        data_frame["Address_ID"] = (
            pd.to_numeric(data_frame["Address_ID"], errors="coerce")
            .fillna(NONE)
            .astype("int32")
        )
        data_frame["Control_Type"] = data_frame["Control_Type"].astype(str)
        return data_frame.reset_index(drop=True)

    def __len__(self):
        return len(self._data_frame)

    def __repr__(self):
        title = "Annotation():"
        lines = [
            title + "\n" + "*" * len(title),
            f"data_frame:\n{self.data_frame}",
            f"control_data_frame:\n{self.control_data_frame}",
        ]
        return "\n\n".join(lines)

"""Contains classes and functions for processing Illumina intensity data.

It includes the raw red/green intensity container, the conversion of the
channels into methylated and unmethylated signal, SWAN normalization and the
computation of beta values and M-values.
"""

import logging

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from diffmethyl.dtypes.keys import PROBE_KEY
from diffmethyl.dtypes.probes import Channel, ProbeType
from diffmethyl.utils.files import read_dataframe

logger = logging.getLogger(__name__)

__all__ = ["MethylData", "RawData", "probe_indices"]

PREP_METHODS = ("raw", "swan")


def _read_intensity_table(path):
    """Reads an intensity matrix with bead addresses in the first column."""
    data_frame = read_dataframe(path, index_col=0)
    index = pd.to_numeric(data_frame.index, errors="coerce")
    if np.isnan(index).any():
        msg = f"Non-numeric bead addresses in {path}."
        raise ValueError(msg)
    data_frame.index = pd.Index(index.astype("int64"), name="Address_ID")
    data_frame.columns = data_frame.columns.astype(str)
    return data_frame


class RawData:
    """Represents the raw intensities of the green and red channel.

    Both channels are matrices of bead addresses (rows) times samples
    (columns). They are treated as immutable after loading.

    Args:
        red (pandas.DataFrame): Red channel intensities.
        grn (pandas.DataFrame): Green channel intensities.

    Attributes:
        ids (numpy.ndarray): Bead addresses.
        samples (list): Sample IDs.
        _grn (numpy.ndarray): Green intensities, samples x addresses.
        _red (numpy.ndarray): Red intensities, samples x addresses.

    Raises:
        ValueError: If the channels do not share the same unique addresses
            and sample IDs.

    Example:
        >>> raw_data = RawData.from_files("red.csv.gz", "grn.csv.gz")
        >>> raw_data = raw_data.restrict(["200925700125_R07C01"])
    """

    def __init__(self, red, grn):
        for name, channel in [("red", red), ("green", grn)]:
            if not channel.index.is_unique:
                msg = f"The {name} channel contains duplicated bead addresses."
                raise ValueError(msg)
            if not channel.columns.is_unique:
                msg = f"The {name} channel contains duplicated sample IDs."
                raise ValueError(msg)
        if not red.index.equals(grn.index):
            msg = "Red and green channel must have the same bead addresses."
            raise ValueError(msg)
        if list(red.columns) != list(grn.columns):
            msg = "Red and green channel must have the same samples."
            raise ValueError(msg)
        self.ids = red.index.values
        self.samples = [str(x) for x in red.columns]
        self._red = red.to_numpy(dtype="float64").T.copy()
        self._grn = grn.to_numpy(dtype="float64").T.copy()
        self._red.flags.writeable = False
        self._grn.flags.writeable = False
        self._red_df = None
        self._grn_df = None

    @classmethod
    def from_files(cls, red_path, grn_path):
        """Reads both intensity matrices from disk."""
        logger.info("Reading intensities %s, %s", red_path, grn_path)
        return cls(
            _read_intensity_table(red_path),
            _read_intensity_table(grn_path),
        )

    @property
    def grn(self):
        """DataFrame: Green channel raw intensity indexed by bead address."""
        if self._grn_df is None:
            self._grn_df = pd.DataFrame(
                self._grn.T, index=self.ids, columns=self.samples
            )
            self._grn_df.index.name = "Address_ID"
        return self._grn_df

    @property
    def red(self):
        """DataFrame: Red channel raw intensity indexed by bead address."""
        if self._red_df is None:
            self._red_df = pd.DataFrame(
                self._red.T, index=self.ids, columns=self.samples
            )
            self._red_df.index.name = "Address_ID"
        return self._red_df

    def restrict(self, sample_ids):
        """Returns a new RawData containing only 'sample_ids' in that order."""
        sample_ids = [str(x) for x in sample_ids]
        unknown = sorted(set(sample_ids) - set(self.samples))
        if unknown:
            msg = f"Samples not found in the intensity data: {unknown}"
            raise ValueError(msg)
        return RawData(self.red[sample_ids], self.grn[sample_ids])

    def __len__(self):
        return len(self.samples)

    def __repr__(self):
        title = "RawData():"
        lines = [
            title + "\n" + "*" * len(title),
            f"samples:\n{self.samples}",
            f"ids:\n{self.ids}",
            f"grn:\n{self.grn}",
            f"red:\n{self.red}",
        ]
        return "\n\n".join(lines)


def probe_indices(annotation, address_ids):
    """Maps the methylation probes of 'annotation' onto intensity columns.

    Probes whose bead addresses are not contained in 'address_ids' are
    skipped with a warning.

    Args:
        annotation (Annotation): Probe annotation.
        address_ids (array-like): Bead addresses of the intensity matrices.

    Returns:
        dict: Indices with keys
            'idx': annotation rows of the used probes (genomic order),
            'ilmnid': their probe IDs,
            'ids_1_red_a', 'ids_1_red_b', 'ids_1_grn_a', 'ids_1_grn_b',
            'ids_2_____a': intensity columns of the A/B addresses,
            'idx_1_red__', 'idx_1_grn__', 'idx_2______': positions within
            'idx',
            'ids_ng_cont': intensity columns of the negative controls.
    """
    type_1 = annotation.probe_info(ProbeType.ONE)
    type_2 = annotation.probe_info(ProbeType.TWO)
    type_1_red = type_1[type_1.Color_Channel.values == Channel.RED.value]
    type_1_grn = type_1[type_1.Color_Channel.values == Channel.GRN.value]
    n_no_channel = len(type_1) - len(type_1_red) - len(type_1_grn)
    if n_no_channel:
        logger.warning(
            "%s type I probe(s) without color channel are skipped",
            n_no_channel,
        )

    ids = pd.Index(address_ids)
    ids_1_red_a = ids.get_indexer(type_1_red["AddressA_ID"])
    ids_1_red_b = ids.get_indexer(type_1_red["AddressB_ID"])
    ids_1_grn_a = ids.get_indexer(type_1_grn["AddressA_ID"])
    ids_1_grn_b = ids.get_indexer(type_1_grn["AddressB_ID"])
    ids_2_____a = ids.get_indexer(type_2["AddressA_ID"])

    keep_1_red = (ids_1_red_a != -1) & (ids_1_red_b != -1)
    keep_1_grn = (ids_1_grn_a != -1) & (ids_1_grn_b != -1)
    keep_2 = ids_2_____a != -1
    n_missing = (
        (~keep_1_red).sum() + (~keep_1_grn).sum() + (~keep_2).sum()
    )
    if n_missing:
        logger.warning(
            "%s probe(s) have bead addresses missing in the intensity data "
            "and are skipped",
            n_missing,
        )
    type_1_red = type_1_red[keep_1_red]
    type_1_grn = type_1_grn[keep_1_grn]
    type_2 = type_2[keep_2]

    idx = pd.Index(
        np.sort(
            np.concatenate(
                [
                    type_1_red.index.values,
                    type_1_grn.index.values,
                    type_2.index.values,
                ]
            )
        )
    )
    ci = {
        "idx": idx.values,
        "ilmnid": annotation.data_frame[PROBE_KEY].values[idx.values],
    }
    ci["ids_1_red_a"] = ids_1_red_a[keep_1_red]
    ci["ids_1_red_b"] = ids_1_red_b[keep_1_red]
    ci["ids_1_grn_a"] = ids_1_grn_a[keep_1_grn]
    ci["ids_1_grn_b"] = ids_1_grn_b[keep_1_grn]
    ci["ids_2_____a"] = ids_2_____a[keep_2]
    ci["idx_1_red__"] = idx.get_indexer(type_1_red.index)
    ci["idx_1_grn__"] = idx.get_indexer(type_1_grn.index)
    ci["idx_2______"] = idx.get_indexer(type_2.index)

    ng_controls = ids.get_indexer(annotation.control_address("NEGATIVE"))
    ci["ids_ng_cont"] = ng_controls[ng_controls != -1]
    return ci


class MethylData:
    """Represents methylated and unmethylated signal derived from RawData.

    Args:
        data (RawData): Raw red/green intensities.
        annotation (Annotation): Probe annotation of the array.
        prep (str): Preprocessing method. Options: "raw", "swan".
        seed (int, optional): Seed of the random probe subset used by SWAN.
            Default is None.
        beta_offset (float): Offset added to the beta value denominator.

    Raises:
        ValueError: If 'data' is not of type 'RawData' or 'prep' is invalid.

    Examples:
        >>> methyl_data = MethylData(raw_data, annotation)
        >>> methyl_data = MethylData(raw_data, annotation, prep="swan", seed=1)
        >>> methyl_data.betas
    """

    def __init__(
        self, data, annotation, prep="raw", seed=None, beta_offset=0
    ):
        if not isinstance(data, RawData):
            msg = "'data' is not of type 'RawData'."
            raise ValueError(msg)
        if beta_offset < 0:
            msg = "'beta_offset' must be non-negative"
            raise ValueError(msg)
        self.prep = prep
        self.seed = seed
        self.beta_offset = beta_offset
        self.annotation = annotation
        self.samples = data.samples
        self._grn = data._grn
        self._red = data._red
        self.ids = data.ids
        self._methylated_df = None
        self._unmethylated_df = None
        if prep == "raw":
            self.preprocess_raw()
        elif prep == "swan":
            self.preprocess_swan()
        else:
            msg = f"invalid 'prep' value {prep}, choose from {PREP_METHODS}"
            raise ValueError(msg)

    @property
    def methylated(self):
        """DataFrame: Methylated intensity values indexed by IlmnID."""
        if self._methylated_df is None:
            self._methylated_df = self._to_frame(self.methyl)
        return self._methylated_df

    @property
    def unmethylated(self):
        """DataFrame: Unmethylated intensity values indexed by IlmnID."""
        if self._unmethylated_df is None:
            self._unmethylated_df = self._to_frame(self.unmethyl)
        return self._unmethylated_df

    def _to_frame(self, values):
        data_frame = pd.DataFrame(
            values.T, index=self.methyl_ilmnid, columns=self.samples
        )
        data_frame.index.name = PROBE_KEY
        data_frame.columns.name = None
        return data_frame

    def preprocess_raw(self):
        """Calculates methylated/unmethylated arrays without preprocessing.

        Converts the Red/Green channel for an Illumina methylation array
        into methylation signal, without using any normalization.
        """
        ci = probe_indices(self.annotation, self.ids)
        self._preprocess_raw(ci)

    def _preprocess_raw(self, ci):
        """Internal preprocess logic."""
        methyl_shape = (len(self.samples), len(ci["idx"]))
        self.methyl = np.full(methyl_shape, np.nan)
        self.unmethyl = np.full(methyl_shape, np.nan)
        self.methyl[:, ci["idx_1_red__"]] = np.take(
            self._red, ci["ids_1_red_b"], axis=1
        )
        self.methyl[:, ci["idx_1_grn__"]] = np.take(
            self._grn, ci["ids_1_grn_b"], axis=1
        )
        self.methyl[:, ci["idx_2______"]] = np.take(
            self._grn, ci["ids_2_____a"], axis=1
        )
        self.unmethyl[:, ci["idx_1_red__"]] = np.take(
            self._red, ci["ids_1_red_a"], axis=1
        )
        self.unmethyl[:, ci["idx_1_grn__"]] = np.take(
            self._grn, ci["ids_1_grn_a"], axis=1
        )
        self.unmethyl[:, ci["idx_2______"]] = np.take(
            self._red, ci["ids_2_____a"], axis=1
        )
        self.methyl_index = ci["idx"]
        self.methyl_ilmnid = ci["ilmnid"]

    def _swan_bg_intensity(self, ci):
        """Intensity background normalization used for SWAN preprocessing."""
        if len(ci["ids_ng_cont"]) == 0:
            msg = "SWAN needs NEGATIVE control probes in the intensity data."
            raise ValueError(msg)
        grn_med = np.median(self._grn[:, ci["ids_ng_cont"]], axis=1)
        red_med = np.median(self._red[:, ci["ids_ng_cont"]], axis=1)
        return np.mean([grn_med, red_med], axis=0)

    @staticmethod
    def _swan_indices(annotation, methyl_index, seed=None):
        rng = np.random.default_rng(seed)
        all_ncpgs = (
            annotation.data_frame[["Probe_Type", "N_CpG"]]
            .loc[methyl_index]
            .reset_index(drop=True)
        )
        subset_sizes = all_ncpgs.groupby(
            ["Probe_Type", "N_CpG"], dropna=False
        ).size()
        subset_size = min(
            subset_sizes.get((probe_type.value, n_cpg), 0)
            for probe_type in [ProbeType.ONE, ProbeType.TWO]
            for n_cpg in [1, 2, 3]
        )
        if subset_size == 0:
            msg = (
                "SWAN needs type I and type II probes with 1, 2 and 3 CpGs "
                "in the probe body."
            )
            raise ValueError(msg)
        logger.info("SWAN subset size: %s probes per CpG class", subset_size)
        all_indices = {}
        random_subset_indices = {}
        for probe_type in [ProbeType.ONE, ProbeType.TWO]:
            all_ncpgs_type = all_ncpgs[all_ncpgs.Probe_Type == probe_type]
            all_indices[probe_type] = all_ncpgs_type.index.values
            all_ncpgs_type = all_ncpgs_type.reset_index(drop=True)
            indices = []
            for ncpgs in range(1, 4):
                ids = all_ncpgs_type.index[all_ncpgs_type.N_CpG == ncpgs]
                ids_subset = rng.permutation(ids)[:subset_size]
                indices.append(ids_subset)
            random_subset_indices[probe_type] = np.sort(
                np.concatenate(indices)
            )
        return all_indices, random_subset_indices

    def preprocess_swan(self):
        """Subset-quantile Within Array Normalization (SWAN).

        Details:
            An average quantile distribution is created from a subset of
            probes that are biologically similar by the number of CpGs in the
            probe body: N Infinium I and N Infinium II probes with 1, 2 and 3
            body CpGs are drawn at random, where N is the size of the smallest
            of these 6 sets. Each of the two pools of 3N probes is sorted by
            intensity and every quantile is assigned the mean of the two probe
            types. The remaining probes are adjusted separately per probe
            type by linear interpolation between the subset probes.
            Non-positive results are replaced by the background intensity.

        Note:
            The subset is random. To achieve reproducible results, set the
            seed.

        References:
            J Maksimovic, L Gordon and A Oshlack (2012). SWAN: Subset quantile
            Within-Array Normalization for Illumina Infinium
            HumanMethylation450 BeadChips. Genome Biology 13, R44.
        """
        self._methylated_df = None
        self._unmethylated_df = None
        ci = probe_indices(self.annotation, self.ids)
        self._preprocess_raw(ci)
        bg_intensity = self._swan_bg_intensity(ci)
        all_indices, random_subset_indices = MethylData._swan_indices(
            self.annotation, self.methyl_index, self.seed
        )
        self.methyl = MethylData._preprocess_swan_main(
            self.methyl, bg_intensity, all_indices, random_subset_indices
        )
        self.unmethyl = MethylData._preprocess_swan_main(
            self.unmethyl, bg_intensity, all_indices, random_subset_indices
        )

    @staticmethod
    def _preprocess_swan_main(
        intensity, bg_intensity, all_indices, random_subset_indices
    ):
        """Normalizes one signal matrix (samples x probes) with SWAN."""
        random_subset_one = all_indices[ProbeType.ONE][
            random_subset_indices[ProbeType.ONE]
        ]
        random_subset_two = all_indices[ProbeType.TWO][
            random_subset_indices[ProbeType.TWO]
        ]
        sorted_subset_intensity = (
            np.sort(intensity[:, random_subset_one], axis=1)
            + np.sort(intensity[:, random_subset_two], axis=1)
        ) / 2
        swan = np.full(intensity.shape, np.nan)
        for i in range(len(intensity)):
            for probe_type in [ProbeType.ONE, ProbeType.TWO]:
                curr_intensity = intensity[i, all_indices[probe_type]]
                subset = random_subset_indices[probe_type]
                x = rankdata(curr_intensity) / len(curr_intensity)
                xp = np.sort(x[subset])
                fp = sorted_subset_intensity[i, :]
                interp = np.interp(x=x, xp=xp, fp=fp)
                intensity_min = np.min(curr_intensity[subset])
                intensity_max = np.max(curr_intensity[subset])
                above = x > np.max(xp)
                below = x < np.min(xp)
                interp[above] += curr_intensity[above] - intensity_max
                interp[below] += curr_intensity[below] - intensity_min
                interp[interp <= 0] = bg_intensity[i]
                swan[i, all_indices[probe_type]] = interp
        return swan

    @staticmethod
    def _get_beta(methylated, unmethylated, offset=0, *, min_zero=True):
        if min_zero:
            methylated = np.maximum(methylated, 0)
            unmethylated = np.maximum(unmethylated, 0)

        # Undefined ratios (0 / 0) become NaN
        with np.errstate(divide="ignore", invalid="ignore"):
            return methylated / (methylated + unmethylated + offset)

    @staticmethod
    def _get_m_value(methylated, unmethylated):
        with np.errstate(divide="ignore", invalid="ignore"):
            mvalues = np.log2(methylated / unmethylated)
        mvalues[~np.isfinite(mvalues)] = np.nan
        return mvalues

    @property
    def betas(self):
        """Returns beta values M / (M + U + offset), probes x samples."""
        return self._to_frame(
            MethylData._get_beta(self.methyl, self.unmethyl, self.beta_offset)
        )

    @property
    def mvalues(self):
        """Returns M-values log2(M / U), probes x samples."""
        return self._to_frame(
            MethylData._get_m_value(self.methyl, self.unmethyl)
        )

    def __repr__(self):
        title = "MethylData():"
        lines = [
            title + "\n" + "*" * len(title),
            f"prep: {self.prep}",
            f"samples:\n{self.samples}",
            f"methylated:\n{self.methylated}",
            f"unmethylated:\n{self.unmethylated}",
        ]
        return "\n\n".join(lines)

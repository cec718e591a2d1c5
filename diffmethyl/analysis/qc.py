"""Quality control of probes and samples by detection p-values.

The detection p-value of a probe compares its total signal with the
background distribution estimated from the negative control probes of the
same sample. Probes that are not reliably detected in any sample are removed
from the whole analysis.
"""

import logging

import numpy as np
import pandas as pd
from scipy.stats import median_abs_deviation, norm

from diffmethyl.dtypes.intensities import probe_indices
from diffmethyl.dtypes.keys import PROBE_KEY, SAMPLE_KEY

logger = logging.getLogger(__name__)

__all__ = ["detection_pvalues", "failed_probes", "sample_qc"]

# Scales the median absolute deviation to the standard deviation of a normal
# distribution
MAD_CONSTANT = 1.4826


def _background(intensity, control_ids):
    """Per-sample mean and standard deviation of the negative controls."""
    controls = intensity[:, control_ids]
    loc = np.median(controls, axis=1)
    scale = MAD_CONSTANT * median_abs_deviation(controls, axis=1)
    return loc[:, np.newaxis], scale[:, np.newaxis]


def detection_pvalues(raw, annotation):
    """Computes detection p-values for all methylation probes and samples.

    The total signal of a probe is tested against a normal background
    N(mu, sd) with mu the median and sd the scaled MAD of the NEGATIVE
    control probes in the respective channel:

        type I red:    red[A] + red[B]  vs  N(2 mu_red, 2 sd_red)
        type I green:  grn[A] + grn[B]  vs  N(2 mu_grn, 2 sd_grn)
        type II:       red[A] + grn[A]  vs  N(mu_red + mu_grn, sd_red + sd_grn)

    Args:
        raw (RawData): Raw intensities.
        annotation (Annotation): Probe annotation including control probes.

    Returns:
        pandas.DataFrame: Upper tail probabilities (IlmnID x Sample_ID).
            Larger values mean less reliable measurements. Every
            methylation probe of the annotation has a row. NaN where the
            background has no spread or the probe is not on the array.

    Raises:
        ValueError: If no NEGATIVE control probe is found in the data.
    """
    ci = probe_indices(annotation, raw.ids)
    if len(ci["ids_ng_cont"]) == 0:
        msg = "No NEGATIVE control probes found in the intensity data."
        raise ValueError(msg)
    red = raw.red.to_numpy(dtype="float64").T
    grn = raw.grn.to_numpy(dtype="float64").T
    red_mu, red_sd = _background(red, ci["ids_ng_cont"])
    grn_mu, grn_sd = _background(grn, ci["ids_ng_cont"])
    n_zero_sd = int((red_sd == 0).sum() + (grn_sd == 0).sum())
    if n_zero_sd:
        logger.warning(
            "Negative controls show no spread in %s channel(s), their "
            "detection p-values are undefined",
            n_zero_sd,
        )

    detection_p = np.full((len(raw.samples), len(ci["idx"])), np.nan)
    with np.errstate(divide="ignore", invalid="ignore"):
        detection_p[:, ci["idx_1_red__"]] = norm.sf(
            red[:, ci["ids_1_red_a"]] + red[:, ci["ids_1_red_b"]],
            loc=2 * red_mu,
            scale=2 * red_sd,
        )
        detection_p[:, ci["idx_1_grn__"]] = norm.sf(
            grn[:, ci["ids_1_grn_a"]] + grn[:, ci["ids_1_grn_b"]],
            loc=2 * grn_mu,
            scale=2 * grn_sd,
        )
        detection_p[:, ci["idx_2______"]] = norm.sf(
            red[:, ci["ids_2_____a"]] + grn[:, ci["ids_2_____a"]],
            loc=red_mu + grn_mu,
            scale=red_sd + grn_sd,
        )
    result = pd.DataFrame(
        detection_p.T, index=ci["ilmnid"], columns=raw.samples
    )
    # Probes that cannot be measured on the array stay as NaN rows
    result = result.reindex(annotation.methylation_probes)
    result.index.name = PROBE_KEY
    return result


def failed_probes(detection_p, threshold):
    """Returns the probes failing detection in at least one sample.

    A probe fails in a sample if its detection p-value exceeds 'threshold' or
    is missing. The returned set is applied to every sample downstream.

    Args:
        detection_p (pandas.DataFrame): Detection p-values, IlmnID x
            Sample_ID.
        threshold (float): Detection p-value cutoff in [0, 1].

    Returns:
        pandas.Index: IlmnIDs of the failed probes.
    """
    if threshold is None or not 0 <= threshold <= 1:
        msg = f"'threshold' must be between 0 and 1, got {threshold}"
        raise ValueError(msg)
    failing = (detection_p > threshold) | detection_p.isna()
    failed = pd.Index(detection_p.index[failing.any(axis=1)], name=PROBE_KEY)
    logger.info(
        "%s of %s probes fail detection (p > %s) in at least one sample",
        len(failed),
        len(detection_p),
        threshold,
    )
    return failed


def sample_qc(detection_p, threshold=0.05):
    """Mean detection p-value per sample.

    Samples with a mean above 'threshold' are flagged as not passed. They are
    reported only; removing them is left to the user.
    """
    mean_p = detection_p.mean(axis=0)
    result = pd.DataFrame(
        {
            SAMPLE_KEY: detection_p.columns,
            "Mean_Detection_P": mean_p.values,
            "Passed": (mean_p <= threshold).values,
        }
    )
    n_failed = int((~result["Passed"]).sum())
    if n_failed:
        logger.warning(
            "%s sample(s) have a mean detection p-value above %s: %s",
            n_failed,
            threshold,
            result.loc[~result["Passed"], SAMPLE_KEY].tolist(),
        )
    return result

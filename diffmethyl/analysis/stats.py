"""Per-probe group comparison and multiple-testing correction.

Each probe is tested independently with a two-sided Wilcoxon rank-sum
(Mann-Whitney U) test between two sample groups. The probes are split into
fixed-size chunks that are evaluated by a pool of worker processes. The raw
p-values are then corrected with Benjamini-Hochberg (false discovery rate)
and Bonferroni (family-wise error rate).
"""

import logging
import warnings

import numpy as np
import pandas as pd
from scipy.stats import mannwhitneyu
from statsmodels.stats.multitest import multipletests

from diffmethyl.dtypes.keys import PROBE_KEY
from diffmethyl.utils.parallel import chunk_bounds, parallel_map

logger = logging.getLogger(__name__)

__all__ = [
    "TEST_COLUMNS",
    "adjust_pvalues",
    "correct_pvalues",
    "group_test",
    "rank_sum_test",
]

TEST_COLUMNS = ["N_A", "N_B", "U", "Delta_Beta", "P_Value"]
ADJUST_METHODS = ("fdr_bh", "bonferroni")


def rank_sum_test(x, y, exact_max_size=50):
    """Two-sided Wilcoxon rank-sum test of 'x' against 'y'.

    Missing values are removed first. The exact null distribution is used if
    the pooled sample has no ties and both groups are smaller than
    'exact_max_size'. Otherwise the normal approximation with tie corrected
    variance and continuity correction is used.

    Args:
        x (array-like): Values of the first group.
        y (array-like): Values of the second group.
        exact_max_size (int): Group size from which on the normal
            approximation is used.

    Returns:
        tuple: (n_x, n_y, U, p) where U is the Mann-Whitney statistic of
            'x'. U and p are NaN if a group is empty or holds two or
            more values that are all equal.

    Examples:
        >>> n_x, n_y, u_stat, p = rank_sum_test([0.9, 0.8, 0.85], [0.1, 0.2])
        >>> u_stat
        6.0
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    x = x[~np.isnan(x)]
    y = y[~np.isnan(y)]
    n_x, n_y = len(x), len(y)
    if n_x == 0 or n_y == 0:
        return n_x, n_y, np.nan, np.nan
    pooled = np.concatenate([x, y])
    # Zero variance within a group or in the pooled sample
    constant = [len(v) > 1 and np.all(v == v[0]) for v in (x, y, pooled)]
    if any(constant):
        return n_x, n_y, np.nan, np.nan
    has_ties = len(np.unique(pooled)) < len(pooled)
    exact = not has_ties and max(n_x, n_y) < exact_max_size
    result = mannwhitneyu(
        x,
        y,
        use_continuity=True,
        alternative="two-sided",
        method="exact" if exact else "asymptotic",
    )
    return n_x, n_y, float(result.statistic), float(result.pvalue)


def _test_chunk(task):
    """Tests all probes of one chunk. Runs inside a worker process."""
    start, values_a, values_b, exact_max_size = task
    out = np.full((len(values_a), len(TEST_COLUMNS)), np.nan)
    for i in range(len(values_a)):
        n_a, n_b, u_stat, p_value = rank_sum_test(
            values_a[i], values_b[i], exact_max_size
        )
        out[i, 0] = n_a
        out[i, 1] = n_b
        out[i, 2] = u_stat
        out[i, 4] = p_value
    with warnings.catch_warnings():
        # Mean of empty slice
        warnings.simplefilter("ignore", category=RuntimeWarning)
        out[:, 3] = np.nanmean(values_a, axis=1) - np.nanmean(
            values_b, axis=1
        )
    return start, out


def group_test(
    matrix,
    ids_a,
    ids_b,
    n_jobs=None,
    chunk_size=20000,
    exact_max_size=50,
):
    """Runs the rank-sum test for every probe of 'matrix'.

    Args:
        matrix (pandas.DataFrame): Beta values, IlmnID x Sample_ID.
        ids_a (list): Sample IDs of group A.
        ids_b (list): Sample IDs of group B.
        n_jobs (int, optional): Number of worker processes. None chooses
            automatically, 1 runs in the calling process.
        chunk_size (int): Number of probes per task.
        exact_max_size (int): See ``rank_sum_test``.

    Returns:
        pandas.DataFrame: One row per probe with columns IlmnID, N_A, N_B,
            U, Delta_Beta (mean A - mean B) and P_Value, in the row order of
            'matrix'.

    Raises:
        ValueError: If a sample ID is not a column of 'matrix'.
    """
    missing = sorted(set(ids_a).union(ids_b) - set(matrix.columns))
    if missing:
        msg = f"Samples not found in the beta matrix: {missing}"
        raise ValueError(msg)
    values_a = matrix[list(ids_a)].to_numpy(dtype=float)
    values_b = matrix[list(ids_b)].to_numpy(dtype=float)
    n_probes = len(matrix)
    logger.info(
        "Testing %s probes: %s vs %s samples", n_probes, len(ids_a), len(ids_b)
    )
    tasks = [
        (start, values_a[start:stop], values_b[start:stop], exact_max_size)
        for start, stop in chunk_bounds(n_probes, chunk_size)
    ]
    result = np.full((n_probes, len(TEST_COLUMNS)), np.nan)
    for start, out in parallel_map(
        _test_chunk, tasks, n_jobs=n_jobs, desc="Rank-sum tests"
    ):
        result[start : start + len(out)] = out

    data_frame = pd.DataFrame(result, columns=TEST_COLUMNS)
    data_frame.insert(0, PROBE_KEY, matrix.index.values)
    data_frame["N_A"] = data_frame["N_A"].astype(int)
    data_frame["N_B"] = data_frame["N_B"].astype(int)
    return data_frame


def adjust_pvalues(pvalues, method="fdr_bh", n_tests=None):
    """Adjusts p-values for multiple comparisons.

    Args:
        pvalues (array-like): Raw p-values. NaN values stay NaN.
        method (str): 'fdr_bh' (Benjamini-Hochberg) or 'bonferroni'.
        n_tests (int, optional): Number of tests N. Defaults to the length of
            'pvalues' including NaN entries.

    Returns:
        numpy.ndarray: Adjusted p-values in the input order, capped at 1.

    Raises:
        ValueError: If 'method' is unknown, a p-value lies outside [0, 1] or
            'n_tests' is smaller than the number of valid p-values.
    """
    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.ndim != 1:
        msg = "'pvalues' must be one-dimensional"
        raise ValueError(msg)
    if method not in ADJUST_METHODS:
        msg = f"Unknown method '{method}', choose from {ADJUST_METHODS}"
        raise ValueError(msg)
    valid = ~np.isnan(pvalues)
    values = pvalues[valid]
    if ((values < 0) | (values > 1)).any():
        msg = "p-values must lie between 0 and 1"
        raise ValueError(msg)
    n_tests = len(pvalues) if n_tests is None else int(n_tests)
    if n_tests < len(values):
        msg = (
            f"'n_tests' ({n_tests}) is smaller than the number of p-values "
            f"({len(values)})"
        )
        raise ValueError(msg)

    adjusted = np.full(pvalues.shape, np.nan)
    if len(values) == 0:
        return adjusted
    # Probes without a p-value still count as tests, they enter as p = 1
    padded = np.concatenate([values, np.ones(n_tests - len(values))])
    _, p_adj, _, _ = multipletests(padded, method=method)
    adjusted[valid] = np.minimum(1, p_adj[: len(values)])
    return adjusted


def correct_pvalues(results, n_tested):
    """Adds Benjamini-Hochberg and Bonferroni adjusted p-values.

    Args:
        results (pandas.DataFrame): Output of ``group_test``.
        n_tested (int): Number of probes handed to the group test. Must equal
            the number of rows of 'results'.

    Returns:
        pandas.DataFrame: Copy of 'results' with columns P_BH and
            P_Bonferroni.
    """
    if n_tested != len(results):
        msg = (
            f"Number of tests ({n_tested}) differs from the number of "
            f"results ({len(results)})"
        )
        raise ValueError(msg)
    pvalues = results["P_Value"].to_numpy(dtype=float)
    return results.assign(
        P_BH=adjust_pvalues(pvalues, "fdr_bh", n_tested),
        P_Bonferroni=adjust_pvalues(pvalues, "bonferroni", n_tested),
    )

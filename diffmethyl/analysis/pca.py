"""Principal component analysis of the samples."""

import logging

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from diffmethyl.dtypes.keys import SAMPLE_KEY

logger = logging.getLogger(__name__)

__all__ = ["principal_components"]

GROUP = "Group"


def principal_components(matrix, samples, n_components=2):
    """Projects the samples onto the first principal components.

    Only probes without missing values in any sample are used.

    Args:
        matrix (pandas.DataFrame): Beta values, IlmnID x Sample_ID.
        samples (pandas.DataFrame): Sample sheet with columns Sample_ID and
            Group.
        n_components (int): Number of components. Reduced to the maximum
            the data supports.

    Returns:
        tuple: Sample coordinates (columns Sample_ID, Group, PC1, PC2, ...)
            and a Series of explained variance ratios.

    Raises:
        ValueError: If fewer than two samples or no complete probe remain.
    """
    complete = matrix.dropna(axis=0, how="any")
    n_samples, n_probes = complete.shape[1], complete.shape[0]
    if n_samples < 2 or n_probes == 0:
        msg = (
            f"PCA needs at least 2 samples and 1 complete probe, got "
            f"{n_samples} samples and {n_probes} probes"
        )
        raise ValueError(msg)
    n_components = min(n_components, n_samples, n_probes)
    logger.info(
        "PCA with %s components on %s probes", n_components, n_probes
    )
    pca = PCA(n_components=n_components)
    coordinates = pca.fit_transform(complete.to_numpy(dtype=float).T)
    names = [f"PC{i + 1}" for i in range(n_components)]
    result = pd.DataFrame(coordinates, columns=names)
    result.insert(0, SAMPLE_KEY, complete.columns.values)
    groups = samples.set_index(SAMPLE_KEY)[GROUP]
    result.insert(1, GROUP, groups.reindex(result[SAMPLE_KEY]).values)
    variance = pd.Series(
        np.asarray(pca.explained_variance_ratio_),
        index=names,
        name="Explained_Variance_Ratio",
    )
    return result, variance

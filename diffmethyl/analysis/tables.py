"""Joins annotation, samples and methylation values into one long table.

Every source table is checked for unique join keys before merging so that a
join can never multiply rows. Probes of the FailedProbeSet are removed from
the result on all samples.
"""

import logging

import pandas as pd

from diffmethyl.dtypes.keys import (
    PROBE_KEY,
    RECORD_KEYS,
    SAMPLE_KEY,
    DuplicateKeyError,
    validate_unique_keys,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DuplicateKeyError",
    "join_tables",
    "methylation_records",
    "probe_matrix",
    "to_long",
    "validate_unique_keys",
]

GROUP = "Group"
VALUE_COLUMNS = ["Beta_Raw", "M_Raw", "Beta_Norm", "Detection_P"]


def to_long(matrix, value_name):
    """Converts a probe x sample matrix to (IlmnID, Sample_ID, value) rows.

    Missing values are kept as NaN rows.
    """
    data_frame = matrix.copy()
    data_frame.index.name = PROBE_KEY
    data_frame.columns.name = None
    return data_frame.reset_index().melt(
        id_vars=PROBE_KEY, var_name=SAMPLE_KEY, value_name=value_name
    )


def methylation_records(raw_methyl, detection_p):
    """Long table of raw beta values, M-values and detection p-values.

    Args:
        raw_methyl (MethylData): Unnormalized methylation signal.
        detection_p (pandas.DataFrame): Detection p-values, IlmnID x
            Sample_ID.

    Returns:
        pandas.DataFrame: Columns IlmnID, Sample_ID, Beta_Raw, M_Raw,
            Detection_P.
    """
    records = to_long(raw_methyl.betas, "Beta_Raw")
    records["M_Raw"] = to_long(raw_methyl.mvalues, "M_Raw")["M_Raw"].values
    detection = to_long(detection_p, "Detection_P")
    validate_unique_keys(records, RECORD_KEYS, "raw methylation records")
    validate_unique_keys(detection, RECORD_KEYS, "detection p-values")
    return records.merge(
        detection, on=RECORD_KEYS, how="left", validate="one_to_one"
    )


def join_tables(annotation, records, normalized, samples, failed):
    """Builds the joined long-format table of the analysis.

    Args:
        annotation (pandas.DataFrame): Probe fields keyed by IlmnID.
        records (pandas.DataFrame): Raw records keyed by (IlmnID, Sample_ID).
        normalized (pandas.DataFrame): Normalized beta values as long table
            with columns IlmnID, Sample_ID, Beta_Norm.
        samples (pandas.DataFrame): Sample sheet keyed by Sample_ID.
        failed (array-like): IlmnIDs excluded on all samples.

    Returns:
        pandas.DataFrame: One row per (probe, sample) with annotation,
            group label and methylation values.

    Raises:
        DuplicateKeyError: If a source table has duplicated keys.
    """
    validate_unique_keys(annotation, PROBE_KEY, "annotation")
    validate_unique_keys(records, RECORD_KEYS, "methylation records")
    validate_unique_keys(normalized, RECORD_KEYS, "normalized values")
    validate_unique_keys(samples, SAMPLE_KEY, "sample sheet")

    table = records.merge(
        normalized[[*RECORD_KEYS, "Beta_Norm"]],
        on=RECORD_KEYS,
        how="left",
        validate="one_to_one",
    )
    table = table.merge(
        annotation, on=PROBE_KEY, how="left", validate="many_to_one"
    )
    table = table.merge(
        samples[[SAMPLE_KEY, GROUP]],
        on=SAMPLE_KEY,
        how="left",
        validate="many_to_one",
    )
    n_rows = len(table)
    table = table[~table[PROBE_KEY].isin(pd.Index(failed))]
    logger.info(
        "Joined table: %s rows, %s removed by detection filter",
        len(table),
        n_rows - len(table),
    )
    value_columns = [col for col in VALUE_COLUMNS if col in table.columns]
    other_columns = [
        col
        for col in table.columns
        if col not in [*RECORD_KEYS, GROUP, *value_columns]
    ]
    columns = [*RECORD_KEYS, GROUP, *other_columns, *value_columns]
    return table[columns].reset_index(drop=True)


def probe_matrix(table, value="Beta_Norm"):
    """Pivots the long table back into an IlmnID x Sample_ID matrix.

    Probe and sample order of the table are preserved.
    """
    probes = pd.unique(table[PROBE_KEY])
    samples = pd.unique(table[SAMPLE_KEY])
    matrix = table.pivot(index=PROBE_KEY, columns=SAMPLE_KEY, values=value)
    matrix = matrix.reindex(index=probes, columns=samples)
    matrix.index.name = PROBE_KEY
    matrix.columns.name = None
    return matrix

"""Runs the complete differential methylation analysis.

The stages run strictly in sequence, each one consuming the tables of the
previous stage:

    load -> detection QC -> raw/SWAN signal -> joined table
         -> rank-sum tests -> p-value correction -> PCA -> reports

Usage:
    raw, annotation, samples = load_inputs(
        "red.csv.gz", "grn.csv.gz", "probes.csv", "controls.csv", "sheet.csv"
    )
    result = run_analysis(raw, annotation, samples, group_a="DS", group_b="WT")
    write_results(result, "results")
    summarize(result)
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from diffmethyl.analysis.pca import principal_components
from diffmethyl.analysis.qc import detection_pvalues, failed_probes, sample_qc
from diffmethyl.analysis.stats import correct_pvalues, group_test
from diffmethyl.analysis.tables import (
    join_tables,
    methylation_records,
    probe_matrix,
    to_long,
)
from diffmethyl.dtypes.annotation import Annotation
from diffmethyl.dtypes.intensities import MethylData, RawData
from diffmethyl.dtypes.keys import PROBE_KEY
from diffmethyl.dtypes.samples import SampleSheet
from diffmethyl.utils.files import ensure_directory_exists
from diffmethyl.utils.varia import CONFIG, Timer

logger = logging.getLogger(__name__)

__all__ = [
    "AnalysisResult",
    "load_inputs",
    "run_analysis",
    "summarize",
    "write_results",
]


@dataclass(frozen=True)
class AnalysisResult:
    """Tables produced by one analysis run."""

    group_a: str
    group_b: str
    detection_p: pd.DataFrame
    failed_probes: pd.Index
    sample_qc: pd.DataFrame
    raw: MethylData
    normalized: MethylData
    table: pd.DataFrame
    tests: pd.DataFrame
    pca: pd.DataFrame
    pca_variance: pd.Series


def load_inputs(
    red_path,
    grn_path,
    annotation_path,
    controls_path,
    sample_sheet_path,
    group_column=None,
):
    """Reads intensities, annotation and sample sheet from disk."""
    if group_column is None:
        group_column = CONFIG["groups"]["column"]
    timer = Timer()
    raw = RawData.from_files(red_path, grn_path)
    annotation = Annotation.from_files(annotation_path, controls_path)
    samples = SampleSheet.from_file(sample_sheet_path, group_column)
    timer.stop("Loading")
    return raw, annotation, samples


def _option(value, section, key, config):
    return config[section][key] if value is None else value


def run_analysis(
    raw,
    annotation,
    samples,
    *,
    group_a=None,
    group_b=None,
    threshold=None,
    sample_threshold=None,
    prep=None,
    seed=None,
    beta_offset=None,
    n_jobs=None,
    chunk_size=None,
    exact_max_size=None,
    n_components=None,
    config=None,
):
    """Chains all analysis stages.

    Every option left at None is taken from 'config' (defaults to the
    package configuration).

    Args:
        raw (RawData): Raw intensities of at least all compared samples.
        annotation (Annotation): Probe and control probe annotation.
        samples (SampleSheet): Sample sheet with group labels.
        group_a (str): Label of the first group (positive Delta_Beta means
            higher methylation in this group).
        group_b (str): Label of the second group.
        threshold (float): Detection p-value cutoff of the probe filter.
        sample_threshold (float): Mean detection p-value cutoff of the
            sample report.
        prep (str): Normalization of 'Beta_Norm', "raw" or "swan".
        seed (int): Seed of the SWAN probe subset.
        beta_offset (float): Offset of the beta value denominator.
        n_jobs (int): Worker processes of the group test. 0 chooses
            automatically.
        chunk_size (int): Probes per worker task.
        exact_max_size (int): Group size from which on the rank-sum test
            uses the normal approximation.
        n_components (int): Number of principal components.
        config (dict, optional): Configuration to take defaults from.

    Returns:
        AnalysisResult: All tables of the run.
    """
    config = CONFIG if config is None else config
    group_a = str(_option(group_a, "groups", "group_a", config))
    group_b = str(_option(group_b, "groups", "group_b", config))
    threshold = _option(threshold, "qc", "detection_threshold", config)
    sample_threshold = _option(
        sample_threshold, "qc", "sample_threshold", config
    )
    prep = _option(prep, "normalization", "prep", config)
    seed = _option(seed, "normalization", "seed", config)
    beta_offset = _option(beta_offset, "normalization", "beta_offset", config)
    n_jobs = _option(n_jobs, "testing", "n_jobs", config)
    chunk_size = _option(chunk_size, "testing", "chunk_size", config)
    exact_max_size = _option(
        exact_max_size, "testing", "exact_max_size", config
    )
    n_components = _option(n_components, "pca", "n_components", config)

    timer = Timer()
    ids_a, ids_b = samples.bipartition(group_a, group_b)
    raw = raw.restrict(ids_a + ids_b)
    logger.info(
        "Comparing '%s' (%s samples) with '%s' (%s samples)",
        group_a,
        len(ids_a),
        group_b,
        len(ids_b),
    )

    detection_p = detection_pvalues(raw, annotation)
    failed = failed_probes(detection_p, threshold)
    qc_table = sample_qc(detection_p, sample_threshold)
    timer.stop("Detection QC")

    raw_methyl = MethylData(
        raw, annotation, prep="raw", beta_offset=beta_offset
    )
    if prep == "raw":
        normalized = raw_methyl
    else:
        normalized = MethylData(
            raw, annotation, prep=prep, seed=seed, beta_offset=beta_offset
        )
    timer.stop(f"Normalization ({prep})")

    records = methylation_records(raw_methyl, detection_p)
    table = join_tables(
        annotation.probe_table,
        records,
        to_long(normalized.betas, "Beta_Norm"),
        samples.data_frame,
        failed,
    )
    timer.stop("Joining tables")

    matrix = probe_matrix(table, "Beta_Norm")
    tests = group_test(
        matrix,
        ids_a,
        ids_b,
        n_jobs=n_jobs or None,
        chunk_size=chunk_size,
        exact_max_size=exact_max_size,
    )
    tests = correct_pvalues(tests, n_tested=len(matrix))
    positions = annotation.probe_table[[PROBE_KEY, "Chromosome", "Start"]]
    tests = tests.merge(
        positions, on=PROBE_KEY, how="left", validate="one_to_one"
    )
    timer.stop("Group tests")

    pca, pca_variance = principal_components(
        matrix, samples.data_frame, n_components
    )
    timer.stop("PCA")

    return AnalysisResult(
        group_a=group_a,
        group_b=group_b,
        detection_p=detection_p,
        failed_probes=failed,
        sample_qc=qc_table,
        raw=raw_methyl,
        normalized=normalized,
        table=table,
        tests=tests,
        pca=pca,
        pca_variance=pca_variance,
    )


def write_results(result, output_dir, config=None):
    """Writes the result tables to 'output_dir'.

    Returns:
        dict: Paths of the written files by table name.
    """
    config = CONFIG if config is None else config
    names = config["output"]
    output_dir = Path(output_dir).expanduser()
    ensure_directory_exists(output_dir)
    paths = {
        key: output_dir / names[key]
        for key in [
            "table",
            "tests",
            "failed",
            "sample_qc",
            "pca",
            "pca_variance",
        ]
    }
    result.table.to_csv(paths["table"], index=False)
    result.tests.to_csv(paths["tests"], index=False)
    result.sample_qc.to_csv(paths["sample_qc"], index=False)
    result.pca.to_csv(paths["pca"], index=False)
    result.pca_variance.to_csv(paths["pca_variance"], index_label="Component")
    paths["failed"].write_text(
        "".join(f"{probe}\n" for probe in result.failed_probes)
    )
    logger.info("Results written to %s", output_dir)
    return paths


def summarize(result, alpha=None, top_n=None, config=None):
    """Logs the key numbers of an analysis run.

    Returns:
        dict: The logged numbers and the top probes (sorted by P_Value).
    """
    config = CONFIG if config is None else config
    alpha = _option(alpha, "testing", "alpha", config)
    top_n = _option(top_n, "output", "top_n", config)
    tests = result.tests
    summary = {
        "n_samples": len(result.detection_p.columns),
        "n_probes": len(result.detection_p),
        "n_failed": len(result.failed_probes),
        "n_tested": len(tests),
        "n_significant_bh": int((tests["P_BH"] < alpha).sum()),
        "n_significant_bonferroni": int((tests["P_Bonferroni"] < alpha).sum()),
        "top": tests.sort_values("P_Value", kind="stable").head(top_n),
    }
    logger.info(
        "%s vs %s: %s samples, %s probes, %s failed detection, %s tested",
        result.group_a,
        result.group_b,
        summary["n_samples"],
        summary["n_probes"],
        summary["n_failed"],
        summary["n_tested"],
    )
    logger.info(
        "Significant at %s: %s (Benjamini-Hochberg), %s (Bonferroni)",
        alpha,
        summary["n_significant_bh"],
        summary["n_significant_bonferroni"],
    )
    logger.info(
        "Explained variance: %s",
        ", ".join(
            f"{name} {ratio:.1%}"
            for name, ratio in result.pca_variance.items()
        ),
    )
    logger.info("Top probes:\n%s", summary["top"].to_string(index=False))
    return summary

"""Differential methylation analysis module.

Provides detection QC, table joining, the per-probe group test with
multiple-testing correction, PCA and the pipeline chaining them.
"""

from .pca import principal_components
from .pipeline import (
    AnalysisResult,
    load_inputs,
    run_analysis,
    summarize,
    write_results,
)
from .qc import detection_pvalues, failed_probes, sample_qc
from .stats import adjust_pvalues, correct_pvalues, group_test, rank_sum_test
from .tables import (
    join_tables,
    methylation_records,
    probe_matrix,
    to_long,
)

__all__ = [
    "AnalysisResult",
    "adjust_pvalues",
    "correct_pvalues",
    "detection_pvalues",
    "failed_probes",
    "group_test",
    "join_tables",
    "load_inputs",
    "methylation_records",
    "principal_components",
    "probe_matrix",
    "rank_sum_test",
    "run_analysis",
    "sample_qc",
    "summarize",
    "to_long",
    "write_results",
]

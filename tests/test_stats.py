"""Pytest for the group test and the multiple-testing correction."""

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest
from scipy.stats import mannwhitneyu

from diffmethyl.analysis import (
    adjust_pvalues,
    correct_pvalues,
    group_test,
    rank_sum_test,
)

# ----------------------------------------------------------------------------
# Tests for rank_sum_test
# ----------------------------------------------------------------------------


def test_rank_sum_fully_separated() -> None:
    n_x, n_y, u_stat, p_value = rank_sum_test(
        [0.81, 0.79, 0.85, 0.83], [0.21, 0.18, 0.25, 0.2]
    )
    assert (n_x, n_y) == (4, 4)
    assert u_stat == 16
    # Smallest attainable two-sided p-value for 4 vs 4 samples
    assert p_value == pytest.approx(2 / 70)

    _, _, u_stat, p_value = rank_sum_test(
        [0.21, 0.18, 0.25, 0.2], [0.81, 0.79, 0.85, 0.83]
    )
    assert u_stat == 0
    assert p_value == pytest.approx(2 / 70)


def test_rank_sum_drops_missing_values() -> None:
    x = [0.8, np.nan, 0.9, 0.7]
    y = [0.1, 0.2, np.nan, np.nan]
    n_x, n_y, u_stat, p_value = rank_sum_test(x, y)
    assert (n_x, n_y) == (3, 2)
    assert u_stat == 6
    expected = mannwhitneyu([0.8, 0.9, 0.7], [0.1, 0.2], method="exact")
    assert p_value == pytest.approx(expected.pvalue)


def test_rank_sum_degenerate_inputs() -> None:
    n_x, n_y, u_stat, p_value = rank_sum_test([np.nan, np.nan], [0.1, 0.2])
    assert (n_x, n_y) == (0, 2)
    assert np.isnan(u_stat)
    assert np.isnan(p_value)

    n_x, n_y, u_stat, p_value = rank_sum_test([0.5, 0.5], [0.5, 0.5, 0.5])
    assert (n_x, n_y) == (2, 3)
    assert np.isnan(p_value)

    # Identical values in all samples of one group
    n_x, n_y, u_stat, p_value = rank_sum_test([0.5] * 4, [0.1, 0.2, 0.3, 0.4])
    assert (n_x, n_y) == (4, 4)
    assert np.isnan(u_stat)
    assert np.isnan(p_value)
    _, _, u_stat, p_value = rank_sum_test([0.9, 0.9], [0.1, 0.1])
    assert np.isnan(u_stat)
    assert np.isnan(p_value)

    # A single sample per group is still ranked
    _, _, u_stat, p_value = rank_sum_test([0.9], [0.1, 0.2, 0.3])
    assert u_stat == 3
    assert p_value == pytest.approx(0.5)


def test_rank_sum_ties_use_normal_approximation() -> None:
    x = [0.1, 0.2, 0.2, 0.4, 0.5]
    y = [0.2, 0.3, 0.3, 0.6]
    _, _, u_stat, p_value = rank_sum_test(x, y)
    expected = mannwhitneyu(
        x, y, use_continuity=True, alternative="two-sided", method="asymptotic"
    )
    assert u_stat == expected.statistic
    assert p_value == pytest.approx(expected.pvalue)


def test_rank_sum_large_groups_use_normal_approximation() -> None:
    rng = np.random.default_rng(1)
    x = rng.normal(0.5, 0.1, 60)
    y = rng.normal(0.45, 0.1, 55)
    _, _, _, p_value = rank_sum_test(x, y)
    asymptotic = mannwhitneyu(x, y, method="asymptotic")
    assert p_value == pytest.approx(asymptotic.pvalue)

    _, _, _, p_value = rank_sum_test(x[:10], y[:10], exact_max_size=5)
    asymptotic = mannwhitneyu(x[:10], y[:10], method="asymptotic")
    assert p_value == pytest.approx(asymptotic.pvalue)

    _, _, _, p_value = rank_sum_test(x[:10], y[:10])
    exact = mannwhitneyu(x[:10], y[:10], method="exact")
    assert p_value == pytest.approx(exact.pvalue)


# ----------------------------------------------------------------------------
# Tests for group_test
# ----------------------------------------------------------------------------


def _beta_matrix(n_probes=50, seed=0):
    rng = np.random.default_rng(seed)
    values = rng.uniform(0, 1, (n_probes, 8))
    values[::5, :4] += 2
    values[3, 0] = np.nan
    values[4, :4] = np.nan
    return pd.DataFrame(
        values,
        index=pd.Index([f"cg{i:03d}" for i in range(n_probes)], name="IlmnID"),
        columns=[f"s{i}" for i in range(8)],
    )


def test_group_test() -> None:
    matrix = _beta_matrix()
    ids_a = ["s0", "s1", "s2", "s3"]
    ids_b = ["s4", "s5", "s6", "s7"]
    result = group_test(matrix, ids_a, ids_b, n_jobs=1, chunk_size=7)

    assert list(result.columns) == [
        "IlmnID",
        "N_A",
        "N_B",
        "U",
        "Delta_Beta",
        "P_Value",
    ]
    assert result["IlmnID"].tolist() == matrix.index.tolist()
    assert result.loc[0, "P_Value"] == pytest.approx(2 / 70)
    assert result.loc[0, "Delta_Beta"] > 1
    assert result.loc[3, "N_A"] == 3
    assert result.loc[4, "N_A"] == 0
    assert np.isnan(result.loc[4, "P_Value"])
    assert np.isnan(result.loc[4, "Delta_Beta"])
    for i in [1, 7, 23]:
        _, _, u_stat, p_value = rank_sum_test(
            matrix.iloc[i][ids_a], matrix.iloc[i][ids_b]
        )
        assert result.loc[i, "U"] == u_stat
        assert result.loc[i, "P_Value"] == p_value
        delta = matrix.iloc[i][ids_a].mean() - matrix.iloc[i][ids_b].mean()
        assert result.loc[i, "Delta_Beta"] == pytest.approx(delta)


def test_group_test_parallel_equals_serial() -> None:
    matrix = _beta_matrix(n_probes=101)
    ids_a = ["s0", "s1", "s2", "s3"]
    ids_b = ["s4", "s5", "s6", "s7"]
    serial = group_test(matrix, ids_a, ids_b, n_jobs=1, chunk_size=101)
    parallel = group_test(matrix, ids_a, ids_b, n_jobs=2, chunk_size=10)
    pd.testing.assert_frame_equal(serial, parallel)


def test_group_test_unequal_groups() -> None:
    matrix = _beta_matrix()
    result = group_test(matrix, ["s0", "s1"], ["s2", "s3", "s4"], n_jobs=1)
    assert (result.loc[result.index != 4, "N_B"] == 3).all()
    assert (result.loc[~result.index.isin([3, 4]), "N_A"] == 2).all()


def test_group_test_unknown_samples() -> None:
    with pytest.raises(ValueError, match="s9"):
        group_test(_beta_matrix(), ["s0", "s9"], ["s4"], n_jobs=1)


def test_group_test_empty_matrix() -> None:
    matrix = _beta_matrix().iloc[:0]
    result = group_test(matrix, ["s0"], ["s4"], n_jobs=1)
    assert len(result) == 0


# ----------------------------------------------------------------------------
# Tests for adjust_pvalues and correct_pvalues
# ----------------------------------------------------------------------------


def _bh_reference(pvalues, n_tests):
    """Benjamini-Hochberg by its definition min_{j >= i} p_(j) * N / j."""
    n = len(pvalues)
    order = np.argsort(pvalues)
    sorted_p = pvalues[order]
    expected = np.empty(n)
    for i in range(n):
        ratios = [sorted_p[j] * n_tests / (j + 1) for j in range(i, n)]
        expected[order[i]] = min(1.0, min(ratios))
    return expected


@pytest.mark.parametrize("n_tests", [None, 300])
def test_adjust_pvalues_definition(n_tests) -> None:
    rng = np.random.default_rng(2)
    pvalues = rng.uniform(0, 1, 200) ** 3
    pvalues[10] = pvalues[11]
    n = len(pvalues) if n_tests is None else n_tests
    npt.assert_allclose(
        adjust_pvalues(pvalues, "fdr_bh", n_tests), _bh_reference(pvalues, n)
    )
    npt.assert_allclose(
        adjust_pvalues(pvalues, "bonferroni", n_tests),
        np.minimum(1, pvalues * n),
    )


def test_adjust_pvalues_nan_counts_as_test() -> None:
    pvalues = np.array([0.001, np.nan, 0.02, 0.3, np.nan, 0.04])
    adjusted = adjust_pvalues(pvalues, "fdr_bh")
    valid = ~np.isnan(pvalues)
    npt.assert_allclose(adjusted[valid], _bh_reference(pvalues[valid], 6))
    assert np.isnan(adjusted[~valid]).all()


def test_adjust_pvalues_properties() -> None:
    rng = np.random.default_rng(3)
    pvalues = rng.uniform(0, 0.2, 500)
    for method in ["fdr_bh", "bonferroni"]:
        adjusted = adjust_pvalues(pvalues, method)
        assert (adjusted >= pvalues).all()
        assert (adjusted <= 1).all()
    adjusted = adjust_pvalues(pvalues, "fdr_bh")
    order = np.argsort(pvalues)
    assert np.all(np.diff(adjusted[order]) >= 0)


def test_adjust_pvalues_example() -> None:
    pvalues = [0.01, 0.04, 0.03, 0.005]
    npt.assert_allclose(
        adjust_pvalues(pvalues, "fdr_bh"), [0.02, 0.04, 0.04, 0.02]
    )
    npt.assert_allclose(
        adjust_pvalues(pvalues, "bonferroni"), [0.04, 0.16, 0.12, 0.02]
    )


def test_adjust_pvalues_missing_values() -> None:
    pvalues = np.array([0.01, np.nan, 0.02, np.nan])
    adjusted = adjust_pvalues(pvalues, "bonferroni")
    npt.assert_allclose(adjusted, [0.04, np.nan, 0.08, np.nan])
    adjusted = adjust_pvalues(pvalues, "fdr_bh")
    npt.assert_allclose(adjusted, [0.04, np.nan, 0.04, np.nan])
    adjusted = adjust_pvalues(pvalues, "bonferroni", n_tests=2)
    npt.assert_allclose(adjusted, [0.02, np.nan, 0.04, np.nan])
    assert np.isnan(adjust_pvalues([np.nan, np.nan])).all()


def test_bonferroni_does_not_underflow() -> None:
    pvalues = [2 / 70, 1e-12, 1e-300]
    adjusted = adjust_pvalues(pvalues, "bonferroni", n_tests=450000)
    assert adjusted[0] == 1
    assert adjusted[1] == pytest.approx(4.5e-7)
    assert adjusted[2] > 0


def test_adjust_pvalues_invalid_input() -> None:
    with pytest.raises(ValueError, match="method"):
        adjust_pvalues([0.1], "holm")
    with pytest.raises(ValueError, match="between 0 and 1"):
        adjust_pvalues([0.1, 1.2])
    with pytest.raises(ValueError, match="n_tests"):
        adjust_pvalues([0.1, 0.2, 0.3], n_tests=2)


def test_correct_pvalues() -> None:
    results = pd.DataFrame(
        {"IlmnID": ["cg1", "cg2", "cg3"], "P_Value": [0.01, np.nan, 0.03]}
    )
    corrected = correct_pvalues(results, n_tested=3)
    npt.assert_allclose(corrected["P_Bonferroni"], [0.03, np.nan, 0.09])
    npt.assert_allclose(corrected["P_BH"], [0.03, np.nan, 0.045])
    assert "P_BH" not in results.columns
    with pytest.raises(ValueError, match="Number of tests"):
        correct_pvalues(results, n_tested=2)

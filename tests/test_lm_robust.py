import tracemalloc

import numpy as np
import pandas as pd
import pytest

from tidyreg import lm_robust
from tidyreg.utils import add_const, ols_fit

FORMULA = "log_wage ~ schooling + experience"


def _design(wages):
    X = add_const(wages[["schooling", "experience"]].to_numpy())
    y = wages["log_wage"].to_numpy()
    return X, y


def test_point_estimates_match_least_squares(wages):
    X, y = _design(wages)
    fit = lm_robust(FORMULA, data=wages)
    np.testing.assert_allclose(fit["beta"], np.linalg.lstsq(X, y, rcond=None)[0])
    assert fit["terms"] == ["Intercept", "schooling", "experience"]
    assert fit["outcome"] == "log_wage"
    assert fit["nobs"] == len(wages)


def test_classical_matches_homoskedastic_ols(wages):
    X, y = _design(wages)
    _, se, _, _ = ols_fit(X, y)
    fit = lm_robust(FORMULA, data=wages, se_type="classical")
    np.testing.assert_allclose(fit["se"], se)
    np.testing.assert_allclose(fit["df"], len(y) - 3)


def test_hc1_is_scaled_hc0(wages):
    n, k = len(wages), 3
    hc0 = lm_robust(FORMULA, data=wages, se_type="HC0")
    hc1 = lm_robust(FORMULA, data=wages, se_type="HC1")
    stata = lm_robust(FORMULA, data=wages, se_type="stata")
    np.testing.assert_allclose(hc1["se"], hc0["se"] * np.sqrt(n / (n - k)))
    np.testing.assert_allclose(stata["se"], hc1["se"])


def test_hc2_by_hand(wages):
    X, y = _design(wages)
    bread = np.linalg.inv(X.T @ X)
    e = y - X @ (bread @ X.T @ y)
    h = np.sum(X @ bread * X, axis=1)
    meat = (X.T * (e ** 2 / (1 - h))) @ X
    expected = np.sqrt(np.diag(bread @ meat @ bread))
    fit = lm_robust(FORMULA, data=wages)
    assert fit["se_type"] == "HC2"
    np.testing.assert_allclose(fit["se"], expected)


def test_leverage_corrections_are_ordered(wages):
    se = {t: lm_robust(FORMULA, data=wages, se_type=t)["se"]
          for t in ("HC0", "HC2", "HC3")}
    assert np.all(se["HC0"] <= se["HC2"])
    assert np.all(se["HC2"] <= se["HC3"])


def test_classical_fstatistic_matches_r_squared(wages):
    fit = lm_robust(FORMULA, data=wages, se_type="classical")
    n, q = len(wages), 2
    r2 = fit["r_squared"]
    expected = (r2 / q) / ((1 - r2) / (n - q - 1))
    assert fit["fstatistic"]["value"] == pytest.approx(expected)
    assert fit["fstatistic"]["numdf"] == q
    assert fit["fstatistic"]["dendf"] == n - q - 1


def test_inference_is_consistent(wages):
    fit = lm_robust(FORMULA, data=wages)
    assert np.all(fit["conf_low"] <= fit["beta"])
    assert np.all(fit["beta"] <= fit["conf_high"])
    assert np.all((fit["p_value"] >= 0) & (fit["p_value"] <= 1))
    np.testing.assert_allclose(fit["statistic"], fit["beta"] / fit["se"])


def test_stata_cluster_is_scaled_cr0(classes):
    f = "score ~ treatment + prior"
    cr0 = lm_robust(f, data=classes, clusters="school", se_type="CR0")
    stata = lm_robust(f, data=classes, clusters="school", se_type="stata")
    n, k, G = len(classes), 3, classes["school"].nunique()
    factor = (G / (G - 1)) * ((n - 1) / (n - k))
    np.testing.assert_allclose(stata["se"], cr0["se"] * np.sqrt(factor))
    np.testing.assert_allclose(cr0["df"], G - 1)
    assert cr0["nclusters"] == G
    assert cr0["fstatistic"]["dendf"] == G - 1


def test_cr2_with_singleton_clusters_is_hc2(wages):
    hc2 = lm_robust(FORMULA, data=wages, se_type="HC2")
    cr2 = lm_robust(FORMULA, data=wages, clusters=np.arange(len(wages)))
    assert cr2["se_type"] == "CR2"
    np.testing.assert_allclose(cr2["se"], hc2["se"])


def test_cr2_df_bounded_by_cluster_count(classes):
    fit = lm_robust("score ~ treatment + prior", data=classes, clusters="school")
    G = classes["school"].nunique()
    assert np.all(fit["df"] > 0)
    assert np.all(fit["df"] <= G + 1e-8)


def test_clustering_widens_school_level_treatment(classes):
    f = "score ~ treatment + prior"
    hc2 = lm_robust(f, data=classes)
    cr2 = lm_robust(f, data=classes, clusters="school")
    assert cr2["se"][1] > hc2["se"][1]


def test_integer_weights_match_replicated_rows(wages):
    w = np.tile([1, 2, 3], len(wages) // 3 + 1)[: len(wages)]
    weighted = lm_robust(FORMULA, data=wages, weights=w)
    replicated = wages.loc[wages.index.repeat(w)]
    expanded = lm_robust(FORMULA, data=replicated)
    np.testing.assert_allclose(weighted["beta"], expanded["beta"])
    assert weighted["weighted"]
    assert weighted["r_squared"] == pytest.approx(expanded["r_squared"])


def test_missing_rows_are_dropped(wages):
    wages = wages.copy()
    wages.loc[wages.index[:10], "schooling"] = np.nan
    fit = lm_robust(FORMULA, data=wages)
    assert fit["nobs"] == len(wages) - 10
    assert len(fit["residuals"]) == fit["nobs"]


def test_collinear_term_is_aliased(wages):
    wages = wages.assign(schooling2=2 * wages["schooling"])
    with pytest.warns(UserWarning, match="collinear"):
        fit = lm_robust("log_wage ~ schooling + schooling2", data=wages)
    assert np.isnan(fit["beta"][2])
    assert not np.isnan(fit["beta"][1])
    assert fit["rank"] == 2


@pytest.mark.parametrize("kwargs", [
    dict(se_type="HC9"),
    dict(se_type="CR2"),
    dict(se_type="HC2", clusters="region"),
    dict(weights=np.zeros(800)),
    dict(weights=np.ones(5)),
])
def test_invalid_arguments(wages, kwargs):
    with pytest.raises(ValueError):
        lm_robust(FORMULA, data=wages, **kwargs)


def test_single_cluster_rejected(wages):
    with pytest.raises(ValueError, match="two clusters"):
        lm_robust(FORMULA, data=wages, clusters=np.zeros(len(wages)))


def test_missing_column_propagates(wages):
    with pytest.raises(Exception):
        lm_robust("log_wage ~ not_a_column", data=wages)


def test_duplicate_index_is_handled():
    data = pd.DataFrame({"y": [1.0, 2.1, 2.9, 4.2, 5.1], "x": [1, 2, 3, 4, 5]},
                        index=[0, 0, 1, 1, 2])
    fit = lm_robust("y ~ x", data=data)
    assert fit["nobs"] == 5


def test_add_const():
    X = add_const(np.array([2.0, 3.0]))
    np.testing.assert_array_equal(X, [[1, 2], [1, 3]])
    assert add_const(np.zeros((4, 2))).shape == (4, 3)


@pytest.mark.parametrize("kwargs", [
    dict(se_type="classical"), dict(se_type="HC0"), dict(se_type="HC1"),
    dict(se_type="HC3"), dict(se_type="stata"),
    dict(clusters="school", se_type="CR0"), dict(clusters="school", se_type="CR2"),
    dict(clusters="school", se_type="stata"),
])
def test_variance_choice_leaves_estimates_unchanged(classes, kwargs):
    f = "score ~ treatment + prior"
    base = lm_robust(f, data=classes, se_type="HC2")
    other = lm_robust(f, data=classes, **kwargs)
    np.testing.assert_allclose(other["beta"], base["beta"])
    np.testing.assert_allclose(other["fitted"], base["fitted"])


def test_cr2_df_matches_dense_construction(classes):
    fit = lm_robust("score ~ treatment + prior", data=classes, clusters="school")
    X = add_const(classes[["treatment", "prior"]].to_numpy())
    n, k = X.shape
    bread = np.linalg.inv(X.T @ X)
    schools = classes["school"].to_numpy()
    columns = []
    for s in np.unique(schools):
        rows = np.flatnonzero(schools == s)
        Xg = X[rows]
        vals, vecs = np.linalg.eigh(np.eye(len(rows)) - Xg @ bread @ Xg.T)
        A = (vecs / np.sqrt(vals)) @ vecs.T
        Gg = -X @ bread @ Xg.T @ A @ Xg @ bread
        Gg[rows] += A @ Xg @ bread
        columns.append(Gg)
    for j in range(k):
        Gj = np.column_stack([Gg[:, j] for Gg in columns])
        M = Gj.T @ Gj
        assert fit["df"][j] == pytest.approx(np.trace(M) ** 2 / np.sum(M ** 2))


def test_cr2_with_many_small_clusters_stays_lean():
    rng = np.random.default_rng(0)
    d = pd.DataFrame({"x": rng.normal(size=3000)})
    d["y"] = 1 + 0.5 * d["x"] + rng.normal(size=3000)
    tracemalloc.start()
    fit = lm_robust("y ~ x", data=d, clusters=np.arange(3000))
    _, peak = tracemalloc.get_traced_memory()
    tracemalloc.stop()
    assert peak < 50e6
    assert np.all(fit["df"] > 0)

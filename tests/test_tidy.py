import numpy as np
import pandas as pd
import pytest

from tidyreg import (
    lm_robust, iv_robust, tidy, glance, augment, tidy_models, tidy_by,
    TIDY_COLUMNS,
)


def test_tidy_columns_and_rows(wages):
    fit = lm_robust("log_wage ~ schooling + experience", data=wages)
    t = tidy(fit)
    assert list(t.columns) == TIDY_COLUMNS
    assert t["term"].tolist() == ["Intercept", "schooling", "experience"]
    assert (t["outcome"] == "log_wage").all()
    np.testing.assert_allclose(t["estimate"], fit["beta"])
    assert (t["conf_low"] <= t["estimate"]).all()
    assert (t["estimate"] <= t["conf_high"]).all()


def test_tidy_iv_fit(wages):
    fit = iv_robust("log_wage ~ schooling | distance", data=wages)
    assert list(tidy(fit).columns) == TIDY_COLUMNS


def test_tidy_without_intervals(wages):
    t = tidy(lm_robust("log_wage ~ schooling", data=wages), conf_int=False)
    assert "conf_low" not in t.columns
    assert "conf_high" not in t.columns


def test_tidy_conf_level(wages):
    fit = lm_robust("log_wage ~ schooling", data=wages)
    wide = tidy(fit)
    narrow = tidy(fit, conf_level=0.90)
    assert ((narrow["conf_high"] - narrow["conf_low"])
            < (wide["conf_high"] - wide["conf_low"])).all()
    same = tidy(fit, conf_level=0.95)
    pd.testing.assert_frame_equal(same, wide)


@pytest.mark.parametrize("se_type", ["HC2", "classical"])
def test_conf_level_matches_refit_with_alpha(wages, se_type):
    f = "log_wage ~ schooling + experience"
    fit = lm_robust(f, data=wages, se_type=se_type)
    refit = lm_robust(f, data=wages, se_type=se_type, alpha=0.10)
    pd.testing.assert_frame_equal(tidy(fit, conf_level=0.90), tidy(refit))


def test_conf_level_matches_refit_with_cr2_df(classes):
    f = "score ~ treatment + prior"
    fit = lm_robust(f, data=classes, clusters="school")
    refit = lm_robust(f, data=classes, clusters="school", alpha=0.01)
    pd.testing.assert_frame_equal(tidy(fit, conf_level=0.99), tidy(refit))


def test_glance(wages, classes):
    g = glance(lm_robust("log_wage ~ schooling", data=wages))
    assert list(g.columns) == ["r_squared", "adj_r_squared", "statistic",
                               "p_value", "df_residual", "nobs", "se_type"]
    assert len(g) == 1
    assert 0 < g.loc[0, "r_squared"] < 1

    gc = glance(lm_robust("score ~ treatment", data=classes, clusters="school"))
    assert gc.loc[0, "nclusters"] == classes["school"].nunique()


def test_augment(wages):
    wages = wages.copy()
    wages.loc[wages.index[:5], "experience"] = np.nan
    fit = lm_robust("log_wage ~ schooling + experience", data=wages)
    aug = augment(fit, wages)
    assert len(aug) == len(wages) - 5
    np.testing.assert_allclose(aug["log_wage"] - aug["fitted"], aug["resid"])


def test_tidy_models_stacks_with_label(wages):
    fits = {
        "HC0": lm_robust("log_wage ~ schooling", data=wages, se_type="HC0"),
        "HC2": lm_robust("log_wage ~ schooling", data=wages),
    }
    t = tidy_models(fits, key="se_type")
    assert t.columns[0] == "se_type"
    assert len(t) == 4
    assert t["se_type"].tolist() == ["HC0", "HC0", "HC2", "HC2"]


def test_tidy_by_groups(wages):
    t = tidy_by(wages, "region",
                lambda d: lm_robust("log_wage ~ schooling + female", data=d))
    assert t.columns[0] == "region"
    assert list(t.columns[1:]) == TIDY_COLUMNS
    assert len(t) == 4 * 3
    assert set(t["region"]) == set(wages["region"].unique())


def test_tidy_by_two_keys(wages):
    t = tidy_by(wages, ["region", "female"],
                lambda d: lm_robust("log_wage ~ schooling", data=d))
    assert list(t.columns[:2]) == ["region", "female"]
    assert len(t) == 4 * 2 * 2

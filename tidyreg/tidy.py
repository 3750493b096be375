"""
Tabular views of fitted models.

``tidy`` is the single conversion helper the vignette relies on: it turns a
fit returned by ``lm_robust`` / ``iv_robust`` into a DataFrame with one row
per term, ready for ordinary pandas filtering, mutation, grouping and
plotting. ``glance`` and ``augment`` give the model-level and
observation-level views.
"""

import numpy as np
import pandas as pd
from scipy import stats

from .utils import unique_index

TIDY_COLUMNS = [
    "term", "estimate", "std_error", "statistic", "p_value",
    "conf_low", "conf_high", "df", "outcome",
]


def tidy(fit, conf_int=True, conf_level=None):
    """
    One row per model term.

    Parameters
    ----------
    fit : dict
        Result of ``lm_robust`` or ``iv_robust``.
    conf_int : bool
        Keep the ``conf_low`` / ``conf_high`` columns.
    conf_level : float, optional
        Confidence level of the bounds; defaults to the level the model was
        fitted with (1 - alpha).

    Returns
    -------
    pandas.DataFrame with columns
        term, estimate, std_error, statistic, p_value, conf_low, conf_high,
        df, outcome
    """
    out = pd.DataFrame({
        "term": fit["terms"],
        "estimate": fit["beta"],
        "std_error": fit["se"],
        "statistic": fit["statistic"],
        "p_value": fit["p_value"],
        "conf_low": fit["conf_low"],
        "conf_high": fit["conf_high"],
        "df": fit["df"],
        "outcome": fit["outcome"],
    })
    if conf_level is not None and not np.isclose(conf_level, 1 - fit["alpha"]):
        crit = stats.t.ppf(0.5 + conf_level / 2, out["df"].to_numpy())
        out["conf_low"] = out["estimate"] - crit * out["std_error"]
        out["conf_high"] = out["estimate"] + crit * out["std_error"]
    if not conf_int:
        out = out.drop(columns=["conf_low", "conf_high"])
    return out


def glance(fit):
    """Single-row summary of model fit."""
    fstat = fit["fstatistic"]
    row = dict(
        r_squared=fit["r_squared"],
        adj_r_squared=fit["adj_r_squared"],
        statistic=fstat["value"],
        p_value=fstat["p_value"],
        df_residual=fit["df_residual"],
        nobs=fit["nobs"],
        se_type=fit["se_type"],
    )
    if fit["nclusters"] is not None:
        row["nclusters"] = fit["nclusters"]
    return pd.DataFrame([row])


def augment(fit, data):
    """
    The rows of ``data`` used in ``fit`` with ``fitted`` and ``resid`` columns.

    ``data`` must be the frame the model was fitted on.
    """
    out = unique_index(data).loc[fit["index"]].copy()
    out["fitted"] = fit["fitted"]
    out["resid"] = fit["residuals"]
    return out


def tidy_models(fits, key="model", **kwargs):
    """
    Stack the tidy tables of several fits, labelled by ``key``.

    Parameters
    ----------
    fits : mapping of label -> fit
    key : str
        Name of the label column (first column of the result).
    **kwargs
        Passed to ``tidy``.
    """
    frames = []
    for label, fit in fits.items():
        t = tidy(fit, **kwargs)
        t.insert(0, key, label)
        frames.append(t)
    return pd.concat(frames, ignore_index=True)


def tidy_by(data, by, fit_fn, **kwargs):
    """
    Grouped estimation: fit ``fit_fn`` on each group and stack the tidies.

    Parameters
    ----------
    data : pandas.DataFrame
    by : str or list of str
        Grouping columns; they lead the output.
    fit_fn : callable
        ``fit_fn(group_frame) -> fit``.
    **kwargs
        Passed to ``tidy``.
    """
    by = [by] if isinstance(by, str) else list(by)
    frames = []
    for keys, group in data.groupby(by, sort=True, observed=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        t = tidy(fit_fn(group), **kwargs)
        for col, value in reversed(list(zip(by, keys))):
            t.insert(0, col, value)
        frames.append(t)
    return pd.concat(frames, ignore_index=True)

"""
Shared utility functions used across the estimator modules.
"""

import numpy as np
import pandas as pd
import patsy
from scipy import stats


def add_const(x):
    """Prepend a column of ones to x."""
    x = np.asarray(x, dtype=float)
    if x.ndim == 1:
        x = x[:, None]
    return np.column_stack([np.ones(x.shape[0]), x])


def ols_fit(X, y):
    """
    OLS estimation via the normal equations.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (should include a constant column if an intercept is desired).
    y : ndarray, shape (n,)
        Outcome vector.

    Returns
    -------
    b : ndarray, shape (k,)
        Coefficient estimates  beta_hat = (X'X)^{-1} X'y.
    se : ndarray, shape (k,)
        Homoskedastic standard errors.
    e : ndarray, shape (n,)
        Residuals  y - X @ b.
    s2 : float
        Estimated error variance  e'e / (n - k).
    """
    n, k = X.shape
    b = np.linalg.lstsq(X, y, rcond=None)[0]
    e = y - X @ b
    s2 = (e @ e) / (n - k)
    se = np.sqrt(np.diag(s2 * np.linalg.inv(X.T @ X)))
    return b, se, e, s2


def model_frame(formula, data):
    """
    Build the outcome and design matrix for a one-sided regression formula.

    Rows with a missing value in any variable the formula touches are
    dropped (patsy's default NA handling).

    Parameters
    ----------
    formula : str
        patsy formula, e.g. ``"log_wage ~ schooling + I(experience**2) + C(region)"``.
    data : pandas.DataFrame

    Returns
    -------
    dict with keys:
        y       : outcome Series
        X       : design DataFrame (columns are the term names)
        outcome : outcome name
        terms   : list of term names
        index   : index of the rows kept
    """
    y, X = patsy.dmatrices(formula, data, return_type="dataframe",
                           NA_action="drop")
    if y.shape[1] != 1:
        raise ValueError(f"formula must have a single outcome, got {list(y.columns)}")
    return dict(
        y=y.iloc[:, 0],
        X=X,
        outcome=y.columns[0],
        terms=list(X.columns),
        index=X.index,
    )


def design_matrix(rhs, data):
    """Right-hand-side-only design matrix (used for instrument sets)."""
    return patsy.dmatrix(rhs, data, return_type="dataframe", NA_action="drop")


def resolve_column(data, value, name):
    """
    Turn a weights / clusters argument into a Series aligned with ``data``.

    ``value`` is either a column name of ``data`` or an array-like with one
    entry per row of ``data``.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return data[value]
    values = np.asarray(value)
    if values.shape[0] != len(data):
        raise ValueError(
            f"{name} has length {values.shape[0]}, data has {len(data)} rows"
        )
    return pd.Series(values, index=data.index, name=name)


def drop_collinear(X):
    """
    Flag the columns of X that add rank, scanning left to right.

    A column that is a linear combination of the columns kept before it is
    aliased; its coefficient is reported as NaN.

    Returns
    -------
    keep : ndarray of bool, shape (k,)
    """
    k = X.shape[1]
    keep = np.zeros(k, dtype=bool)
    rank = 0
    for j in range(k):
        trial = keep.copy()
        trial[j] = True
        r = np.linalg.matrix_rank(X[:, trial])
        if r > rank:
            keep = trial
            rank = r
    return keep


def t_inference(beta, se, df, alpha=0.05):
    """
    t statistics, two-sided p-values and (1 - alpha) confidence bounds.

    Parameters
    ----------
    beta, se : ndarray
    df : float or ndarray
        Degrees of freedom of the reference t distribution (per coefficient
        when an array).
    alpha : float

    Returns
    -------
    statistic, p_value, conf_low, conf_high : ndarray
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        statistic = beta / se
    p_value = 2 * stats.t.sf(np.abs(statistic), df)
    crit = stats.t.ppf(1 - alpha / 2, df)
    return statistic, p_value, beta - crit * se, beta + crit * se


def wald_test(beta, vcov, idx, dendf):
    """
    Wald F test that the coefficients at positions ``idx`` are jointly zero.

    F = b' V^{-1} b / q, compared with F(q, dendf).

    Returns
    -------
    dict with keys: value, numdf, dendf, p_value
    """
    idx = np.asarray(idx, dtype=int)
    q = len(idx)
    if q == 0:
        return dict(value=np.nan, numdf=0, dendf=dendf, p_value=np.nan)
    b = beta[idx]
    V = vcov[np.ix_(idx, idx)]
    F = float(b @ np.linalg.solve(V, b)) / q
    return dict(value=F, numdf=q, dendf=dendf, p_value=stats.f.sf(F, q, dendf))


def unique_index(data):
    """``data`` with a unique row index (a fresh RangeIndex when it has duplicates)."""
    if data.index.is_unique:
        return data
    return data.reset_index(drop=True)

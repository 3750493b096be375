"""
Instrumental Variables (IV / 2SLS) with robust standard errors.

The formula carries both stages:

    y ~ endogenous + exogenous | instruments + exogenous

Second-stage design columns that do not appear in the instrument design are
endogenous; instrument columns that do not appear in the second stage are
the excluded instruments.

Standard errors follow the same family as ``lm_robust``. The bread and the
leverages come from the projected design X_hat, while the residuals that
enter the meat use the actual regressors (y - X beta), never X_hat.
"""

import warnings

import numpy as np
import pandas as pd
from scipy import stats

from . import config
from .lm_robust import (
    check_se_type, prepare_sample, robust_vcov, assemble_result,
    aliased_mask, r_squared,
)
from .utils import (
    model_frame, design_matrix, resolve_column, wald_test, unique_index,
    ols_fit,
)


def split_iv_formula(formula):
    """Split ``"y ~ x | z"`` into the structural formula and the instrument rhs."""
    if formula.count("|") != 1:
        raise ValueError(
            "an IV formula needs exactly one '|' separating the regressors "
            "from the instruments, e.g. 'y ~ x + w | z + w'"
        )
    structural, instruments = formula.split("|")
    return structural.strip(), instruments.strip()


def _fit_ols(X, y):
    bread = np.linalg.inv(X.T @ X)
    b = bread @ (X.T @ y)
    return b, y - X @ b, bread


def iv_diagnostics(Xw, Zw, yw, ew, terms, inst_terms, endog, excluded,
                   se_type, clusters=None):
    """
    Weak-instrument, endogeneity and over-identification tests.

    Parameters
    ----------
    Xw, Zw : ndarray
        Weighted second-stage and instrument designs (non-aliased columns).
    yw, ew : ndarray
        Weighted outcome and weighted 2SLS residuals.
    terms, inst_terms : list of str
        Column names of Xw and Zw.
    endog, excluded : list of str
        Endogenous regressors and excluded instruments.
    se_type : str
        Variance estimator used for the Wald tests.
    clusters : ndarray, optional

    Returns
    -------
    pandas.DataFrame with columns diagnostic, numdf, dendf, value, p_value
    """
    n, kz = Zw.shape
    kx = Xw.shape[1]
    rows = []

    # First stage: one Wald F on the excluded instruments per endogenous regressor
    excl_idx = [inst_terms.index(t) for t in excluded]
    first_resid = []
    for name in endog:
        g, u, bread = _fit_ols(Zw, Xw[:, terms.index(name)])
        V, _, G = robust_vcov(Zw, u, bread, se_type, clusters)
        dendf = n - kz if G is None else G - 1
        rows.append(dict(diagnostic=f"Weak instruments ({name})",
                         **wald_test(g, V, excl_idx, dendf)))
        first_resid.append(u)

    # Wu-Hausman: add the first-stage residuals to the structural OLS
    Xaug = np.column_stack([Xw] + first_resid)
    b, e, bread = _fit_ols(Xaug, yw)
    V, _, G = robust_vcov(Xaug, e, bread, se_type, clusters)
    dendf = n - Xaug.shape[1] if G is None else G - 1
    rows.append(dict(diagnostic="Wu-Hausman",
                     **wald_test(b, V, np.arange(kx, Xaug.shape[1]), dendf)))

    # Sargan: n R^2 of the 2SLS residuals on all instruments
    overid = len(excluded) - len(endog)
    if overid > 0:
        _, _, u, _ = ols_fit(Zw, ew)
        r2, _ = r_squared(ew, u, None, "Intercept" in inst_terms, kz)
        stat = n * r2
        rows.append(dict(diagnostic="Overidentifying (Sargan)",
                         value=stat, numdf=overid, dendf=np.nan,
                         p_value=stats.chi2.sf(stat, overid)))

    out = pd.DataFrame(rows)[["diagnostic", "numdf", "dendf", "value", "p_value"]]
    weak = out[out["diagnostic"].str.startswith("Weak")]
    if (weak["value"] < config.WEAK_INSTRUMENT_F).any():
        warnings.warn(
            f"first-stage F below {config.WEAK_INSTRUMENT_F:g}; "
            "instruments may be weak",
            stacklevel=3,
        )
    return out


def iv_robust(formula, data, weights=None, clusters=None, se_type=None,
              alpha=config.DEFAULT_ALPHA, diagnostics=False):
    """
    Two-stage least squares with robust standard errors.

    Parameters
    ----------
    formula : str
        ``"y ~ x + w | z + w"``: regressors left of ``|``, instruments right.
        Exogenous controls must appear on both sides.
    data : pandas.DataFrame
    weights, clusters, se_type, alpha
        As in ``lm_robust``.
    diagnostics : bool
        Also compute first-stage F, Wu-Hausman and Sargan tests.

    Returns
    -------
    dict
        Same layout as ``lm_robust`` plus ``endogenous``, ``instruments``
        and ``diagnostics`` (DataFrame or None).
    """
    se_type = check_se_type(se_type, clusters is not None)
    data = unique_index(data)
    structural, rhs = split_iv_formula(formula)
    mf = model_frame(structural, data)
    Zdf = design_matrix(rhs, data)

    index = mf["index"][mf["index"].isin(Zdf.index)]
    index, w, cl = prepare_sample(
        index,
        resolve_column(data, weights, "weights"),
        resolve_column(data, clusters, "clusters"),
    )
    terms = mf["terms"]
    inst_terms = list(Zdf.columns)
    endog = [t for t in terms if t not in inst_terms]

    y = mf["y"].loc[index].to_numpy(dtype=float)
    X = mf["X"].loc[index].to_numpy(dtype=float)
    Z = Zdf.loc[index].to_numpy(dtype=float)

    sw = np.ones(len(y)) if w is None else np.sqrt(w)
    Zw = Z * sw[:, None]
    keep_z = aliased_mask(Zw, inst_terms)
    Zw = Zw[:, keep_z]
    inst_terms = [t for t, kp in zip(inst_terms, keep_z) if kp]
    # Collinear instruments add no identifying variation
    excluded = [t for t in inst_terms if t not in terms]
    if len(inst_terms) < len(terms) or len(excluded) < len(endog):
        raise ValueError(
            f"model is under-identified: {len(endog)} endogenous regressor(s) "
            f"{endog} but {len(excluded)} usable excluded instrument(s) {excluded}"
        )
    Xw = X * sw[:, None]
    yw = y * sw

    # First stage: project every regressor on the instruments
    Pi = np.linalg.lstsq(Zw, Xw, rcond=None)[0]
    Xhat = Zw @ Pi
    keep = aliased_mask(Xhat, terms)
    Xh = Xhat[:, keep]
    Xa = Xw[:, keep]

    bread = np.linalg.inv(Xh.T @ Xh)
    b = bread @ (Xh.T @ yw)
    # Residuals use the actual regressors, not X_hat
    ew = yw - Xa @ b
    V, df, G = robust_vcov(Xh, ew, bread, se_type, cl)

    fitted = X[:, keep] @ b
    result = assemble_result(
        model="iv_robust", formula=formula, outcome=mf["outcome"],
        terms=terms, keep=keep, beta=b, vcov=V, df=df, n_clusters=G,
        se_type=se_type, alpha=alpha, y=y, fitted=fitted, resid=y - fitted,
        w=w, index=index,
    )
    result["endogenous"] = endog
    result["instruments"] = excluded
    result["diagnostics"] = None
    if diagnostics:
        kept_terms = [t for t, kp in zip(terms, keep) if kp]
        result["diagnostics"] = iv_diagnostics(
            Xa, Zw, yw, ew, kept_terms, inst_terms,
            [t for t in endog if t in kept_terms],
            [t for t in excluded if t in inst_terms],
            se_type, cl,
        )
    return result

"""
Linear regression with heteroskedasticity- and cluster-robust standard errors.

Point estimates are ordinary (or weighted) least squares. The variance is a
sandwich

    V = (X'X)^{-1} [ meat ] (X'X)^{-1}

whose meat depends on ``se_type``:

    classical  s2 * X'X                       (V = s2 (X'X)^{-1})
    HC0        sum_i e_i^2 x_i x_i'
    HC1        HC0 * n / (n - k)              ("stata" without clusters)
    HC2        sum_i e_i^2 / (1 - h_ii) x_i x_i'
    HC3        sum_i e_i^2 / (1 - h_ii)^2 x_i x_i'
    CR0        sum_g X_g' e_g e_g' X_g
    stata      CR0 * G/(G-1) * (N-1)/(N-k)
    CR2        sum_g X_g' A_g e_g e_g' A_g X_g,  A_g = (I - H_gg)^{-1/2}

Inference uses the t distribution with n - k degrees of freedom for the
heteroskedasticity-robust estimators, G - 1 for CR0/stata, and the
Bell-McCaffrey degrees of freedom (per coefficient) for CR2.
"""

import warnings

import numpy as np
import pandas as pd

from . import config
from .utils import (
    model_frame, resolve_column, drop_collinear, t_inference, wald_test,
    unique_index,
)


def check_se_type(se_type, clustered):
    """Fill in the default SE type and reject unsupported combinations."""
    if se_type is None:
        return config.DEFAULT_CLUSTER_SE_TYPE if clustered else config.DEFAULT_SE_TYPE
    allowed = config.CLUSTER_SE_TYPES if clustered else config.SE_TYPES
    if se_type not in allowed:
        kind = "with" if clustered else "without"
        raise ValueError(
            f"se_type {se_type!r} is not available {kind} clusters; "
            f"choose one of {allowed}"
        )
    return se_type


def prepare_sample(index, weights=None, clusters=None):
    """
    Restrict the formula rows to those with usable weights and cluster ids.

    Parameters
    ----------
    index : pandas.Index
        Rows kept by the formula.
    weights, clusters : pandas.Series or None
        Aligned with the original data.

    Returns
    -------
    index : pandas.Index
    w : ndarray or None
    cl : ndarray or None
    """
    ok = pd.Series(True, index=index)
    if weights is not None:
        ok &= weights.loc[index].notna()
    if clusters is not None:
        ok &= clusters.loc[index].notna()
    index = index[ok.to_numpy()]

    w = None
    if weights is not None:
        w = weights.loc[index].to_numpy(dtype=float)
        if np.any(w <= 0):
            raise ValueError("weights must be strictly positive")
    cl = None
    if clusters is not None:
        cl = clusters.loc[index].to_numpy()
    return index, w, cl


def leverage(X, bread):
    """Diagonal of the hat matrix  H = X (X'X)^{-1} X'."""
    return np.einsum("ij,jk,ik->i", X, bread, X)


def _inv_sqrt_psd(M, tol=1e-12):
    """Symmetric inverse square root, zeroing null directions."""
    vals, vecs = np.linalg.eigh(M)
    inv = np.where(vals > tol, 1.0 / np.sqrt(np.clip(vals, tol, None)), 0.0)
    return (vecs * inv) @ vecs.T


def hc_vcov(X, e, bread, se_type):
    """
    Heteroskedasticity-consistent (or classical) variance matrix.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design used for the bread and leverages (already weighted).
    e : ndarray, shape (n,)
        Residuals (already weighted).
    bread : ndarray, shape (k, k)
        (X'X)^{-1}.
    se_type : str
    """
    n, k = X.shape
    if se_type == "classical":
        return (e @ e) / (n - k) * bread

    esq = e ** 2
    if se_type == "HC0":
        omega = esq
    elif se_type in ("HC1", "stata"):
        omega = esq * n / (n - k)
    elif se_type == "HC2":
        omega = esq / (1 - leverage(X, bread))
    elif se_type == "HC3":
        omega = esq / (1 - leverage(X, bread)) ** 2
    else:
        raise ValueError(f"unknown se_type {se_type!r}")

    meat = (X.T * omega) @ X
    return bread @ meat @ bread


def cr2_df(X, bread, groups, adjustments):
    """
    Bell-McCaffrey degrees of freedom for each CR2 coefficient.

    For coefficient j, stack  G_g = (I - H)_{., g} A_g X_g (X'X)^{-1} e_j
    as columns of G and return  tr(G'G)^2 / tr((G'G)^2).

    With  v_g = A_g X_g (X'X)^{-1} e_j  and  p_g = X_g' v_g,

        (G'G)_{gh} = [g == h] |v_g|^2 - p_g' (X'X)^{-1} p_h

    so the trace and the squared Frobenius norm only need k x k sums over
    clusters; the n x G matrix G is never formed.
    """
    k = X.shape[1]
    G = len(groups)
    D = np.empty((G, k))
    P = np.empty((G, k, k))
    for g, (rows, A) in enumerate(zip(groups, adjustments)):
        Xg = X[rows]
        Vg = A @ Xg @ bread
        D[g] = (Vg ** 2).sum(axis=0)
        P[g] = Xg.T @ Vg
    # q[g, j] = p_gj' (X'X)^{-1} p_gj, the diagonal of the low-rank part
    q = np.einsum("glj,lm,gmj->gj", P, bread, P)
    # C[j] = sum_g p_gj p_gj'
    C = np.einsum("glj,gmj->jlm", P, P)
    BC = bread @ C
    trace = D.sum(axis=0) - q.sum(axis=0)
    frob = ((D ** 2).sum(axis=0) - 2 * (D * q).sum(axis=0)
            + np.einsum("jlm,jml->j", BC, BC))
    return trace ** 2 / frob


def cluster_vcov(X, e, bread, clusters, se_type):
    """
    Cluster-robust variance matrix.

    Returns
    -------
    V : ndarray, shape (k, k)
    df : float or ndarray
        G - 1 for CR0 / stata, per-coefficient Bell-McCaffrey df for CR2.
    n_clusters : int
    """
    n, k = X.shape
    _, inverse = np.unique(clusters, return_inverse=True)
    G = inverse.max() + 1
    if G < 2:
        raise ValueError("cluster-robust standard errors need at least two clusters")
    groups = [np.flatnonzero(inverse == g) for g in range(G)]

    scores = np.empty((G, k))
    adjustments = []
    for g, rows in enumerate(groups):
        Xg, eg = X[rows], e[rows]
        if se_type == "CR2":
            A = _inv_sqrt_psd(np.eye(len(rows)) - Xg @ bread @ Xg.T)
            adjustments.append(A)
            eg = A @ eg
        scores[g] = Xg.T @ eg

    V = bread @ (scores.T @ scores) @ bread
    if se_type == "stata":
        V = V * (G / (G - 1)) * ((n - 1) / (n - k))

    if se_type == "CR2":
        df = cr2_df(X, bread, groups, adjustments)
    else:
        df = G - 1
    return V, df, G


def robust_vcov(X, e, bread, se_type, clusters=None):
    """
    Dispatch to the heteroskedasticity- or cluster-robust estimator.

    Returns
    -------
    V, df, n_clusters  (n_clusters is None without clusters)
    """
    n, k = X.shape
    if clusters is None:
        return hc_vcov(X, e, bread, se_type), n - k, None
    return cluster_vcov(X, e, bread, clusters, se_type)


def r_squared(y, resid, w, has_intercept, rank):
    """Weighted R^2 (centered when the model has an intercept) and adjusted R^2."""
    n = len(y)
    w = np.ones(n) if w is None else w
    ssr = np.sum(w * resid ** 2)
    if has_intercept:
        ybar = np.sum(w * y) / np.sum(w)
        tss = np.sum(w * (y - ybar) ** 2)
    else:
        tss = np.sum(w * y ** 2)
    r2 = 1 - ssr / tss
    adj = 1 - (1 - r2) * (n - int(has_intercept)) / (n - rank)
    return r2, adj


def _expand(keep, values, fill=np.nan):
    out = np.full(keep.shape[0], fill, dtype=float)
    out[keep] = values
    return out


def assemble_result(*, model, formula, outcome, terms, keep, beta, vcov,
                    df, n_clusters, se_type, alpha, y, fitted, resid, w,
                    index):
    """
    Package the pieces of a fit into the result dict the tidiers read.

    ``beta``, ``vcov`` and ``df`` cover only the non-aliased terms; the
    aliased terms are filled with NaN.
    """
    n = len(y)
    rank = int(keep.sum())
    se = np.sqrt(np.diag(vcov))
    df_arr = np.broadcast_to(np.asarray(df, dtype=float), se.shape)
    statistic, p_value, lo, hi = t_inference(beta, se, df_arr, alpha)

    k = keep.shape[0]
    V_full = np.full((k, k), np.nan)
    V_full[np.ix_(keep, keep)] = vcov

    has_intercept = "Intercept" in terms
    r2, adj_r2 = r_squared(y, resid, w, has_intercept, rank)

    kept_terms = [t for t, kp in zip(terms, keep) if kp]
    slope_idx = [i for i, t in enumerate(kept_terms) if t != "Intercept"]
    dendf = n - rank if n_clusters is None else n_clusters - 1
    fstat = wald_test(beta, vcov, slope_idx, dendf)

    return dict(
        model=model,
        formula=formula,
        outcome=outcome,
        terms=list(terms),
        beta=_expand(keep, beta),
        se=_expand(keep, se),
        statistic=_expand(keep, statistic),
        p_value=_expand(keep, p_value),
        conf_low=_expand(keep, lo),
        conf_high=_expand(keep, hi),
        df=_expand(keep, df_arr),
        vcov=V_full,
        se_type=se_type,
        alpha=alpha,
        nobs=n,
        nclusters=n_clusters,
        rank=rank,
        df_residual=n - rank,
        fitted=fitted,
        residuals=resid,
        index=index,
        r_squared=r2,
        adj_r_squared=adj_r2,
        fstatistic=fstat,
        weighted=w is not None,
    )


def aliased_mask(X, terms):
    """Non-aliased columns of X, warning about the dropped ones."""
    keep = drop_collinear(X)
    if not keep.all():
        dropped = [t for t, kp in zip(terms, keep) if not kp]
        warnings.warn(
            f"dropping collinear terms {dropped}; their estimates are NaN",
            stacklevel=3,
        )
    return keep


def lm_robust(formula, data, weights=None, clusters=None, se_type=None,
              alpha=config.DEFAULT_ALPHA):
    """
    OLS / WLS with robust standard errors.

    Parameters
    ----------
    formula : str
        patsy formula, e.g. ``"log_wage ~ schooling + experience"``.
    data : pandas.DataFrame
    weights : str or array-like, optional
        Column name or per-row positive weights.
    clusters : str or array-like, optional
        Column name or per-row cluster ids.
    se_type : str, optional
        ``classical``, ``HC0``-``HC3`` or ``stata`` without clusters
        (default ``HC2``); ``CR0``, ``CR2`` or ``stata`` with clusters
        (default ``CR2``).
    alpha : float
        Confidence intervals are at level 1 - alpha.

    Returns
    -------
    dict
        Coefficients, standard errors, t statistics, p-values, confidence
        bounds, degrees of freedom, vcov and fit statistics; see
        ``tidyreg.tidy.tidy`` for the tabular view.
    """
    se_type = check_se_type(se_type, clusters is not None)
    data = unique_index(data)
    mf = model_frame(formula, data)
    index, w, cl = prepare_sample(
        mf["index"],
        resolve_column(data, weights, "weights"),
        resolve_column(data, clusters, "clusters"),
    )
    y = mf["y"].loc[index].to_numpy(dtype=float)
    X = mf["X"].loc[index].to_numpy(dtype=float)
    terms = mf["terms"]

    sw = np.ones(len(y)) if w is None else np.sqrt(w)
    keep = aliased_mask(X * sw[:, None], terms)
    Xk = X[:, keep]
    Xw = Xk * sw[:, None]
    yw = y * sw

    bread = np.linalg.inv(Xw.T @ Xw)
    b = bread @ (Xw.T @ yw)
    ew = yw - Xw @ b
    V, df, G = robust_vcov(Xw, ew, bread, se_type, cl)

    fitted = Xk @ b
    return assemble_result(
        model="lm_robust", formula=formula, outcome=mf["outcome"],
        terms=terms, keep=keep, beta=b, vcov=V, df=df, n_clusters=G,
        se_type=se_type, alpha=alpha, y=y, fitted=fitted, resid=y - fitted,
        w=w, index=index,
    )

"""
Bootstrap Inference for tidy tables

Nonparametric bootstrap of any fit that ``tidy`` understands: resample the
data (rows, whole clusters, or rows within strata), refit, and stack the
tidy tables of every replicate. The long result feeds ordinary pandas
grouping to get bootstrap standard errors and percentile intervals.
"""

import numpy as np
import pandas as pd

from . import config
from .tidy import tidy


def _resample_index(n, rng, clusters=None, strata=None):
    """Positional indices of one bootstrap sample."""
    if clusters is not None:
        labels, inverse = np.unique(clusters, return_inverse=True)
        drawn = rng.integers(0, len(labels), size=len(labels))
        members = [np.flatnonzero(inverse == g) for g in range(len(labels))]
        return np.concatenate([members[g] for g in drawn])
    if strata is not None:
        parts = []
        for s in pd.unique(strata):
            rows = np.flatnonzero(strata == s)
            parts.append(rows[rng.integers(0, rows.size, size=rows.size)])
        return np.concatenate(parts)
    return rng.integers(0, n, size=n)


def bootstrap_tidy(data, fit_fn, n_boot=config.DEFAULT_N_BOOT, seed=None,
                   clusters=None, strata=None):
    """
    Nonparametric bootstrap of a model's tidy table.

    Parameters
    ----------
    data : pandas.DataFrame
    fit_fn : callable
        ``fit_fn(frame) -> fit``, e.g.
        ``lambda d: lm_robust("y ~ x", d)``.
    n_boot : int
        Number of bootstrap replications.
    seed : int or None
        Random seed.
    clusters : str, optional
        Column whose groups are resampled as whole blocks.
    strata : str, optional
        Column within whose levels rows are resampled.

    Returns
    -------
    pandas.DataFrame
        ``replicate`` followed by the tidy columns, one row per
        (replicate, term). ``attrs["n_failed"]`` counts replicates whose
        fit failed numerically (e.g. a singular resampled design); they are
        left out.
    """
    if clusters is not None and strata is not None:
        raise ValueError("pass either clusters or strata, not both")
    for name in (clusters, strata):
        if name is not None and data[name].isna().any():
            raise ValueError(f"column {name!r} has missing labels")
    rng = np.random.default_rng(seed)
    cl = data[clusters].to_numpy() if clusters is not None else None
    st = data[strata].to_numpy() if strata is not None else None

    n = len(data)
    frames = []
    n_failed = 0
    for b in range(n_boot):
        idx = _resample_index(n, rng, cl, st)
        sample = data.iloc[idx].reset_index(drop=True)
        try:
            t = tidy(fit_fn(sample))
        except (np.linalg.LinAlgError, ValueError):
            n_failed += 1
            continue
        t.insert(0, "replicate", b)
        frames.append(t)

    if frames:
        draws = pd.concat(frames, ignore_index=True)
    else:
        draws = pd.DataFrame(columns=["replicate", "term", "estimate"])
    draws.attrs["n_failed"] = n_failed
    return draws


def summarize_bootstrap(draws, fit=None, alpha=config.DEFAULT_ALPHA,
                        by=("term",)):
    """
    Bootstrap standard errors and percentile intervals per term.

    Parameters
    ----------
    draws : pandas.DataFrame
        Output of ``bootstrap_tidy``.
    fit : dict, optional
        Full-sample fit; its point estimates fill the ``estimate`` column.
    alpha : float
        Percentile interval covers 1 - alpha.
    by : sequence of str
        Grouping columns (``term`` plus any grouping added by the caller).

    Returns
    -------
    pandas.DataFrame with columns
        *by, estimate, boot_mean, std_error, conf_low, conf_high, n_valid
    """
    by = list(by)
    lo, hi = 100 * alpha / 2, 100 * (1 - alpha / 2)

    def _summ(est):
        vals = est.dropna().to_numpy(dtype=float)
        if vals.size == 0:
            return pd.Series(dict(boot_mean=np.nan, std_error=np.nan,
                                  conf_low=np.nan, conf_high=np.nan, n_valid=0))
        ci = np.percentile(vals, [lo, hi])
        return pd.Series(dict(
            boot_mean=vals.mean(),
            std_error=vals.std(ddof=1) if vals.size > 1 else np.nan,
            conf_low=ci[0],
            conf_high=ci[1],
            n_valid=vals.size,
        ))

    stats_cols = ["boot_mean", "std_error", "conf_low", "conf_high", "n_valid"]
    if draws.empty:
        # every replicate failed
        out = pd.DataFrame(columns=by + stats_cols)
    else:
        out = (
            draws.groupby(by, sort=False)["estimate"]
            .apply(_summ)
            .unstack()
            .reset_index()
        )
    out["n_valid"] = out["n_valid"].astype(int)
    if fit is not None:
        full = tidy(fit)[["term", "estimate"]]
        out = out.merge(full, on="term", how="left")
    else:
        out["estimate"] = np.nan
    return out[by + ["estimate", "boot_mean", "std_error",
                     "conf_low", "conf_high", "n_valid"]]


def unique_obs_fraction(n):
    """
    Theoretical fraction of unique observations in a bootstrap sample.

    P(observation included) = 1 - (1 - 1/n)^n  ->  1 - 1/e ≈ 0.632

    Parameters
    ----------
    n : int
        Sample size.

    Returns
    -------
    float
        Expected fraction of unique observations.
    """
    return 1 - (1 - 1 / n) ** n

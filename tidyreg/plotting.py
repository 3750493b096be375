"""
Plots built on tidy tables.

Every function takes DataFrames (tidy tables, bootstrap draws, augmented
data) and returns a matplotlib Figure, so the vignette can save it with
``style.savefig`` and drop it into the rendered document.
"""

import math

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns

from .style import CB, CO, CR, CY, PALETTE


def _facet_grid(levels, ncols, panel_size, sharex=False):
    n = max(len(levels), 1)
    ncols = min(ncols, n)
    nrows = math.ceil(n / ncols)
    fig, axes = plt.subplots(
        nrows, ncols, figsize=(panel_size[0] * ncols, panel_size[1] * nrows),
        squeeze=False, sharex=sharex,
    )
    axes = axes.ravel()
    for ax in axes[n:]:
        ax.set_visible(False)
    return fig, axes[:n]


def coef_plot(tidy_df, facet=None, color=None, ncols=3, reference=0.0,
              title=None, panel_size=(4.5, 3.2)):
    """
    Point estimates with confidence-interval whiskers, one row per term.

    Parameters
    ----------
    tidy_df : pandas.DataFrame
        A tidy table (needs term, estimate, conf_low, conf_high), possibly
        stacked from several fits.
    facet : str, optional
        Column giving one panel per value.
    color : str, optional
        Column whose values are drawn side by side in each panel.
    reference : float or None
        Draw a dashed vertical line here (e.g. zero).
    """
    levels = list(tidy_df[facet].unique()) if facet else [None]
    fig, axes = _facet_grid(levels, ncols, panel_size)
    hues = list(tidy_df[color].unique()) if color else [None]
    width = 0.7
    step = width / len(hues)

    for ax, level in zip(axes, levels):
        sub = tidy_df if level is None else tidy_df[tidy_df[facet] == level]
        terms = list(sub["term"].unique())
        ypos = {t: i for i, t in enumerate(terms)}
        for h, hue in enumerate(hues):
            part = sub if hue is None else sub[sub[color] == hue]
            offset = -width / 2 + step * (h + 0.5) if color else 0.0
            y = np.array([ypos[t] for t in part["term"]]) + offset
            est = part["estimate"].to_numpy()
            err = [est - part["conf_low"].to_numpy(),
                   part["conf_high"].to_numpy() - est]
            ax.errorbar(est, y, xerr=err, fmt="o", ms=5, capsize=3, lw=1.5,
                        color=PALETTE[h % len(PALETTE)],
                        label=None if hue is None else str(hue))
        if reference is not None:
            ax.axvline(reference, color=CY, ls="--", lw=1)
        ax.set_yticks(range(len(terms)))
        ax.set_yticklabels(terms)
        ax.invert_yaxis()
        ax.set_xlabel("Estimate")
        if level is not None:
            ax.set_title(f"{facet} = {level}")

    if color:
        axes[0].legend(title=color, fontsize=8)
    if title:
        fig.suptitle(title, fontsize=14, y=1.02)
    fig.tight_layout()
    return fig


def bootstrap_hist(draws, summary=None, facet="term", bins=40, ncols=3,
                   title=None, panel_size=(4.0, 3.0)):
    """
    Histogram of bootstrap estimates, one panel per ``facet`` value.

    When ``summary`` (from ``summarize_bootstrap``) is given, its percentile
    bounds are drawn as dotted lines and the full-sample estimate as a
    solid line.
    """
    levels = list(draws[facet].unique())
    fig, axes = _facet_grid(levels, ncols, panel_size)
    for ax, level in zip(axes, levels):
        vals = draws.loc[draws[facet] == level, "estimate"].dropna()
        ax.hist(vals, bins=bins, density=True, alpha=.6, color=CB,
                edgecolor="white")
        if summary is not None:
            row = summary[summary[facet] == level].iloc[0]
            ax.axvline(row["conf_low"], color=CO, ls=":", lw=2)
            ax.axvline(row["conf_high"], color=CO, ls=":", lw=2)
            if not np.isnan(row["estimate"]):
                ax.axvline(row["estimate"], color=CR, lw=2)
        ax.set_title(str(level))
        ax.set_xlabel("Bootstrap estimate")
        ax.set_ylabel("Density")
    if title:
        fig.suptitle(title, fontsize=14, y=1.02)
    fig.tight_layout()
    return fig


def residual_plot(augmented, fitted="fitted", resid="resid", n_bins=20,
                  title="Residuals vs fitted"):
    """Residuals against fitted values with binned means."""
    fig, ax = plt.subplots(figsize=(6, 4))
    x = augmented[fitted].to_numpy()
    e = augmented[resid].to_numpy()
    ax.scatter(x, e, s=8, alpha=.3, c=CB, edgecolors="none")
    edges = np.quantile(x, np.linspace(0, 1, n_bins + 1))
    mids, means = [], []
    for lo, hi in zip(edges[:-1], edges[1:]):
        m = (x >= lo) & (x <= hi)
        if m.any():
            mids.append(x[m].mean())
            means.append(e[m].mean())
    ax.plot(mids, means, c=CO, lw=2, marker="o", ms=4, label="Binned mean")
    ax.axhline(0, color=CY, ls="--", lw=1)
    ax.set_xlabel("Fitted")
    ax.set_ylabel("Residual")
    ax.set_title(title)
    ax.legend(fontsize=8)
    fig.tight_layout()
    return fig


def pairs_plot(df, columns=None, hue=None, height=2.0, title=None):
    """
    Pairwise plot matrix with correlations.

    Scatter plots with a least-squares line below the diagonal, marginal
    histograms on it, and the Pearson correlation (overall, then per
    ``hue`` level) above it.
    """
    columns = list(columns) if columns is not None else list(
        df.select_dtypes("number").columns)
    frame = df[columns + ([hue] if hue else [])]
    n_hue = frame[hue].nunique() if hue else 1
    g = sns.PairGrid(frame, vars=columns, hue=hue, height=height,
                     palette=PALETTE[:n_hue] if hue else None)
    g.map_lower(sns.regplot, ci=None, truncate=True,
                scatter_kws=dict(s=8, alpha=.4, edgecolor="none"),
                line_kws=dict(lw=1.2))
    g.map_diag(sns.histplot, element="step", bins=25)

    for i, j in zip(*np.triu_indices(len(columns), k=1)):
        ax = g.axes[i, j]
        x, y = columns[j], columns[i]
        lines = [f"Corr: {frame[x].corr(frame[y]):.3f}"]
        if hue:
            for level, part in frame.groupby(hue, observed=True):
                lines.append(f"{level}: {part[x].corr(part[y]):.3f}")
        ax.text(0.5, 0.5, "\n".join(lines), transform=ax.transAxes,
                ha="center", va="center", fontsize=8)
        ax.grid(False)

    if hue:
        g.add_legend()
    if title:
        g.figure.suptitle(title, fontsize=14, y=1.02)
    return g.figure

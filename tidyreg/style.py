"""
Figure style shared by every plot in the vignette.
"""

import os

import matplotlib
import matplotlib.pyplot as plt

# Palette: blue, orange, green, red, purple, grey
CB, CO, CG, CR, CP, CY = "#2171B5", "#E6550D", "#31A354", "#DE2D26", "#756BB1", "#888"
PALETTE = [CB, CO, CG, CR, CP, CY]

RC_PARAMS = {
    "figure.facecolor": "#FAFAFA", "axes.facecolor": "#FAFAFA",
    "axes.edgecolor": "#333", "axes.labelcolor": "#222",
    "xtick.color": "#555", "ytick.color": "#555", "text.color": "#222",
    "font.size": 10, "axes.titlesize": 12, "axes.titleweight": "bold",
    "axes.grid": True, "grid.alpha": 0.25, "grid.color": "#AAA", "figure.dpi": 140,
}


def apply_style(headless=True):
    """Use the non-interactive backend and the vignette rcParams."""
    if headless:
        matplotlib.use("Agg")
    plt.rcParams.update(RC_PARAMS)


def savefig(fig, outdir, name):
    """Save ``fig`` as ``outdir/name`` and close it. Returns the path."""
    os.makedirs(outdir, exist_ok=True)
    path = os.path.join(outdir, name)
    fig.savefig(path, bbox_inches="tight", dpi=150)
    plt.close(fig)
    return path

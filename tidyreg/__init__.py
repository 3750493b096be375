"""
tidyreg -- robust regression results as tidy tables.

Linear and instrumental-variable regression with heteroskedasticity- and
cluster-robust standard errors, implemented with numpy / scipy, plus the
``tidy`` helper that turns each fit into a pandas DataFrame so results can
be filtered, grouped, bootstrapped and plotted like any other table.
"""

from .lm_robust import lm_robust
from .iv_robust import iv_robust
from .tidy import tidy, glance, augment, tidy_models, tidy_by, TIDY_COLUMNS
from .bootstrap import bootstrap_tidy, summarize_bootstrap
from . import datasets
from . import plotting
from . import render
from . import style

__version__ = "0.1.0"

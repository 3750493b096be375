import os
import subprocess
import sys
from pathlib import Path

import pandas as pd

from tidyreg import TIDY_COLUMNS


def _run(script, *args, cwd):
    env = dict(os.environ, PYTHONPATH=str(cwd), MPLBACKEND="Agg")
    cmd = [sys.executable, str(cwd / script), *args]
    return subprocess.run(cmd, cwd=cwd, env=env, check=True,
                          capture_output=True, text=True)


def test_vignette_smoke(tmp_path: Path):
    repo_root = Path(__file__).resolve().parents[1]
    _run("applications/tidy_workflow/vignette.py",
         "--n", "500", "--n-boot", "20", "--outdir", str(tmp_path),
         cwd=repo_root)

    pdf = tmp_path / "tidy_regression_vignette.pdf"
    assert pdf.exists()
    assert pdf.read_bytes().startswith(b"%PDF")

    for i, name in enumerate(["residuals", "slopes", "se_types", "ols_vs_iv",
                              "by_region", "clustered", "bootstrap", "pairs"], 1):
        assert (tmp_path / "figures" / f"fig{i:02d}_{name}.png").exists()

    tidy_table = pd.read_csv(tmp_path / "tables" / "01_tidy_lm_robust.csv")
    assert tidy_table.columns.tolist() == TIDY_COLUMNS

    draws = pd.read_csv(tmp_path / "tables" / "07_bootstrap_draws.csv")
    assert draws.columns.tolist() == ["replicate"] + TIDY_COLUMNS


def test_mincer_analysis_smoke():
    repo_root = Path(__file__).resolve().parents[1]
    out = _run("applications/mincer_cps/analysis.py", "--n", "500", cwd=repo_root)
    assert "[IV/2SLS]" in out.stdout
    assert "Wu-Hausman" in out.stdout

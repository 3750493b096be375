"""
Project paths and estimation defaults shared by the library and the
application scripts.
"""

from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

OUTPUTS_DIR = PROJECT_ROOT / "outputs"

# Inference defaults
DEFAULT_ALPHA = 0.05
DEFAULT_SE_TYPE = "HC2"
DEFAULT_CLUSTER_SE_TYPE = "CR2"

SE_TYPES = ("classical", "HC0", "HC1", "HC2", "HC3", "stata")
CLUSTER_SE_TYPES = ("CR0", "CR2", "stata")

# Rule-of-thumb threshold for the first-stage F (Staiger & Stock)
WEAK_INSTRUMENT_F = 10.0

# Bootstrap / simulation defaults
DEFAULT_N_BOOT = 1000
SEED = 42

PDF_NAME = "tidy_regression_vignette.pdf"

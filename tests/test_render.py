import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from tidyreg.render import format_table, render_pdf
from tidyreg.style import savefig


def test_format_table_rounds_and_marks_missing():
    df = pd.DataFrame({"term": ["a", "b"], "estimate": [1.23456, np.nan]})
    text = format_table(df, digits=2)
    assert "1.23" in text
    assert "NA" in text


def test_format_table_truncates():
    df = pd.DataFrame({"x": np.arange(50.0)})
    text = format_table(df, max_rows=10)
    assert text.endswith("... 40 more rows")


def test_render_pdf(tmp_path):
    fig, ax = plt.subplots()
    ax.plot([0, 1], [0, 1])
    png = savefig(fig, str(tmp_path), "line.png")

    table = format_table(pd.DataFrame({"term": ["x"], "estimate": [0.5]}))
    out = render_pdf(
        str(tmp_path / "doc.pdf"),
        title="Title",
        subtitle="Sub <title> & more",
        intro_lines=["first line", "", "second line"],
        sections=[(f"Section 1: One\n\n{table}\n", png),
                  ("Section 2: Text only\nno figure", None)],
        summary="done",
    )
    pdf = tmp_path / "doc.pdf"
    assert out == os.path.abspath(pdf)
    assert pdf.read_bytes().startswith(b"%PDF")

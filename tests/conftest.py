import matplotlib

matplotlib.use("Agg")

import pytest

from tidyreg.datasets import simulate_wages, simulate_classrooms


@pytest.fixture
def wages():
    return simulate_wages(n=800, seed=7)


@pytest.fixture
def classes():
    return simulate_classrooms(n_schools=20, n_students=15, seed=7)

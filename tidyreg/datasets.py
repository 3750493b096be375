"""
Simulated datasets used by the vignette and the tests.
"""

import numpy as np
import pandas as pd

REGIONS = ["Midwest", "Northeast", "South", "West"]


def simulate_wages(n=2000, seed=42):
    """
    Simulate data mimicking CPS microdata for a Mincer equation.

    DGP:
        ability ~ N(0, 1)                       (unobserved)
        distance ~ U(0, 50)                     (miles to nearest college)
        schooling = 12 + 0.8*ability - 0.04*distance + noise
        experience = age - schooling - 6
        log_wage = 0.10*schooling + 0.03*experience
                   - 0.0005*experience^2 - 0.15*female
                   + region effect + 0.5*ability + eps
        sd(eps) grows with schooling (heteroskedastic)

    Distance shifts schooling but not wages, so it is a valid instrument;
    omitting ability biases OLS upward.

    Returns
    -------
    pandas.DataFrame with columns
        log_wage, schooling, experience, distance, female, region, ability
    """
    rng = np.random.default_rng(seed)
    ability = rng.normal(0, 1, n)
    distance = rng.uniform(0, 50, n)
    schooling = 12 + 0.8 * ability - 0.04 * distance + rng.normal(0, 1.5, n)
    schooling = np.clip(schooling, 8, 20)
    age = rng.uniform(25, 55, n)
    experience = np.clip(age - schooling - 6, 0, 40)
    female = rng.binomial(1, 0.5, n)
    region = rng.choice(REGIONS, size=n)
    region_effect = pd.Series(region).map(
        {"Midwest": 0.0, "Northeast": 0.08, "South": -0.05, "West": 0.05}
    ).to_numpy()

    sigma = 0.15 + 0.02 * (schooling - 8)
    log_wage = (0.10 * schooling + 0.03 * experience
                - 0.0005 * experience ** 2
                - 0.15 * female + region_effect
                + 0.5 * ability + rng.normal(0, 1, n) * sigma)

    return pd.DataFrame(dict(
        log_wage=log_wage,
        schooling=schooling,
        experience=experience,
        distance=distance,
        female=female,
        region=pd.Categorical(region, categories=REGIONS),
        ability=ability,
    ))


def simulate_classrooms(n_schools=40, n_students=25, effect=0.3, seed=42):
    """
    Simulate a school-randomized experiment.

    Treatment is assigned at the school level and each school shares a
    random shock, so observations are correlated within school and
    cluster-robust standard errors are needed.

    Returns
    -------
    pandas.DataFrame with columns score, treatment, prior, school
    """
    rng = np.random.default_rng(seed)
    school = np.repeat(np.arange(n_schools), n_students)
    treated_schools = rng.permutation(n_schools) < n_schools // 2
    treatment = treated_schools[school].astype(int)
    school_shock = rng.normal(0, 0.5, n_schools)[school]
    prior = rng.normal(0, 1, n_schools * n_students)
    score = (effect * treatment + 0.6 * prior + school_shock
             + rng.normal(0, 1, n_schools * n_students))
    return pd.DataFrame(dict(
        score=score,
        treatment=treatment,
        prior=prior,
        school=school,
    ))

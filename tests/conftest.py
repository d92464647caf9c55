import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from cvd_lime import CONFIG, generate_synthetic_cohort
from cvd_lime.config import FEATURE_COLUMNS


@pytest.fixture
def cohort():
    return generate_synthetic_cohort(n_samples=600, random_state=7)


@pytest.fixture
def threshold_cohort():
    """Label is 1 exactly when sbp > 130; every other predictor is noise."""
    rng = np.random.default_rng(11)
    n = 100
    df = pd.DataFrame({
        'hypertension': rng.integers(0, 2, n),
        'treatment': rng.integers(0, 2, n),
        'smoking': rng.integers(0, 2, n),
        'diabetes': rng.integers(0, 2, n),
        'gender': rng.integers(0, 2, n),
        'age': rng.uniform(30, 75, n),
        'bmi': rng.uniform(18, 40, n),
        'cholesterol': rng.uniform(150, 300, n),
        'sbp': rng.uniform(90, 170, n),
    })
    # Pin the range so the equal-width midpoint is exactly 130
    df.loc[0, 'sbp'] = 90.0
    df.loc[1, 'sbp'] = 170.0
    df['cvd'] = (df['sbp'] > 130).astype(int)
    return df


@pytest.fixture
def fast_config(tmp_path):
    return CONFIG.with_overrides(
        EPOCHS=3,
        HIDDEN_UNITS=(8, 4),
        LIME_NUM_SAMPLES=500,
        LIME_N_CASES=2,
        OUTPUT_DIR=tmp_path / "outputs",
        FIGURE_DPI=50
    )


@pytest.fixture
def scaled_features(threshold_cohort):
    X = threshold_cohort[list(FEATURE_COLUMNS)].astype(float)
    return (X - X.min()) / (X.max() - X.min())

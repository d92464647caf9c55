import dataclasses

import pytest

from cvd_lime import CONFIG, stage_seeds
from cvd_lime.config import STAGES


def test_defaults():
    assert CONFIG.HIDDEN_UNITS == (100, 50)
    assert CONFIG.DROPOUT_RATE == 0.5
    assert CONFIG.DECISION_THRESHOLD == 0.5
    assert CONFIG.LIME_N_BINS == 2
    assert CONFIG.LIME_NUM_FEATURES == 3
    assert len(CONFIG.FEATURE_COLUMNS) == 9


def test_config_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        CONFIG.EPOCHS = 1


def test_with_overrides_returns_copy():
    config = CONFIG.with_overrides(EPOCHS=5, LIME_N_CASES=1)
    assert config.EPOCHS == 5
    assert config.LIME_N_CASES == 1
    assert CONFIG.EPOCHS == 100


def test_with_overrides_rejects_unknown_fields():
    with pytest.raises(ValueError, match="EPOCH"):
        CONFIG.with_overrides(EPOCH=5)


def test_stage_seeds_are_deterministic_and_distinct():
    seeds = stage_seeds(42)
    assert seeds == stage_seeds(42)
    assert set(seeds) == set(STAGES)
    assert len(set(seeds.values())) == len(STAGES)
    assert all(0 <= s < 2**30 for s in seeds.values())
    assert seeds != stage_seeds(43)

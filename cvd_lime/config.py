from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np


FEATURE_COLUMNS: Tuple[str, ...] = (
    'hypertension', 'treatment', 'smoking', 'diabetes', 'gender',
    'age', 'bmi', 'cholesterol', 'sbp',
)
LABEL_COLUMN = 'cvd'

# Identifier and post-outcome columns that would leak the label
DROP_COLUMNS: Tuple[str, ...] = ('id', 'patient_id', 'time_to_cvd', 'death')

STAGES: Tuple[str, ...] = ('split', 'balance', 'model', 'explainer')


@dataclass(frozen=True)
class Config:
    """Global configuration settings."""
    RANDOM_STATE: int = 42
    TEST_SIZE: float = 0.2
    VALIDATION_SPLIT: float = 0.2

    # Network
    HIDDEN_UNITS: Tuple[int, ...] = (100, 50)
    DROPOUT_RATE: float = 0.5
    LEARNING_RATE: float = 0.01
    MOMENTUM: float = 0.9
    NESTEROV: bool = True
    EPOCHS: int = 100
    BATCH_SIZE: int = 32

    # Evaluation
    DECISION_THRESHOLD: float = 0.5

    # LIME settings
    LIME_N_BINS: int = 2
    LIME_NUM_FEATURES: int = 3
    LIME_NUM_SAMPLES: int = 5000
    LIME_N_CASES: int = 4
    LIME_KERNEL_WIDTH: Optional[float] = None
    RANGE_TOLERANCE: float = 1e-6
    N_JOBS: int = 1

    # Schema
    FEATURE_COLUMNS: Tuple[str, ...] = FEATURE_COLUMNS
    LABEL_COLUMN: str = LABEL_COLUMN
    DROP_COLUMNS: Tuple[str, ...] = DROP_COLUMNS

    # Visualization settings
    FIGURE_DPI: int = 300
    DEFAULT_FIGSIZE: Tuple[int, int] = (12, 8)

    # Output paths
    OUTPUT_DIR: Path = Path("outputs")

    def with_overrides(self, **overrides) -> 'Config':
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(unknown)}")
        return replace(self, **overrides)


CONFIG = Config()


def stage_seeds(seed: int) -> Dict[str, int]:
    """
    Derive one independent integer seed per random stage from a root seed.

    Seeds are kept below 2**30 so per-layer offsets still fit int32 seed arguments.
    """
    children = np.random.SeedSequence(seed).spawn(len(STAGES))
    return {
        stage: int(child.generate_state(1)[0] % 2**30)
        for stage, child in zip(STAGES, children)
    }

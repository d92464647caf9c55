from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from imblearn.under_sampling import RandomUnderSampler
from sklearn.model_selection import train_test_split
from sklearn.utils import shuffle

from .config import CONFIG, Config
from .exceptions import EmptyClassError, SchemaError, ZeroVarianceError
from .utils import print_banner

logger = logging.getLogger(__name__)

CLASSES = (0, 1)


@dataclass
class PreparedData:
    """Matrices handed from data preparation to the later stages."""
    x_train: pd.DataFrame
    y_train: pd.Series
    x_test: pd.DataFrame
    y_test: pd.Series
    x_train_raw: pd.DataFrame
    y_train_raw: pd.Series
    x_test_raw: pd.DataFrame
    feature_names: List[str] = field(default_factory=list)


class DataLoader:
    """Loads and validates the patient table."""

    def __init__(self, config: Config = CONFIG):
        self.config = config
        self.X: Optional[pd.DataFrame] = None
        self.y: Optional[pd.Series] = None

    def load(self, source: Union[str, Path, pd.DataFrame]) -> Tuple[pd.DataFrame, pd.Series]:
        """Load the table from a CSV path or DataFrame and split off the label."""
        if isinstance(source, pd.DataFrame):
            df = source.copy()
        else:
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Dataset {path} not found.")
            logger.info(f"Loading dataset from {path}...")
            df = pd.read_csv(path)

        df = self._validate(df)

        self.X = df[list(self.config.FEATURE_COLUMNS)].astype(float)
        self.y = df[self.config.LABEL_COLUMN].astype(int)
        self._print_summary()
        return self.X, self.y

    def _validate(self, df: pd.DataFrame) -> pd.DataFrame:
        if df.empty:
            raise SchemaError("Input table has no rows")

        dropped = [c for c in self.config.DROP_COLUMNS if c in df.columns]
        if dropped:
            logger.info(f"Dropping identifier/leakage columns: {dropped}")
            df = df.drop(columns=dropped)

        required = list(self.config.FEATURE_COLUMNS) + [self.config.LABEL_COLUMN]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise SchemaError(f"Missing required columns: {', '.join(missing)}")

        non_numeric = [
            c for c in required if not pd.api.types.is_numeric_dtype(df[c])
        ]
        if non_numeric:
            raise SchemaError(f"Non-numeric columns: {', '.join(non_numeric)}")

        n_missing = df[required].isnull().sum()
        if n_missing.any():
            cols = n_missing[n_missing > 0].index.tolist()
            raise SchemaError(f"Missing values in columns: {', '.join(cols)}")

        labels = set(np.unique(df[self.config.LABEL_COLUMN]))
        if not labels <= set(CLASSES):
            raise SchemaError(
                f"Label column '{self.config.LABEL_COLUMN}' must be binary 0/1, "
                f"found {sorted(labels)}"
            )
        return df

    def _print_summary(self):
        """Print dataset summary."""
        print_banner("DATASET OVERVIEW")
        print(f"Feature matrix shape: {self.X.shape}")
        print(f"Number of patients (n): {self.X.shape[0]}")
        print(f"Number of predictors (p): {self.X.shape[1]}")
        print(f"\nClass distribution:")
        for cls, count in self.y.value_counts().sort_index().items():
            print(f"  {self.config.LABEL_COLUMN}={cls}: {count} ({count/len(self.y)*100:.1f}%)")


def generate_synthetic_cohort(n_samples: int = 1000, random_state: int = 42) -> pd.DataFrame:
    """
    Synthetic patient table with the fixed CVD schema.

    Risk follows a logistic model over age, SBP, cholesterol, BMI, smoking,
    diabetes, gender and hypertension. Not real patient data.
    """
    rng = np.random.default_rng(random_state)

    gender = rng.integers(0, 2, n_samples)
    age = rng.uniform(30, 75, n_samples).round()
    bmi = np.clip(rng.normal(27, 4.5, n_samples), 16, 50).round(1)
    cholesterol = np.clip(rng.normal(235, 40, n_samples), 120, 400).round()
    smoking = rng.binomial(1, 0.45, n_samples)
    diabetes = rng.binomial(1, 0.08, n_samples)
    sbp = np.clip(
        100 + 0.6 * age + 0.8 * (bmi - 27) + rng.normal(0, 15, n_samples),
        85, 240
    ).round()
    hypertension = ((sbp >= 140) | (rng.random(n_samples) < 0.05)).astype(int)
    treatment = hypertension * rng.binomial(1, 0.4, n_samples)

    logit = (
        -9.0 + 0.06 * age + 0.02 * sbp + 0.005 * cholesterol + 0.03 * bmi
        + 0.4 * smoking + 0.7 * diabetes + 0.4 * gender + 0.3 * hypertension
    )
    risk = 1 / (1 + np.exp(-logit))
    cvd = rng.binomial(1, risk)

    return pd.DataFrame({
        'id': np.arange(1, n_samples + 1),
        'hypertension': hypertension,
        'treatment': treatment,
        'smoking': smoking,
        'diabetes': diabetes,
        'gender': gender,
        'age': age,
        'bmi': bmi,
        'cholesterol': cholesterol,
        'sbp': sbp,
        'cvd': cvd,
    })


class DataPreprocessor:
    """Handles splitting, class balancing and scaling."""

    def __init__(self, config: Config = CONFIG):
        self.config = config
        self.test_size = config.TEST_SIZE

    def split(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        random_state: int
    ) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
        """Stratified train/test split. Index labels are kept."""
        self._check_classes(y, "split")
        return train_test_split(
            X, y,
            test_size=self.test_size,
            random_state=random_state,
            stratify=y
        )

    def downsample(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        random_state: int
    ) -> Tuple[pd.DataFrame, pd.Series]:
        """Truncate the majority class to the minority count, then reshuffle."""
        self._check_classes(y, "class balancing")

        sampler = RandomUnderSampler(random_state=random_state)
        # Only fit_resample sets sample_indices_; the resampled copies are
        # dropped and rows are taken by position so index labels survive
        sampler.fit_resample(X, y)
        idx = sampler.sample_indices_

        # Resampled rows come grouped by label
        return shuffle(X.iloc[idx], y.iloc[idx], random_state=random_state)

    @staticmethod
    def min_max_scale(X: pd.DataFrame) -> pd.DataFrame:
        """Scale each column to [0, 1] using that matrix's own min and max."""
        col_min = X.min()
        col_range = X.max() - col_min

        constant = col_range.index[col_range == 0].tolist()
        if constant:
            raise ZeroVarianceError(constant)

        return (X - col_min) / col_range

    def prepare_data(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        seeds: Dict[str, int]
    ) -> PreparedData:
        """Split, balance and scale."""
        X_train, X_test, y_train, y_test = self.split(X, y, seeds['split'])
        X_balanced, y_balanced = self.downsample(X_train, y_train, seeds['balance'])

        x_train = self.min_max_scale(X_balanced)
        logger.warning(
            "Test set is scaled with its own min/max rather than the training "
            "set's; kept for simplicity"
        )
        x_test = self.min_max_scale(X_test)

        data = PreparedData(
            x_train=x_train,
            y_train=y_balanced,
            x_test=x_test,
            y_test=y_test,
            x_train_raw=X_train,
            y_train_raw=y_train,
            x_test_raw=X_test,
            feature_names=X.columns.tolist()
        )
        self._print_summary(data)
        return data

    @staticmethod
    def _check_classes(y: pd.Series, stage: str):
        counts = y.value_counts()
        empty = [c for c in CLASSES if counts.get(c, 0) == 0]
        if empty:
            raise EmptyClassError(
                f"{stage}: no records with label {empty} among {len(y)} rows"
            )

    def _print_summary(self, data: PreparedData):
        """Print preprocessing summary."""
        print_banner("DATA PREPROCESSING SUMMARY")
        print(f"Training partition: {data.x_train_raw.shape}")
        print(f"Balanced training set: {data.x_train.shape}")
        print(f"Test set: {data.x_test.shape}")
        print(f"Features: {len(data.feature_names)}")
        print(f"\nTraining class distribution (before -> after downsampling):")
        before = data.y_train_raw.value_counts()
        after = data.y_train.value_counts()
        for cls in CLASSES:
            print(f"  Class {cls}: {before.get(cls, 0)} -> {after.get(cls, 0)}")

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from lime.discretize import BaseDiscretizer
from lime.lime_base import LimeBase
from scipy import stats
from tqdm.auto import tqdm

from .config import CONFIG, Config
from .exceptions import (
    CVDPipelineError, EmptyClassError, OutOfRangeError,
    SchemaError, ZeroVarianceError
)
from .model import ModelAdapter, ProblemKind
from .utils import print_banner, suppress_all_warnings

logger = logging.getLogger(__name__)


# --- GLOBAL: feature/label correlation ---

class CorrelationAnalyzer:
    """Pearson correlation of each feature with the label."""

    def __init__(self, confidence: float = 0.95):
        self.confidence = confidence
        self.results: Optional[pd.DataFrame] = None

    def analyze(self, X: pd.DataFrame, y: pd.Series) -> pd.DataFrame:
        """Return one row per feature, ranked by absolute correlation."""
        y_values = np.asarray(y, dtype=float)
        if np.unique(y_values).size < 2:
            raise EmptyClassError("Correlation needs both label classes present")

        constant = [c for c in X.columns if X[c].nunique() < 2]
        if constant:
            raise ZeroVarianceError(constant)

        rows = []
        for column in X.columns:
            res = stats.pearsonr(X[column].to_numpy(dtype=float), y_values)
            ci = res.confidence_interval(confidence_level=self.confidence)
            rows.append({
                'feature': column,
                'correlation': float(res.statistic),
                'ci_lower': float(ci.low),
                'ci_upper': float(ci.high),
                'p_value': float(res.pvalue),
            })

        df = pd.DataFrame(rows)
        df['abs_correlation'] = df['correlation'].abs()
        self.results = df.sort_values('abs_correlation', ascending=False).reset_index(drop=True)
        self._print_summary()
        return self.results

    def _print_summary(self):
        print_banner(f"FEATURE/LABEL CORRELATION ({self.confidence:.0%} CI)")
        print(self.results[['feature', 'correlation', 'ci_lower', 'ci_upper', 'p_value']]
              .to_string(index=False, float_format=lambda v: f"{v:.4f}"))


# --- LOCAL: LIME ---

class EqualWidthDiscretizer(BaseDiscretizer):
    """Splits each feature's training range into ``n_bins`` equal-width bins."""

    def __init__(self, data, categorical_features, feature_names,
                 labels=None, random_state=None, n_bins: int = 2):
        if n_bins < 2:
            raise ValueError(f"n_bins must be at least 2, got {n_bins}")
        # bins() is called from the base constructor
        self.n_bins = n_bins
        super().__init__(data, categorical_features, feature_names,
                         labels=labels, random_state=random_state)

    def bins(self, data, labels):
        bins = []
        for feature in self.to_discretize:
            column = data[:, feature]
            edges = np.linspace(column.min(), column.max(), self.n_bins + 1)
            bins.append(edges[1:-1])
        return bins


@dataclass
class FeatureWeight:
    feature: str
    value: float
    description: str
    weight: float


@dataclass
class InstanceExplanation:
    """Surrogate-model explanation of one prediction by one model."""
    case: object
    label: int
    label_prob: float
    model_r2: float
    model_intercept: float
    model_prediction: float
    model_id: str
    features: List[FeatureWeight] = field(default_factory=list)

    @property
    def feature_names(self) -> List[str]:
        return [f.feature for f in self.features]


@dataclass
class Neighbourhood:
    """Perturbed samples around one record, in both representations."""
    samples: np.ndarray
    indicators: np.ndarray
    distances: np.ndarray
    record_bins: np.ndarray


class LocalExplainer:
    """
    Explains single predictions with LIME.

    The neighbourhood is sampled bin-wise from the training distribution, as
    lime's tabular explainer does, but the proximity kernel is computed on the
    undiscretized samples so neighbours that share the record's bins still get
    weighted by how close they actually are. Each instance gets its own
    discretizer and generator seeded from the root seed and the instance
    position, so sequential and parallel runs give identical output.
    """

    def __init__(
        self,
        training_data: pd.DataFrame,
        adapter: ModelAdapter,
        config: Config = CONFIG,
        random_state: Optional[int] = None
    ):
        if adapter.problem_kind is not ProblemKind.CLASSIFICATION:
            raise CVDPipelineError(
                f"Only classification models can be explained, got {adapter.problem_kind.name}"
            )
        if len(training_data) == 0:
            raise SchemaError("Explainer needs a non-empty training set")

        self.adapter = adapter
        self.config = config
        self.feature_names = list(training_data.columns)
        self.random_state = config.RANDOM_STATE if random_state is None else random_state

        self._train_values = training_data.to_numpy(dtype=float)
        self.feature_min = self._train_values.min(axis=0)
        self.feature_max = self._train_values.max(axis=0)

        std = self._train_values.std(axis=0)
        self.feature_scale = np.where(std > 0, std, 1.0)

        n_features = len(self.feature_names)
        self.kernel_width = config.LIME_KERNEL_WIDTH or 0.75 * np.sqrt(n_features)

        # Bin edges depend only on the training data; descriptions are shared by every case
        self.bin_names = EqualWidthDiscretizer(
            self._train_values, [], self.feature_names, n_bins=config.LIME_N_BINS
        ).names

    def _case_seed(self, position: int) -> int:
        seq = np.random.SeedSequence([self.random_state, position])
        return int(seq.generate_state(1)[0])

    def kernel(self, distances: np.ndarray) -> np.ndarray:
        """Exponential proximity kernel, lime's default shape."""
        return np.sqrt(np.exp(-(distances ** 2) / self.kernel_width ** 2))

    def sample_neighbourhood(self, values: np.ndarray, seed: int) -> Neighbourhood:
        """
        Draw ``LIME_NUM_SAMPLES`` rows around ``values``.

        Each feature's bin is drawn from its training bin frequencies and then
        undiscretized within the bin. Row 0 is the record itself. Distances are
        Euclidean on training-standardized features.
        """
        rng = np.random.RandomState(seed)
        discretizer = EqualWidthDiscretizer(
            self._train_values, [], self.feature_names,
            random_state=seed, n_bins=self.config.LIME_N_BINS
        )
        train_bins = discretizer.discretize(self._train_values)
        record_bins = discretizer.discretize(values.copy()).astype(int)

        n_samples = self.config.LIME_NUM_SAMPLES
        bins = np.zeros((n_samples, len(values)))
        for j in range(len(values)):
            observed, counts = np.unique(train_bins[:, j], return_counts=True)
            bins[:, j] = rng.choice(observed, size=n_samples, replace=True,
                                    p=counts / counts.sum())

        indicators = (bins == record_bins).astype(int)
        samples = discretizer.undiscretize(bins)
        indicators[0] = 1
        samples[0] = values

        distances = np.linalg.norm((samples - values) / self.feature_scale, axis=1)
        return Neighbourhood(samples, indicators, distances, record_bins)

    def _as_vector(self, record) -> np.ndarray:
        if isinstance(record, pd.Series):
            record = record.reindex(self.feature_names)
        values = np.asarray(record, dtype=float).ravel()
        if values.shape[0] != len(self.feature_names):
            raise SchemaError(
                f"Record has {values.shape[0]} values, expected {len(self.feature_names)}"
            )
        return values

    def check_in_range(self, values: np.ndarray):
        """Raise OutOfRangeError if any value falls outside the training range."""
        tol = self.config.RANGE_TOLERANCE
        outside = (
            np.isnan(values)
            | (values < self.feature_min - tol)
            | (values > self.feature_max + tol)
        )
        if outside.any():
            raise OutOfRangeError({
                self.feature_names[i]: (values[i], self.feature_min[i], self.feature_max[i])
                for i in np.flatnonzero(outside)
            })

    def explain(self, record, case=None, label: Optional[int] = None,
                position: int = 0) -> InstanceExplanation:
        """
        Explain one record.

        With ``label=None`` the label the model predicts for the record is
        explained; otherwise the given label.
        """
        values = self._as_vector(record)
        self.check_in_range(values)

        seed = self._case_seed(position)
        hood = self.sample_neighbourhood(values, seed)
        proba = self.adapter.predict_proba(hood.samples)
        if label is None:
            label = int(np.argmax(proba[0]))

        base = LimeBase(self.kernel, random_state=np.random.RandomState(seed))
        with suppress_all_warnings():
            intercept, weights, score, local_pred = base.explain_instance_with_data(
                hood.indicators, proba, hood.distances, label,
                self.config.LIME_NUM_FEATURES,
                feature_selection='auto'
            )

        # weights come back ordered by |weight|, largest first
        features = [
            FeatureWeight(
                feature=self.feature_names[idx],
                value=float(values[idx]),
                description=self.bin_names[idx][hood.record_bins[idx]],
                weight=float(weight)
            )
            for idx, weight in weights
        ]

        return InstanceExplanation(
            case=position if case is None else case,
            label=label,
            label_prob=float(proba[0, label]),
            model_r2=float(score),
            model_intercept=float(intercept),
            model_prediction=float(np.ravel(local_pred)[0]),
            model_id=self.adapter.model_id,
            features=features
        )

    def explain_many(self, records, n_jobs: Optional[int] = None,
                     label: Optional[int] = None) -> List[InstanceExplanation]:
        """Explain every row independently; results keep the input order."""
        if isinstance(records, pd.DataFrame):
            cases = records.index.tolist()
            rows = records[self.feature_names].to_numpy(dtype=float)
        else:
            rows = np.atleast_2d(np.asarray(records, dtype=float))
            cases = list(range(rows.shape[0]))

        # Fail before doing any sampling work
        for row in rows:
            self.check_in_range(self._as_vector(row))

        n_jobs = self.config.N_JOBS if n_jobs is None else n_jobs
        logger.info(f"Explaining {len(rows)} instances (n_jobs={n_jobs})")

        results = Parallel(n_jobs=n_jobs, prefer='threads', return_as='generator')(
            delayed(self.explain)(row, case=case, label=label, position=pos)
            for pos, (case, row) in enumerate(zip(cases, rows))
        )
        return list(tqdm(results, total=len(rows), desc="LIME", disable=len(rows) < 2))


def explanations_to_frame(explanations: List[InstanceExplanation]) -> pd.DataFrame:
    """Tidy table, one row per (case, selected feature)."""
    rows = []
    for exp in explanations:
        for f in exp.features:
            rows.append({
                'case': exp.case,
                'label': exp.label,
                'label_prob': exp.label_prob,
                'model_r2': exp.model_r2,
                'model_intercept': exp.model_intercept,
                'model_prediction': exp.model_prediction,
                'model_id': exp.model_id,
                'feature': f.feature,
                'feature_value': f.value,
                'feature_weight': f.weight,
                'feature_desc': f.description,
            })
    columns = [
        'case', 'label', 'label_prob', 'model_r2', 'model_intercept',
        'model_prediction', 'model_id', 'feature', 'feature_value',
        'feature_weight', 'feature_desc'
    ]
    return pd.DataFrame(rows, columns=columns)

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score, auc, confusion_matrix,
    precision_score, roc_curve
)

from .config import CONFIG, Config
from .exceptions import EvaluationError
from .model import ModelAdapter
from .utils import print_banner

logger = logging.getLogger(__name__)


@dataclass
class RocCurve:
    """ROC points over every distinct threshold, plus the trapezoidal AUC."""
    fpr: np.ndarray
    tpr: np.ndarray
    thresholds: np.ndarray
    auc: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'threshold': self.thresholds,
            'fpr': self.fpr,
            'tpr': self.tpr,
        })


def _check_binary_inputs(y_true: np.ndarray, y_proba: np.ndarray):
    if y_true.shape[0] != y_proba.shape[0]:
        raise EvaluationError(
            f"{y_true.shape[0]} labels but {y_proba.shape[0]} probabilities"
        )
    if y_true.shape[0] == 0:
        raise EvaluationError("Cannot evaluate on an empty test set")
    missing = {0, 1} - set(np.unique(y_true).tolist())
    if missing:
        raise EvaluationError(
            f"Test labels contain no examples of class {sorted(missing)}; "
            "ROC/sensitivity/specificity are undefined"
        )


def compute_roc_curve(y_true, y_proba) -> RocCurve:
    """Sweep the decision threshold over the full probability range."""
    y_true = np.asarray(y_true).astype(int)
    y_proba = np.asarray(y_proba, dtype=float)
    _check_binary_inputs(y_true, y_proba)

    fpr, tpr, thresholds = roc_curve(y_true, y_proba, drop_intermediate=False)
    return RocCurve(fpr=fpr, tpr=tpr, thresholds=thresholds, auc=float(auc(fpr, tpr)))


@dataclass
class EvaluationMetrics:
    """Container for threshold-based classification metrics."""
    threshold: float
    accuracy: float
    sensitivity: float
    specificity: float
    precision: float
    auc: float
    tn: int
    fp: int
    fn: int
    tp: int

    @classmethod
    def from_predictions(
        cls,
        y_true,
        y_proba,
        threshold: float = CONFIG.DECISION_THRESHOLD
    ) -> 'EvaluationMetrics':
        """Create metrics from probabilities at a fixed threshold."""
        y_true = np.asarray(y_true).astype(int)
        y_proba = np.asarray(y_proba, dtype=float)
        _check_binary_inputs(y_true, y_proba)

        y_pred = (y_proba > threshold).astype(int)
        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()

        return cls(
            threshold=threshold,
            accuracy=float(accuracy_score(y_true, y_pred)),
            sensitivity=float(tp / (tp + fn)),
            specificity=float(tn / (tn + fp)),
            precision=float(precision_score(y_true, y_pred, zero_division=0)),
            auc=compute_roc_curve(y_true, y_proba).auc,
            tn=int(tn), fp=int(fp), fn=int(fn), tp=int(tp)
        )

    @property
    def confusion_matrix(self) -> np.ndarray:
        """Rows are true labels, columns predicted labels, both ordered [0, 1]."""
        return np.array([[self.tn, self.fp], [self.fn, self.tp]])

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class EvaluationResult:
    probabilities: pd.Series
    predictions: pd.Series
    roc: RocCurve
    metrics: EvaluationMetrics


class ModelEvaluator:
    """Scores the held-out test partition."""

    def __init__(self, config: Config = CONFIG):
        self.config = config

    def evaluate(self, adapter: ModelAdapter, x_test: pd.DataFrame, y_test: pd.Series) -> EvaluationResult:
        proba = adapter.predict_probabilities(x_test)
        index = getattr(x_test, 'index', None)

        probabilities = pd.Series(proba, index=index, name='probability')
        threshold = self.config.DECISION_THRESHOLD
        predictions = (probabilities > threshold).astype(int).rename('prediction')

        result = EvaluationResult(
            probabilities=probabilities,
            predictions=predictions,
            roc=compute_roc_curve(y_test, proba),
            metrics=EvaluationMetrics.from_predictions(y_test, proba, threshold)
        )
        logger.info(f"Test AUC={result.roc.auc:.4f}, accuracy={result.metrics.accuracy:.4f}")
        return result

    @staticmethod
    def print_summary(result: EvaluationResult):
        """Print confusion matrix and derived rates."""
        m = result.metrics
        print_banner(f"TEST SET EVALUATION (threshold = {m.threshold})")
        print("Confusion matrix (rows = actual, columns = predicted):")
        print(pd.DataFrame(
            m.confusion_matrix,
            index=['actual 0', 'actual 1'],
            columns=['pred 0', 'pred 1']
        ).to_string())
        print(f"\nAccuracy:    {m.accuracy:.4f}")
        print(f"Sensitivity: {m.sensitivity:.4f}")
        print(f"Specificity: {m.specificity:.4f}")
        print(f"Precision:   {m.precision:.4f}")
        print(f"ROC AUC:     {result.roc.auc:.4f}")

"""Cardiovascular disease risk prediction with a feed-forward network and LIME explanations."""

from .config import CONFIG, Config, stage_seeds
from .data import DataLoader, DataPreprocessor, PreparedData, generate_synthetic_cohort
from .evaluation import (
    EvaluationMetrics, EvaluationResult, ModelEvaluator, RocCurve,
    compute_roc_curve
)
from .exceptions import (
    CVDPipelineError, EmptyClassError, EvaluationError, OutOfRangeError,
    SchemaError, ZeroVarianceError
)
from .interpretation import (
    CorrelationAnalyzer, EqualWidthDiscretizer, FeatureWeight,
    InstanceExplanation, LocalExplainer, explanations_to_frame
)
from .model import (
    KerasClassifierAdapter, ModelAdapter, ModelTrainer, ProbabilityFunctionAdapter,
    ProblemKind, TrainingResult, build_network
)
from .pipeline import CVDRiskPipeline, ExperimentResult, run_experiment
from .visualization import ResultsVisualizer

__version__ = "0.1.0"

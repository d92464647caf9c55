from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import pandas as pd

from .config import CONFIG, Config, stage_seeds
from .data import DataLoader, DataPreprocessor, PreparedData
from .evaluation import EvaluationMetrics, EvaluationResult, ModelEvaluator, RocCurve
from .interpretation import (
    CorrelationAnalyzer, InstanceExplanation, LocalExplainer,
    explanations_to_frame
)
from .model import KerasClassifierAdapter, ModelTrainer, TrainingResult
from .utils import print_banner
from .visualization import ResultsVisualizer

logger = logging.getLogger(__name__)


class CVDRiskPipeline:
    """Main pipeline orchestrating the entire analysis."""

    def __init__(self, config: Config = CONFIG, verbose: int = 0):
        self.config = config
        self.seeds = stage_seeds(config.RANDOM_STATE)

        self.data_loader = DataLoader(config)
        self.preprocessor = DataPreprocessor(config)
        self.trainer = ModelTrainer(config, verbose=verbose)
        self.evaluator = ModelEvaluator(config)
        self.correlation_analyzer = CorrelationAnalyzer()
        self.visualizer = ResultsVisualizer(config.OUTPUT_DIR, config.FIGURE_DPI)

        self.X: Optional[pd.DataFrame] = None
        self.y: Optional[pd.Series] = None
        self.data: Optional[PreparedData] = None
        self.training: Optional[TrainingResult] = None
        self.adapter: Optional[KerasClassifierAdapter] = None
        self.evaluation: Optional[EvaluationResult] = None
        self.explanations: List[InstanceExplanation] = []
        self.results: Dict[str, Any] = {}

    def load_data(self, source: Union[str, Path, pd.DataFrame]) -> 'CVDRiskPipeline':
        """Load the dataset."""
        self.X, self.y = self.data_loader.load(source)
        return self

    def preprocess(self) -> 'CVDRiskPipeline':
        """Split, balance and scale."""
        if self.X is None:
            raise ValueError("Must call load_data() first")
        self.data = self.preprocessor.prepare_data(self.X, self.y, self.seeds)
        return self

    def train(self) -> 'CVDRiskPipeline':
        if self.data is None:
            raise ValueError("Must call preprocess() first")

        self.training = self.trainer.train(
            self.data.x_train, self.data.y_train, seed=self.seeds['model']
        )
        self.adapter = KerasClassifierAdapter(self.training.model)
        self.results['training_history'] = self.training.history.reset_index()
        logger.info(f"Trained model {self.adapter.model_id}")
        return self

    def evaluate(self) -> 'CVDRiskPipeline':
        if self.adapter is None:
            raise ValueError("Must call train() first")

        self.evaluation = self.evaluator.evaluate(
            self.adapter, self.data.x_test, self.data.y_test
        )
        self.evaluator.print_summary(self.evaluation)

        self.results['metrics'] = pd.DataFrame([self.evaluation.metrics.to_dict()])
        self.results['roc_curve'] = self.evaluation.roc.to_frame()
        self.results['test_predictions'] = pd.DataFrame({
            'case': self.data.x_test.index,
            'actual': self.data.y_test.to_numpy(),
            'probability': self.evaluation.probabilities.to_numpy(),
            'prediction': self.evaluation.predictions.to_numpy(),
        })
        return self

    def run_global_interpretation(self) -> pd.DataFrame:
        """Correlate each scaled training feature with the label."""
        if self.data is None:
            raise ValueError("Must call preprocess() first")

        self.results['correlation'] = self.correlation_analyzer.analyze(
            self.data.x_train, self.data.y_train
        )
        return self.results['correlation']

    def run_local_interpretation(
        self,
        case_indices: Optional[Sequence] = None,
        n_jobs: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Explain individual test-set predictions with LIME.

        ``case_indices`` are index labels of the test set; by default the first
        ``LIME_N_CASES`` test rows are explained.
        """
        if self.adapter is None:
            raise ValueError("Must call train() first")

        x_test = self.data.x_test
        if case_indices is None:
            records = x_test.iloc[:self.config.LIME_N_CASES]
        else:
            missing = [c for c in case_indices if c not in x_test.index]
            if missing:
                raise KeyError(f"Cases not in the test set: {missing}")
            records = x_test.loc[list(case_indices)]

        print_banner(f"LIME LOCAL EXPLANATIONS ({len(records)} cases)")
        explainer = LocalExplainer(
            self.data.x_train, self.adapter, self.config,
            random_state=self.seeds['explainer']
        )
        self.explanations = explainer.explain_many(records, n_jobs=n_jobs)

        frame = explanations_to_frame(self.explanations)
        print(frame[['case', 'label', 'label_prob', 'feature_desc', 'feature_weight']]
              .to_string(index=False, float_format=lambda v: f"{v:.4f}"))

        self.results['lime_explanations'] = frame
        return frame

    def generate_visualizations(self, show: bool = True):
        """Generate all visualizations."""
        print_banner("GENERATING VISUALIZATIONS")

        figures = []
        if self.training is not None:
            figures.append(self.visualizer.plot_training_history(
                self.training.history, filename='training_history.png'
            ))
        if self.evaluation is not None:
            figures.append(self.visualizer.plot_roc_curve(
                self.evaluation.roc, filename='roc_curve.png'
            ))
            figures.append(self.visualizer.plot_confusion_matrix(
                self.evaluation.metrics, filename='confusion_matrix.png'
            ))
        if 'correlation' in self.results:
            figures.append(self.visualizer.plot_correlation_forest(
                self.results['correlation'], filename='correlation_forest.png'
            ))
        if self.explanations:
            figures.append(self.visualizer.plot_lime_features(
                self.explanations, filename='lime_features.png'
            ))
            figures.append(self.visualizer.plot_lime_heatmap(
                self.results['lime_explanations'], filename='lime_heatmap.png'
            ))

        if show:
            plt.show()
        else:
            for fig in figures:
                plt.close(fig)

        print(f"\n✓ {len(figures)} visualizations saved to {self.visualizer.output_dir}")

    def export_results(self) -> List[Path]:
        """Export all results to CSV files."""
        output_dir = Path(self.config.OUTPUT_DIR)
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for key, data in self.results.items():
            if isinstance(data, pd.DataFrame):
                filepath = output_dir / f"{key}.csv"
                data.to_csv(filepath, index=False)
                print(f"✓ Saved: {filepath}")
                written.append(filepath)
        return written

    def print_summary(self):
        """Print analysis summary."""
        print_banner("ANALYSIS SUMMARY")

        if self.evaluation is not None:
            m = self.evaluation.metrics
            print(f"\nModel: {self.adapter.model_id}")
            print(f"   ROC AUC:     {m.auc:.3f}")
            print(f"   Accuracy:    {m.accuracy:.3f}")
            print(f"   Sensitivity: {m.sensitivity:.3f}")
            print(f"   Specificity: {m.specificity:.3f}")

        if 'correlation' in self.results:
            top = self.results['correlation'].iloc[0]
            print(f"\nStrongest correlate: {top['feature']} (r={top['correlation']:.3f})")

        if self.explanations:
            frame = self.results['lime_explanations']
            counts = frame['feature'].value_counts()
            print("\nFeatures selected by LIME (cases):")
            print(counts.to_string())


@dataclass
class ExperimentResult:
    """Everything an interactive front end needs from one run."""
    config: Config
    seeds: Dict[str, int]
    model_id: str
    metrics: EvaluationMetrics
    roc: RocCurve
    history: pd.DataFrame
    correlations: pd.DataFrame
    explanations: List[InstanceExplanation] = field(default_factory=list)
    explanation_frame: Optional[pd.DataFrame] = None


def run_experiment(
    source: Union[str, Path, pd.DataFrame],
    config: Optional[Config] = None,
    case_indices: Optional[Sequence] = None,
    **overrides
) -> ExperimentResult:
    """
    Run data preparation, training, evaluation and both interpretations.

    Keyword overrides are applied to ``config`` (default ``CONFIG``), e.g.
    ``run_experiment(df, EPOCHS=20, LIME_N_CASES=2)``.
    """
    config = (config or CONFIG).with_overrides(**overrides)

    pipeline = CVDRiskPipeline(config)
    pipeline.load_data(source).preprocess().train().evaluate()
    correlations = pipeline.run_global_interpretation()
    frame = pipeline.run_local_interpretation(case_indices=case_indices)

    return ExperimentResult(
        config=config,
        seeds=pipeline.seeds,
        model_id=pipeline.adapter.model_id,
        metrics=pipeline.evaluation.metrics,
        roc=pipeline.evaluation.roc,
        history=pipeline.training.history,
        correlations=correlations,
        explanations=pipeline.explanations,
        explanation_frame=frame
    )

from __future__ import annotations

import math
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.patches import Patch

from .config import CONFIG
from .evaluation import EvaluationMetrics, RocCurve
from .interpretation import InstanceExplanation


class ResultsVisualizer:
    """Handles all visualization tasks."""

    def __init__(self, output_dir: Path = CONFIG.OUTPUT_DIR, dpi: int = CONFIG.FIGURE_DPI):
        self.output_dir = Path(output_dir)
        self.dpi = dpi
        self.colors = {
            'train': '#2E86AB',
            'validation': '#F18F01',
            'positive': '#C73E1D',
            'negative': '#2E86AB',
            'supports': '#2bbbdf',
            'contradicts': '#ff6b6b'
        }

    def _save(self, fig: plt.Figure, filename: Optional[str]):
        if filename:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            fig.savefig(self.output_dir / filename, dpi=self.dpi, bbox_inches='tight')

    def plot_training_history(
        self,
        history: pd.DataFrame,
        filename: Optional[str] = None
    ) -> plt.Figure:
        """Loss and accuracy per epoch for the training and validation split."""
        fig, axes = plt.subplots(1, 2, figsize=(14, 5))

        for ax, metric in zip(axes, ['loss', 'accuracy']):
            if metric in history:
                ax.plot(history.index, history[metric], color=self.colors['train'],
                        linewidth=2, label='training')
            if f'val_{metric}' in history:
                ax.plot(history.index, history[f'val_{metric}'],
                        color=self.colors['validation'], linewidth=2, label='validation')
            ax.set_xlabel('Epoch', fontsize=12)
            ax.set_ylabel(metric.capitalize(), fontsize=12)
            ax.set_title(f'Training {metric}', fontsize=13, weight='bold')
            ax.legend()
            ax.grid(alpha=0.3)

        plt.tight_layout()
        self._save(fig, filename)
        return fig

    def plot_roc_curve(
        self,
        roc: RocCurve,
        filename: Optional[str] = None
    ) -> plt.Figure:
        fig, ax = plt.subplots(figsize=(8, 8))

        ax.plot(roc.fpr, roc.tpr, linewidth=2, color=self.colors['train'],
                label=f'Neural network (AUC={roc.auc:.3f})')
        ax.plot([0, 1], [0, 1], 'k--', linewidth=2, label='Random Classifier')
        ax.set_xlim(0, 1)
        ax.set_ylim(0, 1.01)
        ax.set_xlabel('False Positive Rate', fontsize=12)
        ax.set_ylabel('True Positive Rate', fontsize=12)
        ax.set_title('ROC Curve - Test Set', fontsize=14, weight='bold')
        ax.legend(loc='lower right', fontsize=10)
        ax.grid(alpha=0.3)

        plt.tight_layout()
        self._save(fig, filename)
        return fig

    def plot_confusion_matrix(
        self,
        metrics: EvaluationMetrics,
        filename: Optional[str] = None
    ) -> plt.Figure:
        fig, ax = plt.subplots(figsize=(6, 5))

        sns.heatmap(metrics.confusion_matrix, annot=True, fmt='d', cmap='Blues',
                    xticklabels=['No CVD', 'CVD'],
                    yticklabels=['No CVD', 'CVD'],
                    ax=ax, cbar=True, square=True, linewidths=1, linecolor='black')
        ax.set_ylabel('True Label', fontsize=11)
        ax.set_xlabel('Predicted Label', fontsize=11)
        ax.set_title(f'Confusion Matrix (threshold={metrics.threshold})',
                     fontsize=12, weight='bold')

        plt.tight_layout()
        self._save(fig, filename)
        return fig

    def plot_correlation_forest(
        self,
        correlations: pd.DataFrame,
        filename: Optional[str] = None
    ) -> plt.Figure:
        """Diverging forest plot, strongest correlate on top."""
        df = correlations.iloc[::-1].reset_index(drop=True)
        y_pos = np.arange(len(df))
        colors = [
            self.colors['positive'] if r > 0 else self.colors['negative']
            for r in df['correlation']
        ]

        fig, ax = plt.subplots(figsize=(10, max(4, len(df) * 0.5)))

        ax.errorbar(
            df['correlation'], y_pos,
            xerr=[df['correlation'] - df['ci_lower'], df['ci_upper'] - df['correlation']],
            fmt='none', color='black', capsize=4, linewidth=1.5
        )
        ax.scatter(df['correlation'], y_pos, c=colors, s=80, zorder=3,
                   edgecolors='black', linewidth=0.5)

        ax.axvline(0, color='gray', linestyle='--', alpha=0.7)
        ax.set_yticks(y_pos)
        ax.set_yticklabels(df['feature'])
        ax.set_xlabel('Pearson correlation with CVD', fontsize=12)
        ax.set_title('Feature/Label Correlation (95% CI)', fontsize=14, weight='bold')
        ax.grid(axis='x', alpha=0.3)

        plt.tight_layout()
        self._save(fig, filename)
        return fig

    def plot_lime_features(
        self,
        explanations: List[InstanceExplanation],
        class_names=('No CVD', 'CVD'),
        ncols: int = 2,
        filename: Optional[str] = None
    ) -> plt.Figure:
        """One bar chart of signed feature weights per explained case."""
        if not explanations:
            raise ValueError("No explanations to plot")

        nrows = math.ceil(len(explanations) / ncols)
        fig, axes = plt.subplots(nrows, ncols, figsize=(7 * ncols, 3.5 * nrows), squeeze=False)
        axes = axes.flatten()

        for ax, exp in zip(axes, explanations):
            features = exp.features[::-1]
            weights = [f.weight for f in features]
            colors = [
                self.colors['supports'] if w > 0 else self.colors['contradicts']
                for w in weights
            ]
            ax.barh(range(len(features)), weights, color=colors, alpha=0.8,
                    edgecolor='black', linewidth=0.5)
            ax.set_yticks(range(len(features)))
            ax.set_yticklabels([f.description for f in features], fontsize=10)
            ax.axvline(0, color='black', linewidth=0.8)
            ax.set_xlabel('Weight', fontsize=10)
            ax.set_title(
                f"Case: {exp.case} | Label: {class_names[exp.label]}\n"
                f"Probability: {exp.label_prob:.2f} | Explanation fit: {exp.model_r2:.2f}",
                fontsize=10
            )
            ax.grid(axis='x', alpha=0.3)

        for ax in axes[len(explanations):]:
            ax.set_visible(False)

        fig.legend(
            handles=[
                Patch(color=self.colors['supports'], label='Supports'),
                Patch(color=self.colors['contradicts'], label='Contradicts')
            ],
            loc='lower center', ncol=2, frameon=False
        )
        plt.tight_layout(rect=(0, 0.04, 1, 1))
        self._save(fig, filename)
        return fig

    def plot_lime_heatmap(
        self,
        explanation_frame: pd.DataFrame,
        class_names=('No CVD', 'CVD'),
        filename: Optional[str] = None
    ) -> plt.Figure:
        """
        Features x cases, one panel per explained label.

        A weight's sign is relative to the label being explained, so cases are
        grouped by label and each panel reads as support for that label.
        Cells are blank where a feature was not selected for a case.
        """
        if explanation_frame.empty:
            raise ValueError("No explanations to plot")

        df = explanation_frame.assign(case=explanation_frame['case'].astype(str))
        features = sorted(df['feature'].unique())
        labels = sorted(df['label'].unique())
        limit = df['feature_weight'].abs().max()
        n_cases = df.groupby('label')['case'].nunique()

        fig, axes = plt.subplots(
            1, len(labels),
            figsize=(max(6, n_cases.sum() * 1.2 + 2 * len(labels)), max(4, len(features) * 0.6)),
            squeeze=False,
            gridspec_kw={'width_ratios': [n_cases[label] for label in labels]}
        )

        for ax, label in zip(axes[0], labels):
            subset = df[df['label'] == label]
            case_order = list(dict.fromkeys(subset['case']))
            grid = subset.pivot_table(
                index='feature', columns='case', values='feature_weight', aggfunc='first'
            ).reindex(index=features, columns=case_order)

            sns.heatmap(grid, mask=grid.isna(), cmap='RdBu_r', center=0,
                        vmin=-limit, vmax=limit,
                        annot=True, fmt='.2f', linewidths=0.5, linecolor='white',
                        cbar_kws={'label': 'Feature weight'}, ax=ax)
            ax.set_xlabel('Case', fontsize=11)
            ax.set_ylabel('Feature', fontsize=11)
            ax.set_title(f'Explained label: {class_names[label]}', fontsize=12, weight='bold')

        fig.suptitle('LIME Feature Weights by Case', fontsize=13, weight='bold')
        plt.tight_layout()
        self._save(fig, filename)
        return fig

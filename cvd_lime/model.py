from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

import numpy as np
import pandas as pd
import tensorflow as tf
from tensorflow import keras

from .config import CONFIG, Config
from .exceptions import CVDPipelineError, SchemaError

logger = logging.getLogger(__name__)


# --- Model definition ---

def build_network(n_features: int, config: Config = CONFIG, seed: Optional[int] = None) -> keras.Model:
    """Fully-connected binary classifier: ReLU hidden layers with dropout, sigmoid output."""
    def layer_seed(offset: int) -> Optional[int]:
        return None if seed is None else seed + offset

    layers = [keras.Input(shape=(n_features,))]
    for i, units in enumerate(config.HIDDEN_UNITS):
        layers.append(keras.layers.Dense(
            units,
            activation='relu',
            kernel_initializer=keras.initializers.GlorotUniform(seed=layer_seed(2 * i)),
            name=f'hidden_{i + 1}'
        ))
        layers.append(keras.layers.Dropout(
            config.DROPOUT_RATE,
            seed=layer_seed(2 * i + 1),
            name=f'dropout_{i + 1}'
        ))
    layers.append(keras.layers.Dense(
        1,
        activation='sigmoid',
        kernel_initializer=keras.initializers.GlorotUniform(
            seed=layer_seed(2 * len(config.HIDDEN_UNITS))
        ),
        name='output'
    ))

    model = keras.Sequential(layers, name='cvd_risk_mlp')
    model.compile(
        optimizer=keras.optimizers.SGD(
            learning_rate=config.LEARNING_RATE,
            momentum=config.MOMENTUM,
            nesterov=config.NESTEROV
        ),
        loss='binary_crossentropy',
        metrics=['accuracy']
    )
    return model


# --- Training ---

@dataclass
class TrainingResult:
    """Fitted network plus per-epoch training/validation curves."""
    model: keras.Model
    history: pd.DataFrame
    seed: int


class ModelTrainer:
    """Fits the network with SGD, monitoring a trailing validation split."""

    def __init__(self, config: Config = CONFIG, verbose: int = 0):
        self.config = config
        self.verbose = verbose

    def train(self, x_train, y_train, seed: int) -> TrainingResult:
        X = np.asarray(x_train, dtype='float32')
        y = np.asarray(y_train, dtype='float32')

        if X.ndim != 2 or X.shape[0] == 0:
            raise SchemaError(f"Training matrix must be 2-D and non-empty, got shape {X.shape}")
        if y.shape[0] != X.shape[0]:
            raise SchemaError(
                f"Feature matrix has {X.shape[0]} rows but labels have {y.shape[0]}"
            )

        # Dropout masks, initial weights and epoch shuffling all hang off this seed
        keras.utils.set_random_seed(seed)
        tf.config.experimental.enable_op_determinism()

        model = build_network(X.shape[1], self.config, seed=seed)
        logger.info(
            f"Training {model.name} on {X.shape[0]} rows for {self.config.EPOCHS} epochs "
            f"(batch={self.config.BATCH_SIZE}, validation_split={self.config.VALIDATION_SPLIT})"
        )

        # validation_split holds out the trailing rows before any shuffling
        history = model.fit(
            X, y,
            epochs=self.config.EPOCHS,
            batch_size=self.config.BATCH_SIZE,
            validation_split=self.config.VALIDATION_SPLIT,
            shuffle=True,
            verbose=self.verbose
        )

        history_df = pd.DataFrame(history.history)
        history_df.index = pd.RangeIndex(1, len(history_df) + 1, name='epoch')
        return TrainingResult(model=model, history=history_df, seed=seed)


# --- Model adapters ---

class ProblemKind(Enum):
    CLASSIFICATION = auto()
    REGRESSION = auto()


class ModelAdapter:
    """
    Uniform view of a fitted model for evaluation and explanation.

    Subclasses implement ``predict_probabilities``; everything downstream
    treats the model as a function from records to positive-class probability.
    """
    problem_kind = ProblemKind.CLASSIFICATION

    def __init__(self, model_id: Optional[str] = None):
        self.model_id = model_id or uuid.uuid4().hex[:12]

    def predict_probabilities(self, records) -> np.ndarray:
        raise NotImplementedError

    def predict_proba(self, records) -> np.ndarray:
        """Two-column [P(no CVD), P(CVD)] matrix."""
        p = self.predict_probabilities(records)
        return np.column_stack([1 - p, p])


class KerasClassifierAdapter(ModelAdapter):

    def __init__(self, model: keras.Model, batch_size: int = 1024, model_id: Optional[str] = None):
        super().__init__(model_id)
        self.model = model
        self.batch_size = batch_size

    def predict_probabilities(self, records) -> np.ndarray:
        X = np.asarray(records, dtype='float32')
        if X.ndim == 1:
            X = X.reshape(1, -1)
        preds = self.model.predict(X, batch_size=self.batch_size, verbose=0)
        return np.asarray(preds, dtype=float).ravel()


class ProbabilityFunctionAdapter(ModelAdapter):
    """Wraps any vectorised ``records -> probability`` callable."""

    def __init__(self, fn: Callable[[np.ndarray], np.ndarray], model_id: Optional[str] = None):
        super().__init__(model_id)
        self.fn = fn

    def predict_probabilities(self, records) -> np.ndarray:
        X = np.asarray(records, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        p = np.asarray(self.fn(X), dtype=float).ravel()
        if p.shape[0] != X.shape[0]:
            raise CVDPipelineError(
                f"Model returned {p.shape[0]} probabilities for {X.shape[0]} records"
            )
        if np.any((p < 0) | (p > 1)) or np.any(np.isnan(p)):
            raise CVDPipelineError("Model returned values outside [0, 1]")
        return p

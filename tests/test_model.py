import numpy as np
import pytest

from cvd_lime import (
    CVDPipelineError, KerasClassifierAdapter, ModelTrainer, ProbabilityFunctionAdapter,
    ProblemKind, SchemaError, build_network
)


@pytest.fixture
def toy_training_set():
    rng = np.random.default_rng(0)
    X = rng.random((120, 9))
    y = (X[:, 8] > 0.5).astype(int)
    return X, y


def test_build_network_architecture():
    model = build_network(9)
    dense = [layer for layer in model.layers if layer.name.startswith(('hidden', 'output'))]
    dropout = [layer for layer in model.layers if layer.name.startswith('dropout')]

    assert [layer.units for layer in dense] == [100, 50, 1]
    assert [layer.rate for layer in dropout] == [0.5, 0.5]
    assert model.predict(np.zeros((2, 9)), verbose=0).shape == (2, 1)
    assert model.optimizer.nesterov


def test_build_network_is_seeded(fast_config):
    first = build_network(9, fast_config, seed=123).get_weights()
    second = build_network(9, fast_config, seed=123).get_weights()
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_train_history(fast_config, toy_training_set):
    X, y = toy_training_set
    result = ModelTrainer(fast_config).train(X, y, seed=1)

    assert list(result.history.index) == [1, 2, 3]
    assert {'loss', 'val_loss', 'accuracy', 'val_accuracy'} <= set(result.history.columns)
    assert result.seed == 1


def test_train_is_reproducible(fast_config, toy_training_set):
    X, y = toy_training_set
    first = ModelTrainer(fast_config).train(X, y, seed=9)
    second = ModelTrainer(fast_config).train(X, y, seed=9)
    np.testing.assert_array_equal(
        first.history['loss'].to_numpy(), second.history['loss'].to_numpy()
    )


def test_train_rejects_bad_shapes(fast_config, toy_training_set):
    X, y = toy_training_set
    with pytest.raises(SchemaError):
        ModelTrainer(fast_config).train(X, y[:-1], seed=0)
    with pytest.raises(SchemaError):
        ModelTrainer(fast_config).train(np.empty((0, 9)), np.empty(0), seed=0)


def test_keras_adapter(fast_config, toy_training_set):
    X, y = toy_training_set
    adapter = KerasClassifierAdapter(ModelTrainer(fast_config).train(X, y, seed=0).model)

    p = adapter.predict_probabilities(X[:5])
    assert p.shape == (5,)
    assert ((p >= 0) & (p <= 1)).all()

    matrix = adapter.predict_proba(X[0])
    assert matrix.shape == (1, 2)
    np.testing.assert_allclose(matrix.sum(axis=1), 1.0, rtol=1e-6)
    assert adapter.problem_kind is ProblemKind.CLASSIFICATION


def test_adapters_get_distinct_ids():
    fn = lambda X: np.full(len(X), 0.3)
    assert ProbabilityFunctionAdapter(fn).model_id != ProbabilityFunctionAdapter(fn).model_id
    assert ProbabilityFunctionAdapter(fn, model_id='m1').model_id == 'm1'


def test_function_adapter_validates_output():
    with pytest.raises(CVDPipelineError, match="outside"):
        ProbabilityFunctionAdapter(lambda X: np.full(len(X), 1.5)).predict_probabilities(np.zeros((2, 9)))
    with pytest.raises(CVDPipelineError, match="probabilities"):
        ProbabilityFunctionAdapter(lambda X: np.zeros(1)).predict_probabilities(np.zeros((3, 9)))

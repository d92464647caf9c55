import numpy as np
import pandas as pd
import pytest

from cvd_lime import (
    CONFIG, DataLoader, DataPreprocessor, EmptyClassError, SchemaError,
    ZeroVarianceError, generate_synthetic_cohort, stage_seeds
)
from cvd_lime.config import FEATURE_COLUMNS


def test_synthetic_cohort_schema():
    df = generate_synthetic_cohort(n_samples=200, random_state=1)
    assert len(df) == 200
    assert set(FEATURE_COLUMNS) <= set(df.columns)
    assert set(df['cvd'].unique()) <= {0, 1}
    assert df.equals(generate_synthetic_cohort(n_samples=200, random_state=1))


def test_loader_accepts_dataframe_and_drops_identifiers(cohort):
    X, y = DataLoader().load(cohort)
    assert list(X.columns) == list(FEATURE_COLUMNS)
    assert 'id' not in X.columns
    assert y.name == 'cvd'
    assert len(X) == len(cohort)
    # source table left untouched
    assert 'id' in cohort.columns


def test_loader_reads_csv(cohort, tmp_path):
    path = tmp_path / "cohort.csv"
    cohort.to_csv(path, index=False)
    X, y = DataLoader().load(path)
    assert X.shape == (len(cohort), 9)


def test_loader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        DataLoader().load(tmp_path / "absent.csv")


def test_loader_missing_column(cohort):
    with pytest.raises(SchemaError, match="sbp"):
        DataLoader().load(cohort.drop(columns=['sbp']))


def test_loader_rejects_missing_values(cohort):
    cohort.loc[3, 'bmi'] = np.nan
    with pytest.raises(SchemaError, match="bmi"):
        DataLoader().load(cohort)


def test_loader_rejects_non_binary_label(cohort):
    cohort.loc[0, 'cvd'] = 2
    with pytest.raises(SchemaError, match="binary"):
        DataLoader().load(cohort)


def test_loader_rejects_non_numeric(cohort):
    cohort['gender'] = cohort['gender'].map({0: 'f', 1: 'm'})
    with pytest.raises(SchemaError, match="gender"):
        DataLoader().load(cohort)


def test_loader_rejects_empty_table(cohort):
    with pytest.raises(SchemaError):
        DataLoader().load(cohort.iloc[:0])


def test_split_is_disjoint_and_covering(cohort):
    X, y = DataLoader().load(cohort)
    X_train, X_test, y_train, y_test = DataPreprocessor().split(X, y, random_state=3)

    assert set(X_train.index).isdisjoint(X_test.index)
    assert set(X_train.index) | set(X_test.index) == set(X.index)
    assert len(X_test) == pytest.approx(0.2 * len(X), abs=1)
    assert (y_train.index == X_train.index).all()


def test_downsample_balances_classes(cohort):
    X, y = DataLoader().load(cohort)
    X_bal, y_bal = DataPreprocessor().downsample(X, y, random_state=3)

    counts = y_bal.value_counts()
    assert counts[0] == counts[1] == y.value_counts().min()
    assert set(X_bal.index) <= set(X.index)
    assert (X_bal.index == y_bal.index).all()
    # rows are shuffled, not grouped by label
    assert not y_bal.is_monotonic_increasing


def test_downsample_requires_both_classes(cohort):
    X, y = DataLoader().load(cohort)
    with pytest.raises(EmptyClassError):
        DataPreprocessor().downsample(X[y == 0], y[y == 0], random_state=3)


def test_min_max_scale_bounds(cohort):
    X, _ = DataLoader().load(cohort)
    scaled = DataPreprocessor.min_max_scale(X)

    assert (scaled.min() == 0).all()
    assert (scaled.max() == 1).all()
    assert ((scaled >= 0) & (scaled <= 1)).all().all()


def test_min_max_scale_constant_columns():
    X = pd.DataFrame({'age': [40.0, 50.0, 60.0], 'smoking': [1.0, 1.0, 1.0], 'bmi': [20.0] * 3})
    with pytest.raises(ZeroVarianceError) as excinfo:
        DataPreprocessor.min_max_scale(X)
    assert excinfo.value.columns == ['smoking', 'bmi']


def test_prepare_data(cohort):
    X, y = DataLoader().load(cohort)
    data = DataPreprocessor(CONFIG).prepare_data(X, y, stage_seeds(0))

    assert data.feature_names == list(FEATURE_COLUMNS)
    assert data.y_train.value_counts().nunique() == 1
    assert set(data.x_train.index) <= set(data.x_train_raw.index)
    assert set(data.x_test.index).isdisjoint(data.x_train_raw.index)
    for matrix in (data.x_train, data.x_test):
        assert (matrix.min() == 0).all() and (matrix.max() == 1).all()


def test_prepare_data_is_reproducible(cohort):
    X, y = DataLoader().load(cohort)
    first = DataPreprocessor().prepare_data(X, y, stage_seeds(5))
    second = DataPreprocessor().prepare_data(X, y, stage_seeds(5))
    pd.testing.assert_frame_equal(first.x_train, second.x_train)
    pd.testing.assert_series_equal(first.y_test, second.y_test)


def test_downsample_keeps_original_rows_and_labels(cohort):
    X, y = DataLoader().load(cohort)
    X = X.set_index(X.index + 5000)
    y = y.set_axis(X.index)
    X_bal, y_bal = DataPreprocessor().downsample(X, y, random_state=8)

    pd.testing.assert_frame_equal(X_bal, X.loc[X_bal.index])
    pd.testing.assert_series_equal(y_bal, y.loc[y_bal.index])
    assert X_bal.index.is_unique

"""
Test Suite for Prediction Module
================================

Tests for scoring fitted models on held-out data.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from housing_regression.model import HousingRegressionModel
from housing_regression.prediction import (
    predict_frame, score_models, prediction_columns, export_predictions, run_scoring
)

FORMULA = 'price ~ sqft + bedrooms'


def make_housing(n_samples=200, seed=0):
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({
        'sqft': rng.uniform(500, 4000, n_samples),
        'bedrooms': rng.integers(1, 6, n_samples),
    })
    df['price'] = 120 * df['sqft'] + 8000 * df['bedrooms'] + rng.normal(0, 10000, n_samples)
    return df


@pytest.fixture(scope='module')
def models():
    train = make_housing(seed=0)
    return {
        'linear': HousingRegressionModel('linear', FORMULA).fit(train),
        'boosted_trees': HousingRegressionModel(
            'boosted_trees', FORMULA, n_estimators=30
        ).fit(train),
    }


@pytest.fixture
def test_df():
    return make_housing(n_samples=50, seed=1)


class TestPredictFrame:
    """Tests for predict_frame."""

    def test_default_column(self, models, test_df):
        result = predict_frame(models['linear'], test_df)

        assert list(result.columns) == ['price_Pred']
        assert result.index.equals(test_df.index)

    def test_custom_column_and_extras(self, models, test_df):
        result = predict_frame(
            models['linear'], test_df, pred_var='estimate', extra_vars=['price', 'sqft']
        )

        assert list(result.columns) == ['price', 'sqft', 'estimate']
        pd.testing.assert_series_equal(result['price'], test_df['price'])

    def test_missing_extra_column(self, models, test_df):
        with pytest.raises(KeyError, match="lot_size"):
            predict_frame(models['linear'], test_df, extra_vars=['lot_size'])

    def test_prediction_interval(self, models, test_df):
        result = predict_frame(models['linear'], test_df, interval='prediction', level=0.9)

        assert {'price_Pred', 'price_Pred_Lower', 'price_Pred_Upper',
                'price_Pred_StdErr'} <= set(result.columns)
        assert (result['price_Pred_Lower'] < result['price_Pred']).all()
        assert (result['price_Pred'] < result['price_Pred_Upper']).all()

    def test_invalid_interval(self, models, test_df):
        with pytest.raises(ValueError, match="interval must be"):
            predict_frame(models['linear'], test_df, interval='tolerance')

    def test_interval_for_trees(self, models, test_df):
        with pytest.raises(ValueError, match="only available"):
            predict_frame(models['boosted_trees'], test_df, interval='confidence')


class TestScoreModels:
    """Tests for score_models."""

    def test_columns(self, models, test_df):
        scored = score_models(models, test_df)

        assert list(scored.columns) == ['price', 'linear_Pred', 'boosted_trees_Pred']
        assert len(scored) == len(test_df)

    def test_prediction_columns(self, models, test_df):
        scored = score_models(models, test_df)

        assert prediction_columns(scored) == {
            'linear': 'linear_Pred',
            'boosted_trees': 'boosted_trees_Pred'
        }

    def test_empty(self, test_df):
        with pytest.raises(ValueError, match="No models"):
            score_models({}, test_df)

    def test_missing_target(self, models, test_df):
        with pytest.raises(KeyError, match="price"):
            score_models(models, test_df.drop(columns=['price']))

    def test_mixed_targets(self, models, test_df):
        other = HousingRegressionModel('linear', 'sqft ~ bedrooms').fit(make_housing())
        with pytest.raises(ValueError, match="different targets"):
            score_models({'linear': models['linear'], 'other': other}, test_df)


class TestExport:
    """Tests for exporting scored data."""

    def test_export(self, models, test_df, tmp_path):
        scored = score_models(models, test_df)
        paths = export_predictions(scored, str(tmp_path), name='scored')

        assert Path(paths['csv']).name == 'scored.csv'
        csv = pd.read_csv(paths['csv'], index_col='row_index')
        parquet = pd.read_parquet(paths['parquet'])

        assert list(csv.columns) == list(scored.columns)
        np.testing.assert_allclose(parquet['linear_Pred'], scored['linear_Pred'])

    def test_run_scoring(self, models, test_df, tmp_path):
        result = run_scoring(models, test_df, output_dir=str(tmp_path))

        assert result['target'] == 'price'
        assert set(result['paths']) == {'csv', 'parquet'}
        assert len(result['scored']) == len(test_df)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

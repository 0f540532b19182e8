"""
Test Suite for Evaluation Module
================================

Tests for model comparison metrics and report generation.
"""

import json

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from housing_regression.evaluation import (
    calculate_metrics, compare_models, evaluate_models, plot_prediction_lines
)


@pytest.fixture
def scored():
    """Scored test set with one good, one noisy and one constant model."""
    rng = np.random.default_rng(3)
    price = rng.uniform(100000, 900000, 120)
    return pd.DataFrame({
        'price': price,
        'linear_Pred': price + rng.normal(0, 10000, 120),
        'random_forest_Pred': price + rng.normal(0, 60000, 120),
        'logit_Pred': np.full(120, price.mean()),
    })


class TestCalculateMetrics:
    """Tests for calculate_metrics."""

    def test_perfect(self):
        y = np.array([1.0, 2.0, 3.0])
        metrics = calculate_metrics(y, y)

        assert metrics['rmse'] == 0.0
        assert metrics['mae'] == 0.0
        assert metrics['r2'] == 1.0
        assert metrics['n_samples'] == 3

    def test_known_values(self):
        metrics = calculate_metrics(np.array([10.0, 20.0]), np.array([12.0, 16.0]))

        assert metrics['rmse'] == pytest.approx(np.sqrt((4 + 16) / 2))
        assert metrics['mae'] == pytest.approx(3.0)
        assert metrics['mean_error'] == pytest.approx(1.0)
        assert metrics['max_error'] == pytest.approx(4.0)
        assert metrics['mape'] == pytest.approx((0.2 + 0.2) / 2 * 100)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="Shape mismatch"):
            calculate_metrics(np.zeros(3), np.zeros(4))

    def test_empty(self):
        with pytest.raises(ValueError, match="empty"):
            calculate_metrics(np.array([]), np.array([]))


class TestCompareModels:
    """Tests for compare_models."""

    def test_ranking(self, scored):
        metrics = compare_models(scored, 'price')

        assert metrics['ranking'] == ['linear', 'random_forest', 'logit']
        assert metrics['best_model'] == 'linear'
        assert metrics['per_model']['logit']['r2'] == pytest.approx(0.0, abs=1e-9)

    def test_no_prediction_columns(self, scored):
        with pytest.raises(ValueError, match="no prediction columns"):
            compare_models(scored[['price']], 'price')

    def test_missing_target(self, scored):
        with pytest.raises(KeyError):
            compare_models(scored, 'rent')


class TestEvaluateModels:
    """Tests for the full evaluation report."""

    def test_outputs(self, scored, tmp_path):
        result = evaluate_models(scored, 'price', output_dir=str(tmp_path))

        assert result['figures'] == [
            'eval_prediction_lines.png',
            'eval_actual_vs_predicted.png',
            'eval_residuals.png',
            'eval_error_summary.png',
        ]
        for name in result['figures']:
            assert (tmp_path / 'figures' / name).exists()

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert saved['best_model'] == 'linear'

    def test_prediction_lines_subsamples(self, scored):
        fig = plot_prediction_lines(scored, 'price', n_samples=30)
        lines = fig.axes[0].get_lines()

        # actual plus one line per model
        assert len(lines) == 4
        assert all(len(line.get_xdata()) == 30 for line in lines)

        actual = lines[0].get_ydata()
        assert np.all(np.diff(actual) >= 0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

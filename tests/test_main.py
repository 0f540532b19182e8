"""
Test Suite for the Pipeline Entry Point
=======================================

Runs main() end to end on a small housing CSV inside a temporary
directory.
"""

import logging

import pytest
import numpy as np
import pandas as pd
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main as pipeline


def make_housing(n_samples=160, seed=0):
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({
        'id': np.arange(n_samples),
        'sqft': rng.uniform(500, 4000, n_samples),
        'bedrooms': rng.integers(1, 6, n_samples),
        'age': rng.uniform(0, 80, n_samples),
    })
    df['price'] = 50000 + 120 * df['sqft'] + 8000 * df['bedrooms'] - 500 * df['age'] \
        + rng.normal(0, 15000, n_samples)
    return df


def make_config(target='price'):
    return {
        'data': {
            'columnar_path': 'data/columnar/housing.parquet',
            'split_path': 'data/split/',
            'predictions_path': 'data/predictions/',
            'target': target,
            'exclude_columns': ['id'],
        },
        'split': {'train_fraction': 0.7, 'seed': 42, 'split_var': 'splitVar'},
        'compute': {'n_jobs': 1},
        'models': {
            'linear': {'enabled': True},
            'logit': {'enabled': True},
            'fast_linear': {'enabled': True},
            'boosted_trees': {'enabled': True, 'n_estimators': 20},
            'random_forest': {'enabled': True, 'n_estimators': 20},
        },
        'output': {
            'figures_path': 'reports/figures/',
            'reports_path': 'reports/',
            'models_path': 'models/',
        },
        'logging': {'level': 'INFO'},
    }


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Temporary working directory holding the raw CSV."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / 'data' / 'raw').mkdir(parents=True)
    make_housing().to_csv(tmp_path / 'data' / 'raw' / 'housing.csv', index=False)
    return tmp_path


def run_main(monkeypatch, workspace, config, *args):
    config_path = workspace / 'config.yaml'
    config_path.write_text(yaml.safe_dump(config))
    monkeypatch.setattr(sys, 'argv', [
        'main.py', '--data', 'data/raw/housing.csv', '--config', str(config_path), *args
    ])
    return pipeline.main()


class TestMain:
    """Tests for the command line entry point."""

    def test_full_pipeline(self, workspace, monkeypatch):
        """Test that every phase runs and leaves its outputs behind."""
        assert run_main(monkeypatch, workspace, make_config()) == 0

        assert (workspace / 'data' / 'columnar' / 'housing.parquet').exists()
        assert (workspace / 'data' / 'split' / 'housing.splitVar.Train.parquet').exists()
        assert (workspace / 'data' / 'split' / 'housing.splitVar.Test.parquet').exists()
        for kind in ('linear', 'logit', 'fast_linear', 'boosted_trees', 'random_forest'):
            assert (workspace / 'models' / f'{kind}.joblib').exists()
        assert (workspace / 'data' / 'predictions' / 'test_predictions.csv').exists()
        assert (workspace / 'reports' / 'metrics' / 'evaluation_metrics.json').exists()
        assert (workspace / 'reports' / 'figures' / '01_correlation_matrix.png').exists()

    def test_split_phase_reads_columnar_store(self, workspace, monkeypatch, caplog):
        """Test that a single later phase imports to Parquet before splitting."""
        caplog.set_level(logging.INFO)

        assert run_main(monkeypatch, workspace, make_config(), '--phase', 'split') == 0

        assert (workspace / 'data' / 'columnar' / 'housing.parquet').exists()
        assert (workspace / 'data' / 'split' / 'housing.splitVar.Train.parquet').exists()
        assert not (workspace / 'models').exists()
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith('Imported') for m in messages)
        loaded = [m for m in messages if m.startswith('Loaded data from')]
        assert 'housing.parquet' in loaded[-1]

    def test_import_phase_only(self, workspace, monkeypatch):
        assert run_main(monkeypatch, workspace, make_config(), '--phase', 'import') == 0

        assert (workspace / 'data' / 'columnar' / 'housing.parquet').exists()
        assert not (workspace / 'data' / 'split').exists()

    def test_failure_returns_one_and_logs(self, workspace, monkeypatch, caplog):
        """Test that a failing phase is logged with its traceback and exits with 1."""
        config = make_config(target='rent')

        assert run_main(monkeypatch, workspace, config, '--phase', 'split') == 1

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert any('Pipeline failed' in r.getMessage() for r in errors)
        assert any(r.exc_info is not None for r in errors)

    def test_missing_data_file(self, workspace, monkeypatch):
        (workspace / 'data' / 'raw' / 'housing.csv').unlink()

        assert run_main(monkeypatch, workspace, make_config()) == 1

    def test_missing_config_file(self, workspace, monkeypatch):
        monkeypatch.setattr(sys, 'argv', [
            'main.py', '--data', 'data/raw/housing.csv', '--config', 'missing.yaml'
        ])

        assert pipeline.main() == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

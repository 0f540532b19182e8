"""
Test Suite for EDA Module
=========================
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from housing_regression.eda import target_correlations, generate_eda_report


@pytest.fixture
def housing():
    rng = np.random.default_rng(11)
    n = 200
    df = pd.DataFrame({
        'sqft': rng.uniform(500, 4000, n),
        'age': rng.uniform(0, 80, n),
        'noise': rng.normal(size=n),
    })
    df['price'] = 120 * df['sqft'] - 2000 * df['age'] + rng.normal(0, 20000, n)
    return df


class TestTargetCorrelations:
    def test_order_and_sign(self, housing):
        corr = target_correlations(housing, 'price')

        assert list(corr.index) == ['sqft', 'age', 'noise']
        assert corr['sqft'] > 0
        assert corr['age'] < 0
        assert 'price' not in corr.index

    def test_missing_target(self, housing):
        with pytest.raises(ValueError, match="not found"):
            target_correlations(housing, 'rent')


class TestGenerateEdaReport:
    def test_report(self, housing, tmp_path):
        report = generate_eda_report(housing, target='price', output_dir=str(tmp_path))

        assert len(report['figures']) == 4
        for name in report['figures']:
            assert (tmp_path / name).exists()
        assert set(report['statistics']) == {'sqft', 'age', 'noise', 'price'}
        assert report['target_correlations']['sqft'] > 0.8

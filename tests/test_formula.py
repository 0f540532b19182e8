"""
Test Suite for Formula Module
=============================

Tests for formula construction, parsing, column resolution and design
matrices.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from housing_regression.formula import (
    Formula, FormulaError, apply_design, build_formula, formula_from_columns,
    parse_formula, quote_name
)


@pytest.fixture
def frame():
    return pd.DataFrame({
        'price': [300000.0, 450000.0, 250000.0, 380000.0],
        'sqft': [1500.0, 2200.0, 1100.0, 1800.0],
        'bedrooms': [3, 4, 2, 3],
        'age': [10.0, 3.0, 40.0, 25.0],
        'zip': ['02139', '02140', '02139', '02141'],
        'id': [1, 2, 3, 4]
    })


class TestBuildFormula:
    """Tests for building formula strings."""

    def test_build(self):
        assert build_formula('price', ['sqft', 'bedrooms']) == 'price ~ sqft + bedrooms'

    def test_single_feature(self):
        assert build_formula('price', ['sqft']) == 'price ~ sqft'

    def test_no_features(self):
        with pytest.raises(FormulaError, match="at least one feature"):
            build_formula('price', [])

    def test_target_in_features(self):
        with pytest.raises(FormulaError, match="cannot also be a feature"):
            build_formula('price', ['sqft', 'price'])

    def test_duplicate_features(self):
        with pytest.raises(FormulaError, match="Duplicate"):
            build_formula('price', ['sqft', 'sqft'])

    def test_quotes_non_identifier_names(self):
        """Test that names with spaces or keywords are wrapped in Q()."""
        text = build_formula('price', ['living area', 'class', 'sqft'])
        assert text == "price ~ Q('living area') + Q('class') + sqft"

    def test_quote_name(self):
        assert quote_name('sqft') == 'sqft'
        assert quote_name("owner's age") == 'Q("owner\'s age")'
        with pytest.raises(FormulaError, match="Invalid variable name"):
            quote_name('  ')

    def test_from_columns(self):
        """Test that the target and excluded columns are skipped."""
        text = formula_from_columns(['id', 'price', 'sqft', 'bedrooms'], 'price', exclude=['id'])
        assert text == 'price ~ sqft + bedrooms'

    def test_from_columns_missing_target(self):
        with pytest.raises(FormulaError, match="not among the columns"):
            formula_from_columns(['sqft', 'bedrooms'], 'price')


class TestParseFormula:
    """Tests for parsing formula text."""

    def test_parse(self):
        formula = parse_formula('price ~ sqft + bedrooms')

        assert formula.target == 'price'
        assert formula.terms == ['sqft', 'bedrooms']
        assert formula.is_resolved

    def test_parse_without_spaces(self):
        assert parse_formula('price~sqft+bedrooms').terms == ['sqft', 'bedrooms']

    def test_round_trip_text(self):
        text = 'price ~ sqft + bedrooms'
        assert str(parse_formula(text)) == text

    @pytest.mark.parametrize('text', [
        'price ~ sqft + bedrooms:age',
        'price ~ sqft * age',
        'price ~ np.log(sqft)',
        'price ~ sqft + C(zip)',
        'price ~ 0 + sqft',
        'price ~ sqft - 1',
        'price ~ I(sqft ** 2) + sqft',
    ])
    def test_accepts_standard_terms(self, text):
        """Test that interactions, transforms and intercept terms parse."""
        assert parse_formula(text).target == 'price'

    def test_dot(self, frame):
        """Test that '.' expands to every other column."""
        formula = parse_formula('price ~ . - id - zip')

        assert not formula.is_resolved
        resolved = formula.resolve(frame.columns)
        assert resolved.terms == ['sqft', 'bedrooms', 'age']
        assert str(resolved) == 'price ~ sqft + bedrooms + age'

    def test_dot_with_interaction(self, frame):
        """Test that explicit terms next to '.' are kept and not repeated."""
        resolved = parse_formula('price ~ . + bedrooms:age - id - zip').resolve(frame.columns)
        assert str(resolved) == 'price ~ sqft + bedrooms + age + bedrooms:age'

    def test_dot_quotes_columns(self):
        resolved = parse_formula('price ~ .').resolve(['price', 'lot size', 'sqft'])
        assert str(resolved) == "price ~ Q('lot size') + sqft"

    def test_dot_everything_excluded(self):
        with pytest.raises(FormulaError, match="No columns left"):
            parse_formula('price ~ . - sqft').resolve(['price', 'sqft'])

    @pytest.mark.parametrize('text', [
        'price sqft',
        'price ~ sqft ~ age',
        ' ~ sqft',
        'price ~ ',
        'price ~ sqft bedrooms',
        'price ~ - .',
        'price ~ sqft - sqft',
        'price ~ (sqft',
        'np.log(price) ~ sqft',
        'price ~ sqft + price',
    ])
    def test_malformed(self, text):
        with pytest.raises(FormulaError):
            parse_formula(text)

    def test_formula_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_formula('nonsense')

    def test_wraps_patsy_error(self):
        """Test that the parser's own error is kept as the cause."""
        from patsy import PatsyError

        with pytest.raises(FormulaError) as excinfo:
            parse_formula('price ~ (sqft')
        assert isinstance(excinfo.value.__cause__, PatsyError)


class TestFormulaData:
    """Tests for building design matrices from data."""

    def test_validate_ok(self, frame):
        parse_formula('price ~ sqft + bedrooms').validate(frame)

    def test_validate_missing(self, frame):
        with pytest.raises(FormulaError, match="lot_size"):
            parse_formula('price ~ sqft + lot_size').validate(frame)

    def test_design(self, frame):
        X, y = parse_formula('price ~ sqft + bedrooms').design(frame)

        assert list(X.columns) == ['Intercept', 'sqft', 'bedrooms']
        assert y.name == 'price'
        assert len(X) == len(y) == 4

    def test_design_terms(self, frame):
        """Test interaction, log transform, categorical and no-intercept terms."""
        X, _ = parse_formula('price ~ 0 + np.log(sqft) + bedrooms:age + C(zip)').design(frame)

        assert 'Intercept' not in X.columns
        assert 'np.log(sqft)' in X.columns
        assert 'bedrooms:age' in X.columns
        assert sum(name.startswith('C(zip)') for name in X.columns) == 3
        np.testing.assert_allclose(X['np.log(sqft)'], np.log(frame['sqft']))
        np.testing.assert_allclose(X['bedrooms:age'], frame['bedrooms'] * frame['age'])

    def test_design_without_target(self, frame):
        X, y = parse_formula('price ~ sqft').design(frame.drop(columns=['price']),
                                                   require_target=False)

        assert y is None
        assert list(X.columns) == ['Intercept', 'sqft']

    def test_design_missing_value(self, frame):
        frame.loc[1, 'sqft'] = np.nan
        with pytest.raises(FormulaError):
            parse_formula('price ~ sqft').design(frame)

    def test_apply_design_keeps_training_levels(self, frame):
        """Test that new data gets the categorical columns seen in training."""
        X, _ = parse_formula('price ~ C(zip)').design(frame)
        new = frame.iloc[[0, 2]]

        X_new = apply_design(X.design_info, new)
        assert list(X_new.columns) == list(X.columns)
        assert list(X_new.index) == [0, 2]

    def test_apply_design_unseen_level(self, frame):
        X, _ = parse_formula('price ~ C(zip)').design(frame)
        with pytest.raises(FormulaError):
            apply_design(X.design_info, frame.assign(zip='99999'))

    def test_equality(self):
        assert parse_formula('price~sqft') == Formula('price ~ sqft')


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

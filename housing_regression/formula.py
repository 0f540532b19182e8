"""
Formula Module
==============

Builds model formulas of the form ``target ~ f1 + f2 + ...`` and turns them
into design matrices with patsy.

Formulas are kept as plain strings so they can be logged, stored in the
config file and attached to saved models. The right-hand side accepts the
full patsy term language (``a:b`` interactions, ``C(zip)``, ``np.log(sqft)``,
``0 +`` to drop the intercept, ``- name``) plus one addition:

    - ``.``  every column other than the target and any ``- name`` terms

Column names that are not Python identifiers are quoted as ``Q('lot size')``
when formulas are built from column lists.

Functions:
    - quote_name: Quote a column name for use in a formula
    - build_formula: Join a target and feature names into a formula string
    - formula_from_columns: Build a formula from all available columns
    - parse_formula: Parse formula text into a Formula object
    - apply_design: Rebuild a stored design on new data
"""

import keyword
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np  # noqa: F401  formula terms such as np.log(sqft) resolve here
import pandas as pd
from patsy import (
    DesignInfo, ModelDesc, PatsyError, build_design_matrices, dmatrices, dmatrix
)

logger = logging.getLogger(__name__)


class FormulaError(ValueError):
    """Raised for malformed formulas or formulas that don't match the data."""


def quote_name(name: str) -> str:
    """
    Quote a column name so patsy reads it as a single variable.

    Args:
        name: Column name

    Returns:
        ``name`` itself when it is a plain identifier, else ``Q('name')``
    """
    if not isinstance(name, str) or not name.strip():
        raise FormulaError(f"Invalid variable name in formula: {name!r}")
    if name.isidentifier() and not keyword.iskeyword(name):
        return name
    if "'" in name and '"' in name:
        raise FormulaError(f"Cannot quote variable name with both quote characters: {name!r}")
    quote = '"' if "'" in name else "'"
    return f"Q({quote}{name}{quote})"


def _split_terms(rhs: str) -> List[Tuple[str, str]]:
    """Split a right-hand side at unnested '+' and '-' into (sign, term) pairs."""
    terms = []
    depth, sign, start = 0, '+', 0
    for i, char in enumerate(rhs):
        if char in '([{':
            depth += 1
        elif char in ')]}':
            depth -= 1
        elif char in '+-' and depth == 0:
            text = rhs[start:i].strip()
            if text:
                terms.append((sign, text))
            sign, start = char, i + 1
    text = rhs[start:].strip()
    if text:
        terms.append((sign, text))
    return terms


def _join_terms(terms: Sequence[Tuple[str, str]]) -> str:
    parts = []
    for i, (sign, text) in enumerate(terms):
        if i == 0:
            parts.append(text if sign == '+' else f"- {text}")
        else:
            parts.append(f"{sign} {text}")
    return ' '.join(parts)


class Formula:
    """
    A parsed ``target ~ terms`` formula.

    The target must be a plain column name; predictions are compared
    against that column. When the right-hand side contains ``.``, the
    formula has to be resolved against a column list before it can build
    a design matrix.
    """

    def __init__(self, text: str):
        if not isinstance(text, str) or text.count('~') != 1:
            raise FormulaError(f"Formula must contain exactly one '~': {text!r}")

        lhs, rhs = (part.strip() for part in text.split('~'))
        if not lhs:
            raise FormulaError(f"Formula has no target: {text!r}")
        if not lhs.isidentifier() or keyword.iskeyword(lhs):
            raise FormulaError(f"Target must be a plain column name, got {lhs!r}")
        if not rhs:
            raise FormulaError(f"Formula has no terms: {text!r}")

        terms = _split_terms(rhs)
        if ('-', '.') in terms:
            raise FormulaError(f"Cannot exclude '.' in {text!r}")

        self.target = lhs
        self.rhs = _join_terms(terms)
        self.use_all = ('+', '.') in terms
        self._check_terms(terms)

    def _check_terms(self, terms: Sequence[Tuple[str, str]]) -> None:
        # '.' stands in for columns that aren't known yet
        placeholder = [(sign, '1' if text == '.' else text) for sign, text in terms]
        try:
            desc = ModelDesc.from_formula(f"{self.target} ~ {_join_terms(placeholder)}")
        except PatsyError as e:
            raise FormulaError(f"Malformed formula '{self}': {e}") from e

        for term in desc.rhs_termlist:
            for factor in term.factors:
                code = factor.code
                try:
                    compile(code, '<formula>', 'eval')
                except SyntaxError as e:
                    raise FormulaError(f"Malformed term {code!r} in '{self}'") from e
                if code == self.target:
                    raise FormulaError(f"Target '{self.target}' cannot also be a feature")

        if not self.use_all and not any(term.factors for term in desc.rhs_termlist):
            raise FormulaError(f"Formula needs at least one feature term: '{self}'")

    @property
    def is_resolved(self) -> bool:
        return not self.use_all

    @property
    def terms(self) -> List[str]:
        """Right-hand-side terms added with '+', in order."""
        return [text for sign, text in _split_terms(self.rhs) if sign == '+']

    def resolve(self, columns: Iterable[str]) -> 'Formula':
        """
        Expand ``.`` against the given column names.

        Plain ``- name`` terms are consumed by the expansion. Columns that
        already appear as explicit terms are not repeated.

        Args:
            columns: Available column names, in order

        Returns:
            A new Formula without ``.`` (self if already explicit)
        """
        if not self.use_all:
            return self

        terms = _split_terms(self.rhs)
        names = [quote_name(c) for c in columns if c != self.target]
        mentioned = {text for _, text in terms}
        expanded = [name for name in names if name not in mentioned]

        resolved = []
        for sign, text in terms:
            if text == '.':
                resolved.extend(('+', name) for name in expanded)
            elif sign == '-' and text in names:
                continue
            else:
                resolved.append((sign, text))

        if not any(sign == '+' and text not in ('0', '1') for sign, text in resolved):
            raise FormulaError(f"No columns left for '{self}' after exclusions")
        return Formula(f"{self.target} ~ {_join_terms(resolved)}")

    def design(
        self,
        df: pd.DataFrame,
        require_target: bool = True
    ) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
        """
        Build the design matrix and response from ``df``.

        The design matrix carries an ``Intercept`` column unless the
        formula removes it, and its ``design_info`` attribute can rebuild
        the same columns on new data with apply_design().

        Args:
            df: Data containing the formula's columns
            require_target: If False, only the right-hand side is built
                and y is None

        Returns:
            Tuple of (X, y)

        Raises:
            FormulaError: If a variable is missing, a value is missing or a
                term cannot be evaluated
        """
        formula = self.resolve(df.columns)
        try:
            if require_target:
                y, X = dmatrices(str(formula), df, NA_action='raise', return_type='dataframe')
                return X, y.iloc[:, 0].rename(formula.target)
            X = dmatrix(formula.rhs, df, NA_action='raise', return_type='dataframe')
            return X, None
        except PatsyError as e:
            raise FormulaError(f"Cannot build design matrix for '{formula}': {e}") from e

    def validate(self, df: pd.DataFrame, require_target: bool = True) -> None:
        """
        Check that the formula can be evaluated on ``df``.

        Raises:
            FormulaError: Naming the term that failed
        """
        self.design(df, require_target=require_target)

    def __str__(self) -> str:
        return f"{self.target} ~ {self.rhs}"

    def __repr__(self) -> str:
        return f"Formula('{self}')"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Formula):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))


def apply_design(design_info: DesignInfo, df: pd.DataFrame) -> pd.DataFrame:
    """
    Build the columns described by a fitted design on new data.

    Categorical levels and other learned transforms come from the data
    the design was built on, so scoring data gets the training columns.

    Args:
        design_info: ``X.design_info`` from Formula.design()
        df: New data

    Returns:
        Design matrix as a DataFrame indexed like ``df``
    """
    try:
        (X,) = build_design_matrices([design_info], df, NA_action='raise',
                                     return_type='dataframe')
    except PatsyError as e:
        raise FormulaError(f"Cannot build design matrix: {e}") from e
    X.index = df.index
    return X


def build_formula(target: str, features: Sequence[str]) -> str:
    """
    Join a target and feature names into a formula string.

    Args:
        target: Response column name
        features: Predictor column names

    Returns:
        Formula text, e.g. ``"price ~ sqft + bedrooms"``
    """
    features = list(features)
    if not features:
        raise FormulaError("Formula needs at least one feature term")
    if len(set(features)) != len(features):
        duplicates = sorted({f for f in features if features.count(f) > 1})
        raise FormulaError(f"Duplicate terms in formula: {duplicates}")
    if target in features:
        raise FormulaError(f"Target '{target}' cannot also be a feature")

    text = f"{target} ~ {' + '.join(quote_name(f) for f in features)}"
    return str(Formula(text))


def formula_from_columns(
    columns: Iterable[str],
    target: str,
    exclude: Iterable[str] = ()
) -> str:
    """
    Build a formula using every column except the target and ``exclude``.

    Args:
        columns: All available column names
        target: Response column name
        exclude: Columns that must not be used as predictors

    Returns:
        Formula text
    """
    columns = list(columns)
    if target not in columns:
        raise FormulaError(f"Target '{target}' is not among the columns: {columns}")

    skip = set(exclude) | {target}
    features = [c for c in columns if c not in skip]
    formula = build_formula(target, features)
    logger.info(f"Built formula: {formula}")
    return formula


def parse_formula(text: str) -> Formula:
    """
    Parse ``"target ~ a + b:c + C(zip) - d"`` style text.

    Args:
        text: Formula text

    Returns:
        Formula object

    Raises:
        FormulaError: If the text is malformed
    """
    return Formula(text)

"""
Model Training Module
=====================

Fits the five regression learners used to predict house prices and
dispatches their training in parallel.

Learners:
    - linear:         Ordinary least squares (statsmodels OLS)
    - logit:          Fractional logistic regression on the target rescaled
                      to [0, 1] (statsmodels GLM, binomial family)
    - fast_linear:    L2-regularized linear regression solved by dual
                      coordinate descent (scikit-learn LinearSVR, squared loss)
    - boosted_trees:  Gradient boosted regression trees
    - random_forest:  Random forest of regression trees

Features:
    - Formula-driven feature selection
    - Hyperparameter configuration via config file
    - Parallel training of several learners with joblib
    - Model persistence (save/load)
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Union
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from joblib import Parallel, delayed
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import PatsyError
from sklearn.compose import TransformedTargetRegressor
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.metrics import r2_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import LinearSVR

from .formula import Formula, FormulaError, apply_design, parse_formula

logger = logging.getLogger(__name__)

MODEL_KINDS = ('linear', 'logit', 'fast_linear', 'boosted_trees', 'random_forest')

MODEL_DESCRIPTIONS = {
    'linear': 'OLS linear regression',
    'logit': 'Fractional logistic regression (GLM binomial)',
    'fast_linear': 'L2 linear regression, dual coordinate descent',
    'boosted_trees': 'Gradient boosted trees',
    'random_forest': 'Random forest',
}

DEFAULT_PARAMS = {
    'linear': {},
    'logit': {'max_iter': 100},
    'fast_linear': {
        'l2_weight': 1.0,
        'max_iter': 5000,
        'tol': 1e-4,
        'random_state': 42
    },
    'boosted_trees': {
        'n_estimators': 200,
        'learning_rate': 0.1,
        'max_depth': 3,
        'min_samples_leaf': 5,
        'subsample': 1.0,
        'random_state': 42
    },
    'random_forest': {
        'n_estimators': 200,
        'max_depth': None,
        'min_samples_leaf': 1,
        'max_features': 1.0,
        'random_state': 42
    },
}


class HousingRegressionModel:
    """
    One regression learner bound to a formula.

    fit() and predict() take whole DataFrames; the formula decides which
    columns are the response and which are predictors. The statsmodels
    kinds are fitted through the formula API. The scikit-learn kinds get
    their matrices from the patsy design of the training data.
    """

    def __init__(self, kind: str, formula: Union[str, Formula], **params):
        """
        Initialize the model.

        Args:
            kind: One of MODEL_KINDS
            formula: Formula text or Formula object
            **params: Hyperparameters overriding DEFAULT_PARAMS[kind]
        """
        if kind not in MODEL_KINDS:
            raise ValueError(f"Unknown model kind: {kind}. Choose from: {', '.join(MODEL_KINDS)}")

        unknown = set(params) - set(DEFAULT_PARAMS[kind])
        if unknown:
            raise ValueError(f"Unknown parameters for '{kind}': {sorted(unknown)}")

        self.kind = kind
        self.formula = parse_formula(formula) if isinstance(formula, str) else formula
        self.params: Dict[str, Any] = {**DEFAULT_PARAMS[kind], **params}

        self.estimator: Any = None
        self.target_range: Optional[tuple] = None
        self.feature_names: List[str] = []
        self.training_info: Dict[str, Any] = {}
        self._train_frame: Optional[pd.DataFrame] = None
        self._design_info = None
        self._is_fitted = False

    def __getstate__(self):
        # patsy design objects can't be pickled; rebuilt from _train_frame
        state = self.__dict__.copy()
        state['_design_info'] = None
        return state

    @property
    def target(self) -> str:
        return self.formula.target

    @property
    def features(self) -> List[str]:
        """Design column names, without the intercept (empty before fit)."""
        return list(self.feature_names)

    @property
    def design_info(self):
        if self._design_info is None and self._train_frame is not None:
            X, _ = self.formula.design(self._train_frame, require_target=False)
            self._design_info = X.design_info
        return self._design_info

    def _create_estimator(self) -> Any:
        """Create the scikit-learn estimator for tree and SDCA-style kinds."""
        p = self.params

        if self.kind == 'fast_linear':
            svr = LinearSVR(
                epsilon=0.0,
                C=1.0 / p['l2_weight'],
                loss='squared_epsilon_insensitive',
                dual=True,
                max_iter=p['max_iter'],
                tol=p['tol'],
                random_state=p['random_state']
            )
            # the solver regularizes the intercept too, so the target is
            # standardized alongside the features
            return TransformedTargetRegressor(
                regressor=Pipeline([('scale', StandardScaler()), ('svr', svr)]),
                transformer=StandardScaler()
            )

        if self.kind == 'boosted_trees':
            return GradientBoostingRegressor(
                loss='squared_error',
                n_estimators=p['n_estimators'],
                learning_rate=p['learning_rate'],
                max_depth=p['max_depth'],
                min_samples_leaf=p['min_samples_leaf'],
                subsample=p['subsample'],
                random_state=p['random_state']
            )

        return RandomForestRegressor(
            n_estimators=p['n_estimators'],
            max_depth=p['max_depth'],
            min_samples_leaf=p['min_samples_leaf'],
            max_features=p['max_features'],
            random_state=p['random_state'],
            n_jobs=1
        )

    def _scaled_formula(self) -> str:
        """Formula whose response is the target min-max scaled to [0, 1]."""
        y_min, y_max = self.target_range
        response = f"I(({self.target} - ({y_min!r})) / {y_max - y_min!r})"
        return f"{response} ~ {self.formula.rhs}"

    def _sklearn_matrix(self, df: pd.DataFrame) -> np.ndarray:
        X = apply_design(self.design_info, df)
        return X[self.feature_names].to_numpy(dtype=float)

    def fit(self, df: pd.DataFrame) -> 'HousingRegressionModel':
        """
        Train the model on the formula's columns of ``df``.

        Args:
            df: Training data containing target and feature columns

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        self.formula = self.formula.resolve(df.columns)
        X, y = self.formula.design(df)
        self.feature_names = [c for c in X.columns if c != 'Intercept']

        if not self.feature_names:
            raise FormulaError(f"Formula '{self.formula}' has no predictor columns")
        if len(X) <= X.shape[1]:
            raise ValueError(
                f"Need more training rows ({len(X)}) than design columns ({X.shape[1]})"
            )

        logger.info(f"Training {self.kind} on {len(X)} rows: {self.formula}")

        try:
            if self.kind == 'linear':
                self.estimator = smf.ols(str(self.formula), data=df, missing='raise').fit()

            elif self.kind == 'logit':
                y_min, y_max = float(y.min()), float(y.max())
                if y_max == y_min:
                    raise ValueError(f"Target '{self.target}' is constant; cannot rescale to [0, 1]")
                self.target_range = (y_min, y_max)
                glm = smf.glm(self._scaled_formula(), data=df,
                              family=sm.families.Binomial(), missing='raise')
                self.estimator = glm.fit(maxiter=self.params['max_iter'])

            else:
                self._train_frame = df
                self._design_info = X.design_info
                self.estimator = self._create_estimator()
                self.estimator.fit(X[self.feature_names].to_numpy(dtype=float),
                                   y.to_numpy(dtype=float))
        except PatsyError as e:
            raise FormulaError(f"Cannot fit '{self.formula}': {e}") from e

        self._is_fitted = True

        end_time = datetime.now()
        duration = (end_time - start_time).total_seconds()
        train_pred = self.predict(df)

        self.training_info = {
            'training_duration_seconds': duration,
            'n_samples': int(len(X)),
            'n_features': len(self.feature_names),
            'trained_at': end_time.isoformat(),
            'train_r2': float(r2_score(y, train_pred)),
            'hyperparameters': dict(self.params)
        }

        logger.info(
            f"{self.kind} trained in {duration:.2f}s "
            f"(train R²={self.training_info['train_r2']:.4f})"
        )
        return self

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        """
        Predict the target for every row of ``df``.

        Args:
            df: Data containing the feature columns (target optional)

        Returns:
            1-D array of predictions in the target's original units
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        if self.kind not in ('linear', 'logit'):
            return self.estimator.predict(self._sklearn_matrix(df))

        try:
            predictions = np.asarray(self.estimator.predict(df))
        except PatsyError as e:
            raise FormulaError(f"Cannot score '{self.formula}': {e}") from e

        if self.kind == 'logit':
            y_min, y_max = self.target_range
            predictions = y_min + predictions * (y_max - y_min)
        return predictions

    def predict_interval(
        self,
        df: pd.DataFrame,
        interval: str = 'confidence',
        level: float = 0.95
    ) -> pd.DataFrame:
        """
        Point predictions with confidence or prediction intervals.

        Only available for the ``linear`` kind.

        Args:
            df: Data containing the feature columns
            interval: 'confidence' (mean response) or 'prediction' (new observation)
            level: Coverage of the interval

        Returns:
            DataFrame with columns fit, lower, upper, std_error
        """
        if self.kind != 'linear':
            raise ValueError(f"Intervals are only available for the linear model, not '{self.kind}'")
        if interval not in ('confidence', 'prediction'):
            raise ValueError(f"interval must be 'confidence' or 'prediction' (got {interval!r})")
        if not 0.0 < level < 1.0:
            raise ValueError(f"level must be between 0 and 1 (got {level})")
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        try:
            frame = self.estimator.get_prediction(df).summary_frame(alpha=1 - level)
        except PatsyError as e:
            raise FormulaError(f"Cannot score '{self.formula}': {e}") from e

        prefix = 'mean_ci' if interval == 'confidence' else 'obs_ci'
        result = pd.DataFrame({
            'fit': frame['mean'].to_numpy(),
            'lower': frame[f'{prefix}_lower'].to_numpy(),
            'upper': frame[f'{prefix}_upper'].to_numpy(),
            'std_error': frame['mean_se'].to_numpy()
        }, index=df.index)
        return result

    def summary(self) -> Dict[str, Any]:
        """
        Describe the fitted model.

        Returns:
            Dictionary with kind, formula, training info and either
            coefficients (linear kinds) or feature importances (tree kinds)
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        info = {
            'kind': self.kind,
            'description': MODEL_DESCRIPTIONS[self.kind],
            'formula': str(self.formula),
            **self.training_info
        }

        if self.kind in ('linear', 'logit'):
            info['coefficients'] = {k: float(v) for k, v in self.estimator.params.items()}
            info['p_values'] = {k: float(v) for k, v in self.estimator.pvalues.items()}
            if self.kind == 'linear':
                info['r_squared'] = float(self.estimator.rsquared)
                info['adj_r_squared'] = float(self.estimator.rsquared_adj)
            else:
                info['target_range'] = list(self.target_range)

        elif self.kind == 'fast_linear':
            svr = self.estimator.regressor_.named_steps['svr']
            # coefficients of the standardized problem
            info['coefficients'] = dict(zip(self.features, map(float, svr.coef_)))

        else:
            info['feature_importances'] = dict(
                zip(self.features, map(float, self.estimator.feature_importances_))
            )

        return info

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'kind': self.kind,
            'formula': str(self.formula),
            'params': self.params,
            'estimator': self.estimator,
            'target_range': self.target_range,
            'feature_names': self.feature_names,
            'train_frame': self._train_frame,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'HousingRegressionModel':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded HousingRegressionModel instance
        """
        state = joblib.load(filepath)

        model = cls(state['kind'], state['formula'], **state['params'])
        model.estimator = state['estimator']
        model.target_range = state['target_range']
        model.feature_names = state['feature_names']
        model._train_frame = state['train_frame']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def build_model(
    kind: str,
    formula: Union[str, Formula],
    config: Optional[Dict[str, Any]] = None
) -> HousingRegressionModel:
    """
    Create an unfitted model with hyperparameters from ``config['models'][kind]``.

    Args:
        kind: One of MODEL_KINDS
        formula: Formula text or Formula object
        config: Configuration dictionary (optional)

    Returns:
        HousingRegressionModel
    """
    model_config = dict((config or {}).get('models', {}).get(kind) or {})
    model_config.pop('enabled', None)
    return HousingRegressionModel(kind, formula, **model_config)


def enabled_kinds(config: Dict[str, Any]) -> List[str]:
    """Model kinds switched on in the config, in MODEL_KINDS order."""
    models_config = config.get('models')
    if not models_config:
        return list(MODEL_KINDS)

    return [
        kind for kind in MODEL_KINDS
        if kind in models_config and (models_config[kind] or {}).get('enabled', True)
    ]


def _fit_one(model: HousingRegressionModel, train_df: pd.DataFrame) -> HousingRegressionModel:
    return model.fit(train_df)


def train_models(
    train_df: pd.DataFrame,
    formula: Union[str, Formula],
    config: Optional[Dict[str, Any]] = None,
    kinds: Optional[Sequence[str]] = None,
    n_jobs: Optional[int] = None,
    save_dir: Optional[str] = None
) -> Dict[str, HousingRegressionModel]:
    """
    Fit several learners on the same training data.

    With ``n_jobs`` other than 1 the fits run in parallel worker processes.

    Args:
        train_df: Training data
        formula: Formula shared by every learner
        config: Configuration dictionary (models and compute sections)
        kinds: Learners to fit (default: every enabled learner)
        n_jobs: Parallel workers (default: config compute.n_jobs, else 1)
        save_dir: Directory to save each model as <kind>.joblib (optional)

    Returns:
        Dictionary mapping kind to fitted model, in the requested order
    """
    config = config or {}
    compute_config = config.get('compute', {})

    if kinds is None:
        kinds = enabled_kinds(config)
    kinds = list(kinds)
    if not kinds:
        raise ValueError("No models selected for training")
    if len(set(kinds)) != len(kinds):
        raise ValueError(f"Duplicate model kinds requested: {kinds}")

    if n_jobs is None:
        n_jobs = compute_config.get('n_jobs', 1)
    backend = compute_config.get('backend', 'loky')

    # fail fast on bad names or hyperparameters before any worker starts
    models = [build_model(kind, formula, config) for kind in kinds]

    logger.info("=" * 60)
    logger.info("STARTING MODEL TRAINING")
    logger.info("=" * 60)
    logger.info(f"Training data shape: {train_df.shape}")
    logger.info(f"Models: {', '.join(kinds)}")
    logger.info(f"Parallel jobs: {n_jobs} (backend: {backend})")

    start_time = datetime.now()

    if n_jobs == 1 or len(models) == 1:
        fitted = [_fit_one(model, train_df) for model in models]
    else:
        fitted = Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(_fit_one)(model, train_df) for model in models
        )

    results = {model.kind: model for model in fitted}

    if save_dir:
        for kind, model in results.items():
            model.save(str(Path(save_dir) / f"{kind}.joblib"))

    duration = (datetime.now() - start_time).total_seconds()
    logger.info("=" * 60)
    logger.info(f"MODEL TRAINING COMPLETE in {duration:.2f} seconds")
    logger.info("=" * 60)

    return results


def print_model_summary(model: HousingRegressionModel) -> None:
    """
    Print a summary of a trained model.

    Args:
        model: Trained model instance
    """
    info = model.summary()

    print("\n" + "=" * 50)
    print(f"MODEL SUMMARY: {model.kind}")
    print("=" * 50)
    print(f"Model Type: {info['description']}")
    print(f"Formula: {info['formula']}")
    print(f"Training rows: {info['n_samples']}")
    print(f"Duration: {info['training_duration_seconds']:.2f}s")
    print(f"Training R²: {info['train_r2']:.4f}")

    if 'coefficients' in info:
        print("\nCoefficients:")
        for name, value in info['coefficients'].items():
            p_value = info.get('p_values', {}).get(name)
            suffix = f"  (p={p_value:.4g})" if p_value is not None else ""
            print(f"  - {name}: {value:.6g}{suffix}")

    if 'feature_importances' in info:
        print("\nFeature importances:")
        ranked = sorted(info['feature_importances'].items(), key=lambda x: x[1], reverse=True)
        for name, value in ranked:
            print(f"  - {name}: {value:.4f}")

    print("=" * 50 + "\n")

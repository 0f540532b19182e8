"""
Prediction Module
=================

Scores fitted models against new data.

Features:
    - Append a ``<target>_Pred`` column to any DataFrame
    - Confidence and prediction intervals for the linear model
    - Score several models side by side on the held-out set
    - Export scored data to CSV and Parquet
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Sequence
from datetime import datetime

import numpy as np
import pandas as pd

from .model import HousingRegressionModel

logger = logging.getLogger(__name__)

PRED_SUFFIX = '_Pred'


def prediction_column(name: str) -> str:
    """Column name used for predictions of ``name``."""
    return f"{name}{PRED_SUFFIX}"


def predict_frame(
    model: HousingRegressionModel,
    df: pd.DataFrame,
    pred_var: Optional[str] = None,
    extra_vars: Sequence[str] = (),
    interval: Optional[str] = None,
    level: float = 0.95
) -> pd.DataFrame:
    """
    Predict every row of ``df`` and return the predictions as a DataFrame.

    Args:
        model: Fitted model
        df: Data with the model's feature columns
        pred_var: Prediction column name (default: ``<target>_Pred``)
        extra_vars: Input columns copied into the output (e.g. the actual target)
        interval: None, 'confidence' or 'prediction' (linear model only)
        level: Interval coverage

    Returns:
        DataFrame indexed like ``df`` with the extra columns followed by the
        prediction column (and ``_Lower``/``_Upper`` when an interval is requested)
    """
    pred_var = pred_var or prediction_column(model.target)

    missing = [col for col in extra_vars if col not in df.columns]
    if missing:
        raise KeyError(f"Extra columns not found in data: {missing}")

    result = df[list(extra_vars)].copy()

    if interval is None:
        result[pred_var] = model.predict(df)
    else:
        bounds = model.predict_interval(df, interval=interval, level=level)
        result[pred_var] = bounds['fit']
        result[f"{pred_var}_Lower"] = bounds['lower']
        result[f"{pred_var}_Upper"] = bounds['upper']
        result[f"{pred_var}_StdErr"] = bounds['std_error']

    logger.info(f"Scored {len(result)} rows with {model.kind} into '{pred_var}'")
    return result


def score_models(
    models: Dict[str, HousingRegressionModel],
    test_df: pd.DataFrame,
    id_vars: Sequence[str] = ()
) -> pd.DataFrame:
    """
    Score several models on the same data.

    Args:
        models: Mapping of kind to fitted model (all sharing one target)
        test_df: Held-out data containing the target column
        id_vars: Extra identifying columns to keep

    Returns:
        DataFrame with the id columns, the actual target and one
        ``<kind>_Pred`` column per model
    """
    if not models:
        raise ValueError("No models to score")

    targets = {model.target for model in models.values()}
    if len(targets) != 1:
        raise ValueError(f"Models predict different targets: {sorted(targets)}")
    target = targets.pop()

    if target not in test_df.columns:
        raise KeyError(f"Target column '{target}' not found in test data")

    scored = test_df[list(id_vars) + [target]].copy()
    for kind, model in models.items():
        scored[prediction_column(kind)] = model.predict(test_df)

    logger.info(f"Scored {len(models)} models on {len(scored)} rows")
    return scored


def prediction_columns(scored: pd.DataFrame) -> Dict[str, str]:
    """Map model kind to its prediction column in a scored DataFrame."""
    return {
        col[:-len(PRED_SUFFIX)]: col
        for col in scored.columns
        if col.endswith(PRED_SUFFIX)
    }


def export_predictions(
    scored: pd.DataFrame,
    output_dir: str,
    name: str = "test_predictions",
    include_timestamp: bool = False
) -> Dict[str, str]:
    """
    Export scored data to CSV and Parquet.

    Args:
        scored: Output of score_models or predict_frame
        output_dir: Directory to save the files
        name: File name stem
        include_timestamp: Whether to add a timestamp to the file names

    Returns:
        Dictionary with 'csv' and 'parquet' paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        name = f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    csv_path = output_dir / f"{name}.csv"
    parquet_path = output_dir / f"{name}.parquet"

    scored.to_csv(csv_path, index_label='row_index')
    scored.to_parquet(parquet_path, engine='pyarrow')

    logger.info(f"Predictions exported to {csv_path} and {parquet_path}")
    return {'csv': str(csv_path), 'parquet': str(parquet_path)}


def run_scoring(
    models: Dict[str, HousingRegressionModel],
    test_df: pd.DataFrame,
    output_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Score every model on the test set and optionally export the result.

    Args:
        models: Mapping of kind to fitted model
        test_df: Held-out data
        output_dir: Directory for exported predictions (optional)

    Returns:
        Dictionary containing the scored DataFrame, target and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING SCORING")
    logger.info("=" * 60)

    scored = score_models(models, test_df)
    target = next(iter(models.values())).target

    paths = {}
    if output_dir:
        paths = export_predictions(scored, output_dir)

    logger.info("=" * 60)
    logger.info("SCORING COMPLETE")
    logger.info(f"  Rows scored: {len(scored)}")
    logger.info(f"  Models: {', '.join(models)}")
    logger.info("=" * 60)

    return {
        'scored': scored,
        'target': target,
        'paths': paths
    }


def print_prediction_results(scored: pd.DataFrame, n: int = 10) -> None:
    """
    Print the first ``n`` scored rows.

    Args:
        scored: Output of score_models
        n: Number of rows to show
    """
    columns = prediction_columns(scored)
    actual = [col for col in scored.columns if col not in columns.values()]

    print("\n" + "=" * 70)
    print(f"TEST SET PREDICTIONS (first {min(n, len(scored))} of {len(scored)} rows)")
    print("=" * 70)
    print(scored[actual + list(columns.values())].head(n).round(2).to_string())
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    rng = np.random.default_rng(0)
    sample = pd.DataFrame({'sqft': rng.uniform(500, 4000, 200), 'rooms': rng.integers(1, 8, 200)})
    sample['price'] = 150 * sample['sqft'] + 10000 * sample['rooms'] + rng.normal(0, 20000, 200)

    model = HousingRegressionModel('linear', 'price ~ sqft + rooms').fit(sample)
    print(predict_frame(model, sample, extra_vars=['price'], interval='prediction').head())

"""
Data Loader Module
==================

Handles CSV ingestion, conversion to the on-disk columnar store (Parquet),
validation, and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load CSV or Parquet data with validation
    - import_to_columnar: Convert a CSV file or DataFrame to Parquet
    - get_columnar_info: Read row/column metadata from a Parquet file
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union

import pandas as pd
import numpy as np
import pyarrow.parquet as pq
import yaml

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = ('.csv', '.parquet')


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    expected_columns: Optional[int] = None,
    index_col: Optional[int] = None
) -> pd.DataFrame:
    """
    Load a CSV or Parquet file into a DataFrame.

    Args:
        file_path: Path to a .csv or .parquet file
        expected_columns: Expected number of columns (optional validation)
        index_col: Column to use as index (CSV only, optional)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the suffix is unsupported or the column count is wrong
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == '.csv':
        df = pd.read_csv(file_path, index_col=index_col)
    elif suffix == '.parquet':
        df = pd.read_parquet(file_path)
    else:
        raise ValueError(
            f"Unsupported data file type '{suffix}'. Expected one of {SUPPORTED_SUFFIXES}"
        )
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def import_to_columnar(
    source: Union[str, pd.DataFrame],
    dest: str,
    overwrite: bool = False,
    column_types: Optional[Dict[str, str]] = None,
    row_group_size: Optional[int] = None
) -> str:
    """
    Convert a CSV file (or an in-memory DataFrame) into a Parquet file.

    Args:
        source: Path to a CSV file, or a DataFrame
        dest: Destination .parquet path
        overwrite: Replace ``dest`` if it already exists
        column_types: Optional mapping of column name to pandas dtype
        row_group_size: Rows per Parquet row group (pyarrow default if None)

    Returns:
        Path to the written Parquet file

    Raises:
        FileExistsError: If ``dest`` exists and ``overwrite`` is False
        KeyError: If ``column_types`` names a column that isn't present
    """
    dest = Path(dest)

    if dest.exists() and not overwrite:
        raise FileExistsError(
            f"Columnar file already exists: {dest}. Pass overwrite=True to replace it."
        )

    if isinstance(source, pd.DataFrame):
        df = source.copy()
        source_name = "<DataFrame>"
    else:
        df = load_data(source)
        source_name = str(source)

    if column_types:
        missing = [col for col in column_types if col not in df.columns]
        if missing:
            raise KeyError(f"Cannot cast unknown columns: {missing}")
        df = df.astype(column_types)

    dest.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(dest, engine='pyarrow', index=False, row_group_size=row_group_size)

    logger.info(f"Imported {source_name} to {dest}: {len(df)} rows × {df.shape[1]} columns")
    return str(dest)


def get_columnar_info(file_path: str) -> Dict[str, Any]:
    """
    Read shape and schema of a Parquet file from its metadata only.

    Args:
        file_path: Path to the Parquet file

    Returns:
        Dictionary with n_rows, n_columns, n_row_groups, columns and types
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Columnar file not found: {file_path}")

    parquet_file = pq.ParquetFile(file_path)
    metadata = parquet_file.metadata
    schema = parquet_file.schema_arrow

    return {
        "path": str(file_path),
        "n_rows": int(metadata.num_rows),
        "n_columns": int(metadata.num_columns),
        "n_row_groups": int(metadata.num_row_groups),
        "columns": list(schema.names),
        "types": {field.name: str(field.type) for field in schema}
    }


def validate_data(
    df: pd.DataFrame,
    target: Optional[str] = None,
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for regression modeling.

    Checks:
        - Target column is present and numeric
        - All columns are numerical
        - No missing values
        - No duplicate rows
        - No constant columns
        - Extreme values (>4 std from mean)

    Args:
        df: DataFrame to validate
        target: Name of the response column (optional)
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    # Check 1: Target column
    if target is not None:
        if target not in df.columns:
            issue = f"Target column '{target}' not found"
            report["issues"].append(issue)
            logger.warning(issue)
        elif not pd.api.types.is_numeric_dtype(df[target]):
            issue = f"Target column '{target}' is not numeric"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 2: All columns should be numerical
    non_numeric_cols = df.select_dtypes(exclude=[np.number]).columns.tolist()
    if non_numeric_cols:
        issue = f"Non-numeric columns found: {non_numeric_cols}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 3: Missing values
    missing_counts = df.isnull().sum()
    total_missing = missing_counts.sum()
    if total_missing > 0:
        missing_pct = (total_missing / (df.shape[0] * df.shape[1])) * 100
        issue = f"Missing values: {total_missing} ({missing_pct:.2f}%)"
        report["issues"].append(issue)
        report["missing_by_column"] = missing_counts[missing_counts > 0].to_dict()
        logger.warning(issue)

    # Check 4: Duplicate rows
    duplicates = df.duplicated().sum()
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    numeric_cols = df.select_dtypes(include=[np.number]).columns

    # Check 5: Constant columns carry no signal for any learner
    constant_cols = [col for col in numeric_cols if df[col].nunique(dropna=True) <= 1]
    if constant_cols:
        issue = f"Constant columns found: {constant_cols}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 6: Data range (check for potential outliers)
    for col in numeric_cols:
        if col in constant_cols:
            continue
        col_std = df[col].std()
        col_mean = df[col].mean()
        outliers = ((df[col] - col_mean).abs() > 4 * col_std).sum()
        if outliers > 0:
            issue = f"Column '{col}' has {outliers} potential outliers (>4 std)"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate comprehensive summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "statistics": {}
    }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "missing": int(df[col].isnull().sum()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "25%": float(df[col].quantile(0.25)),
            "50%": float(df[col].quantile(0.50)),
            "75%": float(df[col].quantile(0.75)),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "kurtosis": float(df[col].kurtosis())
        }

    return summary


def print_data_summary(df: pd.DataFrame) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {df.memory_usage(deep=True).sum() / 1024:.2f} KB")
    print("\nColumn Information:")
    print("-" * 40)

    for col in df.columns:
        dtype = df[col].dtype
        non_null = df[col].count()
        null_pct = (1 - non_null / len(df)) * 100 if len(df) else 0.0
        print(f"  {col}: {dtype} | {non_null} non-null ({null_pct:.1f}% missing)")

    print("\nBasic Statistics:")
    print("-" * 40)
    print(df.describe().round(4).to_string())
    print("=" * 60 + "\n")


def print_columnar_info(info: Dict[str, Any]) -> None:
    """Print the metadata returned by get_columnar_info."""
    print("\n" + "=" * 60)
    print(f"COLUMNAR FILE: {info['path']}")
    print("=" * 60)
    print(f"Rows: {info['n_rows']} | Columns: {info['n_columns']} | "
          f"Row groups: {info['n_row_groups']}")
    for name in info['columns']:
        print(f"  {name}: {info['types'][name]}")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Target: {config['data']['target']}")
        print(f"Train fraction: {config['split']['train_fraction']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/housing.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df)
        is_valid, report = validate_data(df, target='price', strict=False)
        print(f"Validation passed: {is_valid}")
    else:
        print(f"No data file found at {data_path}")
        print("Place your CSV file there to test the data loader.")

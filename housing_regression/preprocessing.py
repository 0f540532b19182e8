"""
Data Preprocessing Module
=========================

Handles feature selection and the random train/test split.

Each row gets a split label ("Train" or "Test") drawn independently from a
seeded generator, the data is split by that label, and every subset can be
written to its own Parquet file.

Functions:
    - select_features: Numeric predictor columns for a target
    - DatasetSplitter: Seeded random split by a label column
    - split_pipeline: Label, split and persist a dataset in one call
"""

import logging
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional

import pandas as pd
import numpy as np
import joblib

from .formula import formula_from_columns

logger = logging.getLogger(__name__)

SPLIT_LEVELS = ("Train", "Test")


def select_features(
    df: pd.DataFrame,
    target: str,
    exclude: Iterable[str] = ()
) -> List[str]:
    """
    Pick the numeric columns usable as predictors.

    Args:
        df: Input data
        target: Response column (never returned)
        exclude: Additional columns to leave out (ids, dates, ...)

    Returns:
        Column names in their original order
    """
    skip = set(exclude) | {target}
    numeric = df.select_dtypes(include=[np.number]).columns
    features = [col for col in numeric if col not in skip]

    dropped = [col for col in df.columns if col not in features and col not in skip]
    if dropped:
        logger.info(f"Ignoring non-numeric columns: {dropped}")

    return features


class DatasetSplitter:
    """
    Random train/test splitter driven by a per-row label column.

    Rows are labelled "Train" with probability ``train_fraction`` and "Test"
    otherwise, so subset sizes vary around the expected fraction. The same
    seed always reproduces the same labels for the same number of rows.
    """

    def __init__(
        self,
        train_fraction: float = 0.7,
        seed: Optional[int] = 42,
        split_var: str = "splitVar"
    ):
        """
        Initialize the splitter.

        Args:
            train_fraction: Probability of a row landing in "Train"
            seed: Seed for the label generator (None for a fresh draw)
            split_var: Name of the label column
        """
        if not 0.0 < train_fraction < 1.0:
            raise ValueError(
                f"train_fraction must be strictly between 0 and 1 (got {train_fraction})"
            )

        self.train_fraction = train_fraction
        self.seed = seed
        self.split_var = split_var

    def assign_split(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return a copy of ``df`` with the split label column added.

        Args:
            df: Data to label

        Returns:
            DataFrame with a categorical ``split_var`` column
        """
        if self.split_var in df.columns:
            raise ValueError(f"Column '{self.split_var}' already exists in the data")

        rng = np.random.default_rng(self.seed)
        labels = rng.choice(
            list(SPLIT_LEVELS),
            size=len(df),
            replace=True,
            p=[self.train_fraction, 1.0 - self.train_fraction]
        )

        labelled = df.copy()
        labelled[self.split_var] = pd.Categorical(labels, categories=list(SPLIT_LEVELS))
        return labelled

    def split(self, df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        Split ``df`` into one DataFrame per label.

        Args:
            df: Data to split (labelled or not)

        Returns:
            Dictionary mapping "Train"/"Test" to subsets without the label column
        """
        labelled = df if self.split_var in df.columns else self.assign_split(df)

        splits = {}
        for level in SPLIT_LEVELS:
            subset = labelled[labelled[self.split_var] == level]
            if subset.empty:
                raise ValueError(
                    f"Split '{level}' is empty ({len(df)} rows, "
                    f"train_fraction={self.train_fraction}). Use more data or another seed."
                )
            splits[level] = subset.drop(columns=[self.split_var])

        logger.info(
            f"Split {len(df)} rows: {len(splits['Train'])} train, {len(splits['Test'])} test"
        )
        return splits

    def write_splits(
        self,
        splits: Dict[str, pd.DataFrame],
        output_dir: str,
        base_name: str = "housing"
    ) -> Dict[str, str]:
        """
        Write each subset to ``<base_name>.<split_var>.<level>.parquet``.

        Args:
            splits: Output of split()
            output_dir: Directory for the files
            base_name: File name stem

        Returns:
            Dictionary mapping level to file path
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {}
        for level, subset in splits.items():
            path = output_dir / f"{base_name}.{self.split_var}.{level}.parquet"
            subset.to_parquet(path, engine='pyarrow', index=False)
            paths[level] = str(path)
            logger.info(f"Wrote {len(subset)} rows to {path}")

        return paths

    def save(self, filepath: str) -> None:
        """
        Save the splitter settings to disk.

        Args:
            filepath: Path to save the splitter
        """
        state = {
            'train_fraction': self.train_fraction,
            'seed': self.seed,
            'split_var': self.split_var
        }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Splitter saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'DatasetSplitter':
        """
        Load splitter settings from disk.

        Args:
            filepath: Path to the saved splitter

        Returns:
            DatasetSplitter with the stored settings
        """
        state = joblib.load(filepath)
        logger.info(f"Splitter loaded from {filepath}")
        return cls(**state)


def split_pipeline(
    df: pd.DataFrame,
    target: str,
    train_fraction: float = 0.7,
    seed: Optional[int] = 42,
    split_var: str = "splitVar",
    exclude: Iterable[str] = (),
    output_dir: Optional[str] = None,
    base_name: str = "housing"
) -> Dict[str, Any]:
    """
    Complete split pipeline: feature selection, labelling, splitting, saving.

    Args:
        df: Full dataset
        target: Response column
        train_fraction: Probability of a row landing in "Train"
        seed: Seed for the label generator
        split_var: Name of the label column
        exclude: Columns to leave out of the feature set
        output_dir: Directory for the split Parquet files (optional)
        base_name: File name stem for the split files

    Returns:
        Dictionary containing:
            - train, test: Split DataFrames
            - features: Predictor columns
            - formula: Formula text over target and features
            - splitter: DatasetSplitter used
            - paths: Written file paths (empty if output_dir is None)
    """
    logger.info("=" * 60)
    logger.info("STARTING TRAIN/TEST SPLIT")
    logger.info("=" * 60)

    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found in data")

    features = select_features(df, target, exclude)
    if not features:
        raise ValueError(f"No numeric predictor columns left besides '{target}'")

    # names are checked before any split file is written
    formula = formula_from_columns([target] + features, target)

    n_missing = int(df[[target] + features].isnull().any(axis=1).sum())
    if n_missing:
        logger.warning(f"Dropping {n_missing} rows with missing values")
    data = df[[target] + features].dropna()

    splitter = DatasetSplitter(
        train_fraction=train_fraction,
        seed=seed,
        split_var=split_var
    )
    splits = splitter.split(data)

    paths = {}
    if output_dir:
        paths = splitter.write_splits(splits, output_dir, base_name)

    result = {
        'train': splits['Train'],
        'test': splits['Test'],
        'features': features,
        'target': target,
        'formula': formula,
        'splitter': splitter,
        'paths': paths,
        'n_dropped': n_missing
    }

    logger.info("=" * 60)
    logger.info("SPLIT COMPLETE")
    logger.info(f"  Training rows: {len(result['train'])}")
    logger.info(f"  Test rows: {len(result['test'])}")
    logger.info(f"  Features: {len(features)}")
    logger.info("=" * 60)

    return result


def print_split_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the split results.

    Args:
        result: Dictionary from split_pipeline
    """
    n_train = len(result['train'])
    n_test = len(result['test'])
    total = n_train + n_test

    print("\n" + "=" * 50)
    print("SPLIT SUMMARY")
    print("=" * 50)
    print(f"Training rows: {n_train} ({n_train / total:.1%})")
    print(f"Test rows: {n_test} ({n_test / total:.1%})")
    print(f"Rows dropped (missing values): {result['n_dropped']}")
    print(f"Target: {result['target']}")
    print(f"Features ({len(result['features'])}): {', '.join(result['features'])}")
    print(f"\nRequested train fraction: {result['splitter'].train_fraction}")
    print(f"Seed: {result['splitter'].seed}")
    for level, path in result['paths'].items():
        print(f"  {level}: {path}")
    print("=" * 50 + "\n")

#!/usr/bin/env python3
"""
Housing Price Regression - Main Pipeline
========================================

Orchestrates the complete pipeline for comparing regression learners on
housing data.

Phases:
    1. Explore - Summary statistics and EDA figures
    2. Import - Convert the raw CSV to a Parquet file
    3. Split - Seeded random train/test split, one Parquet file per subset
    4. Train - Build the formula and fit every enabled learner in parallel
    5. Score - Predict the test set with every model and compare them

Usage:
    # Run complete pipeline
    python main.py --data data/raw/housing.csv

    # Run specific phase
    python main.py --data data/raw/housing.csv --phase explore

    # Run with custom config
    python main.py --data data/raw/housing.csv --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any

import pandas as pd

from housing_regression.data_loader import (
    load_config, load_data, validate_data, print_data_summary,
    import_to_columnar, get_columnar_info, print_columnar_info
)
from housing_regression.eda import generate_eda_report, print_correlation_insights
from housing_regression.preprocessing import split_pipeline, print_split_summary
from housing_regression.model import train_models, print_model_summary
from housing_regression.prediction import run_scoring, print_prediction_results
from housing_regression.evaluation import evaluate_models, print_evaluation_report

PHASES = ['explore', 'import', 'split', 'train', 'score', 'all']


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def run_explore(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    _banner("PHASE 1: EXPLORATORY DATA ANALYSIS")

    target = config.get('data', {}).get('target', 'price')
    exclude = config.get('data', {}).get('exclude_columns', [])
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    print_data_summary(df)
    validate_data(df.drop(columns=[c for c in exclude if c in df.columns]),
                  target=target, strict=False)

    report = generate_eda_report(df, target=target, output_dir=output_dir, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, target=target)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_import(data_path: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: Import the raw data into the columnar store.

    Args:
        data_path: Path to the raw CSV file
        config: Configuration dictionary

    Returns:
        Columnar file metadata
    """
    _banner("PHASE 2: IMPORT TO COLUMNAR FORMAT")

    columnar_path = config.get('data', {}).get('columnar_path', 'data/columnar/housing.parquet')
    column_types = config.get('data', {}).get('column_types')

    import_to_columnar(data_path, columnar_path, overwrite=True, column_types=column_types)
    info = get_columnar_info(columnar_path)
    print_columnar_info(info)

    return info


def run_split(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 3: Train/test split.

    Args:
        df: Data loaded from the columnar store
        config: Configuration dictionary

    Returns:
        Split result dictionary
    """
    _banner("PHASE 3: TRAIN/TEST SPLIT")

    data_config = config.get('data', {})
    split_config = config.get('split', {})

    result = split_pipeline(
        df,
        target=data_config.get('target', 'price'),
        train_fraction=split_config.get('train_fraction', 0.7),
        seed=split_config.get('seed', 42),
        split_var=split_config.get('split_var', 'splitVar'),
        exclude=data_config.get('exclude_columns', []),
        output_dir=data_config.get('split_path', 'data/split/'),
        base_name=Path(data_config.get('columnar_path', 'housing.parquet')).stem
    )

    print_split_summary(result)

    return result


def run_training(split_result: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 4: Fit every enabled learner on the split's formula.

    Args:
        split_result: Split result dictionary
        config: Configuration dictionary

    Returns:
        Dictionary with the formula and fitted models
    """
    _banner("PHASE 4: MODEL TRAINING")

    formula = config.get('formula') or split_result['formula']
    print(f"Formula: {formula}")

    models = train_models(
        split_result['train'],
        formula,
        config,
        save_dir=config.get('output', {}).get('models_path', 'models/')
    )

    for model in models.values():
        print_model_summary(model)

    return {'formula': formula, 'models': models}


def run_scoring_phase(
    models: Dict[str, Any],
    split_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Score the test set and compare the models.

    Args:
        models: Mapping of kind to fitted model
        split_result: Split result dictionary
        config: Configuration dictionary

    Returns:
        Dictionary with scoring and evaluation results
    """
    _banner("PHASE 5: SCORING AND EVALUATION")

    output_config = config.get('output', {})
    predictions_path = config.get('data', {}).get('predictions_path', 'data/predictions/')

    scoring = run_scoring(models, split_result['test'], output_dir=predictions_path)
    print_prediction_results(scoring['scored'])

    evaluation = evaluate_models(
        scoring['scored'],
        scoring['target'],
        output_dir=output_config.get('reports_path', 'reports/'),
        show_plots=False
    )
    print_evaluation_report(evaluation['metrics'])

    return {'scoring': scoring, 'evaluation': evaluation}


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml"
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to input CSV file
        config_path: Path to configuration file

    Returns:
        Dictionary containing all phase results
    """
    _banner("HOUSING PRICE REGRESSION PIPELINE\n"
            f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    raw_df = load_data(data_path)

    results = {
        'config': config,
        'data_shape': raw_df.shape,
        'column_names': raw_df.columns.tolist()
    }

    results['explore'] = run_explore(raw_df, config)
    results['import'] = run_import(data_path, config)

    df = load_data(results['import']['path'])
    results['split'] = run_split(df, config)
    results['train'] = run_training(results['split'], config)
    results['score'] = run_scoring_phase(results['train']['models'], results['split'], config)

    metrics = results['score']['evaluation']['metrics']
    best = metrics['best_model']

    _banner("PIPELINE COMPLETE")
    print(f"  • Input data: {raw_df.shape[0]} rows × {raw_df.shape[1]} columns")
    print(f"  • Formula: {results['train']['formula']}")
    print(f"  • Best model: {best} (R² {metrics['per_model'][best]['r2']:.4f})")
    print(f"  • Predictions: {results['score']['scoring']['paths'].get('csv')}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml"
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (with the phases it depends on).

    Args:
        phase: Phase to run ('explore', 'import', 'split', 'train', 'score')
        data_path: Path to input CSV file
        config_path: Path to configuration file

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    if phase == 'explore':
        return run_explore(load_data(data_path), config)

    if phase not in ('import', 'split', 'train', 'score'):
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES)}")

    # every later phase reads the columnar store, not the raw file
    columnar = run_import(data_path, config)
    if phase == 'import':
        return columnar

    df = load_data(columnar['path'])

    if phase == 'split':
        return run_split(df, config)

    split_result = run_split(df, config)
    trained = run_training(split_result, config)
    if phase == 'train':
        return trained

    return run_scoring_phase(trained['models'], split_result, config)


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Housing Price Regression Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/housing.csv
  python main.py --data data/raw/housing.csv --phase explore
  python main.py --data data/raw/housing.csv --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        required=True,
        help='Path to the input CSV (or Parquet) file'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nPlace your housing CSV file in the specified location.")
        print("Expected format: CSV with numeric predictors and a price column")
        return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    # basicConfig is a no-op once handlers exist, so this wins over the config level
    if args.verbose:
        setup_logging("DEBUG")

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config)
        else:
            run_single_phase(args.phase, args.data, args.config)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Model Evaluation Module
=======================

Compares the fitted models on the held-out test set.

Features:
    - RMSE, MAE, R², MAPE per model
    - Model ranking by RMSE
    - Actual and predicted price lines over the test rows
    - Actual vs Predicted scatter plots
    - Residual analysis
    - Error summary bar charts
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score

from .prediction import prediction_columns

logger = logging.getLogger(__name__)


def _grid(n_plots: int, figsize: Tuple[int, int]) -> Tuple[plt.Figure, List[plt.Axes]]:
    """Two-column subplot grid with one axis per plot."""
    n_rows = (n_plots + 1) // 2
    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    # Hide unused subplots
    for idx in range(n_plots, len(axes)):
        axes[idx].set_visible(False)

    return fig, list(axes)


def calculate_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    """
    Calculate regression metrics for one model.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values

    Returns:
        Dictionary of metric name to value
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    if y_true.shape != y_pred.shape:
        raise ValueError(f"Shape mismatch: y_true {y_true.shape} vs y_pred {y_pred.shape}")
    if len(y_true) == 0:
        raise ValueError("Cannot evaluate on an empty set")

    errors = y_true - y_pred

    return {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan'),
        'mape': float(np.mean(np.abs(errors / (y_true + 1e-10))) * 100),
        'mean_error': float(np.mean(errors)),
        'std_error': float(np.std(errors)),
        'max_error': float(np.max(np.abs(errors))),
        'n_samples': int(len(y_true))
    }


def compare_models(scored: pd.DataFrame, target: str) -> Dict[str, Any]:
    """
    Compute metrics for every prediction column of a scored DataFrame.

    Args:
        scored: Output of prediction.score_models
        target: Actual target column

    Returns:
        Dictionary with 'per_model' metrics, 'ranking' (best RMSE first)
        and 'best_model'
    """
    columns = prediction_columns(scored)
    if not columns:
        raise ValueError("Scored data has no prediction columns")
    if target not in scored.columns:
        raise KeyError(f"Target column '{target}' not found in scored data")

    per_model = {
        kind: calculate_metrics(scored[target].to_numpy(), scored[col].to_numpy())
        for kind, col in columns.items()
    }
    ranking = sorted(per_model, key=lambda kind: per_model[kind]['rmse'])

    return {
        'target': target,
        'per_model': per_model,
        'ranking': ranking,
        'best_model': ranking[0]
    }


def plot_prediction_lines(
    scored: pd.DataFrame,
    target: str,
    n_samples: Optional[int] = 200,
    figsize: Tuple[int, int] = (14, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Line plot of actual and predicted prices over the test rows.

    Rows are ordered by actual price so each model's curve can be read
    against the rising actual line.

    Args:
        scored: Output of prediction.score_models
        target: Actual target column
        n_samples: Number of rows to display (evenly spaced; None for all)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = prediction_columns(scored)
    ordered = scored.sort_values(target).reset_index(drop=True)

    if n_samples is not None and len(ordered) > n_samples:
        positions = np.linspace(0, len(ordered) - 1, n_samples).round().astype(int)
        ordered = ordered.iloc[positions].reset_index(drop=True)

    fig, ax = plt.subplots(figsize=figsize)
    x = np.arange(len(ordered))

    ax.plot(x, ordered[target], 'k-', linewidth=2, label='Actual')
    for kind, col in columns.items():
        ax.plot(x, ordered[col], linewidth=1, alpha=0.8, label=kind)

    ax.set_xlabel('Test row (ordered by actual value)')
    ax.set_ylabel(target)
    ax.set_title(f'Actual vs Predicted {target}', fontsize=14, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Prediction line plot saved to {save_path}")

    return fig


def plot_actual_vs_predicted(
    scored: pd.DataFrame,
    target: str,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create actual vs predicted scatter plots, one per model.

    Args:
        scored: Output of prediction.score_models
        target: Actual target column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = prediction_columns(scored)
    fig, axes = _grid(len(columns), figsize)
    true_col = scored[target].to_numpy()

    for ax, (kind, col) in zip(axes, columns.items()):
        pred_col = scored[col].to_numpy()

        ax.scatter(true_col, pred_col, alpha=0.5, s=20)

        # Perfect prediction line
        min_val = min(true_col.min(), pred_col.min())
        max_val = max(true_col.max(), pred_col.max())
        ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')

        r2 = r2_score(true_col, pred_col)
        rmse = np.sqrt(mean_squared_error(true_col, pred_col))

        ax.set_xlabel('Actual')
        ax.set_ylabel('Predicted')
        ax.set_title(f'{kind}\nR²={r2:.4f}, RMSE={rmse:.2f}', fontsize=10, fontweight='bold')
        ax.legend(loc='upper left', fontsize=8)

    plt.suptitle('Actual vs Predicted - Model Performance', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    scored: pd.DataFrame,
    target: str,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create residual distribution plots, one per model.

    Args:
        scored: Output of prediction.score_models
        target: Actual target column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = prediction_columns(scored)
    fig, axes = _grid(len(columns), figsize)

    for ax, (kind, col) in zip(axes, columns.items()):
        residuals = (scored[target] - scored[col]).to_numpy()

        sns.histplot(residuals, kde=len(residuals) > 1, ax=ax, bins=50, alpha=0.7)

        ax.axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
        ax.axvline(np.mean(residuals), color='green', linestyle='--',
                   linewidth=2, label=f'Mean: {np.mean(residuals):.2f}')

        ax.set_xlabel('Residual (Actual - Predicted)')
        ax.set_ylabel('Frequency')
        ax.set_title(f'{kind} (Std: {np.std(residuals):.2f})', fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    plt.suptitle('Residual Analysis - Error Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def plot_error_summary(
    metrics: Dict[str, Any],
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create a bar chart summary of RMSE, MAE and R² for each model.

    Args:
        metrics: Output of compare_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    kinds = metrics['ranking']
    rmse_values = [metrics['per_model'][k]['rmse'] for k in kinds]
    mae_values = [metrics['per_model'][k]['mae'] for k in kinds]
    r2_values = [metrics['per_model'][k]['r2'] for k in kinds]

    fig, axes = plt.subplots(1, 3, figsize=figsize)

    x = np.arange(len(kinds))
    width = 0.6

    axes[0].bar(x, rmse_values, width, color='steelblue', alpha=0.8)
    axes[0].set_ylabel('RMSE')
    axes[0].set_title('Root Mean Squared Error', fontweight='bold')

    axes[1].bar(x, mae_values, width, color='coral', alpha=0.8)
    axes[1].set_ylabel('MAE')
    axes[1].set_title('Mean Absolute Error', fontweight='bold')

    colors = ['green' if r2 > 0.8 else 'orange' if r2 > 0.5 else 'red' for r2 in r2_values]
    axes[2].bar(x, r2_values, width, color=colors, alpha=0.8)
    axes[2].axhline(1.0, color='gray', linestyle=':', alpha=0.5)
    axes[2].set_ylabel('R² Score')
    axes[2].set_title('R² Score (Coefficient of Determination)', fontweight='bold')
    axes[2].set_ylim([min(0, min(r2_values) - 0.1), 1.1])

    for ax in axes:
        ax.set_xlabel('Model')
        ax.set_xticks(x)
        ax.set_xticklabels(kinds, rotation=45, ha='right')

    plt.suptitle('Model Performance Summary', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Error summary plot saved to {save_path}")

    return fig


def evaluate_models(
    scored: pd.DataFrame,
    target: str,
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model comparison and generate all reports.

    Args:
        scored: Output of prediction.score_models
        target: Actual target column
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION")
    logger.info("=" * 60)

    logger.info("Calculating evaluation metrics...")
    metrics = compare_models(scored, target)

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating prediction line plot...")
    plot_prediction_lines(
        scored, target,
        save_path=str(figures_dir / "eval_prediction_lines.png")
    )
    figures.append("eval_prediction_lines.png")

    logger.info("Generating Actual vs Predicted plots...")
    plot_actual_vs_predicted(
        scored, target,
        save_path=str(figures_dir / "eval_actual_vs_predicted.png")
    )
    figures.append("eval_actual_vs_predicted.png")

    logger.info("Generating residual analysis...")
    plot_residuals(
        scored, target,
        save_path=str(figures_dir / "eval_residuals.png")
    )
    figures.append("eval_residuals.png")

    logger.info("Generating error summary...")
    plot_error_summary(
        metrics,
        save_path=str(figures_dir / "eval_error_summary.png")
    )
    figures.append("eval_error_summary.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }

    best = metrics['best_model']
    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Best model: {best} (RMSE {metrics['per_model'][best]['rmse']:.4f})")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted model comparison to console.

    Args:
        metrics: Output of compare_models
    """
    print("\n" + "=" * 70)
    print(f"MODEL EVALUATION REPORT - target: {metrics['target']}")
    print("=" * 70)

    print(f"\n{'Model':<16} {'RMSE':<14} {'MAE':<14} {'R²':<10} {'MAPE (%)':<10}")
    print("-" * 70)

    for kind in metrics['ranking']:
        m = metrics['per_model'][kind]
        print(f"{kind:<16} {m['rmse']:<14.4f} {m['mae']:<14.4f} "
              f"{m['r2']:<10.4f} {m['mape']:<10.2f}")

    print("-" * 70)

    best = metrics['best_model']
    best_r2 = metrics['per_model'][best]['r2']
    print(f"\nBest model: {best}")
    print("\nInterpretation:")
    if best_r2 > 0.9:
        print("  ✓ Excellent fit (R² > 0.9)")
    elif best_r2 > 0.7:
        print("  ✓ Good fit (R² > 0.7)")
    elif best_r2 > 0.5:
        print("  ⚠ Moderate fit (R² > 0.5)")
    else:
        print("  ✗ Poor fit (R² < 0.5) - consider more features or other learners")

    print("=" * 70 + "\n")

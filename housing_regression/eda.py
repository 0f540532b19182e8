"""
Exploratory Data Analysis (EDA) Module
======================================

Summarizes the housing data before any model is fitted.

Functions:
    - plot_correlation_matrix: Correlation heatmap
    - plot_target_correlations: Correlation of each predictor with the target
    - plot_distributions: Histograms with a normality test
    - plot_box_plots: Normalized box plots for outlier detection
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=len(corr_matrix) <= 15,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def target_correlations(
    df: pd.DataFrame,
    target: str,
    method: str = 'pearson'
) -> pd.Series:
    """
    Correlation of every numeric predictor with the target, strongest first.

    Args:
        df: DataFrame with numerical data
        target: Response column
        method: Correlation method

    Returns:
        Series indexed by predictor name
    """
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found in data")

    numeric = df.select_dtypes(include=[np.number])
    corr = numeric.corrwith(numeric[target], method=method).drop(labels=[target])
    return corr.reindex(corr.abs().sort_values(ascending=False).index)


def plot_target_correlations(
    df: pd.DataFrame,
    target: str,
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.Series]:
    """
    Horizontal bar chart of each predictor's correlation with the target.

    Args:
        df: DataFrame with numerical data
        target: Response column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, correlations Series)
    """
    corr = target_correlations(df, target)

    fig, ax = plt.subplots(figsize=figsize)
    colors = ['steelblue' if value >= 0 else 'coral' for value in corr.values]
    ax.barh(corr.index[::-1], corr.values[::-1], color=colors[::-1], alpha=0.8)
    ax.axvline(0, color='k', linewidth=0.5)

    ax.set_xlabel(f'Correlation with {target}')
    ax.set_title(f'Predictor Correlation with {target}', fontsize=14, fontweight='bold')
    ax.set_xlim([-1, 1])
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Target correlation plot saved to {save_path}")

    return fig, corr


def plot_distributions(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for all columns.

    Args:
        df: DataFrame with numerical data
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = df.select_dtypes(include=[np.number]).columns.tolist()
    n_cols = len(columns)
    n_rows = (n_cols + 1) // 2

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        values = df[col].dropna()

        sns.histplot(values, kde=values.nunique() > 1, ax=ax, bins=50, alpha=0.7)

        mean_val = values.mean()
        median_val = values.median()
        ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.2f}')
        ax.axvline(median_val, color='green', linestyle='--', label=f'Median: {median_val:.2f}')

        # normaltest needs at least 8 observations
        if len(values) >= 8 and values.nunique() > 1:
            _, p_value = stats.normaltest(values)
            normality = "Normal" if p_value > 0.05 else "Non-Normal"
            ax.set_title(f'{col} ({normality}, p={p_value:.3f})', fontsize=10, fontweight='bold')
        else:
            ax.set_title(col, fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    # Hide unused subplots
    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Distribution Analysis', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_box_plots(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create box plots for outlier detection.

    Args:
        df: DataFrame with numerical data
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    numeric = df.select_dtypes(include=[np.number])
    value_range = (numeric.max() - numeric.min()).replace(0, 1)
    df_normalized = (numeric - numeric.min()) / value_range

    fig, ax = plt.subplots(figsize=figsize)
    df_normalized.boxplot(ax=ax, grid=True, notch=True, rot=45)
    ax.set_title('Box Plots (Normalized) - Outlier Detection', fontsize=14, fontweight='bold')
    ax.set_ylabel('Normalized Value (0-1)')
    ax.set_xlabel('Columns')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    target: str,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: DataFrame to analyze
        target: Response column
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "target": target,
        "figures": [],
        "correlation_matrix": None,
        "target_correlations": None,
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df,
        save_path=str(output_dir / "01_correlation_matrix.png")
    )
    report["figures"].append("01_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    logger.info(f"Ranking predictors by correlation with {target}...")
    _, corr = plot_target_correlations(
        df, target,
        save_path=str(output_dir / "02_target_correlations.png")
    )
    report["figures"].append("02_target_correlations.png")
    report["target_correlations"] = corr.to_dict()

    logger.info("Plotting distributions...")
    plot_distributions(
        df,
        save_path=str(output_dir / "03_distributions.png")
    )
    report["figures"].append("03_distributions.png")

    logger.info("Creating box plots for outlier detection...")
    plot_box_plots(
        df,
        save_path=str(output_dir / "04_box_plots.png")
    )
    report["figures"].append("04_box_plots.png")

    for col in df.select_dtypes(include=[np.number]).columns:
        report["statistics"][col] = {
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "kurtosis": float(df[col].kurtosis())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    target: Optional[str] = None,
    threshold: float = 0.5
) -> None:
    """
    Print insights about strongly correlated variables.

    Args:
        corr_matrix: Correlation matrix DataFrame
        target: Response column; its correlations are listed first (optional)
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    if target is not None and target in corr_matrix.columns:
        target_corr = corr_matrix[target].drop(labels=[target])
        target_corr = target_corr.reindex(target_corr.abs().sort_values(ascending=False).index)
        print(f"\nPredictors of {target}:")
        for name, value in target_corr.items():
            print(f"  • {name}: {value:+.3f}")

    # Collinear predictor pairs (excluding diagonal and target)
    strong_corr = []
    columns = [c for c in corr_matrix.columns if c != target]
    for i, col1 in enumerate(columns):
        for col2 in columns[i + 1:]:
            corr_val = corr_matrix.loc[col1, col2]
            if abs(corr_val) >= threshold:
                strong_corr.append((col1, col2, corr_val))

    if strong_corr:
        print(f"\nStrongly correlated predictors (|r| >= {threshold}):")
        for col1, col2, corr_val in sorted(strong_corr, key=lambda x: abs(x[2]), reverse=True):
            direction = "positive" if corr_val > 0 else "negative"
            print(f"  • {col1} ↔ {col2}: {corr_val:.3f} ({direction})")
        print("\n  Collinear predictors inflate the variance of linear model coefficients.")
    else:
        print(f"\nNo strongly correlated predictor pairs (|r| >= {threshold})")

    print("=" * 50 + "\n")

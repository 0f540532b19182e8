"""
Housing Price Regression
========================

A machine learning pipeline that compares regression learners on housing data.

Modules:
    - data_loader: CSV ingestion, Parquet import and validation
    - eda: Exploratory Data Analysis
    - preprocessing: Feature selection and seeded train/test split
    - formula: Model formula construction and parsing
    - model: Regression learners and parallel training
    - prediction: Scoring models on held-out data
    - evaluation: Model comparison metrics and plots
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"

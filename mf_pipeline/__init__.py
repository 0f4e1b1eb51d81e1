"""
MF Pipeline Package for Rating Prediction

This package contains modular components for:
- Data ingestion (pipe, tab, double-colon and comma delimited rating dumps)
- Feature engineering (sparse rating matrix, popularity)
- Model training (biased matrix factorization with SGD)
- Model evaluation (RMSE, MAE)
- Prediction serving (clamped ratings, top-N, Flask API)
"""

__version__ = "1.0.0"

"""
Configuration file for MF Pipeline

Contains all hyperparameters, paths, and constants used across the pipeline.
"""

import os
from pathlib import Path

# ============================================================================
# PATHS
# ============================================================================

# Base directories
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("MF_DATA_DIR", PROJECT_ROOT / "data"))

# Data paths (MovieTweetings layout)
RATINGS_PATH = DATA_DIR / os.getenv("RATINGS_FILE", "ratings.dat")
ITEMS_PATH = DATA_DIR / os.getenv("ITEMS_FILE", "movies.dat")

# ============================================================================
# DATA INGESTION
# ============================================================================

INGEST_CONFIG = {
    "ratings_format": os.getenv("RATINGS_FORMAT", "auto"),  # pipe, tab, double_colon, comma, auto
    "items_format": os.getenv("ITEMS_FORMAT", "double_colon"),
}

# ============================================================================
# MODEL HYPERPARAMETERS
# ============================================================================

MODEL_CONFIG = {
    "n_factors": int(os.getenv("N_FACTORS", 20)),  # Latent dimension K
    "use_bias": True,  # User/item/global bias terms
    "squash_output": False,  # Logistic squash at serving time only
    "init_std": 0.1,  # Std of the Gaussian factor initialization
    "seed": 42,
}

# ============================================================================
# TRAINING CONFIGURATION
# ============================================================================

TRAINING_CONFIG = {
    "epochs": int(os.getenv("EPOCHS", 20)),
    "batch_size": 64,
    "learning_rate": float(os.getenv("LEARNING_RATE", 0.01)),
    "l2_penalty": 0.02,
    "validation_fraction": 0.1,  # Tail of the record sequence held out
    "shuffle_each_epoch": True,
    "seed": 42,  # Shuffling seed
    "center_ratings": True,  # Start global bias at the training mean
    "patience": None,  # Early stop after N epochs without validation improvement
}

# ============================================================================
# PREDICTION CONFIGURATION
# ============================================================================

PREDICTION_CONFIG = {
    "min_rating": 0.5,
    "max_rating": 5.0,
    "n_recommendations": 10,
    "min_ratings_for_popular": 10,  # Items below this count are not "popular"
}

# ============================================================================
# SERVING CONFIGURATION
# ============================================================================

SERVING_CONFIG = {
    "host": "0.0.0.0",
    "port": int(os.getenv("PORT", 8082)),
    "debug": False,
    "max_recommendations": 50,
}

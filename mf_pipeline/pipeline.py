"""
MF Pipeline Orchestrator

Main entry point for running the end-to-end pipeline:
1. Rating ingestion
2. Item catalog loading (optional)
3. Feature engineering
4. Model training
5. Model evaluation on the held-out slice
6. Prediction service construction (optionally served over HTTP)

"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, Optional

from . import config
from .data_io import ItemCatalog, RatingStore
from .evaluate import generate_evaluation_report
from .feature_engineering import build_rating_matrix, summarize_ratings
from .predict import PredictionService
from .train import ProgressCallback, TrainingConfig, split_train_validation, train_model

logger = logging.getLogger(__name__)


def run_training_pipeline(ratings_path: Optional[str] = None,
                          ratings_format: Optional[str] = None,
                          items_path: Optional[str] = None,
                          items_format: Optional[str] = None,
                          model_config: Optional[Dict] = None,
                          training_config: Optional[Dict] = None,
                          prediction_config: Optional[Dict] = None,
                          progress_callback: Optional[ProgressCallback] = None) -> Dict:
    """
    Run the complete pipeline from a ratings dump to a prediction service.

    Args:
        ratings_path: Path to the ratings file (uses config default if None)
        ratings_format: Delimiter format or 'auto' (uses config default if None)
        items_path: Optional path to an item catalog; skipped if missing
        items_format: Item catalog format ('double_colon' or 'pipe')
        model_config: Model hyperparameters (uses config default if None)
        training_config: Training hyperparameters (uses config default if None)
        prediction_config: Rating bounds (uses config default if None)
        progress_callback: Per-epoch callback passed to the trainer

    Returns:
        Dict with pipeline results:
        - service: PredictionService
        - catalog: ItemCatalog or None
        - training_report: TrainingReport
        - data_summary: Dict (counts, skipped lines, density)
        - evaluation_metrics: Dict (on the held-out slice)
        - training_time_sec: float

    Example:
        >>> results = run_training_pipeline(ratings_path="data/ratings.dat")
        >>> print(results['evaluation_metrics']['rmse'])
        0.9312
    """
    start_time = time.time()

    if ratings_path is None:
        ratings_path = config.RATINGS_PATH
    if ratings_format is None:
        ratings_format = config.INGEST_CONFIG["ratings_format"]
    if items_format is None:
        items_format = config.INGEST_CONFIG["items_format"]
    if model_config is None:
        model_config = config.MODEL_CONFIG
    if training_config is None:
        training_config = config.TRAINING_CONFIG
    if prediction_config is None:
        prediction_config = config.PREDICTION_CONFIG

    logger.info("=" * 60)
    logger.info("STARTING MF TRAINING PIPELINE")
    logger.info("=" * 60)

    # Step 1: Ingest ratings
    logger.info(f"[1/5] Loading ratings from {ratings_path}...")
    store = RatingStore()
    records = store.ingest_file(ratings_path, ratings_format)
    data_summary = summarize_ratings(records)
    data_summary["skipped_lines"] = store.skipped_lines
    data_summary["source_format"] = store.source_format
    logger.info(f"  Loaded {len(records)} ratings ({store.skipped_lines} lines skipped)")

    # Step 2: Item catalog
    catalog = None
    if items_path is not None and Path(items_path).exists():
        logger.info(f"[2/5] Loading item catalog from {items_path}...")
        catalog = ItemCatalog.from_file(items_path, items_format)
        logger.info(f"  Loaded {len(catalog)} items")
    else:
        logger.info("[2/5] No item catalog, titles will fall back to ids")

    # Step 3: Features
    logger.info("[3/5] Building rating matrix...")
    train_pos, val_pos = split_train_validation(
        len(records), TrainingConfig.from_dict(training_config).validation_fraction
    )
    train_records = [records[i] for i in train_pos]
    held_out = [records[i] for i in val_pos]
    matrix = build_rating_matrix(train_records, store.user_count(), store.item_count())
    logger.info(f"  Matrix shape: {matrix.shape}, density {data_summary['density']:.4f}")

    # Step 4: Train
    logger.info("[4/5] Training latent factor model...")
    model, report = train_model(
        records, store.user_count(), store.item_count(),
        model_config, training_config, progress_callback,
    )
    if report.cancelled:
        logger.warning(f"  Training cancelled after {report.epochs_run} epochs, using partial model")

    service = PredictionService(
        model,
        min_rating=prediction_config.get("min_rating", 0.5),
        max_rating=prediction_config.get("max_rating", 5.0),
        rating_matrix=matrix,
    )

    # Step 5: Evaluate
    logger.info(f"[5/5] Evaluating on {len(held_out)} held-out ratings...")
    evaluation_metrics = generate_evaluation_report(service, held_out)

    training_time_sec = time.time() - start_time

    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETED SUCCESSFULLY")
    logger.info("=" * 60)
    logger.info(f"Total time: {training_time_sec:.2f} seconds")
    logger.info(f"RMSE: {evaluation_metrics.get('rmse', 'N/A')}")
    logger.info("=" * 60)

    return {
        "service": service,
        "catalog": catalog,
        "training_report": report,
        "data_summary": data_summary,
        "evaluation_metrics": evaluation_metrics,
        "training_time_sec": training_time_sec,
    }


def main(argv=None):
    """
    Run pipeline from command line.

    Usage:
        python -m mf_pipeline.pipeline --ratings data/u.data --format tab
        python -m mf_pipeline.pipeline --ratings data/ratings.dat --items data/movies.dat --serve
    """
    parser = argparse.ArgumentParser(description="Train a matrix factorization rating model")
    parser.add_argument("--ratings", type=str, default=str(config.RATINGS_PATH),
                        help="Ratings file path")
    parser.add_argument("--format", type=str, default=config.INGEST_CONFIG["ratings_format"],
                        choices=["auto", "pipe", "tab", "double_colon", "comma"],
                        help="Ratings delimiter format (default: auto)")
    parser.add_argument("--items", type=str, default=None, help="Item catalog path")
    parser.add_argument("--items-format", type=str, default=config.INGEST_CONFIG["items_format"],
                        choices=["double_colon", "pipe"])
    parser.add_argument("--epochs", type=int, default=config.TRAINING_CONFIG["epochs"])
    parser.add_argument("--factors", type=int, default=config.MODEL_CONFIG["n_factors"])
    parser.add_argument("--lr", type=float, default=config.TRAINING_CONFIG["learning_rate"])
    parser.add_argument("--no-bias", action="store_true", help="Disable bias terms")
    parser.add_argument("--squash", action="store_true", help="Logistic squash at serving time")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API after training")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    model_config = dict(config.MODEL_CONFIG, n_factors=args.factors,
                        use_bias=not args.no_bias, squash_output=args.squash)
    training_config = dict(config.TRAINING_CONFIG, epochs=args.epochs, learning_rate=args.lr)

    results = run_training_pipeline(
        ratings_path=args.ratings,
        ratings_format=args.format,
        items_path=args.items,
        items_format=args.items_format,
        model_config=model_config,
        training_config=training_config,
    )

    logger.info(f"Model: {results['service'].model.get_model_info()}")
    logger.info(f"Training time: {results['training_time_sec']:.2f} seconds")

    if args.serve:
        from .serve.app import create_app

        app = create_app(results["service"], results["catalog"])
        app.run(host=config.SERVING_CONFIG["host"],
                port=config.SERVING_CONFIG["port"],
                debug=config.SERVING_CONFIG["debug"])
    return results


if __name__ == "__main__":
    main()

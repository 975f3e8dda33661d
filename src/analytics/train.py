"""
CLI for training analytics models from a file of rows.

Usage:
    python -m src.analytics.train --rows rows.csv --model anomaly [options]
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import pandas as pd
import structlog

from src.core.logger import setup_logging

from .methods import list_methods, load_model
from .models import MISSING_VALUE_STRATEGIES, EndpointConfig, normalize_keys, resolve_config
from .trainer import ModelTrainer

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Train or incrementally update unsupervised analytics models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Train an anomaly model from scratch
        python -m src.analytics.train --rows sensors.csv --model anomaly --eps 0.3

        # Fold a new batch into a persisted recommendation model
        python -m src.analytics.train \\
            --rows products.json \\
            --model recommendation \\
            --existing products_recommendation.json \\
            --output products_recommendation.json
        """,
    )

    # Input / output
    parser.add_argument(
        "--rows",
        required=True,
        help="CSV, JSON (list of records) or JSON Lines file with the rows to train on",
    )
    parser.add_argument(
        "--model",
        required=True,
        choices=list_methods(),
        help="Model type to train",
    )
    parser.add_argument(
        "--existing",
        help="Previously persisted model (JSON) to update incrementally",
    )
    parser.add_argument(
        "--output",
        help="Where to write the trained model (default: stdout)",
    )
    parser.add_argument(
        "--config",
        help="JSON file with endpoint settings and model tuning (camelCase keys accepted)",
    )

    # Endpoint configuration
    parser.add_argument(
        "--table",
        help="Source table name used in the model key (default: rows file stem)",
    )
    parser.add_argument(
        "--fields",
        nargs="+",
        help="Fields to encode (default: every field of the first row)",
    )
    parser.add_argument(
        "--id-field",
        help="Field holding the row identifier (default: id)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Rows per training round (default: 1000)",
    )
    parser.add_argument(
        "--no-incremental",
        action="store_true",
        help="Ignore --existing and retrain from scratch",
    )

    # Model tuning
    parser.add_argument("--eps", type=float, help="Density neighbourhood radius (anomaly)")
    parser.add_argument("--min-pts", type=int, help="Density neighbourhood size (anomaly)")
    parser.add_argument("--k", type=int, help="Requested number of clusters (recommendation)")
    parser.add_argument(
        "--min-cluster-size", type=int, help="Minimum batch size per cluster (recommendation)"
    )
    parser.add_argument(
        "--similarity-threshold",
        type=float,
        help="Centroid similarity above which clusters are merged (recommendation)",
    )
    parser.add_argument(
        "--missing-value-strategy",
        choices=MISSING_VALUE_STRATEGIES,
        help="How missing numeric values are imputed",
    )
    parser.add_argument(
        "--scaling-range",
        type=float,
        nargs=2,
        metavar=("MIN", "MAX"),
        help="Target range of numeric scaling",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def load_rows(path: str) -> list[dict]:
    """Read a rows file into a list of records"""
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        frame = pd.read_csv(path)
    elif suffix in (".jsonl", ".ndjson"):
        frame = pd.read_json(path, lines=True, convert_dates=False)
    elif suffix == ".json":
        frame = pd.read_json(path, orient="records", convert_dates=False)
    else:
        raise ValueError(f"Unsupported rows file '{path}'. Expected .csv, .json or .jsonl")

    logger.info("Rows loaded", path=path, rows=len(frame), columns=list(frame.columns))
    return frame.to_dict(orient="records")


def load_json(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def build_endpoint(args, settings: dict) -> EndpointConfig:
    """Endpoint settings from the config file, overridden by arguments"""
    data = {"db_table": Path(args.rows).stem, **normalize_keys(settings)}
    if args.table:
        data["db_table"] = args.table
    if args.fields:
        data["allow_read"] = args.fields
    if args.id_field:
        data["keys"] = [args.id_field]
    if args.batch_size:
        data["batch_size"] = args.batch_size
    if args.no_incremental:
        data["incremental_training"] = False
    return EndpointConfig.from_dict(data)


def build_overrides(args) -> dict:
    """Tuning values given on the command line"""
    overrides = {
        "eps": args.eps,
        "min_pts": args.min_pts,
        "k": args.k,
        "min_cluster_size": args.min_cluster_size,
        "similarity_threshold": args.similarity_threshold,
        "missing_value_strategy": args.missing_value_strategy,
        "scaling_range": args.scaling_range,
    }
    return {key: value for key, value in overrides.items() if value is not None}


def write_model(model, output: str | None) -> None:
    payload = json.dumps(model.to_dict(), indent=2)
    if output:
        Path(output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Model written", path=output)
    else:
        sys.stdout.write(payload + "\n")


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    # Setup logging
    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting model training", model=args.model, rows=args.rows)

    try:
        settings = load_json(args.config) if args.config else {}
        endpoint = build_endpoint(args, settings)
        config = resolve_config(args.model, build_overrides(args), defaults=settings)

        existing_model = load_model(load_json(args.existing)) if args.existing else None
        rows = load_rows(args.rows)

        trainer = ModelTrainer(endpoint, args.model, config)
        model, stats = trainer.train_batches(rows, existing_model)

        if model is None:
            logger.error("No model could be trained", model_key=trainer.model_key, stats=stats)
            return 1

        write_model(model, args.output)
        logger.info(
            "Training completed successfully",
            model_key=trainer.model_key,
            stats=stats,
            model_stats=model.stats.to_dict(),
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Training failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

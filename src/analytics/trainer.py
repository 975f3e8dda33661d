"""
Trainer for unsupervised analytics models.

Turns a batch of rows plus an optional previously persisted model into a new
model. Reading rows and persisting models stay with the caller; the trainer
only computes.
"""

import time
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from .exceptions import AnalyticsError
from .features import FeatureMatrixBuilder
from .methods import Model, UnsupervisedMethod, get_method
from .models import EndpointConfig, FeatureConfig, resolve_config

logger = structlog.get_logger(__name__)


class ModelTrainer:
    """Trains one model type for one endpoint, from scratch or incrementally"""

    def __init__(
        self,
        endpoint: EndpointConfig,
        model_type: str,
        config: FeatureConfig | dict | None = None,
    ):
        self.endpoint = endpoint
        self.model_type = model_type

        if isinstance(config, FeatureConfig):
            self.config = config
        else:
            self.config = resolve_config(model_type, config)

        logger.info(
            "Trainer initialized",
            model_key=self.model_key,
            incremental=endpoint.incremental_training,
            batch_size=endpoint.batch_size,
        )

    @property
    def model_key(self) -> str:
        return self.endpoint.model_key(self.model_type)

    def _method(self, config: FeatureConfig) -> UnsupervisedMethod:
        if self.model_type == "recommendation":
            return get_method(self.model_type, config, id_field=self.endpoint.id_field)
        return get_method(self.model_type, config)

    def train(
        self, rows: Sequence[Mapping[str, Any]], existing_model: Model | None = None
    ) -> Model:
        """Run one training round

        With an existing model (and incremental training enabled) the batch is
        encoded through the model's frozen processors and merged into it, using
        the configuration stored with the model. Otherwise a new model is
        trained from scratch.

        Raises:
            AnalyticsError: Any fatal training error; no partial model is produced
        """
        if existing_model is not None and not self.endpoint.incremental_training:
            logger.debug("Incremental training disabled, ignoring existing model", model_key=self.model_key)
            existing_model = None

        if existing_model is not None and existing_model.model_type != self.model_type:
            raise TypeError(
                f"Existing model is a '{existing_model.model_type}' model, "
                f"trainer expects '{self.model_type}'"
            )

        config = existing_model.config if existing_model is not None else self.config
        matrix, processors = FeatureMatrixBuilder(config).build(
            rows,
            self.endpoint.allow_read,
            existing_model.field_processors if existing_model is not None else None,
        )

        method = self._method(config)
        if existing_model is None:
            logger.debug("Training model from scratch", model_key=self.model_key, rows=len(rows))
            return method.train(matrix, rows, processors)

        logger.debug("Updating existing model", model_key=self.model_key, rows=len(rows))
        return method.merge(existing_model, matrix, rows, processors)

    def train_batches(
        self, rows: Sequence[Mapping[str, Any]], existing_model: Model | None = None
    ) -> tuple[Model | None, dict]:
        """Fold rows into a model in chunks of endpoint.batch_size

        A batch that fails with a training error is skipped and the model from
        the previous round stays authoritative.

        Returns:
            The final model (None if nothing was ever trained) and batch statistics
        """
        rows = list(rows)
        batch_size = self.endpoint.batch_size
        stats = {"total_batches": 0, "successful": 0, "failed": 0}
        model = existing_model
        start_time = time.time()

        for offset in range(0, len(rows), batch_size):
            batch = rows[offset : offset + batch_size]
            stats["total_batches"] += 1
            try:
                model = self.train(batch, model)
                stats["successful"] += 1
            except AnalyticsError as e:
                stats["failed"] += 1
                logger.error(
                    "Training round failed, keeping previous model",
                    model_key=self.model_key,
                    batch=stats["total_batches"],
                    rows=len(batch),
                    error=str(e),
                )

        elapsed = time.time() - start_time
        logger.info(
            "Training completed",
            model_key=self.model_key,
            records=len(rows),
            batches=stats["total_batches"],
            successful=stats["successful"],
            failed=stats["failed"],
            elapsed_sec=round(elapsed, 3),
        )
        return model, stats


def train_model(
    model_type: str,
    rows: Sequence[Mapping[str, Any]],
    endpoint: EndpointConfig,
    config: FeatureConfig | dict | None = None,
    existing_model: Model | None = None,
) -> Model:
    """Pure transform (rows, config, optional existing model) -> new model"""
    return ModelTrainer(endpoint, model_type, config).train(rows, existing_model)

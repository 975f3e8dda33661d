"""
Feature extraction: turns raw tabular rows into a dense numeric matrix.

Workflow:
1. Fit: for each usable field, sample its type once, then build a frozen
   FieldProcessor (min-max scaling for numeric fields, one-hot encoding over a
   sorted vocabulary for categorical fields)
2. Assemble: encode every row through the processors in a stable field order,
   producing rows of identical dimension D

Incremental rounds pass the processors of the previous model back in, so new
batches are encoded through the same frozen transform and matrix columns stay
aligned across rounds.
"""

import math
import numbers
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import cached_property
from typing import Any

import numpy as np
import pandas as pd
import structlog

from .exceptions import EmptyInputError, InconsistentDimensionError, NoValidFieldsError
from .models import FeatureConfig

logger = structlog.get_logger(__name__)

DEFAULT_VALUE = 0.0  # encoding of a missing feature with nothing to impute from


class FieldKind(str, Enum):
    """Encoding strategy of a field, decided once at fit time"""

    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


def is_missing(value: Any) -> bool:
    """True for None and scalar NaN-likes (NaN, pd.NA, NaT)"""
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def to_number(value: Any) -> float | None:
    """Coerce a raw value to a finite float, None when it is not numeric"""
    if is_missing(value):
        return None
    if isinstance(value, (bool, np.bool_)):
        return float(value)
    if isinstance(value, numbers.Number):
        try:
            number = float(value)
        except TypeError:  # complex
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def infer_kind(sample: Any) -> FieldKind | None:
    """Map a sample value to an encoding strategy, None when unsupported"""
    if isinstance(sample, (bool, np.bool_, str)):
        return FieldKind.CATEGORICAL
    if isinstance(sample, (numbers.Real, Decimal)):
        return FieldKind.NUMERIC
    return None


@dataclass(frozen=True)
class FieldProcessor:
    """Frozen per-field encoder

    Numeric processors carry ``min``/``max`` of the fitted column, the
    imputation ``fill_value`` and the target ``scaling_range``; categorical
    processors carry the sorted vocabulary. Neither is ever refit.
    """

    field_name: str
    kind: FieldKind
    weight: float = 1.0

    # numeric
    min: float | None = None
    max: float | None = None
    fill_value: float | None = None
    scaling_range: tuple[float, float] = (0.0, 1.0)

    # categorical
    vocabulary: tuple[str, ...] = ()

    @property
    def params(self) -> dict | list:
        """Fitted parameters: scale parameters or vocabulary"""
        if self.kind is FieldKind.NUMERIC:
            return {"min": self.min, "max": self.max, "fill_value": self.fill_value}
        return list(self.vocabulary)

    @property
    def width(self) -> int:
        """Number of feature columns this field contributes"""
        return 1 if self.kind is FieldKind.NUMERIC else len(self.vocabulary)

    @cached_property
    def _positions(self) -> dict[str, int]:
        return {category: idx for idx, category in enumerate(self.vocabulary)}

    def scale(self, number: float) -> float:
        """Apply the frozen min-max map"""
        low, high = self.scaling_range
        if self.max == self.min:
            return low
        return (number - self.min) / (self.max - self.min) * (high - low) + low

    def encode(self, value: Any) -> list[float]:
        """Encode one raw value into this field's sub-vector"""
        if self.kind is FieldKind.NUMERIC:
            number = to_number(value)
            if number is None:
                number = self.fill_value
            if number is None:
                return [DEFAULT_VALUE]
            return [self.scale(number) * self.weight]

        encoded = [DEFAULT_VALUE] * len(self.vocabulary)
        if is_missing(value):
            return encoded
        position = self._positions.get(str(value))
        if position is not None:
            encoded[position] = 1.0 * self.weight
        return encoded

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        data: dict[str, Any] = {
            "field_name": self.field_name,
            "kind": self.kind.value,
            "weight": self.weight,
        }
        if self.kind is FieldKind.NUMERIC:
            data.update(
                params=self.params,
                scaling_range=list(self.scaling_range),
            )
        else:
            data["params"] = self.params
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FieldProcessor":
        """Create from dictionary"""
        kind = FieldKind(data["kind"])
        params = data.get("params")
        if kind is FieldKind.NUMERIC:
            return cls(
                field_name=data["field_name"],
                kind=kind,
                weight=float(data.get("weight", 1.0)),
                min=params["min"],
                max=params["max"],
                fill_value=params.get("fill_value"),
                scaling_range=tuple(data.get("scaling_range", (0.0, 1.0))),
            )
        return cls(
            field_name=data["field_name"],
            kind=kind,
            weight=float(data.get("weight", 1.0)),
            vocabulary=tuple(params or ()),
        )


def impute_fill_value(values: pd.Series, strategy: str) -> float | None:
    """Replacement value for missing entries of a numeric column

    Returns None for the ``remove`` strategy: missing entries are left out of
    the fit and encode to the default value.
    """
    valid = values.dropna()
    if strategy == "mean":
        return float(valid.mean())
    if strategy == "median":
        return float(valid.median())
    if strategy == "mode":
        return float(valid.mode().iloc[0])
    if strategy == "zero":
        return 0.0
    return None


def feature_dimension(processors: Sequence[FieldProcessor]) -> int:
    """Total dimension D produced by a set of processors"""
    return sum(processor.width for processor in processors)


def encode_row(row: Mapping[str, Any], processors: Sequence[FieldProcessor]) -> list[float]:
    """Encode a single record through frozen processors

    Used at prediction time; unseen categories degrade to zero vectors.
    """
    encoded: list[float] = []
    for processor in processors:
        encoded.extend(processor.encode(row.get(processor.field_name)))

    dimension = feature_dimension(processors)
    if len(encoded) < dimension:
        encoded.extend([DEFAULT_VALUE] * (dimension - len(encoded)))
    return encoded


class FeatureMatrixBuilder:
    """Builds a dimension-consistent feature matrix from a row batch"""

    def __init__(self, config: FeatureConfig):
        self.config = config

    def build(
        self,
        rows: Sequence[Mapping[str, Any]],
        usable_fields: Sequence[str] | None = None,
        existing_processors: Sequence[FieldProcessor] | None = None,
    ) -> tuple[np.ndarray, tuple[FieldProcessor, ...]]:
        """Encode rows into a matrix of shape (len(rows), D)

        Args:
            rows: Records mapping field name to raw value
            usable_fields: Fields eligible for encoding (default: keys of the first row)
            existing_processors: Frozen processors of a previous round; reused as-is

        Returns:
            The feature matrix and the processors that produced it

        Raises:
            EmptyInputError: If rows is empty
            NoValidFieldsError: If no field yields a processor
            InconsistentDimensionError: If an assembled row has the wrong length
        """
        if not rows:
            raise EmptyInputError("No data provided for feature extraction")

        if existing_processors:
            processors = tuple(existing_processors)
            logger.debug(
                "Reusing frozen field processors",
                fields=[p.field_name for p in processors],
            )
        else:
            fields = list(usable_fields) if usable_fields else list(rows[0].keys())
            processors = self.fit(rows, fields)

        if not processors:
            raise NoValidFieldsError("No valid fields found for processing")

        dimension = feature_dimension(processors)
        matrix = [encode_row(row, processors) for row in rows]

        for idx, feature_row in enumerate(matrix):
            if len(feature_row) != dimension:
                raise InconsistentDimensionError(dimension, len(feature_row), row_index=idx)

        logger.debug(
            "Feature matrix built",
            rows=len(matrix),
            dimensions=dimension,
            fields=len(processors),
        )
        return np.asarray(matrix, dtype=float).reshape(len(matrix), dimension), processors

    def fit(
        self, rows: Sequence[Mapping[str, Any]], fields: Sequence[str]
    ) -> tuple[FieldProcessor, ...]:
        """First pass: sample each field's type and fit its processor"""
        processors = []
        for field_name in fields:
            values = [row.get(field_name) for row in rows]
            sample = next((v for v in values if not is_missing(v)), None)

            if sample is None:
                logger.warning("Field has no valid values, skipping", field=field_name)
                continue

            kind = infer_kind(sample)
            if kind is FieldKind.NUMERIC:
                processor = self._fit_numeric(field_name, values)
            elif kind is FieldKind.CATEGORICAL:
                processor = self._fit_categorical(field_name, values)
            else:
                logger.warning(
                    "Unsupported field type, skipping",
                    field=field_name,
                    type=type(sample).__name__,
                )
                continue

            if processor is not None:
                processors.append(processor)

        return tuple(processors)

    def _fit_numeric(self, field_name: str, values: list[Any]) -> FieldProcessor | None:
        column = pd.Series([to_number(v) for v in values], dtype=float)
        if column.dropna().empty:
            logger.warning("Numeric field has no finite values, skipping", field=field_name)
            return None

        strategy = self.config.missing_value_strategy
        fill_value = impute_fill_value(column, strategy)
        cleaned = column.dropna() if fill_value is None else column.fillna(fill_value)

        return FieldProcessor(
            field_name=field_name,
            kind=FieldKind.NUMERIC,
            weight=self.config.weight_for(field_name),
            min=float(cleaned.min()),
            max=float(cleaned.max()),
            fill_value=fill_value,
            scaling_range=tuple(self.config.scaling_range),
        )

    def _fit_categorical(self, field_name: str, values: list[Any]) -> FieldProcessor:
        vocabulary = sorted({str(v) for v in values if not is_missing(v)})
        return FieldProcessor(
            field_name=field_name,
            kind=FieldKind.CATEGORICAL,
            weight=self.config.weight_for(field_name),
            vocabulary=tuple(vocabulary),
        )


def build_feature_matrix(
    rows: Sequence[Mapping[str, Any]],
    usable_fields: Sequence[str] | None,
    config: FeatureConfig,
    existing_processors: Sequence[FieldProcessor] | None = None,
) -> tuple[np.ndarray, tuple[FieldProcessor, ...]]:
    """Functional entry point for FeatureMatrixBuilder.build"""
    return FeatureMatrixBuilder(config).build(rows, usable_fields, existing_processors)

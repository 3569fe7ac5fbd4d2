"""
Prediction on individual patient records with a deployed stroke model
"""
from collections.abc import Mapping
import logging
import math

from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, DoubleType, LongType

import config
from stroke_analysis.exceptions import InputValidationError
from stroke_analysis.model import StrokeForestModel

logger = logging.getLogger(__name__)

ROW_ID_COL = "_request_row"


class StrokePredictor:
    """Validates patient records and predicts them with a fitted StrokeForestModel"""

    def __init__(self, spark: SparkSession, model: StrokeForestModel):
        if not model.is_fitted:
            raise ValueError("StrokePredictor needs a trained model")
        self.spark = spark
        self.model = model
        self.recipe = model.recipe
        # Levels are read once from the fitted recipe and never re-derived
        self.categorical_levels = model.categorical_levels

    @classmethod
    def from_saved(cls, spark: SparkSession, path: str = None) -> "StrokePredictor":
        """Load a model saved by StrokeForestModel.save_model()"""
        return cls(spark, StrokeForestModel.load_model(path))

    def validate_record(self, record) -> dict:
        """
        Check one prediction request

        Args:
            record: Mapping with every predictor field; extra fields are ignored

        Returns:
            Dictionary with only the predictors, numeric fields as float

        Raises:
            InputValidationError: On a missing, non-numeric or unknown value
        """
        if not isinstance(record, Mapping):
            raise InputValidationError("record", f"expected a mapping, got {type(record).__name__}")

        clean = {}

        for col in self.recipe.numerical_features:
            value = _required(record, col)
            if isinstance(value, bool):
                raise InputValidationError(col, "must be numeric, got a boolean")
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise InputValidationError(col, f"must be numeric, got {value!r}")
            if not math.isfinite(number):
                raise InputValidationError(col, f"must be a finite number, got {value!r}")
            if col in config.BINARY_FEATURES and number not in (0.0, 1.0):
                raise InputValidationError(col, f"must be 0 or 1, got {value!r}")
            clean[col] = number

        for col in self.recipe.categorical_features:
            value = _required(record, col)
            levels = self.categorical_levels[col]
            if not isinstance(value, str) or value not in levels:
                raise InputValidationError(col, f"{value!r} is not one of {levels}")
            clean[col] = value

        return clean

    def predict(self, records) -> list:
        """
        Predict one or more records

        All records are validated before anything is sent to Spark.

        Args:
            records: A record mapping or a list of them

        Returns:
            List of dicts with prediction, prediction_label and class probabilities
        """
        if isinstance(records, Mapping):
            records = [records]
        if not records:
            return []

        validated = [self.validate_record(record) for record in records]

        fields = [StructField(ROW_ID_COL, LongType(), False)]
        fields += [StructField(col, DoubleType(), False) for col in self.recipe.numerical_features]
        fields += [StructField(col, StringType(), False) for col in self.recipe.categorical_features]
        schema = StructType(fields)

        rows = [
            tuple([i] + [record[field.name] for field in fields[1:]])
            for i, record in enumerate(validated)
        ]
        input_df = self.spark.createDataFrame(rows, schema)

        results = self.model.transform(input_df) \
            .select(ROW_ID_COL, "prediction", "probability") \
            .orderBy(ROW_ID_COL) \
            .collect()

        predictions = []
        for row in results:
            probability = row["probability"].toArray()
            prediction = int(row["prediction"])
            predictions.append({
                'prediction': prediction,
                'prediction_label': config.STROKE_LEVELS[prediction],
                'probability_no_stroke': float(probability[0]),
                'probability_stroke': float(probability[1])
            })

        logger.info(f"✓ Predicted {len(predictions)} record(s)")
        return predictions

    def predict_one(self, record) -> dict:
        """Predict a single record"""
        return self.predict([record])[0]


def _required(record: Mapping, col: str):
    value = record.get(col)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InputValidationError(col, "is required")
    return value

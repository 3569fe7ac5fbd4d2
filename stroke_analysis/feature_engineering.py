"""
Feature recipe for the stroke model

Declares which columns are predictors and which is the target, and builds the
Spark ML stages that index the categorical predictors and normalize the
numeric ones. The stages are fit once (on whatever data the model is trained
on) and the fitted statistics are then reused unchanged for any other data.
"""
from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.ml.feature import VectorAssembler, StandardScaler, StandardScalerModel, \
    StringIndexer, StringIndexerModel
from pyspark.ml import Pipeline, PipelineModel
import logging
import config

logger = logging.getLogger(__name__)

NUMERIC_RAW_COL = "numeric_raw"
NUMERIC_SCALED_COL = "numeric_scaled"
FEATURES_COL = "features"

# Label is nominal with two classes regardless of which classes a fit sees
LABEL_METADATA = {"ml_attr": {"type": "nominal", "num_vals": 2}}


class StrokeFeatureRecipe:
    """Predictors, target and normalization stages for the stroke model"""

    def __init__(self,
                 numerical_features: list = None,
                 categorical_features: list = None,
                 target: str = None):
        self.numerical_features = list(numerical_features or config.NUMERICAL_FEATURES)
        self.categorical_features = list(categorical_features or config.CATEGORICAL_FEATURES)
        self.target = target or config.TARGET_COLUMN

    @property
    def predictors(self) -> list:
        return self.numerical_features + self.categorical_features

    @property
    def indexed_columns(self) -> list:
        return [f"{col}_idx" for col in self.categorical_features]

    @property
    def feature_names(self) -> list:
        """Predictor names in the order they appear in the features vector"""
        return self.numerical_features + self.categorical_features

    def build_stages(self) -> list:
        """
        Create the (unfitted) recipe stages

        Returns:
            List of Spark ML stages:
            StringIndexer -> VectorAssembler -> StandardScaler -> VectorAssembler
        """
        # Stage 1: index categoricals; a level missing from the fit data gets
        # its own index (prediction requests are validated before this)
        indexer = StringIndexer(
            inputCols=self.categorical_features,
            outputCols=self.indexed_columns,
            stringOrderType="alphabetAsc",
            handleInvalid="keep"
        )

        # Stage 2: assemble numeric predictors
        numeric_assembler = VectorAssembler(
            inputCols=self.numerical_features,
            outputCol=NUMERIC_RAW_COL,
            handleInvalid="error"
        )

        # Stage 3: center and scale
        scaler = StandardScaler(
            inputCol=NUMERIC_RAW_COL,
            outputCol=NUMERIC_SCALED_COL,
            withStd=True,
            withMean=True
        )

        # Stage 4: final vector; indexed columns keep their nominal metadata
        assembler = VectorAssembler(
            inputCols=[NUMERIC_SCALED_COL] + self.indexed_columns,
            outputCol=FEATURES_COL,
            handleInvalid="error"
        )

        return [indexer, numeric_assembler, scaler, assembler]

    def fit(self, df: DataFrame) -> PipelineModel:
        """
        Fit the recipe (levels and normalization statistics) on df

        Args:
            df: Training data

        Returns:
            Fitted PipelineModel
        """
        logger.info(f"Fitting recipe on {len(self.predictors)} predictors...")
        fitted = Pipeline(stages=self.build_stages()).fit(df)
        logger.info("✓ Recipe fitted")
        return fitted

    def with_label(self, df: DataFrame) -> DataFrame:
        """Add the numeric label column (1.0 = stroke) derived from the target"""
        return df.withColumn(
            config.LABEL_COLUMN,
            F.when(F.col(self.target) == config.POSITIVE_LABEL, 1.0)
            .otherwise(0.0)
            .alias(config.LABEL_COLUMN, metadata=LABEL_METADATA)
        )

    def normalization_params(self, fitted: PipelineModel) -> dict:
        """
        Center/scale statistics learned by a fitted recipe

        Args:
            fitted: PipelineModel containing a StandardScalerModel stage

        Returns:
            Dictionary {column: {'mean': float, 'std': float}}
        """
        scaler = _find_stage(fitted, StandardScalerModel)
        means = scaler.mean.toArray()
        stds = scaler.std.toArray()
        return {
            col: {'mean': float(means[i]), 'std': float(stds[i])}
            for i, col in enumerate(self.numerical_features)
        }

    def categorical_levels(self, fitted: PipelineModel) -> dict:
        """
        Levels seen while fitting, per categorical predictor

        Args:
            fitted: PipelineModel containing a StringIndexerModel stage

        Returns:
            Dictionary {column: [levels]}
        """
        indexer = _find_stage(fitted, StringIndexerModel)
        return {
            col: list(labels)
            for col, labels in zip(self.categorical_features, indexer.labelsArray)
        }


def _find_stage(fitted: PipelineModel, stage_type):
    for stage in fitted.stages:
        if isinstance(stage, stage_type):
            return stage
    raise ValueError(f"No {stage_type.__name__} stage in the fitted pipeline")

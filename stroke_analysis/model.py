"""
Training, tuning and evaluation of the stroke Random Forest model
Uses PySpark MLlib with a hand-rolled K-fold cross validation so that folds
with an undefined metric can be dropped instead of failing the search
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import json
import logging
import math
from pathlib import Path

import numpy as np
import pandas as pd
from py4j.protocol import Py4JJavaError
from pyspark.errors import PySparkException
from pyspark.ml import Pipeline, PipelineModel
from pyspark.ml.classification import RandomForestClassifier, RandomForestClassificationModel
from pyspark.ml.evaluation import BinaryClassificationEvaluator, MulticlassClassificationEvaluator
from pyspark.sql import DataFrame, Window
from pyspark.sql import functions as F

import config
from stroke_analysis.exceptions import TuningError
from stroke_analysis.feature_engineering import StrokeFeatureRecipe, FEATURES_COL

logger = logging.getLogger(__name__)

METRICS = ['accuracy', 'roc_auc']


@dataclass
class CrossValidationFold:
    """One resample: fit on analysis, score on assessment"""
    fold_id: str
    analysis: DataFrame
    assessment: DataFrame
    source: DataFrame = None  # cached fold-assigned training rows


@dataclass
class TuningResult:
    best_mtry: int
    leaderboard: pd.DataFrame
    fold_metrics: pd.DataFrame


class StrokeForestModel:
    """Random Forest classifier for stroke prediction, bundled with its feature recipe"""

    def __init__(self,
                 mtry: int,
                 num_trees: int = None,
                 seed: int = None,
                 recipe: StrokeFeatureRecipe = None):
        self.recipe = recipe or StrokeFeatureRecipe()
        self.mtry = int(mtry)
        self.num_trees = num_trees if num_trees is not None else config.NUM_TREES
        self.seed = seed if seed is not None else config.RANDOM_SEED
        self.pipeline_model = None

        if not 1 <= self.mtry <= len(self.recipe.predictors):
            raise ValueError(
                f"mtry must be between 1 and {len(self.recipe.predictors)}, got {self.mtry}"
            )

    def create_random_forest(self) -> RandomForestClassifier:
        """
        Create the (unfitted) Random Forest

        Returns:
            RandomForestClassifier sampling `mtry` features per split
        """
        return RandomForestClassifier(
            featuresCol=FEATURES_COL,
            labelCol=config.LABEL_COLUMN,
            numTrees=self.num_trees,
            featureSubsetStrategy=str(self.mtry),
            seed=self.seed
        )

    def fit(self, train_df: DataFrame) -> "StrokeForestModel":
        """
        Fit recipe and forest on train_df

        Normalization statistics and categorical levels come from train_df
        only and are frozen in the resulting PipelineModel.

        Args:
            train_df: Cleaned training records (must contain the target)

        Returns:
            self
        """
        logger.info(f"Training Random Forest (mtry={self.mtry}, trees={self.num_trees}, seed={self.seed})")
        pipeline = Pipeline(stages=self.recipe.build_stages() + [self.create_random_forest()])
        self.pipeline_model = pipeline.fit(self.recipe.with_label(train_df))
        logger.info("✓ Training complete")
        return self

    @property
    def is_fitted(self) -> bool:
        return self.pipeline_model is not None

    def _require_fitted(self):
        if self.pipeline_model is None:
            raise ValueError("Model is not trained yet! Call fit() first.")

    @property
    def forest(self) -> RandomForestClassificationModel:
        self._require_fitted()
        return self.pipeline_model.stages[-1]

    def transform(self, df: DataFrame) -> DataFrame:
        """
        Predict on a DataFrame

        Args:
            df: Records with all predictor columns; the label column is added
                when the target is present

        Returns:
            DataFrame with prediction and probability columns
        """
        self._require_fitted()
        if self.recipe.target in df.columns:
            df = self.recipe.with_label(df)
        return self.pipeline_model.transform(df)

    def evaluate(self, test_df: DataFrame) -> dict:
        """
        Evaluate the model on a held-out set

        Args:
            test_df: Test DataFrame

        Returns:
            Dictionary with accuracy, auc_roc, confusion_matrix and num_samples
        """
        logger.info("\n📊 MODEL EVALUATION")
        logger.info("-" * 70)

        predictions = self.transform(test_df).cache()
        try:
            scores = compute_binary_metrics(predictions)
            confusion = get_confusion_matrix(predictions)
            num_samples = predictions.count()
        finally:
            predictions.unpersist()

        if math.isnan(scores['roc_auc']):
            logger.warning("AUC is undefined: the evaluation set contains a single class")

        metrics = {
            'accuracy': scores['accuracy'],
            'auc_roc': scores['roc_auc'],
            'confusion_matrix': confusion,
            'num_samples': num_samples
        }

        logger.info(f"  Accuracy:  {metrics['accuracy']:.4f}")
        logger.info(f"  AUC-ROC:   {metrics['auc_roc']:.4f}")
        logger.info(f"\n  Confusion Matrix:\n{confusion.to_string()}")
        logger.info("-" * 70)

        return metrics

    @property
    def normalization_params(self) -> dict:
        """Center/scale statistics learned at fit time"""
        self._require_fitted()
        return self.recipe.normalization_params(self.pipeline_model)

    @property
    def categorical_levels(self) -> dict:
        """Categorical levels learned at fit time"""
        self._require_fitted()
        return self.recipe.categorical_levels(self.pipeline_model)

    def get_feature_importance(self) -> pd.DataFrame:
        """
        Feature importance from the forest

        Returns:
            Pandas DataFrame sorted by importance
        """
        self._require_fitted()
        logger.info("Computing feature importance...")

        importances = self.forest.featureImportances.toArray()

        importance_df = pd.DataFrame({
            'feature': self.recipe.feature_names,
            'importance': importances
        })
        importance_df = importance_df.sort_values('importance', ascending=False).reset_index(drop=True)

        logger.info("✓ Top 5 features:")
        for _, row in importance_df.head(5).iterrows():
            logger.info(f"  {row['feature']}: {row['importance']:.4f}")

        return importance_df

    def save_model(self, path: str = None):
        """
        Save the fitted pipeline and its metadata

        Args:
            path: Model directory
        """
        self._require_fitted()

        if path is None:
            path = str(config.MODEL_PATH)

        logger.info(f"Saving model to: {path}")
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        self.pipeline_model.write().overwrite().save(str(path))

        metadata = {
            'mtry': self.mtry,
            'num_trees': self.num_trees,
            'seed': self.seed,
            'numerical_features': self.recipe.numerical_features,
            'categorical_features': self.recipe.categorical_features,
            'target': self.recipe.target
        }
        with open(_metadata_path(path), 'w') as f:
            json.dump(metadata, f, indent=2)

        logger.info("✓ Model saved")

    @classmethod
    def load_model(cls, path: str = None) -> "StrokeForestModel":
        """
        Load a model saved with save_model()

        Args:
            path: Model directory

        Returns:
            Fitted StrokeForestModel
        """
        if path is None:
            path = str(config.MODEL_PATH)

        logger.info(f"Loading model from: {path}")

        with open(_metadata_path(path), 'r') as f:
            metadata = json.load(f)

        recipe = StrokeFeatureRecipe(
            numerical_features=metadata['numerical_features'],
            categorical_features=metadata['categorical_features'],
            target=metadata['target']
        )
        model = cls(metadata['mtry'], metadata['num_trees'], metadata['seed'], recipe)
        model.pipeline_model = PipelineModel.load(str(path))

        logger.info("✓ Model loaded")
        return model


def _metadata_path(path) -> Path:
    path = Path(path)
    return path.parent / f"{path.name}_metadata.json"


# ============================================================================
# SPLITTING
# ============================================================================

def split_data(df: DataFrame, train_ratio: float = None, seed: int = None) -> tuple:
    """
    Split cleaned records into train and test sets

    Args:
        df: Cleaned DataFrame
        train_ratio: Fraction of records in the train set, strictly between 0 and 1
        seed: Random seed

    Returns:
        Tuple (train_df, test_df)
    """
    if train_ratio is None:
        train_ratio = config.TRAIN_RATIO
    if seed is None:
        seed = config.RANDOM_SEED
    if not 0 < train_ratio < 1:
        raise ValueError(f"train_ratio must be in (0, 1), got {train_ratio}")

    logger.info("=" * 70)
    logger.info(f"SPLITTING TRAIN/TEST ({train_ratio:.2f}/{1 - train_ratio:.2f})")
    logger.info("=" * 70)

    train_df, test_df = df.randomSplit([train_ratio, 1 - train_ratio], seed=seed)

    train_count = train_df.count()
    test_count = test_df.count()
    total_count = train_count + test_count

    is_stroke = F.col(config.TARGET_COLUMN) == config.POSITIVE_LABEL
    train_pos = train_df.filter(is_stroke).count()
    test_pos = test_df.filter(is_stroke).count()

    logger.info(f"  Total: {total_count:,} samples")
    if total_count > 0:
        logger.info(f"  Train: {train_count:,} samples ({train_count / total_count * 100:.1f}%)")
        logger.info(f"  Test:  {test_count:,} samples ({test_count / total_count * 100:.1f}%)")
    logger.info(f"  Train - Stroke: {train_pos:,}")
    logger.info(f"  Test  - Stroke: {test_pos:,}")
    logger.info("=" * 70)

    return train_df, test_df


def make_folds(train_df: DataFrame, num_folds: int = None, seed: int = None) -> list:
    """
    K-fold resamples of the training set

    Rows are shuffled with a seeded random column and dealt round-robin, so
    fold sizes differ by at most one row.

    Args:
        train_df: Training DataFrame (never the test set)
        num_folds: Number of folds (>= 2)
        seed: Random seed

    Returns:
        List of CrossValidationFold
    """
    if num_folds is None:
        num_folds = config.NUM_FOLDS
    if seed is None:
        seed = config.RANDOM_SEED
    if num_folds < 2:
        raise ValueError(f"num_folds must be at least 2, got {num_folds}")

    row_count = train_df.count()
    if row_count < num_folds:
        raise ValueError(f"Cannot make {num_folds} folds from {row_count} rows")

    shuffled = train_df.withColumn("_cv_rand", F.rand(seed))
    order = Window.orderBy("_cv_rand")
    assigned = shuffled \
        .withColumn("_cv_fold", (F.row_number().over(order) - 1) % num_folds) \
        .drop("_cv_rand") \
        .cache()

    folds = []
    for i in range(num_folds):
        folds.append(CrossValidationFold(
            fold_id=f"Fold{i + 1:02d}",
            analysis=assigned.filter(F.col("_cv_fold") != i).drop("_cv_fold"),
            assessment=assigned.filter(F.col("_cv_fold") == i).drop("_cv_fold"),
            source=assigned
        ))

    logger.info(f"✓ Created {num_folds} folds from {row_count:,} training rows")
    return folds


def release_folds(folds: list):
    """Unpersist the cached rows behind folds built by make_folds()"""
    released = set()
    for fold in folds:
        if fold.source is not None and id(fold.source) not in released:
            fold.source.unpersist()
            released.add(id(fold.source))


# ============================================================================
# METRICS
# ============================================================================

def compute_binary_metrics(predictions: DataFrame) -> dict:
    """
    Accuracy and AUC for a predictions DataFrame

    AUC is NaN when the labels contain a single class; both are NaN on an
    empty DataFrame.
    """
    label_classes = predictions.select(config.LABEL_COLUMN).distinct().count()
    if label_classes == 0:
        return {'accuracy': float('nan'), 'roc_auc': float('nan')}

    accuracy = MulticlassClassificationEvaluator(
        labelCol=config.LABEL_COLUMN,
        predictionCol="prediction",
        metricName="accuracy"
    ).evaluate(predictions)

    roc_auc = float('nan')
    if label_classes > 1:
        roc_auc = BinaryClassificationEvaluator(
            labelCol=config.LABEL_COLUMN,
            rawPredictionCol="probability",
            metricName="areaUnderROC"
        ).evaluate(predictions)

    return {'accuracy': float(accuracy), 'roc_auc': float(roc_auc)}


def get_confusion_matrix(predictions: DataFrame) -> pd.DataFrame:
    """
    2x2 confusion matrix

    Args:
        predictions: DataFrame with prediction and label columns

    Returns:
        Pandas DataFrame, rows = predicted label, columns = true label
    """
    levels = [config.STROKE_LEVELS[0], config.STROKE_LEVELS[1]]
    matrix = pd.DataFrame(
        0,
        index=pd.Index(levels, name='Prediction'),
        columns=pd.Index(levels, name='Truth')
    )

    counts = predictions.groupBy("prediction", config.LABEL_COLUMN).count().collect()
    for row in counts:
        predicted = levels[int(row["prediction"])]
        truth = levels[int(row[config.LABEL_COLUMN])]
        matrix.loc[predicted, truth] = row["count"]

    return matrix


# ============================================================================
# TUNING
# ============================================================================

def validate_grid(grid: list, num_predictors: int) -> list:
    """Check mtry candidates: non-empty, integers within [1, num_predictors]"""
    if not grid:
        raise ValueError("The mtry grid is empty")

    candidates = []
    for value in grid:
        if isinstance(value, bool) or int(value) != value:
            raise ValueError(f"mtry candidates must be integers, got {value!r}")
        if not 1 <= int(value) <= num_predictors:
            raise ValueError(f"mtry candidate {value} is outside [1, {num_predictors}]")
        candidates.append(int(value))

    if len(set(candidates)) != len(candidates):
        raise ValueError(f"Duplicate mtry candidates in {grid}")

    return candidates


def evaluate_fold(fold: CrossValidationFold, mtry: int, num_trees: int, seed: int,
                  recipe: StrokeFeatureRecipe = None) -> dict:
    """
    Fit on the fold's analysis set and score its assessment set

    A Spark failure while fitting or scoring is logged and reported as NaN
    metrics so the tuning run can continue.
    """
    try:
        model = StrokeForestModel(mtry, num_trees, seed, recipe).fit(fold.analysis)
        scores = compute_binary_metrics(model.transform(fold.assessment))
    except (Py4JJavaError, PySparkException) as e:
        logger.warning(f"{fold.fold_id} failed for mtry={mtry}, metrics recorded as missing: {e}")
        scores = {metric: float('nan') for metric in METRICS}

    return {'mtry': mtry, 'fold_id': fold.fold_id, **scores}


def summarize_folds(fold_metrics: pd.DataFrame) -> pd.DataFrame:
    """
    Aggregate per-fold metrics into a leaderboard

    Returns:
        DataFrame with columns mtry, metric, mean, n, std_err; missing fold
        values are excluded and n counts the folds that were kept
    """
    long = fold_metrics.melt(
        id_vars=['mtry', 'fold_id'],
        value_vars=METRICS,
        var_name='metric',
        value_name='value'
    )
    leaderboard = long.groupby(['mtry', 'metric'])['value'] \
        .agg(mean='mean', n='count', std='std') \
        .reset_index()
    leaderboard['std_err'] = leaderboard['std'] / np.sqrt(leaderboard['n'].where(leaderboard['n'] > 0))
    return leaderboard.drop(columns='std')


def select_best(leaderboard: pd.DataFrame, metric: str = None) -> int:
    """
    Candidate with the highest mean metric; ties go to the smallest mtry

    Raises:
        TuningError: If no candidate has a defined value for the metric
    """
    if metric is None:
        metric = config.TUNING_METRIC

    rows = leaderboard[(leaderboard['metric'] == metric) & (leaderboard['n'] > 0)]
    if rows.empty:
        raise TuningError(f"No mtry candidate produced a defined {metric}")

    best = rows.sort_values(['mean', 'mtry'], ascending=[False, True]).iloc[0]
    return int(best['mtry'])


def tune_mtry(folds: list,
              grid: list = None,
              num_trees: int = None,
              seed: int = None,
              metric: str = None,
              parallelism: int = None,
              recipe: StrokeFeatureRecipe = None) -> TuningResult:
    """
    Grid search over mtry with cross validation

    Args:
        folds: CrossValidationFold list built from the TRAIN set only
        grid: mtry candidates (default config.MTRY_GRID)
        num_trees: Trees per forest
        seed: Forest seed
        metric: Selection metric ('accuracy' or 'roc_auc')
        parallelism: Number of (candidate, fold) fits run concurrently
        recipe: Feature recipe (default StrokeFeatureRecipe())

    Returns:
        TuningResult with the selected mtry, the leaderboard and raw fold metrics
    """
    recipe = recipe or StrokeFeatureRecipe()
    grid = validate_grid(grid if grid is not None else config.MTRY_GRID, len(recipe.predictors))
    num_trees = num_trees if num_trees is not None else config.NUM_TREES
    seed = seed if seed is not None else config.RANDOM_SEED
    metric = metric or config.TUNING_METRIC
    parallelism = parallelism or config.CV_PARALLELISM

    if metric not in METRICS:
        raise ValueError(f"Unknown tuning metric: {metric}")
    if not folds:
        raise ValueError("At least one fold is required")

    logger.info("=" * 70)
    logger.info(f"TUNING mtry WITH {len(folds)}-FOLD CROSS VALIDATION")
    logger.info("=" * 70)
    logger.info(f"  Candidates: {grid}")
    logger.info(f"  Training {len(grid)} candidates × {len(folds)} folds = {len(grid) * len(folds)} fits")

    tasks = [(mtry, fold) for mtry in grid for fold in folds]

    if parallelism > 1:
        rows = []
        with ThreadPoolExecutor(max_workers=parallelism) as executor:
            futures = [
                executor.submit(evaluate_fold, fold, mtry, num_trees, seed, recipe)
                for mtry, fold in tasks
            ]
            for future in as_completed(futures):
                rows.append(future.result())
    else:
        rows = [evaluate_fold(fold, mtry, num_trees, seed, recipe) for mtry, fold in tasks]

    fold_metrics = pd.DataFrame(rows, columns=['mtry', 'fold_id'] + METRICS) \
        .sort_values(['mtry', 'fold_id']) \
        .reset_index(drop=True)

    leaderboard = summarize_folds(fold_metrics)
    best_mtry = select_best(leaderboard, metric)

    logger.info("\n✓ Cross validation complete")
    logger.info(f"\n{leaderboard.to_string(index=False)}")
    logger.info(f"\n📈 BEST mtry: {best_mtry} (by mean {metric})")
    logger.info("=" * 70)

    return TuningResult(best_mtry=best_mtry, leaderboard=leaderboard, fold_metrics=fold_metrics)

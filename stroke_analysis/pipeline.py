"""
End-to-end stroke pipeline: load -> clean -> split -> tune -> fit -> evaluate -> deploy

Every stage takes a StrokePipelineContext and returns a new one with its
outputs filled in, so cleaned data, fitted recipe statistics and trained
models are passed along explicitly instead of living in shared state.
"""
from dataclasses import dataclass, field, replace
import logging

import pandas as pd
from pyspark.sql import SparkSession, DataFrame

import config
from stroke_analysis.data_preprocessing import StrokeDataLoader, StrokeDataPreprocessor
from stroke_analysis.model import StrokeForestModel, split_data, make_folds, release_folds, tune_mtry
from stroke_analysis.predictor import StrokePredictor

logger = logging.getLogger(__name__)


@dataclass
class PipelineSettings:
    """Run parameters; defaults come from config.py"""
    data_path: str = str(config.RAW_DATA_FILE)
    train_ratio: float = config.TRAIN_RATIO
    num_folds: int = config.NUM_FOLDS
    mtry_grid: list = field(default_factory=lambda: list(config.MTRY_GRID))
    num_trees: int = config.NUM_TREES
    tuning_metric: str = config.TUNING_METRIC
    parallelism: int = config.CV_PARALLELISM
    seed: int = config.RANDOM_SEED


@dataclass
class StrokePipelineContext:
    settings: PipelineSettings
    cleaned_df: DataFrame = None
    train_df: DataFrame = None
    test_df: DataFrame = None
    folds: list = None
    best_mtry: int = None
    leaderboard: pd.DataFrame = None
    fold_metrics: pd.DataFrame = None
    train_model: StrokeForestModel = None
    test_metrics: dict = None
    deployed_model: StrokeForestModel = None


def load_stage(spark: SparkSession, settings: PipelineSettings) -> StrokePipelineContext:
    """Load the raw CSV and clean it"""
    raw_df = StrokeDataLoader(spark).load_data(settings.data_path)
    cleaned_df = StrokeDataPreprocessor(spark).preprocess_pipeline(raw_df).cache()
    return StrokePipelineContext(settings=settings, cleaned_df=cleaned_df)


def split_stage(ctx: StrokePipelineContext) -> StrokePipelineContext:
    """Train/test split, then CV folds over the train set only"""
    settings = ctx.settings
    train_df, test_df = split_data(ctx.cleaned_df, settings.train_ratio, settings.seed)
    folds = make_folds(train_df, settings.num_folds, settings.seed)
    return replace(ctx, train_df=train_df, test_df=test_df, folds=folds)


def tune_stage(ctx: StrokePipelineContext) -> StrokePipelineContext:
    """Pick mtry by cross validation"""
    settings = ctx.settings
    try:
        result = tune_mtry(
            ctx.folds,
            grid=settings.mtry_grid,
            num_trees=settings.num_trees,
            seed=settings.seed,
            metric=settings.tuning_metric,
            parallelism=settings.parallelism
        )
    finally:
        release_folds(ctx.folds)
    return replace(ctx,
                   best_mtry=result.best_mtry,
                   leaderboard=result.leaderboard,
                   fold_metrics=result.fold_metrics)


def evaluate_stage(ctx: StrokePipelineContext) -> StrokePipelineContext:
    """Fit the tuned model on the full train set and evaluate it on the test set"""
    if ctx.best_mtry is None:
        raise ValueError("Run tune_stage() before evaluate_stage()")

    settings = ctx.settings
    model = StrokeForestModel(ctx.best_mtry, settings.num_trees, settings.seed).fit(ctx.train_df)
    test_metrics = model.evaluate(ctx.test_df)
    return replace(ctx, train_model=model, test_metrics=test_metrics)


def deploy_stage(ctx: StrokePipelineContext) -> StrokePipelineContext:
    """Refit the tuned model on every cleaned record"""
    if ctx.best_mtry is None:
        raise ValueError("Run tune_stage() before deploy_stage()")

    settings = ctx.settings
    logger.info(f"Refitting on all {ctx.cleaned_df.count():,} cleaned records...")
    model = StrokeForestModel(ctx.best_mtry, settings.num_trees, settings.seed).fit(ctx.cleaned_df)
    return replace(ctx, deployed_model=model)


def get_predictor(spark: SparkSession, ctx: StrokePipelineContext) -> StrokePredictor:
    """Predictor backed by the deployed model"""
    if ctx.deployed_model is None:
        raise ValueError("Run deploy_stage() before requesting a predictor")
    return StrokePredictor(spark, ctx.deployed_model)


def run_pipeline(spark: SparkSession, settings: PipelineSettings = None) -> StrokePipelineContext:
    """Run every stage in order"""
    settings = settings or PipelineSettings()
    ctx = load_stage(spark, settings)
    ctx = split_stage(ctx)
    ctx = tune_stage(ctx)
    ctx = evaluate_stage(ctx)
    ctx = deploy_stage(ctx)
    return ctx

"""Loads the saved stroke model for the web service"""
import logging

import config
from stroke_analysis.predictor import StrokePredictor
from stroke_analysis.utils import SparkManager

logger = logging.getLogger(__name__)


def init_webapp_spark():
    """Small local Spark session for serving single predictions"""
    spark_config = config.WEBAPP_SPARK_CONFIG
    spark = SparkManager.get_spark(
        app_name=spark_config["app_name"],
        master=spark_config["master"],
        driver_memory=spark_config["driver_memory"],
        executor_memory=spark_config["executor_memory"],
        shuffle_partitions=2
    )
    spark.sparkContext.setLogLevel("ERROR")
    return spark


def load_predictor(model_path: str = None) -> StrokePredictor:
    """
    Start Spark and load the model saved by main.py

    Args:
        model_path: Model directory (default config.MODEL_PATH)

    Returns:
        StrokePredictor ready to serve requests
    """
    if model_path is None:
        model_path = str(config.MODEL_PATH)

    spark = init_webapp_spark()
    predictor = StrokePredictor.from_saved(spark, model_path)

    logger.info(f"✓ Loaded model from {model_path} (mtry={predictor.model.mtry})")
    logger.info(f"  Categorical levels: {predictor.categorical_levels}")
    return predictor

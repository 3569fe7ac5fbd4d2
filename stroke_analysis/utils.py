"""Spark session helpers shared by the pipeline, the webapp and the tests"""
from pyspark.sql import SparkSession
from pyspark import SparkConf
import logging

logger = logging.getLogger(__name__)


class SparkManager:
    """Manages a single Spark session"""
    _instance = None

    @classmethod
    def get_spark(cls, app_name="StrokeAnalysis", master="local[*]",
                  driver_memory="4g", executor_memory="4g",
                  shuffle_partitions=None):
        """Create the Spark session, or return the existing one"""
        if cls._instance is None:
            logger.info(f"Starting Spark session: {app_name}")

            conf = SparkConf()
            conf.set("spark.driver.memory", driver_memory)
            conf.set("spark.executor.memory", executor_memory)
            conf.set("spark.sql.adaptive.enabled", "true")
            conf.set("spark.ui.showConsoleProgress", "false")
            if shuffle_partitions is not None:
                conf.set("spark.sql.shuffle.partitions", str(shuffle_partitions))

            cls._instance = SparkSession.builder \
                .appName(app_name) \
                .master(master) \
                .config(conf=conf) \
                .getOrCreate()

            cls._instance.sparkContext.setLogLevel("WARN")
            logger.info(f"✓ Spark {cls._instance.version} is ready")

        return cls._instance

    @classmethod
    def stop(cls):
        """Stop the Spark session"""
        if cls._instance:
            cls._instance.stop()
            cls._instance = None
            logger.info("Spark session stopped")


def init_spark(config):
    """Start Spark from a config dict (see config.SPARK_CONFIG)"""
    return SparkManager.get_spark(
        app_name=config["app_name"],
        master=config["master"],
        driver_memory=config["driver_memory"],
        executor_memory=config["executor_memory"],
        shuffle_partitions=config.get("shuffle_partitions")
    )

"""
Loading and cleaning of the healthcare stroke dataset
"""
from pathlib import Path

from pyspark.sql import SparkSession, DataFrame
from pyspark.sql import functions as F
from pyspark.sql.types import *
import config
import logging

from stroke_analysis.exceptions import DatasetLoadError

logger = logging.getLogger(__name__)


class StrokeDataLoader:
    """Load the raw stroke dataset"""

    def __init__(self, spark: SparkSession):
        self.spark = spark

    def load_data(self, file_path: str = None) -> DataFrame:
        """
        Load the dataset from CSV

        Args:
            file_path: Path to the CSV file

        Returns:
            Spark DataFrame

        Raises:
            DatasetLoadError: If the file is missing or lacks required columns
        """
        if file_path is None:
            file_path = str(config.RAW_DATA_FILE)

        if not Path(file_path).is_file():
            raise DatasetLoadError(f"Dataset not found: {file_path}")

        logger.info(f"Loading data from: {file_path}")

        # inferSchema keeps bmi as text because of the "N/A" marker
        df = self.spark.read.csv(
            str(file_path),
            header=True,
            sep=",",
            inferSchema=True
        )

        missing = [col for col in config.REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise DatasetLoadError(
                f"Dataset {file_path} is missing required columns: {', '.join(missing)}"
            )

        logger.info(f"✓ Loaded {df.count()} rows")
        return df

    def get_data_info(self, df: DataFrame) -> dict:
        """
        Overview of the dataset

        Args:
            df: Spark DataFrame

        Returns:
            Dictionary with counts and missing values per column
        """
        info = {
            "total_records": df.count(),
            "total_columns": len(df.columns),
            "columns": df.columns,
            "schema": df.schema,
            "missing_values": {}
        }

        # The raw file encodes missing bmi as a text marker, count it as missing too
        for col in df.columns:
            condition = F.col(col).isNull()
            if isinstance(df.schema[col].dataType, StringType):
                condition = condition | (F.trim(F.col(col)) == config.BMI_MISSING_MARKER)
            missing_count = df.filter(condition).count()
            if missing_count > 0:
                info["missing_values"][col] = missing_count

        return info


class StrokeDataPreprocessor:
    """Cleaning steps for the stroke dataset"""

    def __init__(self, spark: SparkSession):
        self.spark = spark

    def filter_gender(self, df: DataFrame, retained: list = None) -> DataFrame:
        """
        Drop records whose gender is not one of the retained categories

        Args:
            df: Spark DataFrame
            retained: Gender values to keep (default config.RETAINED_GENDERS)

        Returns:
            Filtered DataFrame
        """
        if retained is None:
            retained = config.RETAINED_GENDERS

        logger.info(f"Keeping gender in {retained}")
        original_count = df.count()
        df = df.filter(F.col("gender").isin(retained))
        removed = original_count - df.count()
        logger.info(f"✓ Dropped {removed} records with another gender")
        return df

    def encode_stroke_label(self, df: DataFrame) -> DataFrame:
        """
        Convert the 0/1 stroke column into a two-level categorical label

        Rows with any other value are dropped.

        Args:
            df: Spark DataFrame

        Returns:
            DataFrame with stroke as "No Stroke" / "Stroke"
        """
        logger.info("Converting stroke to a categorical label")
        # try_cast: a non-numeric value becomes null instead of failing under ANSI mode
        raw = F.expr(f"try_cast({config.TARGET_COLUMN} AS INT)")
        label = F.when(raw == 1, config.STROKE_LEVELS[1]).when(raw == 0, config.STROKE_LEVELS[0])

        df = df.withColumn(config.TARGET_COLUMN, label)

        invalid = df.filter(F.col(config.TARGET_COLUMN).isNull()).count()
        if invalid > 0:
            logger.warning(f"Dropping {invalid} records with an invalid stroke value")
            df = df.filter(F.col(config.TARGET_COLUMN).isNotNull())

        return df

    def drop_missing_bmi(self, df: DataFrame) -> DataFrame:
        """
        Turn the bmi missing marker into null and drop those rows (no imputation)

        Args:
            df: Spark DataFrame

        Returns:
            DataFrame without missing bmi
        """
        logger.info("Handling missing bmi")
        bmi = F.col("bmi").cast("string")
        df = df.withColumn(
            "bmi",
            F.when(F.trim(bmi) == config.BMI_MISSING_MARKER, None).otherwise(bmi)
        )

        original_count = df.count()
        df = df.filter(F.col("bmi").isNotNull())
        removed = original_count - df.count()

        if original_count > 0:
            logger.info(f"✓ Dropped {removed} records with missing bmi "
                        f"({removed / original_count * 100:.2f}%)")
        else:
            logger.info(f"✓ Dropped {removed} records with missing bmi")

        return df

    def cast_bmi_to_numeric(self, df: DataFrame) -> DataFrame:
        """
        Convert bmi from text to double

        Args:
            df: Spark DataFrame (missing bmi already dropped)

        Returns:
            DataFrame with numeric bmi
        """
        logger.info("Casting bmi to numeric")
        df = df.withColumn("bmi", F.expr("try_cast(bmi AS DOUBLE)"))

        unparsed = df.filter(F.col("bmi").isNull()).count()
        if unparsed > 0:
            logger.warning(f"Dropping {unparsed} records with a non-numeric bmi")
            df = df.filter(F.col("bmi").isNotNull())

        return df

    def preprocess_pipeline(self, df: DataFrame) -> DataFrame:
        """
        Full cleaning pipeline

        Args:
            df: Raw Spark DataFrame

        Returns:
            Cleaned DataFrame
        """
        logger.info("=" * 50)
        logger.info("STARTING DATA CLEANING PIPELINE")
        logger.info("=" * 50)

        # 1. Drop the rare gender category
        df = self.filter_gender(df)

        # 2. Categorical target
        df = self.encode_stroke_label(df)

        # 3. Missing bmi
        df = self.drop_missing_bmi(df)

        # 4. Numeric bmi
        df = self.cast_bmi_to_numeric(df)

        logger.info("=" * 50)
        logger.info("✓ DATA CLEANING COMPLETE")
        logger.info(f"✓ Final dataset: {df.count()} rows")
        logger.info("=" * 50)

        return df


def get_statistical_summary(df: DataFrame) -> DataFrame:
    """
    Descriptive statistics for the numeric columns

    Args:
        df: Spark DataFrame

    Returns:
        DataFrame with the statistics
    """
    numeric_cols = [col for col in df.columns
                    if isinstance(df.schema[col].dataType, (IntegerType, LongType, DoubleType))
                    and col != config.ID_COLUMN]

    return df.select(numeric_cols).describe()


def get_class_distribution(df: DataFrame) -> dict:
    """Count of records per stroke label"""
    rows = df.groupBy(config.TARGET_COLUMN).count().collect()
    return {row[config.TARGET_COLUMN]: row['count'] for row in rows}

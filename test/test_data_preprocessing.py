import pytest
from pyspark.sql import functions as F
from pyspark.sql.types import DoubleType

import config
from stroke_analysis.data_preprocessing import (
    StrokeDataLoader, StrokeDataPreprocessor, get_class_distribution, get_statistical_summary
)
from stroke_analysis.exceptions import DatasetLoadError
from conftest import N_ROWS, OTHER_GENDER_ROWS, MISSING_BMI_ROWS


def test_load_data_reads_every_row(raw_df):
    assert raw_df.count() == N_ROWS
    assert set(config.REQUIRED_COLUMNS) <= set(raw_df.columns)


def test_load_data_missing_file(spark, tmp_path):
    with pytest.raises(DatasetLoadError, match="not found"):
        StrokeDataLoader(spark).load_data(str(tmp_path / "nope.csv"))


def test_load_data_missing_column(spark, tmp_path, raw_frame):
    path = tmp_path / "no_bmi.csv"
    raw_frame.drop(columns=["bmi"]).to_csv(path, index=False)

    with pytest.raises(DatasetLoadError, match="bmi"):
        StrokeDataLoader(spark).load_data(str(path))


def test_get_data_info_counts_bmi_marker(spark, raw_df):
    info = StrokeDataLoader(spark).get_data_info(raw_df)

    assert info["total_records"] == N_ROWS
    assert info["missing_values"]["bmi"] == len(MISSING_BMI_ROWS)
    assert "age" not in info["missing_values"]


def test_cleaned_records_only_keep_two_genders(cleaned_df):
    genders = {row["gender"] for row in cleaned_df.select("gender").distinct().collect()}
    assert genders == {"Male", "Female"}


def test_cleaned_bmi_is_numeric_and_never_missing(cleaned_df):
    assert isinstance(cleaned_df.schema["bmi"].dataType, DoubleType)
    assert cleaned_df.filter(F.col("bmi").isNull()).count() == 0


def test_cleaning_drops_exactly_the_bad_rows(cleaned_df):
    assert cleaned_df.count() == N_ROWS - len(OTHER_GENDER_ROWS) - len(MISSING_BMI_ROWS)


def test_stroke_label_is_categorical(cleaned_df, raw_frame):
    distribution = get_class_distribution(cleaned_df)
    assert set(distribution) <= set(config.STROKE_LEVELS.values())

    dropped = OTHER_GENDER_ROWS + MISSING_BMI_ROWS
    expected_strokes = int(raw_frame.drop(index=dropped)["stroke"].sum())
    assert distribution.get("Stroke", 0) == expected_strokes


def test_encode_stroke_label_drops_invalid_values(spark):
    df = spark.createDataFrame([(1, 0), (2, 1), (3, 2)], ["id", "stroke"])

    result = StrokeDataPreprocessor(spark).encode_stroke_label(df)

    rows = {row["id"]: row["stroke"] for row in result.collect()}
    assert rows == {1: "No Stroke", 2: "Stroke"}


def test_drop_missing_bmi_tolerates_whitespace(spark):
    df = spark.createDataFrame([(1, "28.1"), (2, " N/A "), (3, None)], ["id", "bmi"])

    result = StrokeDataPreprocessor(spark).drop_missing_bmi(df)

    assert [row["id"] for row in result.collect()] == [1]


def test_cast_bmi_drops_unparseable_text(spark):
    df = spark.createDataFrame([(1, "28.1"), (2, "abc")], ["id", "bmi"])

    result = StrokeDataPreprocessor(spark).cast_bmi_to_numeric(df).collect()

    assert len(result) == 1
    assert result[0]["bmi"] == pytest.approx(28.1)


def test_statistical_summary_skips_id(cleaned_df):
    summary = get_statistical_summary(cleaned_df)
    assert "id" not in summary.columns
    assert "bmi" in summary.columns

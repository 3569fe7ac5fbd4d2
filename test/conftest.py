"""Shared fixtures: a local Spark session, a synthetic raw dataset and trained models"""
import numpy as np
import pandas as pd
import pytest

from stroke_analysis.utils import init_spark, SparkManager
from stroke_analysis.data_preprocessing import StrokeDataLoader, StrokeDataPreprocessor
from stroke_analysis.model import StrokeForestModel, split_data
from stroke_analysis.predictor import StrokePredictor

N_ROWS = 400
OTHER_GENDER_ROWS = [5, 77, 301]
MISSING_BMI_ROWS = [3, 14, 40, 66, 91, 120, 150, 222, 260, 333, 370, 399]
TEST_SEED = 42
TEST_TREES = 10

WORK_TYPES = ['Private', 'Self-employed', 'Govt_job', 'children', 'Never_worked']
SMOKING_STATUSES = ['formerly smoked', 'never smoked', 'smokes', 'Unknown']

BASE_PATIENT = {
    'gender': 'Male',
    'age': 46,
    'hypertension': 0,
    'heart_disease': 1,
    'ever_married': 'Yes',
    'work_type': 'Self-employed',
    'Residence_type': 'Urban',
    'avg_glucose_level': 100.00,
    'bmi': 30,
    'smoking_status': 'formerly smoked'
}


def _balanced_choice(rng, levels, n):
    """Every level appears, in random order"""
    return rng.permutation(np.resize(np.array(levels, dtype=object), n))


def make_raw_stroke_frame(n=N_ROWS, seed=7) -> pd.DataFrame:
    """Synthetic rows shaped like the healthcare stroke CSV"""
    rng = np.random.RandomState(seed)

    age = rng.uniform(1, 82, n).round(0)
    hypertension = rng.binomial(1, 0.2, n)
    heart_disease = rng.binomial(1, 0.15, n)
    glucose = rng.normal(105, 40, n).clip(55, 270).round(2)
    bmi = rng.normal(29, 7, n).clip(12, 60).round(1)

    risk = -4.5 + 0.06 * age + 0.9 * hypertension + 0.9 * heart_disease + 0.01 * (glucose - 100)
    stroke = rng.binomial(1, 1 / (1 + np.exp(-risk)))

    gender = _balanced_choice(rng, ['Male', 'Female'], n)
    gender[OTHER_GENDER_ROWS] = 'Other'

    bmi_text = np.array([f"{value:.1f}" for value in bmi], dtype=object)
    bmi_text[MISSING_BMI_ROWS] = 'N/A'

    return pd.DataFrame({
        'id': np.arange(1, n + 1),
        'gender': gender,
        'age': age,
        'hypertension': hypertension,
        'heart_disease': heart_disease,
        'ever_married': _balanced_choice(rng, ['Yes', 'No'], n),
        'work_type': _balanced_choice(rng, WORK_TYPES, n),
        'Residence_type': _balanced_choice(rng, ['Urban', 'Rural'], n),
        'avg_glucose_level': glucose,
        'bmi': bmi_text,
        'smoking_status': _balanced_choice(rng, SMOKING_STATUSES, n),
        'stroke': stroke
    })


@pytest.fixture(scope="session")
def spark():
    session = init_spark({
        "app_name": "stroke-analysis-tests",
        "master": "local[2]",
        "driver_memory": "1g",
        "executor_memory": "1g",
        "shuffle_partitions": 2
    })
    yield session
    SparkManager.stop()


@pytest.fixture(scope="session")
def raw_frame():
    return make_raw_stroke_frame()


@pytest.fixture(scope="session")
def raw_csv(tmp_path_factory, raw_frame):
    path = tmp_path_factory.mktemp("data") / "healthcare-dataset-stroke-data.csv"
    raw_frame.to_csv(path, index=False)
    return str(path)


@pytest.fixture(scope="session")
def raw_df(spark, raw_csv):
    return StrokeDataLoader(spark).load_data(raw_csv)


@pytest.fixture(scope="session")
def cleaned_df(spark, raw_df):
    return StrokeDataPreprocessor(spark).preprocess_pipeline(raw_df).cache()


@pytest.fixture(scope="session")
def train_test(cleaned_df):
    return split_data(cleaned_df, train_ratio=0.75, seed=TEST_SEED)


@pytest.fixture(scope="session")
def trained_model(train_test):
    train_df, _ = train_test
    return StrokeForestModel(3, num_trees=TEST_TREES, seed=TEST_SEED).fit(train_df)


@pytest.fixture(scope="session")
def deployed_model(cleaned_df):
    return StrokeForestModel(3, num_trees=TEST_TREES, seed=TEST_SEED).fit(cleaned_df)


@pytest.fixture(scope="session")
def predictor(spark, deployed_model):
    return StrokePredictor(spark, deployed_model)


@pytest.fixture
def base_patient():
    return dict(BASE_PATIENT)

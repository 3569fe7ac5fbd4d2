import pytest

import config
from stroke_analysis.feature_engineering import StrokeFeatureRecipe, NUMERIC_SCALED_COL


@pytest.fixture(scope="module")
def recipe():
    return StrokeFeatureRecipe()


@pytest.fixture(scope="module")
def fitted_recipe(recipe, train_test):
    train_df, _ = train_test
    return recipe.fit(train_df)


def test_recipe_declares_target_and_predictors(recipe):
    assert recipe.target == "stroke"
    assert set(recipe.predictors) == {
        "gender", "age", "hypertension", "heart_disease", "Residence_type",
        "avg_glucose_level", "work_type", "smoking_status", "bmi", "ever_married"
    }
    assert len(recipe.feature_names) == 10


def test_normalization_uses_training_statistics(recipe, fitted_recipe, train_test):
    train_df, _ = train_test
    train_pd = train_df.select(recipe.numerical_features).toPandas()

    params = recipe.normalization_params(fitted_recipe)

    for col in recipe.numerical_features:
        assert params[col]["mean"] == pytest.approx(train_pd[col].mean())
        assert params[col]["std"] == pytest.approx(train_pd[col].std(ddof=1))


def test_test_data_scaled_with_training_statistics(recipe, fitted_recipe, train_test):
    _, test_df = train_test
    params = recipe.normalization_params(fitted_recipe)

    rows = fitted_recipe.transform(test_df) \
        .select(recipe.numerical_features + [NUMERIC_SCALED_COL]) \
        .collect()

    assert rows
    for row in rows:
        scaled = row[NUMERIC_SCALED_COL].toArray()
        for i, col in enumerate(recipe.numerical_features):
            expected = (row[col] - params[col]["mean"]) / params[col]["std"]
            assert scaled[i] == pytest.approx(expected, abs=1e-9)


def test_transforming_new_data_does_not_refit(recipe, fitted_recipe, train_test):
    _, test_df = train_test
    before = recipe.normalization_params(fitted_recipe)

    fitted_recipe.transform(test_df).count()

    assert recipe.normalization_params(fitted_recipe) == before


def test_categorical_levels_are_alphabetical(recipe, fitted_recipe):
    levels = recipe.categorical_levels(fitted_recipe)

    assert levels["gender"] == ["Female", "Male"]
    assert levels["Residence_type"] == ["Rural", "Urban"]
    for col in recipe.categorical_features:
        assert levels[col] == sorted(levels[col])


def test_with_label_maps_stroke_to_one(spark, recipe):
    df = spark.createDataFrame([("Stroke",), ("No Stroke",)], ["stroke"])

    labels = [row[config.LABEL_COLUMN] for row in recipe.with_label(df).collect()]

    assert labels == [1.0, 0.0]

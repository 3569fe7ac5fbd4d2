import json

import pytest

from main import BASE_PATIENT, parse_args, summarize_results
from stroke_analysis.pipeline import (
    PipelineSettings, StrokePipelineContext, deploy_stage, evaluate_stage, get_predictor, run_pipeline
)
from conftest import TEST_SEED


@pytest.fixture(scope="module")
def pipeline_ctx(spark, raw_csv):
    settings = PipelineSettings(
        data_path=raw_csv,
        num_folds=3,
        mtry_grid=[3, 4],
        num_trees=5,
        seed=TEST_SEED
    )
    return run_pipeline(spark, settings)


def test_pipeline_threads_every_stage(pipeline_ctx):
    ctx = pipeline_ctx

    assert ctx.best_mtry in {3, 4}
    assert len(ctx.folds) == 3
    assert ctx.train_df.count() + ctx.test_df.count() == ctx.cleaned_df.count()
    assert int(ctx.test_metrics["confusion_matrix"].values.sum()) == ctx.test_df.count()
    assert ctx.train_model.mtry == ctx.best_mtry
    assert ctx.deployed_model.mtry == ctx.best_mtry


def test_tuning_releases_cached_folds(pipeline_ctx):
    assert all(not fold.source.is_cached for fold in pipeline_ctx.folds)


def test_deployed_model_is_fit_on_all_cleaned_data(pipeline_ctx):
    ctx = pipeline_ctx
    cleaned_bmi = ctx.cleaned_df.select("bmi").toPandas()["bmi"]
    train_bmi = ctx.train_df.select("bmi").toPandas()["bmi"]

    assert ctx.deployed_model.normalization_params["bmi"]["mean"] == pytest.approx(cleaned_bmi.mean())
    assert ctx.train_model.normalization_params["bmi"]["mean"] == pytest.approx(train_bmi.mean())


def test_pipeline_predictor_scores_sample_patient(spark, pipeline_ctx):
    result = get_predictor(spark, pipeline_ctx).predict_one(BASE_PATIENT)
    assert result["prediction"] in (0, 1)


def test_stages_require_tuning_first():
    ctx = StrokePipelineContext(settings=PipelineSettings())
    with pytest.raises(ValueError):
        evaluate_stage(ctx)
    with pytest.raises(ValueError):
        deploy_stage(ctx)


def test_summary_is_json_serializable(pipeline_ctx):
    summary = summarize_results(pipeline_ctx, {"baseline": {"prediction": 0}})

    decoded = json.loads(json.dumps(summary))

    assert decoded["best_mtry"] == pipeline_ctx.best_mtry
    assert len(decoded["cv_leaderboard"]) == 4
    assert sum(sum(row.values()) for row in decoded["confusion_matrix"].values()) == \
        decoded["test_metrics"]["num_samples"]


def test_parse_args_overrides_defaults():
    settings = parse_args(["--num-folds", "5", "--mtry-grid", "2", "6", "--seed", "1"])

    assert settings.num_folds == 5
    assert settings.mtry_grid == [2, 6]
    assert settings.seed == 1
    assert settings.train_ratio == 0.75

"""
COMPLETE PIPELINE - runs the stroke project end to end

Order:
1. Load raw data
2. Cleaning
3. Train/test split + K-fold CV folds
4. Tune mtry with cross validation
5. Fit on train set & evaluate on test set
6. Refit on all data & predict sample patients
"""

import argparse
import json
import logging
import sys

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from stroke_analysis.utils import SparkManager
from stroke_analysis.data_preprocessing import get_statistical_summary, get_class_distribution
from stroke_analysis.pipeline import (
    PipelineSettings, load_stage, split_stage, tune_stage, evaluate_stage, deploy_stage, get_predictor
)
import config


# Hand-built inputs to check how the deployed model reacts to single features
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

SAMPLE_PATIENTS = {
    'baseline': BASE_PATIENT,
    'bmi=25': {**BASE_PATIENT, 'bmi': 25},
    'bmi=50': {**BASE_PATIENT, 'bmi': 50},
    'gender=Female': {**BASE_PATIENT, 'gender': 'Female'},
    'age=25': {**BASE_PATIENT, 'age': 25},
    'age=75': {**BASE_PATIENT, 'age': 75},
}


def parse_args(argv=None) -> PipelineSettings:
    parser = argparse.ArgumentParser(description="Stroke prediction pipeline (Random Forest)")
    parser.add_argument("--data-path", type=str, default=str(config.RAW_DATA_FILE),
                        help="CSV file with the raw stroke dataset")
    parser.add_argument("--train-ratio", type=float, default=config.TRAIN_RATIO)
    parser.add_argument("--num-folds", type=int, default=config.NUM_FOLDS)
    parser.add_argument("--mtry-grid", type=int, nargs="+", default=config.MTRY_GRID,
                        help="Candidate numbers of features sampled per split")
    parser.add_argument("--num-trees", type=int, default=config.NUM_TREES)
    parser.add_argument("--metric", choices=["accuracy", "roc_auc"], default=config.TUNING_METRIC)
    parser.add_argument("--parallelism", type=int, default=config.CV_PARALLELISM,
                        help="Number of CV fits run concurrently")
    parser.add_argument("--seed", type=int, default=config.RANDOM_SEED)
    args = parser.parse_args(argv)

    return PipelineSettings(
        data_path=args.data_path,
        train_ratio=args.train_ratio,
        num_folds=args.num_folds,
        mtry_grid=list(args.mtry_grid),
        num_trees=args.num_trees,
        tuning_metric=args.metric,
        parallelism=args.parallelism,
        seed=args.seed
    )


def main(settings: PipelineSettings = None):
    """Full pipeline from A to Z"""
    settings = settings or PipelineSettings()

    print("\n" + "=" * 80)
    print("🚀 STROKE PREDICTION - COMPLETE PIPELINE")
    print("=" * 80)

    # ========================================================================
    # STEP 0: Start Spark
    # ========================================================================
    spark = SparkManager.get_spark(
        app_name=config.SPARK_CONFIG['app_name'],
        master=config.SPARK_CONFIG['master'],
        driver_memory=config.SPARK_CONFIG['driver_memory'],
        executor_memory=config.SPARK_CONFIG['executor_memory']
    )

    # ========================================================================
    # STEP 1-2: Load and clean
    # ========================================================================
    print("\n" + "=" * 80)
    print("STEP 1: LOAD & CLEAN DATA")
    print("=" * 80)

    ctx = load_stage(spark, settings)

    logger.info(f"✓ Cleaned records: {ctx.cleaned_df.count():,}")
    logger.info(f"✓ Class distribution: {get_class_distribution(ctx.cleaned_df)}")

    print("\n📊 Descriptive statistics:")
    get_statistical_summary(ctx.cleaned_df).show(truncate=False)

    # ========================================================================
    # STEP 3: Split
    # ========================================================================
    print("\n" + "=" * 80)
    print("STEP 2: TRAIN/TEST SPLIT & CV FOLDS")
    print("=" * 80)

    ctx = split_stage(ctx)

    # ========================================================================
    # STEP 4: Tuning
    # ========================================================================
    print("\n" + "=" * 80)
    print("STEP 3: TUNING mtry WITH K-FOLD CROSS VALIDATION")
    print("=" * 80)

    ctx = tune_stage(ctx)

    print("\n📊 CROSS VALIDATION LEADERBOARD:")
    print(ctx.leaderboard.to_string(index=False))
    print(f"\n🎯 BEST mtry: {ctx.best_mtry}")

    # ========================================================================
    # STEP 5: Fit & evaluate
    # ========================================================================
    print("\n" + "=" * 80)
    print("STEP 4: FINAL FIT & TEST SET EVALUATION")
    print("=" * 80)

    ctx = evaluate_stage(ctx)

    test_metrics = ctx.test_metrics
    print("\n📈 TEST SET METRICS (Unseen Data):")
    print(f"  Accuracy:  {test_metrics['accuracy']:.4f}")
    print(f"  AUC-ROC:   {test_metrics['auc_roc']:.4f}")

    print("\n📋 CONFUSION MATRIX:")
    print(test_metrics['confusion_matrix'].to_string())

    print("\n🔝 FEATURE IMPORTANCE:")
    print(ctx.train_model.get_feature_importance().to_string(index=False))

    # ========================================================================
    # STEP 6: Deploy & sample predictions
    # ========================================================================
    print("\n" + "=" * 80)
    print("STEP 5: REFIT ON ALL DATA & SAMPLE PREDICTIONS")
    print("=" * 80)

    ctx = deploy_stage(ctx)
    ctx.deployed_model.save_model()
    logger.info(f"✓ Model saved to: {config.MODEL_PATH}")

    predictor = get_predictor(spark, ctx)
    predictions = predictor.predict(list(SAMPLE_PATIENTS.values()))

    print("\n📝 Sample predictions:")
    for name, result in zip(SAMPLE_PATIENTS, predictions):
        print(f"  {name:<15} {result['prediction_label']:<10} "
              f"P(stroke)={result['probability_stroke']:.4f}")

    print("\n" + "=" * 80)
    print("✅ PIPELINE COMPLETE!")
    print("=" * 80 + "\n")

    return ctx, dict(zip(SAMPLE_PATIENTS, predictions))


def summarize_results(ctx, sample_predictions) -> dict:
    """JSON-serializable summary of a pipeline run"""
    leaderboard = ctx.leaderboard.astype(object)
    leaderboard = leaderboard.where(ctx.leaderboard.notna(), None)

    return {
        'best_mtry': ctx.best_mtry,
        'cv_leaderboard': leaderboard.to_dict(orient='records'),
        'test_metrics': {
            'accuracy': float(ctx.test_metrics['accuracy']),
            'auc_roc': float(ctx.test_metrics['auc_roc']),
            'num_samples': int(ctx.test_metrics['num_samples'])
        },
        'confusion_matrix': {
            predicted: {truth: int(count) for truth, count in row.items()}
            for predicted, row in ctx.test_metrics['confusion_matrix'].iterrows()
        },
        'sample_predictions': sample_predictions
    }


if __name__ == "__main__":
    try:
        ctx, sample_predictions = main(parse_args())

        with open(config.RESULTS_FILE, 'w') as f:
            json.dump(summarize_results(ctx, sample_predictions), f, indent=2)

        print(f"✓ Results saved to: {config.RESULTS_FILE}")

    except Exception as e:
        logger.error(f"❌ Pipeline failed: {str(e)}", exc_info=True)
        sys.exit(1)

    finally:
        SparkManager.stop()

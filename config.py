"""Configuration for the stroke prediction project"""
from pathlib import Path

# Project paths
ROOT_DIR = Path(__file__).parent
DATA_DIR = ROOT_DIR / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
MODEL_DIR = DATA_DIR / "models"
RESULTS_DIR = ROOT_DIR / "results"

# Create directories if they do not exist yet
for directory in [DATA_DIR, RAW_DATA_DIR, MODEL_DIR, RESULTS_DIR]:
    directory.mkdir(parents=True, exist_ok=True)

# File paths
RAW_DATA_FILE = RAW_DATA_DIR / "healthcare-dataset-stroke-data.csv"
MODEL_PATH = MODEL_DIR / "stroke_forest"
RESULTS_FILE = RESULTS_DIR / "pipeline_results.json"

# Spark config
SPARK_CONFIG = {
    "app_name": "Stroke Prediction Analysis",
    "master": "local[*]",
    "driver_memory": "4g",
    "executor_memory": "4g"
}

# Lightweight session used by the prediction web service
WEBAPP_SPARK_CONFIG = {
    "app_name": "StrokePredictor",
    "master": "local[1]",
    "driver_memory": "512m",
    "executor_memory": "512m"
}

# Data columns
TARGET_COLUMN = 'stroke'
LABEL_COLUMN = 'label'
ID_COLUMN = 'id'

NUMERICAL_FEATURES = ['age', 'hypertension', 'heart_disease', 'avg_glucose_level', 'bmi']
CATEGORICAL_FEATURES = ['gender', 'ever_married', 'work_type', 'Residence_type', 'smoking_status']
FEATURE_COLUMNS = NUMERICAL_FEATURES + CATEGORICAL_FEATURES
BINARY_FEATURES = ['hypertension', 'heart_disease']

REQUIRED_COLUMNS = FEATURE_COLUMNS + [TARGET_COLUMN]

# Cleaning rules
RETAINED_GENDERS = ['Male', 'Female']
BMI_MISSING_MARKER = 'N/A'

# Raw 0/1 encoding -> categorical label
STROKE_LEVELS = {0: 'No Stroke', 1: 'Stroke'}
POSITIVE_LABEL = STROKE_LEVELS[1]

# Model parameters
TRAIN_RATIO = 0.75
NUM_FOLDS = 10
MTRY_GRID = [3, 4, 5]
NUM_TREES = 500
TUNING_METRIC = 'accuracy'
CV_PARALLELISM = 1
RANDOM_SEED = 42

# Webapp
APP_TITLE = "Stroke Risk Prediction"

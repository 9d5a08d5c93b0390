"""
Explainable Species Distribution Modelling

This package trains presence/absence classifiers on climate features for
a species, predicts habitat suitability over a climate raster, and
explains the model with feature importance, accumulated local effects
and local surrogate (LIME) explanations.
"""

from .ale import ALECurve, AccumulatedLocalEffects
from .climate import ClimateRaster
from .config import PipelineSettings, SpeciesRunConfig, load_species_configs
from .evaluate import AucResult, compute_auc, rank_features
from .exceptions import (
    DataUnavailableError,
    HabitatError,
    InsufficientPositivesError,
    PipelineError,
    PredictionTimeoutError,
    SchemaMismatchError,
)
from .explain import InstanceExplanation, LimeInstanceExplainer, sample_positive_instances
from .features import FeatureDictionary
from .model import SpeciesClassifier
from .pipeline import SpeciesResult, run_all, run_species
from .predict import SuitabilityGrid, predict_suitability
from .preprocessing import FeatureNormalizer, split_dataset
from .provider import GbifWorldClimProvider, SpeciesData

__all__ = [
    'ALECurve',
    'AccumulatedLocalEffects',
    'ClimateRaster',
    'PipelineSettings',
    'SpeciesRunConfig',
    'load_species_configs',
    'AucResult',
    'compute_auc',
    'rank_features',
    'DataUnavailableError',
    'HabitatError',
    'InsufficientPositivesError',
    'PipelineError',
    'PredictionTimeoutError',
    'SchemaMismatchError',
    'InstanceExplanation',
    'LimeInstanceExplainer',
    'sample_positive_instances',
    'FeatureDictionary',
    'SpeciesClassifier',
    'SpeciesResult',
    'run_all',
    'run_species',
    'SuitabilityGrid',
    'predict_suitability',
    'FeatureNormalizer',
    'split_dataset',
    'GbifWorldClimProvider',
    'SpeciesData',
]

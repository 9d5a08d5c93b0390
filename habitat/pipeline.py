"""
Per-species explainable SDM pipeline.

One run goes: fetch data -> rename features -> normalize -> split ->
train -> evaluate, predict suitability, ALE curves, instance explanations.
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

from .ale import ALECurve, AccumulatedLocalEffects, EffectEstimator
from .config import PipelineSettings, SpeciesRunConfig
from .evaluate import Evaluation, evaluate
from .exceptions import InsufficientPositivesError, PipelineError, SchemaMismatchError
from .explain import InstanceExplainer, InstanceExplanation, LimeInstanceExplainer, explain_positive_instances
from .features import FeatureDictionary
from .gbif import coordinates_to_geojson
from .model import Classifier, SpeciesClassifier
from .predict import SuitabilityGrid, predict_suitability
from .preprocessing import DatasetSplit, FeatureNormalizer, split_dataset
from .provider import DataProvider

logger = logging.getLogger(__name__)

N_STEPS = 9


@dataclass
class SpeciesResult:
    """Structured outputs of one species run."""

    species: str
    resolution: str
    seed: int
    n_presence: int
    n_background: int
    split_sizes: dict
    train_index: list
    test_index: list
    model_type: str
    hyperparameters: dict
    training: dict
    normalization: dict
    evaluation: Evaluation
    suitability: SuitabilityGrid
    ale_curves: dict[str, ALECurve] = field(default_factory=dict)
    explanations: list[InstanceExplanation] = field(default_factory=list)
    explanation_error: Optional[str] = None
    presence_coords: list[tuple[float, float]] = field(default_factory=list)
    background_coords: list[tuple[float, float]] = field(default_factory=list)

    @property
    def auc(self):
        return self.evaluation.auc

    @property
    def feature_importance(self):
        return self.evaluation.importance

    @property
    def slug(self) -> str:
        return self.species.replace(" ", "_").lower()

    def to_dict(self) -> dict:
        return {
            "species": self.species,
            "resolution": self.resolution,
            "seed": self.seed,
            "n_presence": self.n_presence,
            "n_background": self.n_background,
            "split": self.split_sizes,
            "model": {
                "type": self.model_type,
                "hyperparameters": self.hyperparameters,
                "training": self.training,
            },
            "normalization": self.normalization,
            **self.evaluation.to_dict(),
            "suitability": self.suitability.summary(),
            "ale": {name: curve.to_dict() for name, curve in self.ale_curves.items()},
            "explanations": [e.to_dict() for e in self.explanations],
            "explanation_error": self.explanation_error,
        }

    def save(self, output_dir: Path) -> dict[str, Path]:
        """Save results summary, suitability raster and point layers."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {}
        paths["raster"] = self.suitability.save(output_dir / f"{self.slug}_suitability.tif")

        for label, coords in (("presence", self.presence_coords), ("background", self.background_coords)):
            geojson_path = output_dir / f"{self.slug}_{label}.geojson"
            with open(geojson_path, "w") as f:
                json.dump(coordinates_to_geojson(coords, self.species, label=label), f)
            paths[label] = geojson_path

        results_path = output_dir / f"{self.slug}_results.json"
        with open(results_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        paths["results"] = results_path
        logger.info(f"Saved results summary to {results_path}")

        return paths


@dataclass
class BatchResult:
    results: dict[str, SpeciesResult] = field(default_factory=dict)
    failures: dict[str, PipelineError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


@contextmanager
def _step(species: str, step: str, number: int):
    logger.info(f"\n[{number}/{N_STEPS}] {step.capitalize()}...")
    try:
        yield
    except PipelineError:
        raise
    except Exception as e:
        raise PipelineError(species, step, str(e)) from e


def select_ale_features(
    requested: Optional[list[str]],
    importance: list,
    feature_columns: list[str],
    n: int,
) -> list[str]:
    """Use the requested features if given, else the n most important ones."""
    if requested:
        unknown = [f for f in requested if f not in feature_columns]
        if unknown:
            raise SchemaMismatchError(f"ALE features not in schema: {unknown}")
        return list(requested)
    return [item.feature for item in importance[:n]]


def run_species(
    config: SpeciesRunConfig,
    provider: DataProvider,
    settings: Optional[PipelineSettings] = None,
    dictionary: Optional[FeatureDictionary] = None,
    classifier_factory: Optional[Callable[[PipelineSettings], Classifier]] = None,
    effect_estimator: Optional[EffectEstimator] = None,
    instance_explainer: Optional[InstanceExplainer] = None,
) -> SpeciesResult:
    """
    Run the full explainable SDM workflow for one species.

    Args:
        config: Species name, resolution, record limit and ALE features
        provider: Source of occurrence data and climate raster
        settings: Seed, split and model settings shared across species
        dictionary: Feature dictionary for renaming (default: WorldClim bioclim)
        classifier_factory: Builds an untrained classifier from settings
        effect_estimator: ALE implementation (default: AccumulatedLocalEffects)
        instance_explainer: Local explainer (default: LimeInstanceExplainer)

    Returns:
        SpeciesResult bundle

    Raises:
        PipelineError: naming the species and the step that failed
    """
    settings = settings or PipelineSettings()
    dictionary = dictionary or FeatureDictionary()
    species = config.species

    if classifier_factory is None:
        def classifier_factory(s: PipelineSettings) -> Classifier:
            return SpeciesClassifier(model_type=s.model_type, seed=s.seed, **s.model_params)
    effect_estimator = effect_estimator or AccumulatedLocalEffects(n_bins=settings.ale_bins)
    instance_explainer = instance_explainer or LimeInstanceExplainer(
        top_k=settings.top_k_weights, seed=settings.seed
    )

    logger.info("=" * 60)
    logger.info(f"Species: {species} ({config.resolution})")
    logger.info("=" * 60)

    with _step(species, "fetch", 1):
        data = provider.fetch(species, config.max_records, config.resolution)

    with _step(species, "rename", 2):
        data = data.rename(dictionary)
        features = data.feature_columns
        logger.info(f"  {len(data.dataset)} rows, {len(features)} features")

    with _step(species, "normalize", 3):
        normalizer = FeatureNormalizer()
        dataset = normalizer.fit_transform(data.dataset, features)
        # Drop the raw raster so only the normalized copy stays alive
        data = replace(data, raster=normalizer.transform_raster(data.raster))
        raster = data.raster

    with _step(species, "split", 4):
        split: DatasetSplit = split_dataset(
            dataset, features,
            train_proportion=settings.train_proportion,
            seed=settings.seed,
            stratify=settings.stratify,
        )
        sizes = split.sizes()
        logger.info(f"  Train: {sizes['n_train']}, test: {sizes['n_test']}")

    with _step(species, "train", 5):
        classifier = classifier_factory(settings)
        training = classifier.train(split.X_train, split.y_train)

    with _step(species, "evaluate", 6):
        evaluation = evaluate(classifier, split.X_test, split.y_test, top_n=settings.top_n_features)

    with _step(species, "predict", 7):
        suitability = predict_suitability(
            classifier, raster,
            block_size=settings.block_size,
            n_jobs=settings.n_jobs,
            timeout=settings.prediction_timeout,
        )

    with _step(species, "ale", 8):
        ale_features = select_ale_features(
            config.ale_features, evaluation.importance, features, settings.n_ale_features
        )
        ale_curves = {}
        for feature in ale_features:
            ale_curves[feature] = effect_estimator.explain(classifier, split.X_train, feature)
            logger.info(f"  ALE computed for {feature}")

    explanations = []
    explanation_error = None
    with _step(species, "explain", 9):
        try:
            explanations = explain_positive_instances(
                instance_explainer, classifier, split.train, split.test, features,
                n=settings.n_explained, seed=settings.seed, replace=settings.replace,
            )
        except InsufficientPositivesError as e:
            logger.warning(f"  Instance explanations skipped: {e}")
            explanation_error = str(e)

    logger.info("\n" + "=" * 60)
    logger.info("COMPLETE")
    logger.info("=" * 60)

    return SpeciesResult(
        species=species,
        resolution=config.resolution,
        seed=settings.seed,
        n_presence=len(data.presence_coords),
        n_background=len(data.background_coords),
        split_sizes=sizes,
        train_index=split.train.index.tolist(),
        test_index=split.test.index.tolist(),
        model_type=getattr(classifier, "model_type", type(classifier).__name__),
        hyperparameters=getattr(classifier, "hyperparameters", {}),
        training=training or {},
        normalization=normalizer.stats(),
        evaluation=evaluation,
        suitability=suitability,
        ale_curves=ale_curves,
        explanations=explanations,
        explanation_error=explanation_error,
        presence_coords=data.presence_coords,
        background_coords=data.background_coords,
    )


def run_all(
    configs: list[SpeciesRunConfig],
    provider: DataProvider,
    settings: Optional[PipelineSettings] = None,
    dictionary: Optional[FeatureDictionary] = None,
    output_dir: Optional[Path] = None,
) -> BatchResult:
    """
    Run the pipeline for each species in turn.

    A failed species is logged and recorded; the remaining species still run.
    """
    settings = settings or PipelineSettings()
    dictionary = dictionary or FeatureDictionary()
    batch = BatchResult()

    for config in configs:
        try:
            result = run_species(config, provider, settings=settings, dictionary=dictionary)
            if output_dir:
                try:
                    result.save(Path(output_dir))
                except OSError as e:
                    raise PipelineError(config.species, "save", str(e)) from e
        except PipelineError as e:
            logger.exception(f"Skipping {config.species}: {e}")
            batch.failures[config.species] = e
            continue
        batch.results[config.species] = result

    logger.info(f"Finished {len(batch.results)} of {len(configs)} species")
    return batch

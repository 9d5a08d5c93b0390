"""
Command-line interface for the explainable SDM pipeline.
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import (
    DEFAULT_RESOLUTION,
    DEFAULT_SEED,
    MAX_RECORDS,
    MIN_RECORDS,
    RESOLUTIONS,
    SPECIES,
    PipelineSettings,
    SpeciesRunConfig,
    load_species_configs,
)
from .features import FeatureDictionary
from .model import SpeciesClassifier
from .pipeline import BatchResult, run_all
from .provider import GbifWorldClimProvider


def build_configs(args: argparse.Namespace) -> list[SpeciesRunConfig]:
    if args.species_file:
        return load_species_configs(
            args.species_file, resolution=args.resolution, max_records=args.max_records
        )
    return [
        SpeciesRunConfig(species=name, resolution=args.resolution, max_records=args.max_records)
        for name in args.species or SPECIES
    ]


def print_summary(batch: BatchResult) -> None:
    print(f"\n{'='*60}")
    print("RESULTS SUMMARY")
    print(f"{'='*60}")
    for species, result in batch.results.items():
        auc = f"{result.auc.value:.3f}" if result.auc.computable else "not computable"
        top = ", ".join(item.feature for item in result.feature_importance)
        print(f"{species}: AUC {auc}; top features: {top}")
    for species, error in batch.failures.items():
        print(f"{species}: FAILED at {error.step}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Train and explain species distribution models from GBIF and WorldClim data"
    )
    parser.add_argument("species", nargs="*", help="Scientific names (default: built-in example species)")
    parser.add_argument("--species-file", type=Path, help="JSON list of species run configs")
    parser.add_argument("--climate-dir", type=Path, required=True,
                        help="Directory with wc2.1_<resolution>_bio_<n>.tif layers")
    parser.add_argument("--feature-dictionary", type=Path,
                        help="CSV with 'raw' and 'abbreviation' columns (default: bioclim names)")
    parser.add_argument("--resolution", "-r", default=DEFAULT_RESOLUTION, choices=RESOLUTIONS,
                        help="WorldClim resolution")
    parser.add_argument("--max-records", type=int, default=MAX_RECORDS, help="Maximum GBIF records per species")
    parser.add_argument("--min-records", type=int, default=MIN_RECORDS, help="Minimum usable occurrences")
    parser.add_argument("--output-dir", "-o", type=Path, default=Path("./output"), help="Output directory")
    parser.add_argument("--model", "-m", default="rf", choices=list(SpeciesClassifier.MODELS),
                        help="Classifier type")
    parser.add_argument("--seed", "-s", type=int, default=DEFAULT_SEED, help="Random seed")
    parser.add_argument("--n-jobs", type=int, default=1, help="Parallel workers for spatial prediction")
    parser.add_argument("--timeout", type=float, help="Seconds allowed for spatial prediction")
    parser.add_argument("--no-replace", action="store_true",
                        help="Fail instead of resampling when fewer than 3 test presences exist")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = PipelineSettings(
        seed=args.seed,
        model_type=args.model,
        replace=not args.no_replace,
        n_jobs=args.n_jobs,
        prediction_timeout=args.timeout,
    )
    dictionary = (
        FeatureDictionary.from_csv(args.feature_dictionary)
        if args.feature_dictionary else FeatureDictionary()
    )
    provider = GbifWorldClimProvider(args.climate_dir, min_records=args.min_records, seed=args.seed)

    batch = run_all(
        build_configs(args), provider,
        settings=settings, dictionary=dictionary, output_dir=args.output_dir,
    )
    print_summary(batch)
    return 0 if batch.ok else 1


if __name__ == "__main__":
    sys.exit(main())

"""
Pipeline defaults and per-species run configuration.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_SEED = 42

# Fraction of rows assigned to the training set
TRAIN_PROPORTION = 0.7

TOP_N_FEATURES = 5
N_EXPLAINED_INSTANCES = 3
TOP_K_WEIGHTS = 5
ALE_BINS = 10
N_ALE_FEATURES = 2

# Background points drawn per presence point
BACKGROUND_RATIO = 1

MAX_RECORDS = 1000
MIN_RECORDS = 10

# WorldClim resolutions available as local GeoTIFFs
RESOLUTIONS = ("30s", "2.5m", "5m", "10m")
DEFAULT_RESOLUTION = "10m"

# Example species
SPECIES = ["Quercus robur", "Fagus sylvatica", "Pinus sylvestris", "Betula pendula"]


@dataclass
class SpeciesRunConfig:
    """Inputs identifying one species run."""

    species: str
    resolution: str = DEFAULT_RESOLUTION
    max_records: int = MAX_RECORDS
    ale_features: Optional[list[str]] = None

    def __post_init__(self):
        if self.resolution not in RESOLUTIONS:
            raise ValueError(
                f"Unknown resolution: {self.resolution}. Choose from {list(RESOLUTIONS)}"
            )
        if self.max_records < 1:
            raise ValueError("max_records must be positive")


@dataclass
class PipelineSettings:
    """Settings shared by every species run."""

    seed: int = DEFAULT_SEED
    train_proportion: float = TRAIN_PROPORTION
    stratify: bool = False
    model_type: str = "rf"
    top_n_features: int = TOP_N_FEATURES
    n_explained: int = N_EXPLAINED_INSTANCES
    top_k_weights: int = TOP_K_WEIGHTS
    # Sample explained instances with replacement when positives are scarce
    replace: bool = True
    ale_bins: int = ALE_BINS
    n_ale_features: int = N_ALE_FEATURES
    block_size: int = 100_000
    n_jobs: int = 1
    prediction_timeout: Optional[float] = None
    model_params: dict = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 < self.train_proportion < 1.0:
            raise ValueError(
                f"train_proportion must be in (0, 1), got {self.train_proportion}"
            )


def load_species_configs(
    path: str | Path,
    resolution: str = DEFAULT_RESOLUTION,
    max_records: int = MAX_RECORDS,
) -> list[SpeciesRunConfig]:
    """
    Load species run configurations from a JSON file.

    The file holds a list of objects, each with at least a "species" key,
    or plain species-name strings. resolution and max_records apply to
    entries that do not set their own.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Species config not found: {path}")

    with open(path) as f:
        entries = json.load(f)

    if not isinstance(entries, list):
        raise ValueError(f"Expected a JSON list of species in {path}")

    configs = []
    for entry in entries:
        if isinstance(entry, str):
            entry = {"species": entry}
        configs.append(SpeciesRunConfig(**{"resolution": resolution, "max_records": max_records, **entry}))
    return configs

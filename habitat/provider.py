"""
Data providers: occurrence records plus a co-registered climate raster.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Protocol

import numpy as np
import pandas as pd

from .climate import ClimateRaster
from .config import BACKGROUND_RATIO, DEFAULT_SEED, MIN_RECORDS
from .exceptions import DataUnavailableError, SchemaMismatchError
from .features import FeatureDictionary
from .gbif import REQUEST_TIMEOUT, extract_coordinates, fetch_gbif_occurrences, get_species_key

logger = logging.getLogger(__name__)

LABEL_COLUMN = "label"
COORD_COLUMNS = ("x", "y")
PRESENCE, ABSENCE = 1, 0


@dataclass
class SpeciesData:
    """Everything a data provider returns for one species."""

    species: str
    dataset: pd.DataFrame  # feature columns, label, x, y
    raster: ClimateRaster
    presence_coords: list[tuple[float, float]]
    background_coords: list[tuple[float, float]]

    @property
    def feature_columns(self) -> list[str]:
        reserved = {LABEL_COLUMN, *COORD_COLUMNS}
        return [c for c in self.dataset.columns if c not in reserved]

    def rename(self, dictionary: FeatureDictionary) -> "SpeciesData":
        """Rename dataset columns and raster bands through the dictionary."""
        features = self.feature_columns
        if set(features) != set(self.raster.band_names):
            raise SchemaMismatchError(
                f"Dataset columns {features} do not match raster bands {self.raster.band_names}"
            )

        dataset = dictionary.rename_dataset(self.dataset, features)
        ordered = dictionary.ordered(features)
        raster = self.raster.select(ordered).rename(dictionary.rename(ordered))
        return replace(self, dataset=dataset, raster=raster)


class DataProvider(Protocol):
    def fetch(self, species: str, max_records: int, resolution: str) -> SpeciesData:
        ...


def build_dataset(
    feature_names: list[str],
    presence_values: np.ndarray,
    presence_coords: list[tuple[float, float]],
    background_values: np.ndarray,
    background_coords: list[tuple[float, float]],
) -> pd.DataFrame:
    """
    Stack presence and background rows into one labelled dataset.

    Presence rows come first, labelled 1; background rows are labelled 0.
    """
    values = np.vstack([
        np.asarray(presence_values, dtype=np.float64).reshape(-1, len(feature_names)),
        np.asarray(background_values, dtype=np.float64).reshape(-1, len(feature_names)),
    ])
    dataset = pd.DataFrame(values, columns=feature_names)
    dataset[LABEL_COLUMN] = [PRESENCE] * len(presence_coords) + [ABSENCE] * len(background_coords)

    coords = list(presence_coords) + list(background_coords)
    dataset[COORD_COLUMNS[0]] = [c[0] for c in coords]
    dataset[COORD_COLUMNS[1]] = [c[1] for c in coords]
    return dataset


def sample_background(
    raster: ClimateRaster,
    n_samples: int,
    exclude_coords: list[tuple[float, float]],
    seed: int = DEFAULT_SEED,
) -> tuple[np.ndarray, list[tuple[float, float]]]:
    """
    Sample random background points from valid raster cells.

    Args:
        raster: Loaded climate raster
        n_samples: Number of background samples to generate
        exclude_coords: Coordinates whose cells are excluded (presence locations)
        seed: Random seed for reproducibility

    Returns:
        Tuple of (values array, coordinates list)
    """
    rng = np.random.default_rng(seed)
    available = raster.valid_mask()

    if exclude_coords:
        rows, cols = raster.coords_to_pixel(
            [c[0] for c in exclude_coords], [c[1] for c in exclude_coords]
        )
        inside = (rows >= 0) & (rows < raster.height) & (cols >= 0) & (cols < raster.width)
        available[rows[inside], cols[inside]] = False

    candidates = np.flatnonzero(available)
    if len(candidates) < n_samples:
        logger.warning(
            f"Only {len(candidates)} background cells available (requested {n_samples})"
        )
        n_samples = len(candidates)

    chosen = np.sort(rng.choice(candidates, size=n_samples, replace=False))
    rows, cols = np.unravel_index(chosen, (raster.height, raster.width))

    values = raster.data[:, rows, cols].T.astype(np.float64)
    xs, ys = raster.pixel_to_coords(rows, cols)
    return values, list(zip(xs.tolist(), ys.tolist()))


def occurrence_extent(
    points: list[tuple[float, float]], buffer: float
) -> tuple[float, float, float, float]:
    """Bounding box of the points padded by buffer degrees, clamped to the globe."""
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return (
        max(min(xs) - buffer, -180.0),
        max(min(ys) - buffer, -90.0),
        min(max(xs) + buffer, 180.0),
        min(max(ys) + buffer, 90.0),
    )


class GbifWorldClimProvider:
    """
    GBIF occurrences paired with local WorldClim bioclim layers.

    Presence points are GBIF occurrence coordinates; absence points are
    background cells drawn at random from the same climate grid.
    """

    def __init__(
        self,
        climate_dir: Path,
        bbox: Optional[tuple[float, float, float, float]] = None,
        buffer: float = 2.0,
        background_ratio: float = BACKGROUND_RATIO,
        min_records: int = MIN_RECORDS,
        seed: int = DEFAULT_SEED,
        timeout: float = REQUEST_TIMEOUT,
    ):
        """
        Args:
            climate_dir: Directory holding wc2.1_{resolution}_bio_{i}.tif files
            bbox: Restrict occurrences and climate to this region
            buffer: Degrees added around the occurrence extent when bbox is not given
            background_ratio: Background points per presence point
            min_records: Fewest usable presence points to proceed
            seed: Random seed for background sampling
            timeout: GBIF request timeout in seconds
        """
        self.climate_dir = Path(climate_dir)
        self.bbox = bbox
        self.buffer = buffer
        self.background_ratio = background_ratio
        self.min_records = min_records
        self.seed = seed
        self.timeout = timeout

    def fetch(self, species: str, max_records: int, resolution: str) -> SpeciesData:
        taxon_key = get_species_key(species, timeout=self.timeout)
        if taxon_key is None:
            raise DataUnavailableError(f"Species not found in GBIF: {species}")
        logger.info(f"  GBIF taxon key: {taxon_key}")

        occurrences = fetch_gbif_occurrences(
            taxon_key, bbox=self.bbox, max_records=max_records, timeout=self.timeout
        )
        points = extract_coordinates(occurrences)
        logger.info(f"  Found {len(occurrences)} occurrences ({len(points)} unique locations)")

        if len(points) < self.min_records:
            raise DataUnavailableError(
                f"Need at least {self.min_records} occurrences for {species}, found {len(points)}"
            )

        extent = self.bbox or occurrence_extent(points, self.buffer)
        raster = ClimateRaster.from_worldclim(self.climate_dir, resolution, bbox=extent)

        values, valid = raster.sample_at_points(points)
        presence_coords = [p for p, v in zip(points, valid) if v]
        presence_values = values[valid]
        n_invalid = int((~valid).sum())
        if n_invalid:
            logger.warning(f"  {n_invalid} occurrences fall on missing climate cells")

        if len(presence_coords) < self.min_records:
            raise DataUnavailableError(
                f"Need at least {self.min_records} occurrences with climate data for {species}, "
                f"found {len(presence_coords)}"
            )

        n_background = int(round(len(presence_coords) * self.background_ratio))
        background_values, background_coords = sample_background(
            raster, n_background, presence_coords, seed=self.seed
        )
        logger.info(
            f"  Presence: {len(presence_coords)}, background: {len(background_coords)}"
        )

        dataset = build_dataset(
            raster.band_names, presence_values, presence_coords,
            background_values, background_coords,
        )
        return SpeciesData(
            species=species,
            dataset=dataset,
            raster=raster,
            presence_coords=presence_coords,
            background_coords=background_coords,
        )

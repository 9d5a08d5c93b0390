"""
Habitat suitability prediction over a climate raster.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import rasterio
from joblib import Parallel, delayed
from rasterio.crs import CRS
from rasterio.transform import Affine
from tqdm import tqdm

from .climate import ClimateRaster
from .exceptions import PredictionTimeoutError
from .model import Classifier

logger = logging.getLogger(__name__)

# Cells classified per block
BLOCK_SIZE = 100_000


@dataclass
class SuitabilityGrid:
    """Container for a predicted probability surface."""

    probabilities: np.ndarray  # (H, W), NaN where input was missing
    transform: Affine
    crs: CRS

    @property
    def shape(self) -> tuple[int, int]:
        return self.probabilities.shape

    def summary(self) -> dict:
        valid = self.probabilities[np.isfinite(self.probabilities)]
        stats = {
            "shape": list(self.shape),
            "n_cells": int(self.probabilities.size),
            "n_valid": int(valid.size),
            "transform": list(self.transform)[:6],
            "crs": self.crs.to_string() if self.crs else None,
        }
        if valid.size:
            stats.update({
                "min": float(valid.min()),
                "max": float(valid.max()),
                "mean": float(valid.mean()),
                "fraction_above_0.5": float((valid > 0.5).mean()),
            })
        return stats

    def save(self, path: str | Path) -> Path:
        """Save the probability grid as a single-band GeoTIFF."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(
            path, "w",
            driver="GTiff",
            height=self.shape[0],
            width=self.shape[1],
            count=1,
            dtype=np.float32,
            crs=self.crs,
            transform=self.transform,
            nodata=np.nan,
        ) as dst:
            dst.write(self.probabilities.astype(np.float32), 1)
        logger.info(f"Saved suitability raster: {path}")
        return path


def _predict_block(classifier: Classifier, block: np.ndarray) -> np.ndarray:
    """Predict a (n_cells, n_features) block; rows with any NaN stay NaN."""
    scores = np.full(len(block), np.nan, dtype=np.float32)
    valid = np.isfinite(block).all(axis=1)
    if valid.any():
        scores[valid] = classifier.predict_proba(block[valid])
    return scores


def predict_suitability(
    classifier: Classifier,
    raster: ClimateRaster,
    block_size: int = BLOCK_SIZE,
    n_jobs: int = 1,
    timeout: Optional[float] = None,
) -> SuitabilityGrid:
    """
    Predict presence probability for every cell of a normalized raster.

    Args:
        classifier: Trained classifier
        raster: Raster standardized with the training statistics; bands are
            matched to the classifier's features by name
        block_size: Number of cells classified at a time
        n_jobs: Parallel workers for block prediction (joblib semantics)
        timeout: Seconds allowed for the whole pass

    Returns:
        SuitabilityGrid on the raster's grid
    """
    if block_size < 1:
        raise ValueError("block_size must be positive")

    raster = raster.select(classifier.feature_names)
    n_bands, height, width = raster.shape
    cells = raster.data.reshape(n_bands, -1)
    n_cells = cells.shape[1]
    scores = np.full(n_cells, np.nan, dtype=np.float32)

    starts = range(0, n_cells, block_size)
    logger.info(f"Predicting {height} x {width} = {n_cells:,} cells in {len(starts)} blocks")
    deadline = None if timeout is None else time.monotonic() + timeout

    if n_jobs == 1:
        blocks = (_predict_block(classifier, cells[:, i:i + block_size].T) for i in starts)
    else:
        blocks = Parallel(n_jobs=n_jobs, prefer="threads", return_as="generator")(
            delayed(_predict_block)(classifier, cells[:, i:i + block_size].T) for i in starts
        )

    for start, block_scores in tqdm(zip(starts, blocks), total=len(starts), desc="Predicting"):
        scores[start:start + len(block_scores)] = block_scores
        if deadline is not None and time.monotonic() > deadline:
            raise PredictionTimeoutError(
                f"Spatial prediction exceeded {timeout}s after {start + len(block_scores):,} of {n_cells:,} cells"
            )

    grid = SuitabilityGrid(
        probabilities=scores.reshape(height, width),
        transform=raster.transform,
        crs=raster.crs,
    )
    valid = np.isfinite(scores)
    if valid.any():
        logger.info(f"  Score range: {scores[valid].min():.3f} - {scores[valid].max():.3f}")
    logger.info(f"  Valid cells: {int(valid.sum()):,} ({100 * valid.mean():.1f}%)")
    return grid

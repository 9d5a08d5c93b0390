"""
Feature standardization and train/test splitting.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from .climate import ClimateRaster
from .config import DEFAULT_SEED, TRAIN_PROPORTION
from .exceptions import SchemaMismatchError
from .provider import COORD_COLUMNS, LABEL_COLUMN

logger = logging.getLogger(__name__)


class FeatureNormalizer:
    """
    Per-feature standardization to zero mean and unit variance.

    Fit once on the full dataset; the same statistics then transform both
    the tabular dataset and the climate raster bands. Zero-variance
    features map to exactly 0 and missing values stay missing.
    """

    def __init__(self):
        self._scaler: Optional[StandardScaler] = None
        self.feature_names: Optional[list[str]] = None

    @property
    def is_fitted(self) -> bool:
        return self._scaler is not None

    def fit(self, dataset: pd.DataFrame, feature_columns: list[str]) -> "FeatureNormalizer":
        missing = [c for c in feature_columns if c not in dataset.columns]
        if missing:
            raise SchemaMismatchError(f"Dataset lacks feature columns: {missing}")

        self.feature_names = list(feature_columns)
        self._scaler = StandardScaler()
        self._scaler.fit(dataset[self.feature_names].to_numpy(dtype=np.float64))
        return self

    @property
    def means(self) -> dict[str, float]:
        self._check_fitted()
        return dict(zip(self.feature_names, self._scaler.mean_.tolist()))

    @property
    def stds(self) -> dict[str, float]:
        self._check_fitted()
        return dict(zip(self.feature_names, np.sqrt(self._scaler.var_).tolist()))

    def stats(self) -> dict[str, dict[str, float]]:
        """Per-feature mean and standard deviation."""
        means, stds = self.means, self.stds
        return {name: {"mean": means[name], "std": stds[name]} for name in self.feature_names}

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError("Normalizer has not been fitted yet")

    def _constant_mask(self) -> np.ndarray:
        # StandardScaler leaves near-zero scales at 1; treat those features as constant
        tolerance = 10 * np.finfo(np.float64).eps * np.maximum(np.abs(self._scaler.mean_), 1.0)
        return np.sqrt(self._scaler.var_) <= tolerance

    def _scale(self, values: np.ndarray) -> np.ndarray:
        """Standardize an (n_rows, n_features) array in feature order."""
        scaled = self._scaler.transform(values)
        constant = self._constant_mask()
        if constant.any():
            block = scaled[:, constant]
            scaled[:, constant] = np.where(np.isnan(block), np.nan, 0.0)
        return scaled

    def transform(self, dataset: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of the dataset with feature columns standardized."""
        self._check_fitted()
        missing = [c for c in self.feature_names if c not in dataset.columns]
        if missing:
            raise SchemaMismatchError(f"Dataset lacks feature columns: {missing}")

        result = dataset.copy()
        values = dataset[self.feature_names].to_numpy(dtype=np.float64)
        result[self.feature_names] = self._scale(values)
        return result

    def fit_transform(self, dataset: pd.DataFrame, feature_columns: list[str]) -> pd.DataFrame:
        return self.fit(dataset, feature_columns).transform(dataset)

    def transform_raster(self, raster: ClimateRaster) -> ClimateRaster:
        """
        Standardize raster bands with the dataset statistics.

        Bands are matched by name and returned in the fitted feature order.
        """
        self._check_fitted()
        selected = raster.select(self.feature_names)
        # select() copies when it reorders; otherwise take the single working copy here
        data = selected.data if selected is not raster else selected.data.copy()

        constant = self._constant_mask()
        for i, (mean, scale) in enumerate(zip(self._scaler.mean_, self._scaler.scale_)):
            band = data[i]
            if constant[i]:
                band[~np.isnan(band)] = 0.0
            else:
                band -= mean
                band /= scale

        return ClimateRaster(data, self.feature_names, raster.transform, raster.crs)


@dataclass
class DatasetSplit:
    """Train and test partitions of one species dataset."""

    train: pd.DataFrame
    test: pd.DataFrame
    feature_columns: list[str]
    seed: int

    @property
    def X_train(self) -> pd.DataFrame:
        return self.train[self.feature_columns]

    @property
    def y_train(self) -> np.ndarray:
        return self.train[LABEL_COLUMN].to_numpy()

    @property
    def X_test(self) -> pd.DataFrame:
        return self.test[self.feature_columns]

    @property
    def y_test(self) -> np.ndarray:
        return self.test[LABEL_COLUMN].to_numpy()

    @property
    def test_coordinates(self) -> pd.DataFrame:
        return self.test[[c for c in COORD_COLUMNS if c in self.test.columns]]

    def sizes(self) -> dict:
        return {
            "n_train": len(self.train),
            "n_test": len(self.test),
            "n_positive_train": int((self.y_train == 1).sum()),
            "n_positive_test": int((self.y_test == 1).sum()),
        }


def split_dataset(
    dataset: pd.DataFrame,
    feature_columns: list[str],
    train_proportion: float = TRAIN_PROPORTION,
    seed: int = DEFAULT_SEED,
    stratify: bool = False,
) -> DatasetSplit:
    """
    Split a dataset into train and test sets.

    The training set receives floor(train_proportion * n) rows and the
    test set the remainder. Row index labels are preserved, so membership
    can be compared across runs.

    Args:
        dataset: Labelled dataset with feature, label and coordinate columns
        feature_columns: Names of the model features
        train_proportion: Fraction of rows used for training
        seed: Random seed for the shuffle
        stratify: Preserve the label distribution in both sides

    Returns:
        DatasetSplit with coordinates retained alongside features
    """
    if not 0.0 < train_proportion < 1.0:
        raise ValueError(f"train_proportion must be in (0, 1), got {train_proportion}")

    train, test = train_test_split(
        dataset,
        train_size=train_proportion,
        random_state=seed,
        shuffle=True,
        stratify=dataset[LABEL_COLUMN] if stratify else None,
    )
    logger.debug(f"Split {len(dataset)} rows into {len(train)} train / {len(test)} test")
    return DatasetSplit(train=train, test=test, feature_columns=list(feature_columns), seed=seed)

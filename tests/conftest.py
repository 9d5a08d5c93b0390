import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin

from habitat.climate import ClimateRaster
from habitat.exceptions import DataUnavailableError
from habitat.provider import SpeciesData, build_dataset

RAW_FEATURES = ["bio1", "bio4", "bio12"]
FEATURES = ["Annual_mean_temp", "Temp_seasonality", "Annual_precip"]


def make_values(n_presence, n_absence, seed=0):
    """Presence rows are warmer and wetter than absence rows."""
    rng = np.random.default_rng(seed)
    presence = np.column_stack([
        rng.normal(15, 2, n_presence),
        rng.normal(500, 50, n_presence),
        rng.normal(900, 100, n_presence),
    ])
    absence = np.column_stack([
        rng.normal(8, 2, n_absence),
        rng.normal(520, 50, n_absence),
        rng.normal(400, 100, n_absence),
    ])
    return presence, absence


def make_coords(n, offset=0.0):
    return [(offset + 0.1 * i, 50.0 + 0.05 * i) for i in range(n)]


@pytest.fixture
def dataset():
    """100 observations: 60 presence, 40 absence, readable feature names."""
    presence, absence = make_values(60, 40)
    return build_dataset(FEATURES, presence, make_coords(60), absence, make_coords(40, offset=20.0))


@pytest.fixture
def raw_species_data():
    """Provider output with raw bioclim names on a 20 x 30 grid."""
    rng = np.random.default_rng(1)
    height, width = 20, 30
    temp = np.linspace(5, 18, width)[None, :].repeat(height, axis=0)
    seasonality = rng.normal(510, 40, (height, width))
    precip = np.linspace(300, 1000, height)[:, None].repeat(width, axis=1)
    data = np.stack([temp, seasonality, precip]).astype(np.float32)
    data[:, 0, 0] = np.nan
    raster = ClimateRaster(data, RAW_FEATURES, from_origin(0.0, 20.0, 1.0, 1.0))

    presence, absence = make_values(40, 40, seed=2)
    return SpeciesData(
        species="Testus exampleus",
        dataset=build_dataset(RAW_FEATURES, presence, make_coords(40), absence, make_coords(40, offset=5.0)),
        raster=raster,
        presence_coords=make_coords(40),
        background_coords=make_coords(40, offset=5.0),
    )


class FakeProvider:
    """Returns canned species data; raises for species listed in failing."""

    def __init__(self, data, failing=()):
        self.data = data
        self.failing = set(failing)
        self.calls = []

    def fetch(self, species, max_records, resolution):
        self.calls.append((species, max_records, resolution))
        if species in self.failing:
            raise DataUnavailableError(f"No records for {species}")
        data = self.data
        return SpeciesData(
            species=species,
            dataset=data.dataset.copy(),
            raster=data.raster,
            presence_coords=list(data.presence_coords),
            background_coords=list(data.background_coords),
        )


@pytest.fixture
def provider(raw_species_data):
    return FakeProvider(raw_species_data)


@pytest.fixture
def trained(dataset):
    """A random forest trained on the normalized synthetic dataset."""
    from habitat.model import SpeciesClassifier
    from habitat.preprocessing import FeatureNormalizer, split_dataset

    normalized = FeatureNormalizer().fit_transform(dataset, FEATURES)
    split = split_dataset(normalized, FEATURES, seed=42)
    classifier = SpeciesClassifier(seed=42, n_estimators=30)
    classifier.train(split.X_train, split.y_train)
    return classifier, split


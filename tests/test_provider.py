import numpy as np
import pytest
from rasterio.transform import from_origin

from habitat import provider as provider_module
from habitat.climate import ClimateRaster, worldclim_path
from habitat.exceptions import DataUnavailableError, SchemaMismatchError
from habitat.features import FeatureDictionary
from habitat.provider import GbifWorldClimProvider, build_dataset, occurrence_extent, sample_background

from test_climate import write_layer


def make_raster():
    data = np.arange(3 * 6 * 8, dtype=np.float32).reshape(3, 6, 8)
    data[:, 0, :] = np.nan
    return ClimateRaster(data, ["bio1", "bio4", "bio12"], from_origin(0.0, 6.0, 1.0, 1.0))


def test_build_dataset_labels_and_coordinates():
    dataset = build_dataset(
        ["a", "b"], np.ones((2, 2)), [(0.0, 1.0), (2.0, 3.0)], np.zeros((1, 2)), [(4.0, 5.0)]
    )
    assert dataset["label"].tolist() == [1, 1, 0]
    assert dataset["x"].tolist() == [0.0, 2.0, 4.0]
    assert list(dataset.columns) == ["a", "b", "label", "x", "y"]


def test_background_avoids_presence_and_missing_cells():
    raster = make_raster()
    presence = [(0.5, 4.5), (1.5, 4.5)]
    values, coords = sample_background(raster, 20, presence, seed=42)

    assert len(coords) == 20
    assert np.isfinite(values).all()
    assert not set(coords) & set(presence)
    assert all(y < 5.0 for _, y in coords)


def test_background_is_seeded():
    raster = make_raster()
    assert sample_background(raster, 10, [], seed=1)[1] == sample_background(raster, 10, [], seed=1)[1]


def test_background_capped_by_available_cells():
    raster = make_raster()
    values, coords = sample_background(raster, 1000, [], seed=1)
    assert len(coords) == 5 * 8


def test_occurrence_extent_is_clamped():
    assert occurrence_extent([(179.0, 89.0), (170.0, 80.0)], buffer=2.0) == (168.0, 78.0, 180.0, 90.0)


def test_rename_checks_bands_match(raw_species_data):
    renamed = raw_species_data.rename(FeatureDictionary())
    assert renamed.raster.band_names == renamed.feature_columns
    assert "Temp_seasonality" in renamed.feature_columns

    mismatched = raw_species_data
    mismatched.raster = mismatched.raster.select(["bio1", "bio4"])
    with pytest.raises(SchemaMismatchError):
        mismatched.rename(FeatureDictionary())


@pytest.fixture
def climate_dir(tmp_path):
    rng = np.random.default_rng(0)
    transform = from_origin(-10.0, 60.0, 0.5, 0.5)
    for i in range(1, 20):
        write_layer(worldclim_path(tmp_path, "10m", i), rng.normal(i, 1, (40, 40)), transform=transform)
    return tmp_path


def patch_gbif(monkeypatch, points):
    occurrences = [{"decimalLongitude": x, "decimalLatitude": y} for x, y in points]
    monkeypatch.setattr(provider_module, "get_species_key", lambda name, timeout: 123)
    monkeypatch.setattr(
        provider_module, "fetch_gbif_occurrences",
        lambda key, bbox, max_records, timeout: occurrences[:max_records],
    )


def test_gbif_worldclim_provider(monkeypatch, climate_dir):
    points = [(-5.0 + 0.5 * i, 50.0 + 0.25 * i) for i in range(12)]
    patch_gbif(monkeypatch, points)

    provider = GbifWorldClimProvider(climate_dir, background_ratio=2, min_records=10, seed=3)
    data = provider.fetch("Quercus robur", max_records=100, resolution="10m")

    assert len(data.presence_coords) == 12
    assert len(data.background_coords) == 24
    assert data.raster.band_names == [f"bio{i}" for i in range(1, 20)]
    assert (data.dataset["label"] == 1).sum() == 12
    assert (data.dataset["label"] == 0).sum() == 24
    assert np.isfinite(data.dataset[data.feature_columns].to_numpy()).all()


def test_provider_too_few_records(monkeypatch, climate_dir):
    patch_gbif(monkeypatch, [(-5.0, 50.0), (-4.0, 51.0)])
    provider = GbifWorldClimProvider(climate_dir, min_records=10)
    with pytest.raises(DataUnavailableError, match="at least 10"):
        provider.fetch("Rare plant", max_records=100, resolution="10m")


def test_provider_unknown_species(monkeypatch, climate_dir):
    monkeypatch.setattr(provider_module, "get_species_key", lambda name, timeout: None)
    with pytest.raises(DataUnavailableError, match="not found"):
        GbifWorldClimProvider(climate_dir).fetch("Nonexistent plant", 10, "10m")

import pandas as pd
import pytest

from habitat.exceptions import SchemaMismatchError
from habitat.features import BIOCLIM_ABBREVIATIONS, FeatureDictionary


def test_default_dictionary_covers_all_bioclim_variables():
    dictionary = FeatureDictionary()
    assert len(dictionary) == 19
    assert dictionary.rename(["bio4"]) == ["Temp_seasonality"]


def test_rename_unknown_column_raises():
    with pytest.raises(SchemaMismatchError, match="bio99"):
        FeatureDictionary().rename(["bio1", "bio99"])


def test_rename_dataset_orders_features_by_dictionary():
    dataset = pd.DataFrame({"bio12": [1.0], "label": [1], "bio1": [2.0], "x": [0.0], "y": [0.0]})
    renamed = FeatureDictionary().rename_dataset(dataset, ["bio12", "bio1"])
    assert list(renamed.columns) == ["Annual_mean_temp", "Annual_precip", "label", "x", "y"]
    assert renamed["Annual_mean_temp"].iloc[0] == 2.0


def test_duplicate_abbreviations_rejected():
    with pytest.raises(ValueError):
        FeatureDictionary({"a": "Same", "b": "Same"})


def test_from_csv(tmp_path):
    path = tmp_path / "dictionary.csv"
    path.write_text("raw,abbreviation\nbio1,Temp\nbio12,Precip\n")
    dictionary = FeatureDictionary.from_csv(path)
    assert dictionary.raw_names == ["bio1", "bio12"]
    assert dictionary.abbreviations == ["Temp", "Precip"]


def test_from_csv_missing_columns(tmp_path):
    path = tmp_path / "dictionary.csv"
    path.write_text("raw,name\nbio1,Temp\n")
    with pytest.raises(ValueError, match="abbreviation"):
        FeatureDictionary.from_csv(path)


def test_abbreviations_are_unique():
    assert len(set(BIOCLIM_ABBREVIATIONS.values())) == len(BIOCLIM_ABBREVIATIONS)

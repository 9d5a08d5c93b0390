"""
Feature dictionary mapping raw climate variable identifiers to readable names.
"""

from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from .exceptions import SchemaMismatchError


# WorldClim v2.1 bioclimatic variables
BIOCLIM_ABBREVIATIONS = {
    "bio1": "Annual_mean_temp",
    "bio2": "Mean_diurnal_range",
    "bio3": "Isothermality",
    "bio4": "Temp_seasonality",
    "bio5": "Max_temp_warmest_month",
    "bio6": "Min_temp_coldest_month",
    "bio7": "Temp_annual_range",
    "bio8": "Mean_temp_wettest_quarter",
    "bio9": "Mean_temp_driest_quarter",
    "bio10": "Mean_temp_warmest_quarter",
    "bio11": "Mean_temp_coldest_quarter",
    "bio12": "Annual_precip",
    "bio13": "Precip_wettest_month",
    "bio14": "Precip_driest_month",
    "bio15": "Precip_seasonality",
    "bio16": "Precip_wettest_quarter",
    "bio17": "Precip_driest_quarter",
    "bio18": "Precip_warmest_quarter",
    "bio19": "Precip_coldest_quarter",
}


class FeatureDictionary:
    """
    Ordered mapping from raw feature identifiers to abbreviations.

    Loaded once and shared by all species runs. Renaming goes through
    here before any numeric step so that dataset columns and raster bands
    carry the same names.
    """

    def __init__(self, entries: Optional[dict[str, str]] = None):
        entries = BIOCLIM_ABBREVIATIONS if entries is None else entries
        if len(set(entries.values())) != len(entries):
            raise ValueError("Feature abbreviations must be unique")
        self._entries = dict(entries)

    @classmethod
    def from_csv(cls, path: str | Path) -> "FeatureDictionary":
        """Load from a CSV with 'raw' and 'abbreviation' columns."""
        table = pd.read_csv(path)
        missing = {"raw", "abbreviation"} - set(table.columns)
        if missing:
            raise ValueError(f"Feature dictionary {path} lacks columns: {sorted(missing)}")
        return cls(dict(zip(table["raw"].astype(str), table["abbreviation"].astype(str))))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, raw: str) -> bool:
        return raw in self._entries

    @property
    def raw_names(self) -> list[str]:
        return list(self._entries)

    @property
    def abbreviations(self) -> list[str]:
        return list(self._entries.values())

    def rename(self, raw_names: Iterable[str]) -> list[str]:
        """
        Map raw names to abbreviations.

        Raises:
            SchemaMismatchError: if any name has no dictionary entry
        """
        raw_names = list(raw_names)
        missing = [name for name in raw_names if name not in self._entries]
        if missing:
            raise SchemaMismatchError(f"No feature dictionary entry for: {missing}")
        return [self._entries[name] for name in raw_names]

    def ordered(self, raw_names: Iterable[str]) -> list[str]:
        """Return the given raw names sorted into dictionary order."""
        raw_names = set(raw_names)
        self.rename(raw_names)
        return [name for name in self._entries if name in raw_names]

    def rename_dataset(
        self, dataset: pd.DataFrame, feature_columns: Iterable[str]
    ) -> pd.DataFrame:
        """
        Rename feature columns of a dataset, leaving other columns alone.

        Feature columns are placed in dictionary order, followed by the
        remaining columns in their original order.
        """
        feature_columns = self.ordered(feature_columns)
        mapping = dict(zip(feature_columns, self.rename(feature_columns)))
        other = [c for c in dataset.columns if c not in mapping]
        return dataset[feature_columns + other].rename(columns=mapping)

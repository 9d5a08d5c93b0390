"""
Multi-band climate raster loading and sampling.

Bands are read from single-band GeoTIFFs into one in-memory stack so that
training points and prediction cells are sampled from the same grid.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.errors import WindowError
from rasterio.transform import Affine
from rasterio.windows import Window, from_bounds

from .exceptions import DataUnavailableError, SchemaMismatchError

logger = logging.getLogger(__name__)

N_BIOCLIM = 19


def worldclim_path(climate_dir: Path, resolution: str, index: int) -> Path:
    """Path of a WorldClim v2.1 bioclim GeoTIFF, e.g. wc2.1_10m_bio_4.tif"""
    return Path(climate_dir) / f"wc2.1_{resolution}_bio_{index}.tif"


class ClimateRaster:
    """
    A stack of co-registered climate grids, one band per feature.

    Data is held as a float32 array of shape (bands, height, width) with
    missing cells stored as NaN.
    """

    def __init__(
        self,
        data: np.ndarray,
        band_names: list[str],
        transform: Affine,
        crs: Optional[CRS] = None,
    ):
        data = np.asarray(data, dtype=np.float32)
        if data.ndim != 3:
            raise ValueError(f"Expected (bands, height, width) array, got shape {data.shape}")
        if len(band_names) != data.shape[0]:
            raise SchemaMismatchError(
                f"{len(band_names)} band names given for {data.shape[0]} bands"
            )
        if len(set(band_names)) != len(band_names):
            raise SchemaMismatchError(f"Duplicate band names: {band_names}")

        self.data = data
        self.band_names = list(band_names)
        self.transform = transform
        self.crs = crs if crs is not None else CRS.from_epsg(4326)

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[1]

    @property
    def width(self) -> int:
        return self.data.shape[2]

    @classmethod
    def from_geotiffs(
        cls,
        paths: dict[str, Path],
        bbox: Optional[tuple[float, float, float, float]] = None,
    ) -> "ClimateRaster":
        """
        Read single-band GeoTIFFs into a stack, optionally clipped to a bbox.

        Args:
            paths: Mapping of band name to GeoTIFF path, in band order
            bbox: (min_lon, min_lat, max_lon, max_lat) to clip to

        Returns:
            ClimateRaster with nodata cells set to NaN
        """
        bands = []
        transform = None
        crs = None

        for name, path in paths.items():
            path = Path(path)
            if not path.exists():
                raise DataUnavailableError(f"Climate layer not found: {path}")

            with rasterio.open(path) as src:
                window = None
                if bbox is not None:
                    window = from_bounds(*bbox, transform=src.transform)
                    window = window.round_offsets().round_lengths()
                    try:
                        window = window.intersection(Window(0, 0, src.width, src.height))
                    except WindowError:
                        raise DataUnavailableError(f"Bbox {bbox} does not overlap {path}") from None

                band = src.read(1, window=window, masked=True)
                band = band.astype(np.float32).filled(np.nan)
                band_transform = src.window_transform(window) if window is not None else src.transform

                if transform is None:
                    transform, crs = band_transform, src.crs
                elif band_transform != transform or band.shape != bands[0].shape:
                    raise SchemaMismatchError(f"Layer {path} is not aligned with the first layer")

            bands.append(band)
            logger.debug(f"  Loaded {name} from {path.name}: {band.shape}")

        if not bands:
            raise DataUnavailableError("No climate layers given")

        return cls(np.stack(bands), list(paths), transform, crs)

    @classmethod
    def from_worldclim(
        cls,
        climate_dir: Path,
        resolution: str,
        bbox: Optional[tuple[float, float, float, float]] = None,
        variables: Optional[Iterable[int]] = None,
    ) -> "ClimateRaster":
        """Load WorldClim bioclim layers; bands are named bio1..bio19."""
        variables = range(1, N_BIOCLIM + 1) if variables is None else variables
        paths = {f"bio{i}": worldclim_path(climate_dir, resolution, i) for i in variables}
        logger.info(f"Loading {len(paths)} WorldClim layers at {resolution} from {climate_dir}")
        return cls.from_geotiffs(paths, bbox=bbox)

    def band(self, name: str) -> np.ndarray:
        try:
            return self.data[self.band_names.index(name)]
        except ValueError:
            raise SchemaMismatchError(f"Raster has no band named {name!r}") from None

    def select(self, names: list[str]) -> "ClimateRaster":
        """Return a raster whose bands are the given names, in that order."""
        missing = [n for n in names if n not in self.band_names]
        if missing:
            raise SchemaMismatchError(f"Raster lacks bands: {missing}")
        if list(names) == self.band_names:
            return self
        index = [self.band_names.index(n) for n in names]
        return ClimateRaster(self.data[index], list(names), self.transform, self.crs)

    def rename(self, band_names: list[str]) -> "ClimateRaster":
        return ClimateRaster(self.data, band_names, self.transform, self.crs)

    def valid_mask(self) -> np.ndarray:
        """Boolean (height, width) mask of cells with every band present."""
        return np.isfinite(self.data).all(axis=0)

    def pixel_to_coords(self, rows, cols) -> tuple[np.ndarray, np.ndarray]:
        """Cell centre (x, y) coordinates for pixel indices."""
        xs, ys = rasterio.transform.xy(self.transform, rows, cols)
        return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)

    def coords_to_pixel(self, xs, ys) -> tuple[np.ndarray, np.ndarray]:
        rows, cols = rasterio.transform.rowcol(self.transform, xs, ys)
        return np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64)

    def sample_at_points(
        self, points: list[tuple[float, float]]
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Sample band values at the given points.

        Args:
            points: List of (x, y) tuples in the raster CRS

        Returns:
            Tuple of (values, valid_mask)
            - values: array of shape (n_points, n_bands), NaN where invalid
            - valid_mask: True where the point is inside the grid with all bands present
        """
        n_bands = self.data.shape[0]
        values = np.full((len(points), n_bands), np.nan, dtype=np.float64)
        valid_mask = np.zeros(len(points), dtype=bool)
        if not points:
            return values, valid_mask

        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        rows, cols = self.coords_to_pixel(xs, ys)

        inside = (rows >= 0) & (rows < self.height) & (cols >= 0) & (cols < self.width)
        values[inside] = self.data[:, rows[inside], cols[inside]].T
        valid_mask = inside & np.isfinite(values).all(axis=1)
        return values, valid_mask


"""
GBIF API utilities for fetching species occurrence data.
"""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

GBIF_API = "https://api.gbif.org/v1"

# Seconds before an HTTP request to GBIF is abandoned
REQUEST_TIMEOUT = 30


def get_species_key(species_name: str, timeout: float = REQUEST_TIMEOUT) -> Optional[int]:
    """
    Get GBIF taxon key for a species by name.

    Args:
        species_name: Scientific name of the species (e.g., "Quercus robur")
        timeout: Request timeout in seconds

    Returns:
        GBIF taxon key or None if not found
    """
    url = f"{GBIF_API}/species/match"
    params = {"name": species_name}

    response = requests.get(url, params=params, timeout=timeout)
    response.raise_for_status()
    data = response.json()

    if data.get("matchType") == "NONE":
        return None

    return data.get("usageKey")


def fetch_gbif_occurrences(
    taxon_key: int,
    bbox: Optional[tuple[float, float, float, float]] = None,
    max_records: int = 1000,
    limit: int = 300,
    timeout: float = REQUEST_TIMEOUT,
) -> list[dict]:
    """
    Fetch occurrences from GBIF API with pagination.

    Args:
        taxon_key: GBIF taxon key for the species
        bbox: Optional (min_lon, min_lat, max_lon, max_lat) filter
        max_records: Stop once this many records have been collected
        limit: Number of records per API request
        timeout: Request timeout in seconds

    Returns:
        List of occurrence dictionaries, at most max_records long
    """
    url = f"{GBIF_API}/occurrence/search"
    all_occurrences = []
    offset = 0

    while len(all_occurrences) < max_records:
        params = {
            "taxonKey": taxon_key,
            "hasCoordinate": "true",
            "hasGeospatialIssue": "false",
            "limit": min(limit, max_records - len(all_occurrences)),
            "offset": offset,
        }
        if bbox is not None:
            min_lon, min_lat, max_lon, max_lat = bbox
            params["decimalLatitude"] = f"{min_lat},{max_lat}"
            params["decimalLongitude"] = f"{min_lon},{max_lon}"

        response = requests.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()

        results = data.get("results", [])
        if not results:
            break

        all_occurrences.extend(results)

        if data.get("endOfRecords") or len(all_occurrences) >= data.get("count", 0):
            break

        offset += len(results)

    logger.debug(f"Fetched {len(all_occurrences)} occurrences for taxon {taxon_key}")
    return all_occurrences[:max_records]


def extract_coordinates(occurrences: list[dict]) -> list[tuple[float, float]]:
    """
    Extract unique (lon, lat) coordinates from GBIF occurrences.

    Args:
        occurrences: List of GBIF occurrence dictionaries

    Returns:
        List of (longitude, latitude) tuples in first-seen order
    """
    coords = []
    seen = set()
    for occ in occurrences:
        lat = occ.get("decimalLatitude")
        lon = occ.get("decimalLongitude")
        if lat is None or lon is None:
            continue
        point = (float(lon), float(lat))
        if point not in seen:
            seen.add(point)
            coords.append(point)
    return coords


def coordinates_to_geojson(
    points: list[tuple[float, float]],
    species_name: str,
    label: str = "presence",
) -> dict:
    """
    Convert (lon, lat) points to a GeoJSON FeatureCollection.

    Args:
        points: List of (longitude, latitude) tuples
        species_name: Name of the species
        label: Value for each feature's "label" property

    Returns:
        GeoJSON FeatureCollection
    """
    features = [
        {
            "type": "Feature",
            "properties": {"name": species_name, "label": label},
            "geometry": {"type": "Point", "coordinates": [lon, lat]},
        }
        for lon, lat in points
    ]

    return {
        "type": "FeatureCollection",
        "name": f"{species_name.replace(' ', '_')}_{label}",
        "crs": {
            "type": "name",
            "properties": {"name": "urn:ogc:def:crs:OGC:1.3:CRS84"}
        },
        "features": features
    }

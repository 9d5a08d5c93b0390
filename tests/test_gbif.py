import pytest

from habitat import gbif
from habitat.gbif import coordinates_to_geojson, extract_coordinates, fetch_gbif_occurrences, get_species_key


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


@pytest.fixture
def requests_log(monkeypatch):
    """Serve fake GBIF pages of 3 records each out of 7 total."""
    calls = []
    records = [{"decimalLatitude": 50.0 + i, "decimalLongitude": float(i)} for i in range(7)]

    def fake_get(url, params=None, timeout=None):
        calls.append({"url": url, "params": dict(params), "timeout": timeout})
        if url.endswith("/species/match"):
            if params["name"] == "Nonexistent plant":
                return FakeResponse({"matchType": "NONE"})
            return FakeResponse({"matchType": "EXACT", "usageKey": 2878688})
        offset, limit = params["offset"], min(params["limit"], 3)
        page = records[offset:offset + limit]
        return FakeResponse({"results": page, "count": len(records), "endOfRecords": offset + limit >= 7})

    monkeypatch.setattr(gbif.requests, "get", fake_get)
    return calls


def test_species_key(requests_log):
    assert get_species_key("Quercus robur") == 2878688
    assert get_species_key("Nonexistent plant") is None
    assert requests_log[0]["timeout"] == gbif.REQUEST_TIMEOUT


def test_fetch_pages_until_end(requests_log):
    occurrences = fetch_gbif_occurrences(2878688)
    assert len(occurrences) == 7
    assert [c["params"]["offset"] for c in requests_log] == [0, 3, 6]


def test_fetch_respects_max_records(requests_log):
    occurrences = fetch_gbif_occurrences(2878688, max_records=4)
    assert len(occurrences) == 4
    assert requests_log[-1]["params"]["limit"] == 1


def test_fetch_bbox_filter(requests_log):
    fetch_gbif_occurrences(1, bbox=(0.0, 50.0, 2.0, 52.0), max_records=2, timeout=5)
    params = requests_log[0]["params"]
    assert params["decimalLatitude"] == "50.0,52.0"
    assert params["decimalLongitude"] == "0.0,2.0"
    assert requests_log[0]["timeout"] == 5


def test_extract_coordinates_skips_missing_and_duplicates():
    occurrences = [
        {"decimalLatitude": 52.1, "decimalLongitude": 0.1},
        {"decimalLatitude": None, "decimalLongitude": 0.2},
        {"decimalLongitude": 0.3},
        {"decimalLatitude": 52.1, "decimalLongitude": 0.1},
        {"decimalLatitude": 52.4, "decimalLongitude": 0.4},
    ]
    assert extract_coordinates(occurrences) == [(0.1, 52.1), (0.4, 52.4)]


def test_coordinates_to_geojson():
    geojson = coordinates_to_geojson([(0.1, 52.1)], "Quercus robur", label="background")
    assert geojson["type"] == "FeatureCollection"
    assert geojson["name"] == "Quercus_robur_background"
    feature = geojson["features"][0]
    assert feature["geometry"]["coordinates"] == [0.1, 52.1]
    assert feature["properties"]["label"] == "background"

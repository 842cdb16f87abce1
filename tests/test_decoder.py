import json

import pytest

from gravel.core.models import GeoPoint, ViewportBounds
from gravel.overpass.decoder import extract_polylines
from gravel.overpass.overpass_common import DecodeError

from conftest import overpass_body


def test_extracts_ways_in_order():
    body = overpass_body(
          [(59.30, 18.00), (59.31, 18.01), (59.32, 18.02)]
        , [(59.40, 18.10), (59.41, 18.11)]
    )
    bounds = ViewportBounds(59.0, 17.9, 59.5, 18.2)
    geometry = extract_polylines(json.dumps(body), bounds)

    assert len(geometry) == 2
    assert geometry.polylines[0][0] == GeoPoint(59.30, 18.00)
    assert geometry.point_count == 5
    assert geometry.bounds == bounds


def test_discards_short_ways_and_non_ways():
    body = overpass_body([(59.30, 18.00)], [(59.30, 18.00), (59.31, 18.01)])
    body["elements"].append({"type": "node", "id": 99, "lat": 59.0, "lon": 18.0})
    body["elements"].append({"type": "way", "id": 100})
    geometry = extract_polylines(json.dumps(body))
    assert len(geometry) == 1


def test_skips_malformed_nodes():
    body = {
        "elements": [
            {
                "type": "way",
                "geometry": [
                      {"lat": 59.30, "lon": 18.00}
                    , {"lat": "x", "lon": 18.0}
                    , {"lat": True, "lon": 18.0}
                    , {"lat": 95.0, "lon": 18.0}
                    , {"lon": 18.0}
                    , "junk"
                    , {"lat": 59.31, "lon": 18.01}
                ],
            }
        ]
    }
    geometry = extract_polylines(json.dumps(body).encode("utf-8"))
    assert geometry.polylines == ((GeoPoint(59.30, 18.00), GeoPoint(59.31, 18.01)),)


def test_empty_elements_is_valid():
    assert len(extract_polylines('{"elements": []}')) == 0


@pytest.mark.parametrize("body", ["not json", "[1, 2]", '{"remark": "runtime error"}', '{"elements": {}}'])
def test_malformed_payload_raises_decode_error(body):
    with pytest.raises(DecodeError):
        extract_polylines(body)

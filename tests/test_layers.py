"""Tests for the GeoJSON layer engine."""

import json

import pytest

from dxf_service.conversion import InvalidDocumentError, ParseError
from dxf_service.conversion.layers import extract_layers, filter_by_layers, load_document, parse_document

from conftest import feature


class TestParseDocument:
    def test_parses_bytes_and_text(self):
        raw = json.dumps({"type": "FeatureCollection", "features": []})

        assert parse_document(raw) == parse_document(raw.encode("utf-8"))

    @pytest.mark.parametrize(
        "raw",
        [
            b"{not json",
            b"[1, 2]",
            b"\xff\xfe",
            b'{"features":[NaN]}',
            b'{"features":[{"geometry":{"type":"LineString","coordinates":[[Infinity,0],[1,1]]}}]}',
            b'{"features":[], "bbox":[-Infinity, 0, 1, 1]}',
        ],
    )
    def test_malformed_raises_parse_error(self, raw):
        with pytest.raises(ParseError):
            parse_document(raw)

    def test_load_missing_file_raises_parse_error(self, tmp_path):
        with pytest.raises(ParseError):
            load_document(tmp_path / "missing.geojson")


class TestExtractLayers:
    def test_distinct_layers_in_first_seen_order(self, road_building_doc):
        assert extract_layers(road_building_doc) == ["Road", "Building"]

    def test_features_without_layer_contribute_one_null(self):
        doc = {
            "features": [
                {"properties": {"Layer": "A"}},
                {"geometry": {"type": "LineString"}},
                {"properties": {"Layer": "Road"}},
                {"properties": {}},
                {"properties": {"Layer": None}},
                {"properties": None},
                "garbage",
            ]
        }

        assert extract_layers(doc) == ["A", None, "Road"]

    def test_empty_collection(self):
        assert extract_layers({"type": "FeatureCollection", "features": []}) == []

    @pytest.mark.parametrize("features", [None, 5, "abc", {"a": 1}])
    def test_missing_or_non_iterable_features(self, features):
        doc = {"type": "FeatureCollection"}
        if features is not None:
            doc["features"] = features

        with pytest.raises(InvalidDocumentError):
            extract_layers(doc)


class TestFilterByLayers:
    def test_points_are_excluded(self, road_building_doc):
        result = filter_by_layers(road_building_doc, ["Road"])

        assert list(result) == ["Road"]
        road = result["Road"]
        assert road["type"] == "FeatureCollection"
        assert [f["geometry"]["type"] for f in road["features"]] == ["LineString", "MultiLineString"]

    def test_every_requested_layer_present_even_if_empty(self, road_building_doc):
        result = filter_by_layers(road_building_doc, ["Building", "Water"])

        assert list(result) == ["Building", "Water"]
        assert len(result["Building"]["features"]) == 2
        assert result["Water"] == {"type": "FeatureCollection", "features": []}

    def test_unrequested_layers_are_omitted(self, road_building_doc):
        result = filter_by_layers(road_building_doc, ["Building"])

        assert "Road" not in result

    def test_relative_order_kept(self):
        doc = {"features": [feature("A"), feature("B"), feature("A", "Polygon"), feature("A", "MultiPolygon")]}

        result = filter_by_layers(doc, ["A"])

        assert [f["geometry"]["type"] for f in result["A"]["features"]] == ["LineString", "Polygon", "MultiPolygon"]

    def test_malformed_features_never_raise(self):
        doc = {
            "features": [
                {"properties": {"Layer": "Road"}},
                {"geometry": {"type": "LineString"}},
                {"geometry": None, "properties": None},
                {"geometry": {"type": ["odd"]}, "properties": {"Layer": ["odd"]}},
                42,
            ]
        }

        result = filter_by_layers(doc, ["Road"])

        # Only the first feature names the layer; its missing geometry is defaulted.
        assert result["Road"]["features"] == [{"properties": {"Layer": "Road"}, "geometry": {"type": ""}}]

    def test_empty_geometry_and_properties_are_kept_as_is(self):
        doc = {
            "features": [
                {"geometry": {}, "properties": {"Layer": "Road"}},
                {"geometry": {"type": "LineString"}, "properties": {}},
            ]
        }

        result = filter_by_layers(doc, ["Road"])

        assert result["Road"]["features"] == [{"geometry": {}, "properties": {"Layer": "Road"}}]

    def test_input_document_is_not_modified(self):
        doc = {"features": [{"properties": {"Layer": "Road"}}]}

        filter_by_layers(doc, ["Road"])

        assert doc == {"features": [{"properties": {"Layer": "Road"}}]}

    def test_invalid_document(self):
        with pytest.raises(InvalidDocumentError):
            filter_by_layers({"type": "FeatureCollection"}, ["Road"])

"""Pytest configuration and fixtures for dxf_service tests."""

import json
from pathlib import Path

import pytest

from dxf_service.conversion import CacheHit, CacheMiss, CacheReadError, CacheWriteError, ConversionError, ConversionService


def feature(layer, geometry_type="LineString"):
    return {
        "type": "Feature",
        "geometry": {"type": geometry_type, "coordinates": [[0.0, 0.0], [1.0, 1.0]]},
        "properties": {"Layer": layer},
    }


@pytest.fixture
def road_building_doc():
    """Return a collection with Road and Building layers plus a Road point."""
    return {
        "type": "FeatureCollection",
        "features": [
            feature("Road"),
            feature("Building", "Polygon"),
            feature("Road", "Point"),
            feature("Road", "MultiLineString"),
            feature("Building", "Polygon"),
        ],
    }


class FakeConverter:
    """Writes a fixed document to the target path and counts invocations."""

    def __init__(self, document=None, fail=False):
        self.document = document
        self.fail = fail
        self.calls = []

    def convert_to_geojson(self, source_path, target_path):
        self.calls.append((Path(source_path), Path(target_path)))
        if self.fail:
            raise ConversionError("DXF to GeoJSON conversion failed (exit 1): bad drawing")
        Path(target_path).write_text(json.dumps(self.document), encoding="utf-8")


class MemoryCache:
    def __init__(self, items=None, fail_get=False, fail_put=False):
        self.items = dict(items or {})
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.gets = []
        self.puts = []

    def get(self, key):
        self.gets.append(key)
        if self.fail_get:
            raise CacheReadError(f"Unable to read {key} from cache")
        if key in self.items:
            return CacheHit(self.items[key])
        return CacheMiss()

    def put(self, key, path):
        self.puts.append(key)
        if self.fail_put:
            raise CacheWriteError(f"Unable to store {key} in cache")
        self.items[key] = Path(path).read_bytes()


@pytest.fixture
def converter(road_building_doc):
    return FakeConverter(road_building_doc)


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def service_factory(tmp_path):
    def make(cache, converter, **kwargs):
        return ConversionService(
            cache=cache,
            converter=converter,
            upload_dir=tmp_path / "uploads" / "dxf",
            work_dir=tmp_path / "uploads" / "geojson",
            **kwargs,
        )

    return make


@pytest.fixture
def service(service_factory, cache, converter):
    return service_factory(cache, converter)


def chunk_reader(data: bytes):
    """Return an async reader over data, like UploadFile.read."""
    state = {"pos": 0}

    async def read(n: int) -> bytes:
        start = state["pos"]
        state["pos"] = start + n
        return data[start:start + n]

    return read

"""
GeoJSON layer engine.

Layers are carried in each feature's ``properties.Layer`` value, as written
by ogr2ogr's DXF driver.
"""

import json
from pathlib import Path
from collections.abc import Iterable
from typing import Any

from .errors import InvalidDocumentError, ParseError

LAYER_PROPERTY = "Layer"
EXCLUDED_GEOMETRY_TYPES = frozenset({"Point"})


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def parse_document(raw: bytes | str) -> dict[str, Any]:
    try:
        doc = json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError("Invalid GeoJSON data") from e
    if not isinstance(doc, dict):
        raise ParseError("Invalid GeoJSON data")
    return doc


def load_document(path: Path) -> dict[str, Any]:
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise ParseError(f"Unable to read converted file {Path(path).name}") from e
    return parse_document(raw)


def _features(doc: dict[str, Any]) -> list[Any]:
    features = doc.get("features")
    if isinstance(features, (str, bytes, dict)) or not isinstance(features, Iterable):
        raise InvalidDocumentError("Invalid GeoJSON data")
    return list(features)


def _normalized(feature: Any) -> dict[str, Any]:
    # Missing geometry/properties are defaulted so the filter predicate drops them.
    base = feature if isinstance(feature, dict) else {}
    out = dict(base)
    if base.get("geometry") is None:
        out["geometry"] = {"type": ""}
    if base.get("properties") is None:
        out["properties"] = {LAYER_PROPERTY: None}
    return out


def _layer_of(feature: dict[str, Any]) -> Any:
    props = feature.get("properties")
    if not isinstance(props, dict):
        return None
    return props.get(LAYER_PROPERTY)


def _geometry_type(feature: dict[str, Any]) -> Any:
    geometry = feature.get("geometry")
    if not isinstance(geometry, dict):
        return ""
    kind = geometry.get("type", "")
    return kind if isinstance(kind, str) else ""


def extract_layers(doc: dict[str, Any]) -> list[Any]:
    """Distinct layer values in first-seen order.

    A feature without a layer contributes None, rendered as null in responses.
    """
    seen: dict[Any, None] = {}
    for feature in _features(doc):
        layer = _layer_of(feature) if isinstance(feature, dict) else None
        try:
            seen.setdefault(layer, None)
        except TypeError as e:
            raise InvalidDocumentError("Invalid GeoJSON data") from e
    return list(seen)


def filter_by_layers(doc: dict[str, Any], requested_layers: list[str]) -> dict[str, dict[str, Any]]:
    """Partition the document into one FeatureCollection per requested layer.

    Every requested name gets an entry, even with no matching features.
    Features of an excluded geometry type never appear in the output.
    """
    wanted = set(requested_layers)
    kept = []
    for feature in _features(doc):
        feature = _normalized(feature)
        layer = _layer_of(feature)
        try:
            requested = layer in wanted
        except TypeError:
            requested = False
        if requested and _geometry_type(feature) not in EXCLUDED_GEOMETRY_TYPES:
            kept.append(feature)

    result: dict[str, dict[str, Any]] = {}
    for name in requested_layers:
        result[name] = {
            "type": "FeatureCollection",
            "features": [f for f in kept if _layer_of(f) == name],
        }
    return result

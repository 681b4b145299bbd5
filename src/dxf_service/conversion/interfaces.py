from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union


@dataclass(frozen=True)
class CacheHit:
    data: bytes


@dataclass(frozen=True)
class CacheMiss:
    pass


CacheLookup = Union[CacheHit, CacheMiss]


class ConverterGateway(Protocol):
    def convert_to_geojson(self, source_path: Path, target_path: Path) -> None:
        """Convert the drawing at source_path into a GeoJSON file at target_path.
        This is a blocking call; callers should offload to threads if needed.
        Raises ConversionError on failure.
        """


class CacheGateway(Protocol):
    def get(self, key: str) -> CacheLookup:
        """Return CacheHit or CacheMiss; raise CacheReadError on transport failure."""

    def put(self, key: str, path: Path) -> None:
        """Upload the file at path under key; raise CacheWriteError on failure."""


@dataclass(frozen=True)
class StoredUpload:
    path: Path
    original_name: str
    size_bytes: int


@dataclass(frozen=True)
class ConversionResult:
    cache_key: str
    layers: list
    cache_hit: bool

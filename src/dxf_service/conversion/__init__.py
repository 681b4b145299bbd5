"""
Domain layer for DXF to GeoJSON conversion.
Provides interfaces (gateways) and a service that orchestrates content-hash
caching, conversion and layer filtering, abstracting the object store and
ogr2ogr so front-ends (HTTP or others) can use the same core logic.
"""

from .errors import (
    CacheReadError,
    CacheWriteError,
    CleanupError,
    ConversionError,
    ConversionServiceError,
    HashError,
    InvalidDocumentError,
    NotFoundError,
    ParseError,
    ValidationError,
)
from .interfaces import CacheGateway, CacheHit, CacheMiss, ConversionResult, ConverterGateway, StoredUpload
from .service import ConversionService

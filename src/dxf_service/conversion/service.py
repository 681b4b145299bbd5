import asyncio
import contextlib
import logging
import re
import uuid
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

from .errors import CleanupError, NotFoundError, ValidationError
from .hashing import hash_file
from .interfaces import CacheGateway, CacheHit, ConversionResult, ConverterGateway, StoredUpload
from .layers import extract_layers, filter_by_layers, load_document, parse_document

logger = logging.getLogger(__name__)

SOURCE_EXTENSION = "dxf"
CACHE_SUFFIX = ".geojson"
CACHE_KEY_RE = re.compile(r"[0-9a-f]{64}\.geojson")


def has_source_extension(filename: str) -> bool:
    if "." not in filename:
        return False
    return filename.rsplit(".", 1)[-1].lower() == SOURCE_EXTENSION


class _DigestLocks:
    """asyncio.Lock per digest, dropped once no request holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, digest: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(digest, asyncio.Lock())
        self._users[digest] = self._users.get(digest, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[digest] -= 1
            if not self._users[digest]:
                del self._users[digest]
                del self._locks[digest]

    def __len__(self) -> int:
        return len(self._locks)


class ConversionService:
    """Core domain service for DXF to GeoJSON conversion and layer filtering.

    This service is framework-agnostic. Converted documents are cached by the
    SHA-256 of the uploaded bytes, so a repeated upload never reaches the
    converter once its artifact is in the cache. Local files are owned by the
    request that created them and are removed on every exit path.
    """

    def __init__(
        self,
        cache: CacheGateway,
        converter: ConverterGateway,
        *,
        upload_dir: Path,
        work_dir: Path,
        serialize_conversions: bool = False,
    ) -> None:
        self._cache = cache
        self._converter = converter
        self._upload_dir = Path(upload_dir)
        self._work_dir = Path(work_dir)
        self._locks = _DigestLocks() if serialize_conversions else None

    def ensure_dirs(self) -> None:
        for d in (self._upload_dir, self._work_dir):
            d.mkdir(parents=True, exist_ok=True)

    # API used by HTTP controller to persist an upload stream
    async def store_upload(
        self,
        filename: str,
        reader: Callable[[int], Awaitable[bytes]],
        *,
        max_upload_mb: int,
    ) -> StoredUpload:
        """Validate the extension and stream the upload under a generated name."""
        if not has_source_extension(filename):
            raise ValidationError(f"Please upload a {SOURCE_EXTENSION} file.")

        self._upload_dir.mkdir(parents=True, exist_ok=True)
        input_path = self._upload_dir / f"{uuid.uuid4().hex}.{SOURCE_EXTENSION}"

        size_bytes = 0
        CHUNK = 1024 * 1024
        max_bytes = max_upload_mb * 1024 * 1024
        try:
            with input_path.open("wb") as f_out:
                while True:
                    chunk = await reader(CHUNK)
                    if not chunk:
                        break
                    b = bytes(chunk)
                    size_bytes += len(b)
                    if size_bytes > max_bytes:
                        raise ValidationError(f"upload exceeds {max_upload_mb} MB")
                    f_out.write(b)
        except BaseException:
            self._discard(input_path)
            raise

        return StoredUpload(path=input_path, original_name=filename, size_bytes=size_bytes)

    async def convert(self, upload: StoredUpload | None) -> ConversionResult:
        if upload is None:
            raise ValidationError(f"No file attached, Please add a .{SOURCE_EXTENSION} file")

        geojson_path = self._work_dir / f"{upload.path.stem}{CACHE_SUFFIX}"
        try:
            digest = await asyncio.to_thread(hash_file, upload.path)
            cache_key = f"{digest}{CACHE_SUFFIX}"
            guard = self._locks.hold(digest) if self._locks is not None else contextlib.nullcontext()
            async with guard:
                return await self._convert_locked(upload, cache_key, geojson_path)
        finally:
            await asyncio.to_thread(self._cleanup, upload.path, geojson_path)

    async def _convert_locked(self, upload: StoredUpload, cache_key: str, geojson_path: Path) -> ConversionResult:
        lookup = await asyncio.to_thread(self._cache.get, cache_key)
        if isinstance(lookup, CacheHit):
            logger.info("cache hit for %s (%s)", cache_key, upload.original_name)
            layers = extract_layers(parse_document(lookup.data))
            return ConversionResult(cache_key=cache_key, layers=layers, cache_hit=True)

        logger.info("cache miss for %s, converting %s", cache_key, upload.original_name)
        self._work_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self._converter.convert_to_geojson, upload.path, geojson_path)
        document = await asyncio.to_thread(load_document, geojson_path)
        layers = extract_layers(document)
        await asyncio.to_thread(self._cache.put, cache_key, geojson_path)
        logger.info("cached %s with %d layers", cache_key, len(layers))
        return ConversionResult(cache_key=cache_key, layers=layers, cache_hit=False)

    async def filter_layers(self, cache_key: str, layers: list[str]) -> dict[str, dict[str, Any]]:
        """Split a cached document into per-layer FeatureCollections. Read-only."""
        if not CACHE_KEY_RE.fullmatch(cache_key or ""):
            raise NotFoundError("Sorry this file doesn't exist or removed")
        lookup = await asyncio.to_thread(self._cache.get, cache_key)
        if not isinstance(lookup, CacheHit):
            raise NotFoundError("Sorry this file doesn't exist or removed")
        return filter_by_layers(parse_document(lookup.data), layers)

    def _cleanup(self, *paths: Path) -> None:
        for p in paths:
            self._discard(p)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            err = CleanupError(f"Failed to unlink file:{path}")
            logger.warning("%s (%s)", err, e)

import logging
import os
import subprocess
import tempfile
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import CacheReadError, CacheWriteError, ConversionError
from .interfaces import CacheGateway, CacheHit, CacheLookup, CacheMiss, ConverterGateway

logger = logging.getLogger(__name__)

GEOJSON_CONTENT_TYPE = "application/geo+json"
MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class LocalObjectCache(CacheGateway):
    """Directory-backed object store, one file per key."""

    def __init__(self, base_dir: str) -> None:
        self._base = Path(base_dir).resolve()

    def _path(self, key: str) -> Path:
        return self._base / Path(key).name

    def get(self, key: str) -> CacheLookup:
        p = self._path(key)
        try:
            return CacheHit(p.read_bytes())
        except FileNotFoundError:
            return CacheMiss()
        except OSError as e:
            raise CacheReadError(f"Unable to read {key} from cache") from e

    def put(self, key: str, path: Path) -> None:
        target = self._path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f_out, Path(path).open("rb") as f_in:
                    while True:
                        chunk = f_in.read(1024 * 1024)
                        if not chunk:
                            break
                        f_out.write(chunk)
                # Same key always carries the same bytes, so a concurrent replace is harmless.
                os.replace(tmp, target)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CacheWriteError(f"Unable to store {key} in cache") from e


class S3ObjectCache(CacheGateway):
    def __init__(self, bucket: str, client=None) -> None:
        self._bucket = bucket
        self._client = client if client is not None else boto3.client("s3")

    @classmethod
    def from_settings(cls, bucket: str, *, region: str | None = None, endpoint_url: str | None = None) -> "S3ObjectCache":
        client = boto3.client("s3", region_name=region or None, endpoint_url=endpoint_url or None)
        return cls(bucket, client)

    def get(self, key: str) -> CacheLookup:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return CacheHit(resp["Body"].read())
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in MISSING_KEY_CODES:
                return CacheMiss()
            raise CacheReadError(f"Unable to read {key} from cache") from e
        except BotoCoreError as e:
            raise CacheReadError(f"Unable to read {key} from cache") from e

    def put(self, key: str, path: Path) -> None:
        try:
            with Path(path).open("rb") as f:
                self._client.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=f,
                    ContentType=GEOJSON_CONTENT_TYPE,
                )
        except (ClientError, BotoCoreError, OSError) as e:
            raise CacheWriteError(f"Unable to store {key} in cache") from e


class Ogr2OgrConverter(ConverterGateway):
    """Runs GDAL's ogr2ogr to reproject a DXF drawing into GeoJSON."""

    def __init__(
        self,
        binary: str = "ogr2ogr",
        *,
        source_srs: str = "EPSG:2157",
        target_srs: str = "EPSG:4326",
        timeout_sec: float = 300,
    ) -> None:
        self._binary = binary
        self._source_srs = source_srs
        self._target_srs = target_srs
        self._timeout = timeout_sec

    def command(self, source_path: Path, target_path: Path) -> list[str]:
        return [
            self._binary,
            "-f", "GeoJSON",
            "-s_srs", self._source_srs,
            "-t_srs", self._target_srs,
            str(target_path),
            str(source_path),
        ]

    def convert_to_geojson(self, source_path: Path, target_path: Path) -> None:
        cmd = self.command(source_path, target_path)
        logger.info("running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            raise ConversionError(f"DXF to GeoJSON conversion timed out ({self._timeout:g}s limit)") from e
        except OSError as e:
            raise ConversionError(f"Unable to run {self._binary}: {e.strerror or e}") from e
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()[:500]
            raise ConversionError(f"DXF to GeoJSON conversion failed (exit {result.returncode}): {stderr}")
        if not Path(target_path).is_file():
            raise ConversionError("DXF to GeoJSON conversion produced no output")

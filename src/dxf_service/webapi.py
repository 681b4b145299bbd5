import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dxf_service.conversion import ConversionService, ConversionServiceError
from dxf_service.conversion.adapters import LocalObjectCache, Ogr2OgrConverter, S3ObjectCache

# Global configuration defaults
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "300"))
DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).resolve()
UPLOAD_DIR = DATA_DIR / "uploads" / "dxf"
GEOJSON_DIR = DATA_DIR / "uploads" / "geojson"
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "local").lower()
CACHE_DIR = Path(os.getenv("CACHE_DIR", str(DATA_DIR / "cache"))).resolve()
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL", "")
AWS_REGION = os.getenv("AWS_REGION", "")
OGR2OGR_BIN = os.getenv("OGR2OGR_BIN", "ogr2ogr")
SOURCE_SRS = os.getenv("SOURCE_SRS", "EPSG:2157")
TARGET_SRS = os.getenv("TARGET_SRS", "EPSG:4326")
CONVERTER_TIMEOUT_SEC = float(os.getenv("CONVERTER_TIMEOUT_SEC", "300"))
SERIALIZE_CONVERSIONS = os.getenv("SERIALIZE_CONVERSIONS", "false").lower() in {"1", "true", "yes", "on"}

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

SERVICE: ConversionService | None = None


class FilterRequest(BaseModel):
    fileName: str
    layers: list[str]


def build_service() -> ConversionService:
    if CACHE_BACKEND == "s3":
        if not S3_BUCKET:
            raise RuntimeError("CACHE_BACKEND=s3 requires S3_BUCKET")
        cache = S3ObjectCache.from_settings(S3_BUCKET, region=AWS_REGION, endpoint_url=S3_ENDPOINT_URL)
    elif CACHE_BACKEND == "local":
        cache = LocalObjectCache(str(CACHE_DIR))
    else:
        raise RuntimeError(f"unknown CACHE_BACKEND {CACHE_BACKEND!r}")
    converter = Ogr2OgrConverter(
        OGR2OGR_BIN,
        source_srs=SOURCE_SRS,
        target_srs=TARGET_SRS,
        timeout_sec=CONVERTER_TIMEOUT_SEC,
    )
    return ConversionService(
        cache=cache,
        converter=converter,
        upload_dir=UPLOAD_DIR,
        work_dir=GEOJSON_DIR,
        serialize_conversions=SERIALIZE_CONVERSIONS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global SERVICE
    SERVICE = build_service()
    SERVICE.ensure_dirs()
    logger.info("cache backend: %s", CACHE_BACKEND)
    yield
    SERVICE = None


app = FastAPI(
    title="DXF Conversion Service",
    version=os.getenv("DXF_SERVICE_VERSION", "0.1.0"),
    description=(
        "RESTful API for converting DXF drawings into GeoJSON, cached by "
        "content hash, with per-layer filtering of converted documents."
    ),
    lifespan=lifespan,
)


@app.exception_handler(ConversionServiceError)
async def _service_error(request: Request, exc: ConversionServiceError) -> JSONResponse:
    logger.warning("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": str(exc) or "Something went wrong"},
    )


@app.exception_handler(RequestValidationError)
async def _request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else str(err.get("msg", "invalid")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "; ".join(parts) or "Something went wrong"},
    )


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.post("/convert")
async def convert(designFile: UploadFile | None = File(None)) -> JSONResponse:
    """Convert an uploaded DXF drawing to GeoJSON.

    Accepts multipart/form-data with a single part named "designFile".
    Returns the cache key of the converted document and its layer names.
    """
    global SERVICE
    assert SERVICE is not None

    upload = None
    if designFile is not None:
        async def read_chunk(n: int) -> bytes:
            return await designFile.read(n)

        upload = await SERVICE.store_upload(
            filename=designFile.filename or "",
            reader=read_chunk,
            max_upload_mb=MAX_UPLOAD_MB,
        )

    result = await SERVICE.convert(upload)
    body = {
        "message": "DXF to GeoJSON conversion succeed",
        "data": {
            "fileName": result.cache_key,
            "layers": result.layers,
        },
    }
    return JSONResponse(status_code=status.HTTP_200_OK, content=body)


@app.post("/filter")
async def filter_layers(req: FilterRequest) -> JSONResponse:
    """Return one FeatureCollection per requested layer of a converted document."""
    global SERVICE
    assert SERVICE is not None
    collections = await SERVICE.filter_layers(req.fileName, req.layers)
    return JSONResponse(status_code=status.HTTP_200_OK, content=collections)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("dxf_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()

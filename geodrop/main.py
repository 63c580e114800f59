from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger

from geodrop.catalog import ProximityCatalog
from geodrop.config import Settings, get_settings
from geodrop.errors import GeoDropError, NotFoundError, OutOfRangeError, StorageError, ValidationError
from geodrop.logger import configure_logger
from geodrop.models import (
    Coordinate,
    SearchResponse,
    ShareListResponse,
    ShareMetadata,
    ShareOut,
)


def create_app(settings: Settings | None = None, catalog: ProximityCatalog | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logger(settings.log_level)

    catalog = catalog or ProximityCatalog.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        Path(catalog.repository.db_path).parent.mkdir(parents=True, exist_ok=True)
        catalog.repository.init()
        catalog.blob_store.init()
        logger.info(f"{settings.app_name} started in {settings.app_env}")
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.catalog = catalog

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body")
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            403: "forbidden",
            404: "not_found",
            413: "payload_too_large",
            503: "storage_unavailable",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.exception_handler(GeoDropError)
    async def share_error_handler(request: Request, exc: GeoDropError):
        if isinstance(exc, ValidationError):
            return error_response(400, str(exc), "bad_request")
        if isinstance(exc, NotFoundError):
            return error_response(404, "share not found", "not_found")
        if isinstance(exc, OutOfRangeError):
            return error_response(403, "share is outside your area", "out_of_range")
        if isinstance(exc, StorageError):
            logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
            return error_response(503, "storage temporarily unavailable, please retry", "storage_unavailable")
        logger.error(f"Unhandled share error on {request.url.path}: {type(exc).__name__}: {exc}")
        return error_response(500, "internal error", "error")

    def requester_location(latitude: float | None, longitude: float | None) -> Coordinate | None:
        if latitude is None and longitude is None:
            return None
        if latitude is None or longitude is None:
            raise HTTPException(status_code=400, detail="latitude and longitude must be given together")
        return Coordinate(latitude=latitude, longitude=longitude)

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env}

    @app.post("/v1/shares", response_model=ShareOut, status_code=201)
    def upload_share(
        background_tasks: BackgroundTasks,
        file: UploadFile = File(...),
        owner_id: str | None = Form(None, max_length=128),
        latitude: float | None = Form(None, ge=-90, le=90),
        longitude: float | None = Form(None, ge=-180, le=180),
    ):
        if not file.filename:
            raise HTTPException(status_code=400, detail="filename is required")
        if len(file.filename) > 255:
            raise HTTPException(status_code=400, detail="filename must be at most 255 characters")
        if owner_id is not None and not owner_id.strip():
            owner_id = None

        metadata = ShareMetadata(
            display_name=file.filename,
            byte_size=0,
            media_type=file.content_type or "application/octet-stream",
            owner_id=owner_id,
        )
        try:
            record = catalog.upload(
                file.file,
                metadata,
                requester_location(latitude, longitude),
                max_size_bytes=settings.max_upload_size_bytes,
            )
        except ValueError as exc:
            raise HTTPException(status_code=413, detail=str(exc)) from exc

        background_tasks.add_task(catalog.tag_share, record.id)
        return ShareOut.from_record(record)

    @app.get("/v1/shares/{code}", response_model=ShareOut)
    def find_share(
        code: str,
        latitude: float | None = Query(None, ge=-90, le=90),
        longitude: float | None = Query(None, ge=-180, le=180),
    ):
        location = requester_location(latitude, longitude)
        record = catalog.find_by_code(code, location)
        return ShareOut.from_record(record, distance_meters=catalog.distance_to(record, location))

    @app.post("/v1/shares/{code}/download")
    def download_share(
        code: str,
        latitude: float | None = Query(None, ge=-90, le=90),
        longitude: float | None = Query(None, ge=-180, le=180),
        requester_id: str | None = Query(None, max_length=128),
    ):
        descriptor, data = catalog.retrieve(
            code,
            requester_location(latitude, longitude),
            requester_id=requester_id,
        )
        return Response(
            content=data,
            media_type=descriptor.media_type,
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(descriptor.display_name)}"},
        )

    @app.get("/v1/search", response_model=SearchResponse)
    def search_shares(
        q: str = Query(..., min_length=1, max_length=500),
        latitude: float | None = Query(None, ge=-90, le=90),
        longitude: float | None = Query(None, ge=-180, le=180),
    ):
        interpreted = catalog.interpret(q)
        results = catalog.search_interpreted(interpreted, requester_location(latitude, longitude))
        return SearchResponse(
            query=interpreted,
            results=[
                ShareOut.from_record(item.share, distance_meters=item.distance_meters, score=item.score)
                for item in results
            ],
        )

    @app.get("/v1/nearby", response_model=ShareListResponse)
    def nearby_shares(
        latitude: float = Query(..., ge=-90, le=90),
        longitude: float = Query(..., ge=-180, le=180),
    ):
        results = catalog.nearby(Coordinate(latitude=latitude, longitude=longitude))
        return ShareListResponse(
            shares=[ShareOut.from_record(item.share, distance_meters=item.distance_meters) for item in results]
        )

    @app.get("/v1/users/{owner_id}/shares", response_model=ShareListResponse)
    def list_owner_shares(owner_id: str):
        return ShareListResponse(
            shares=[ShareOut.from_record(record, state=state) for record, state in catalog.list_owner_shares(owner_id)]
        )

    return app


app = create_app()

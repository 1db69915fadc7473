"""FastAPI application routes, middleware, and metrics."""

import time
import uuid
from typing import Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from structlog.contextvars import bind_contextvars, clear_contextvars

from app.area_jobs.tracker import create_area_result_store
from app.auth.bearer import is_authorized, redact_authorization
from app.city_service.errors import (
    CityNotFoundError,
    CityPairNotFoundError,
    GeoServiceError,
)
from app.city_service.service import GeoService
from app.config import (
    AREA_RESULTS_BACKEND,
    AUTH_TOKEN,
    DATASET_PATH,
    HOST,
    PORT,
    PUBLIC_BASE_URL,
)
from app.dataset.store import load_dataset
from app.health.health_check import area_results_status, dataset_status
from app.logging_config import logger
from app.models.health import Dependencies, HealthResponse
from app.models.responses import (
    AreaJobAccepted,
    CitiesResponse,
    DistanceResponse,
    ErrorResponse,
    ProcessingStatus,
)

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "path", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "HTTP request duration in seconds", ["path"]
)

router = APIRouter()


def get_service(request: Request) -> GeoService:
    """Return the GeoService attached to the running app."""
    return request.app.state.geo_service


@router.get(
    "/cities-by-tag", response_model=CitiesResponse, response_model_exclude_unset=True
)
async def cities_by_tag(
    tag: str,
    is_active: Optional[str] = Query(default=None, alias="isActive"),
    service: GeoService = Depends(get_service),
) -> CitiesResponse:
    """List cities with ``tag`` filtered on their active flag.

    Args:
        tag: Tag to match exactly.
        is_active: Only the literal string ``true`` selects active cities.
        service: Injected GeoService.

    Returns:
        The matching cities, possibly none.
    """
    return CitiesResponse(cities=service.cities_by_tag(tag, is_active == "true"))


@router.get(
    "/distance", response_model=DistanceResponse, response_model_exclude_unset=True
)
async def distance(
    from_guid: str = Query(alias="from"),
    to_guid: str = Query(alias="to"),
    service: GeoService = Depends(get_service),
) -> DistanceResponse:
    """Return the haversine distance between two cities."""
    return service.distance_between(from_guid, to_guid)


@router.get("/area", status_code=202, response_model=AreaJobAccepted)
async def area(
    background_tasks: BackgroundTasks,
    from_guid: str = Query(alias="from"),
    radius_km: float = Query(alias="distance", ge=0),
    service: GeoService = Depends(get_service),
) -> AreaJobAccepted:
    """Queue a radius search around a city and return the polling URL.

    Args:
        background_tasks: Runs the search after the response is sent.
        from_guid: Guid of the origin city.
        radius_km: Search radius in kilometres, inclusive.
        service: Injected GeoService.

    Returns:
        The URL to poll for the result.
    """
    job_id, origin = service.submit_area_job(from_guid)
    background_tasks.add_task(service.compute_area, job_id, origin, radius_km)
    return AreaJobAccepted(results_url=service.results_url(job_id))


@router.get("/area-result/{job_id}")
def area_result(job_id: str, service: GeoService = Depends(get_service)):
    """Return a finished area result, or a processing status.

    Unknown and pending job ids get the same 202 answer.
    """
    cities = service.area_result(job_id)
    if cities is None:
        return JSONResponse(status_code=202, content=ProcessingStatus().model_dump())
    return JSONResponse(
        status_code=200, content={"cities": [city.to_record() for city in cities]}
    )


@router.get("/all-cities")
async def all_cities(service: GeoService = Depends(get_service)):
    """Download the whole dataset as ``all-cities.json``."""
    return Response(
        content=service.export_json(),
        media_type="application/json",
        headers={"Content-Disposition": "attachment; filename=all-cities.json"},
    )


@router.get("/health", response_model=HealthResponse)
def health(service: GeoService = Depends(get_service)) -> HealthResponse:
    """Report dataset size and area result store availability."""
    city_count = len(service.store)
    return HealthResponse(
        status="ok",
        cities=city_count,
        dependencies=Dependencies(
            dataset=dataset_status(city_count),
            area_results=area_results_status(service.results),
        ),
    )


@router.get("/metrics")
async def metrics():
    """Expose Prometheus metrics for scraping."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def require_bearer_token(request: Request, call_next):
    """Reject requests without the shared bearer token before routing."""
    authorization = request.headers.get("authorization")
    logger.info("AUTH_HEADER", authorization=redact_authorization(authorization))
    if not is_authorized(authorization, request.app.state.auth_token):
        logger.warning("AUTH_REJECTED", path=request.url.path)
        return JSONResponse(
            status_code=401, content=ErrorResponse(error="Unauthorized").model_dump()
        )
    return await call_next(request)


async def request_logging(request: Request, call_next):
    """Log request details, attach a request ID, and record metrics.

    Args:
        request: Incoming HTTP request.
        call_next: FastAPI handler for the next middleware/app.

    Returns:
        The response produced by the downstream handler.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    bind_contextvars(request_id=request_id)
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response
    finally:
        duration_s = time.perf_counter() - start
        duration_ms = round(duration_s * 1000, 2)
        status_code = getattr(response, "status_code", 500)
        # route templates keep job ids out of metric labels
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        logger.info(
            "HTTP_REQUEST",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=duration_ms,
        )
        REQUEST_COUNT.labels(
            method=request.method, path=path, status_code=status_code
        ).inc()
        REQUEST_LATENCY.labels(path=path).observe(duration_s)
        clear_contextvars()


def build_service() -> GeoService:
    """Load the dataset and result store named by the environment."""
    store = load_dataset(DATASET_PATH)
    results = create_area_result_store(AREA_RESULTS_BACKEND)
    return GeoService(store, results, PUBLIC_BASE_URL)


def create_app(
    service: Optional[GeoService] = None, auth_token: str = AUTH_TOKEN
) -> FastAPI:
    """Assemble the FastAPI app around a GeoService.

    Args:
        service: Service to serve; built from the environment when omitted.
        auth_token: Shared secret expected in the Authorization header.

    Returns:
        The configured application.
    """
    application = FastAPI(title="City Geo Service")
    application.state.geo_service = service or build_service()
    application.state.auth_token = auth_token
    application.include_router(router)

    # last registered middleware runs first
    application.middleware("http")(require_bearer_token)
    application.middleware("http")(request_logging)

    @application.exception_handler(CityPairNotFoundError)
    async def city_pair_not_found_handler(
        request: Request, exc: CityPairNotFoundError
    ):
        """Convert unknown distance endpoints into 400 responses.

        Args:
            request: Incoming HTTP request.
            exc: Raised city lookup error.

        Returns:
            A JSON response with the error message.
        """
        logger.info("CITY_NOT_FOUND", guid=exc.guid, path=request.url.path)
        return JSONResponse(
            status_code=400, content=ErrorResponse(error="City not found!").model_dump()
        )

    @application.exception_handler(CityNotFoundError)
    async def city_not_found_handler(request: Request, exc: CityNotFoundError):
        """Convert an unknown area origin into a 404 response."""
        logger.info("CITY_NOT_FOUND", guid=exc.guid, path=request.url.path)
        return JSONResponse(
            status_code=404, content=ErrorResponse(error="City not found").model_dump()
        )

    @application.exception_handler(RequestValidationError)
    async def bad_request_handler(request: Request, exc: RequestValidationError):
        """Convert query parameter validation failures into 400 responses."""
        logger.info("BAD_REQUEST", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "detail": jsonable_encoder(exc.errors())},
        )

    @application.exception_handler(GeoServiceError)
    @application.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        """Convert unexpected failures into 500 responses with a generic message."""
        logger.error(
            "UNHANDLED_ERROR",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Internal Server Error").model_dump(),
        )

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .exceptions import InvalidIntentError, StoreUnavailableError, get_error_response
from .models import HealthResponse, Intent, RecordFilter, ResolveRequest, resolution_result_adapter
from .services.http_pool import close_http_pool, get_http_client
from .services.resolution_engine import ResolutionEngine, get_resolution_engine

settings: Settings = get_settings()

logger = logging.getLogger("mandi_resolver")
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events."""
    # === STARTUP ===
    if settings.remote_enabled:
        get_http_client()  # bind the shared client to the server loop
        logger.info("HTTP client pool ready for AGMARKNET lookups")
    else:
        logger.warning("DATA_GOV_API_KEY not set - resolving from the record store only")

    logger.info("mandi-resolver API ready")

    yield  # Application runs here

    # === SHUTDOWN ===
    await close_http_pool()


app = FastAPI(title="mandi-resolver API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origin_list or ["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=get_error_response(exc))


# Raised from handlers and from get_engine (the name index reads the store on first use)
app.add_exception_handler(StoreUnavailableError, _store_unavailable_handler)


def get_engine() -> ResolutionEngine:
    """Dependency hook for the shared resolution engine (overridden in tests)."""
    return get_resolution_engine()


@app.get("/api/health", response_model=HealthResponse)
async def health(engine: ResolutionEngine = Depends(get_engine)) -> HealthResponse:
    try:
        await asyncio.to_thread(engine.store.count_records, RecordFilter())
        store_ok = True
    except StoreUnavailableError as e:
        logger.error(f"Health check: {e.message}")
        store_ok = False

    return HealthResponse(
        status="ok" if store_ok else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=settings.environment or "development",
        services={
            "recordStore": store_ok,
            "agmarknet": engine.remote is not None,
        },
        names=engine.index.counts(),
    )


@app.post(
    "/api/resolve",
    operation_id="resolve_prices",
    summary="Resolve a structured price query",
    description=(
        "Resolve an extracted intent (commodity, market, district, state, date) to mandi price "
        "records, or to ranked candidates when the location is misspelled or has no data."
    ),
    tags=["Prices"],
)
async def resolve_endpoint(request: ResolveRequest, engine: ResolutionEngine = Depends(get_engine)):
    try:
        intent = Intent.from_untrusted(request.intent)
    except InvalidIntentError as e:
        logger.info(f"Rejected intent: {e.message}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=e.to_dict())

    result = await engine.resolve(intent)
    return JSONResponse(content=resolution_result_adapter.dump_python(result, mode="json"))


@app.get("/")
async def root():
    return {"status": "ok"}

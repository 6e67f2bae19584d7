import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import energy
from .config import get_settings
from .exceptions import ConfigurationError, TelemetryError
from .modeller import build_energy_modeller
from .models import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger.info(f"Energy modeller API - Starting up (version {__version__})")
    modeller = build_energy_modeller(settings)
    modeller.start()
    app.state.modeller = modeller
    yield
    modeller.stop()
    logger.info("Energy modeller API - Shutdown complete")


app = FastAPI(
    title="Energy Modeller API",
    description="Energy accounting and prediction for hosts, VMs and applications",
    version=__version__,
    lifespan=lifespan
)

# ============================================================================
# Middleware
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Exception Handlers
# ============================================================================

def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=str(exc))).model_dump(mode='json')
    )


@app.exception_handler(TelemetryError)
async def telemetry_exception_handler(request: Request, exc: TelemetryError):
    logger.error(f"Telemetry error serving {request.url.path}: {exc}")
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "TELEMETRY_ERROR", exc)


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error serving {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "CONFIGURATION_ERROR", exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_VALUE", exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", exc)


# ============================================================================
# API v1 Routers
# ============================================================================

app.include_router(energy.router, prefix="/api/v1", tags=["Energy"])

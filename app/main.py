import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .cache import is_cache_available
from .domain.bookings.router import router as bookings_router
from .domain.bookings.schemas import format_validation_errors
from .domain.mock_exams.router import router as mock_exams_router
from .errors import BookingError
from .routes.hubspot_webhooks import router as hubspot_webhooks_router
from .services.hubspot_service import HubSpotAPIError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")

    if is_cache_available():
        logger.info("Redis connection established")
    else:
        logger.warning("Redis unavailable - exam listings will not be cached")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Mock Exam Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HubSpotAPIError)
async def hubspot_error_handler(request: Request, exc: HubSpotAPIError):
    """Unclassified HubSpot failures keep their status and HubSpot's message"""
    logger.error(f"❌ {request.method} {request.url.path} - HubSpot {exc.status}: {exc.message}")
    status_code = exc.status if 400 <= exc.status < 600 else 500
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.message, "code": "INTERNAL_ERROR"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation errors as VALIDATION_ERROR / 400"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    error = BookingError.validation_error(format_validation_errors(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} - Error: {str(exc)}", exc_info=exc)
    error = BookingError.internal(str(exc) or None)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Routes
app.include_router(bookings_router)
app.include_router(mock_exams_router)
app.include_router(hubspot_webhooks_router)


@app.get("/health")
async def health():
    return {"status": "ok", "cache": "up" if is_cache_available() else "down"}

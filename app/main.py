"""FastAPI application entrypoint. No business logic; only wiring, middleware and error mapping."""

import logging

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request, status  # noqa: E402
from fastapi.encoders import jsonable_encoder  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from app.api.v1 import router as v1_router  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.errors import AuthServiceError, HashingError  # noqa: E402
from app.schemas.auth import ApiResponse  # noqa: E402

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Studio API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Cookies are sent cross-site, so origins must be explicit when credentials are allowed.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _envelope(status_code: int, message: str, data: object = None) -> JSONResponse:
    body = ApiResponse.error(message, status_code, data).model_dump(by_alias=True)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(AuthServiceError)
async def handle_auth_service_error(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Map auth errors to the uniform envelope; internal ones never expose their message."""
    if isinstance(exc, HashingError) or exc.status_code >= 500:
        logger.error("Internal auth failure on %s %s: %s", request.method, request.url.path, exc)
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")
    return _envelope(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid request",
        data=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()],
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Studio API"}

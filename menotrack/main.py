import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import init_auth_storage
from .auth.throttling import reset_auth_rate_limiter
from .config import settings
from .errors import AuthError
from .routes_admin import router as admin_router
from .routes_auth import router as auth_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_auth_storage()
    reset_auth_rate_limiter()
    logger.info("MenoTrack API ready")
    yield


app = FastAPI(title="MenoTrack API", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(admin_router)


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    rendered: List[Dict[str, str]] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        rendered.append({"field": ".".join(location), "message": message})
    return rendered


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Validation failed",
            "errors": _validation_errors(exc),
        },
    )


@app.get("/health", include_in_schema=False)
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("menotrack.main:app", host=settings.WEB_HOST, port=settings.WEB_PORT)

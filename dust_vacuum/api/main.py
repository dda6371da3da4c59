"""FastAPI application for the dust vacuum.

Server settings come from ``DUST_HOST``, ``DUST_PORT`` and ``DUST_DEBUG``;
vacuum settings are read separately by ``VacuumConfig.from_env``.
"""

import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dust_vacuum import __version__
from dust_vacuum.api.endpoints import router

logger = structlog.get_logger()

HOST = os.environ.get("DUST_HOST", "0.0.0.0")
PORT = int(os.environ.get("DUST_PORT", "8000"))
DEBUG = os.environ.get("DUST_DEBUG", "false").lower() in ("true", "1", "yes")

# Route checks and plans carry at most a wallet's worth of balances
MAX_REQUEST_SIZE = 1024 * 1024


def create_app() -> FastAPI:
    application = FastAPI(
        title="Dust Vacuum",
        description="Consolidate and batch-swap dust balances into one reference asset",
        version=__version__,
    )

    @application.middleware("http")
    async def reject_large_bodies(request: Request, call_next):  # type: ignore[no-untyped-def]
        declared = request.headers.get("content-length")
        if declared is not None:
            if not declared.isdigit():
                return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length"})
            if int(declared) > MAX_REQUEST_SIZE:
                logger.warning("request_too_large", path=request.url.path, size=int(declared))
                return JSONResponse(status_code=413, content={"detail": "Request too large"})
        return await call_next(request)

    @application.get("/health")
    async def health() -> dict[str, object]:
        return {"status": "ok", "version": __version__}

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn; ``DUST_DEBUG`` enables auto-reload."""
    logger.info("api_starting", host=HOST, port=PORT, debug=DEBUG)
    uvicorn.run("dust_vacuum.api.main:app", host=HOST, port=PORT, reload=DEBUG)


if __name__ == "__main__":
    run()

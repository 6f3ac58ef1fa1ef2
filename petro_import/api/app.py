from __future__ import annotations

import argparse

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from petro_import.config.loader import ConfigError
from petro_import.db.store import StoreUnavailableError
from petro_import.logging.init import get_logger, setup_logging

from .router import error_response
from .router import router as imports_router

"""FastAPI application factory and server entrypoint.

    petro-import-api --host 0.0.0.0 --port 8000
    uvicorn petro_import.api.app:create_app --factory
"""


def _validation_summary(exc: RequestValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )


def create_app() -> FastAPI:
    load_dotenv()
    setup_logging()

    app = FastAPI(
        title="Petro-Core import service",
        description="Spreadsheet ingestion for the rock and mineral catalog",
        version="0.1.0",
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        summary = _validation_summary(exc)
        get_logger().warning("invalid request to %s: %s", request.url.path, summary)
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", summary)

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
        get_logger().error("config: %s", exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error", str(exc))

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
        get_logger().error("store: %s", exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Store unavailable", str(exc))

    app.include_router(imports_router, prefix="/api", tags=["imports"])
    return app


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Serve the Petro-Core import API")
    p.add_argument("--host", default="127.0.0.1", help="Bind address")
    p.add_argument("--port", type=int, default=8000, help="Bind port")
    args = p.parse_args(argv)
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":  # pragma: no cover
    main()

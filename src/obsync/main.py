import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from obsync import __version__
from obsync.config import get_config, save_config
from obsync.exceptions import AppBaseError
from obsync.logger import get_logger
from obsync.models.api.repository import ErrorDetail
from obsync.routers import repositories_api as repositories_router
from obsync.services.repositories import RepositoryContext, RepositoryManager, build_context

# Configure basic logging for uvicorn; application logs go through structlog
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

logger = get_logger(__name__)


async def app_error_handler(request: Request, exc: AppBaseError) -> JSONResponse:
    """Render application errors with their recommended status code."""
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=str(exc))
    detail = ErrorDetail(
        code=exc.i18n_key,
        message=str(exc),
        retriable=exc.retriable,
        params={k: str(v) for k, v in exc.params.items()},
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": detail.model_dump()})


def create_app(context: RepositoryContext | None = None) -> FastAPI:
    """
    Create the API application.

    Args:
        context: Adapters to use. When omitted, production adapters are built
                 from the global configuration at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Own the repository manager for the lifetime of the app."""
        owned = context is None
        ctx = context if context is not None else build_context(get_config())
        ctx.config.paths.data_dir.mkdir(parents=True, exist_ok=True)

        manager = RepositoryManager(ctx)
        await manager.initialize()
        app.state.repository_manager = manager
        try:
            yield
        finally:
            if owned:
                await ctx.aclose()

    app = FastAPI(title="obsync", version=__version__, lifespan=lifespan)
    app.add_exception_handler(AppBaseError, app_error_handler)

    app.include_router(repositories_router.router)
    return app


app = create_app()


def run_server(port: int | None = None, host: str | None = None) -> None:
    """Run the obsync server.

    Args:
        port: Optional port number to override config. If provided, will be saved to config.
        host: Optional host to bind for this run.
    """
    config = get_config()

    if port is not None and port != config.server.port:
        logger.info("Port override detected, updating config", old_port=config.server.port, new_port=port)
        config.server.port = port
        save_config(config)

    uvicorn.run(app, host=host or config.server.host, port=config.server.port)


def main() -> None:
    """Main entry point with CLI argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="obsync - offline cache for story collection repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  obsync                    # Start with default/saved port
  obsync --port 9000        # Start on port 9000 and save it
        """,
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number to run the server on (will be saved to config)",
    )
    parser.add_argument("--host", metavar="HOST", help="Host interface to bind")
    parser.add_argument("--version", action="version", version=f"obsync {__version__}")

    args = parser.parse_args()
    run_server(port=args.port, host=args.host)


if __name__ == "__main__":
    main()

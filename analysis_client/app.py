import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analysis_client.application import (
    AnalysisService,
    build_analysis_service,
    configure_analysis_service,
    get_analysis_service,
)
from analysis_client.core.settings import Settings
from analysis_client.domain import ApiHttpError
from analysis_client.routes import dashboard, forms

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiHttpError)
    async def remote_error(request: Request, exc: ApiHttpError) -> JSONResponse:
        status_code = exc.status if 400 <= exc.status < 500 else 502
        logger.error("Remote analysis service error (%s): %s", exc.status, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(settings: Settings | None = None, *, service: AnalysisService | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if service is not None:
        configure_analysis_service(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        installed = service or build_analysis_service(settings)
        configure_analysis_service(installed)
        yield
        await installed.aclose()

    app = FastAPI(title="Analysis Job Client", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    app.include_router(forms.router, prefix="/api")
    app.include_router(dashboard.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Analysis Job Client",
                "docs": "/docs",
                "forms": sorted(get_analysis_service().forms),
            }
        )

    return app


app = create_app()

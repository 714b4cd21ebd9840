import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.config import Settings, settings as default_settings
from ..core.errors import NotFoundError, PipelineFailure
from ..core.logging import AuditTrail, setup_logging
from ..services.classifier import DocumentClassifier
from ..services.extractor import DocumentExtractor
from ..services.file_store import FileStore
from ..services.intelligence.base import DocumentIntelligence
from ..services.intelligence.client import DocumentIntelligenceClient
from ..services.pipeline import DocumentPipeline
from ..services.rasterizer import PdfRasterizer
from ..services.storage.base import StorageBase
from ..services.storage.factory import build_storage
from ..services.worker_pool import PipelineWorkerPool, pending_uploads, recover_interrupted
from .deps import AppServices
from .routers import audit, documents, health, review

logger = setup_logging()


def create_app(
    config: Settings | None = None,
    storage: StorageBase | None = None,
    file_store: FileStore | None = None,
    intelligence: DocumentIntelligence | None = None,
    rasterizer: PdfRasterizer | None = None,
) -> FastAPI:
    """
    Build the API with explicitly constructed collaborators.

    Anything not passed in is built from settings when the app starts, so
    importing this module has no side effects on disk or network.
    """
    config = config or default_settings

    audit_trail = AuditTrail(maxlen=config.audit_trail_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        audit_sink = audit_trail.install()
        owned_client = None
        oracle = intelligence
        if oracle is None:
            owned_client = DocumentIntelligenceClient.from_settings(config)
            oracle = owned_client

        store = storage or build_storage(config)
        files = file_store or FileStore.from_settings(config)
        pipeline = DocumentPipeline(
            storage=store,
            classifier=DocumentClassifier(oracle),
            extractor=DocumentExtractor(oracle),
            file_store=files,
            rasterizer=rasterizer or PdfRasterizer.from_settings(config),
        )
        pool = PipelineWorkerPool.from_settings(pipeline, store, files, config)
        app.state.services = AppServices(storage=store, file_store=files, pipeline=pipeline, pool=pool)

        await asyncio.to_thread(recover_interrupted, store)
        await pool.start()
        for document in await asyncio.to_thread(pending_uploads, store):
            try:
                await pool.submit(document)
            except PipelineFailure as e:
                logger.warning(f"Could not reschedule document {document.id}: {e}")

        try:
            yield
        finally:
            await pool.stop()
            if owned_client is not None:
                await owned_client.transport.aclose()
            logger.remove(audit_sink)

    app = FastAPI(title=config.app_name, lifespan=lifespan)
    app.state.settings = config
    app.state.audit_trail = audit_trail

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    # CORS_ORIGINS can be set in .env as comma-separated list
    allowed_origins = [origin.strip() for origin in config.cors_origins.split(",") if origin.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(documents.router)
    app.include_router(review.router)
    app.include_router(audit.router)
    return app


app = create_app()

from contextlib import asynccontextmanager
from datetime import timedelta
import logging
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from codedrop.artifacts.local_store import LocalBlobStore
from codedrop.codes.generator import CodeGenerator
from codedrop.common.clock import utcnow
from codedrop.common.database import MongoConnection, get_mongo_db
from codedrop.config import Settings, settings as default_settings
from codedrop.expiry.sweeper import ExpirySweeper
from codedrop.metadata.memory_store import InMemoryMetadataStore
from codedrop.metadata.mongo_store import MongoMetadataStore
from codedrop.sharing import router as sharing_router
from codedrop.sharing.schemas import HealthResponse
from codedrop.sharing.service import ArtifactService

logging.basicConfig(level=getattr(logging, default_settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


async def build_service(config: Settings, mongo: Optional[MongoConnection] = None) -> ArtifactService:
    """Wire stores and generator from settings. Mongo must already be connected."""
    ttl = timedelta(seconds=config.ARTIFACT_TTL_SECONDS)

    if config.METADATA_STORE_TYPE == "mongo":
        if mongo is None:
            raise RuntimeError("METADATA_STORE_TYPE=mongo requires a MongoConnection")
        metadata_store = MongoMetadataStore(
            mongo.db[config.MONGODB_COLLECTION], ttl=ttl, batch_size=config.SWEEP_BATCH_SIZE
        )
    elif config.METADATA_STORE_TYPE == "memory":
        metadata_store = InMemoryMetadataStore(ttl=ttl)
    else:
        raise ValueError(f"Unknown METADATA_STORE_TYPE: {config.METADATA_STORE_TYPE}")
    await metadata_store.setup()

    return ArtifactService(
        blob_store=LocalBlobStore(config.UPLOAD_DIR),
        metadata_store=metadata_store,
        code_generator=CodeGenerator(length=config.CODE_LENGTH),
        max_code_attempts=config.CODE_MAX_ATTEMPTS,
        orphan_grace=timedelta(seconds=config.ORPHAN_GRACE_SEC),
    )


def create_app(
    config: Optional[Settings] = None,
    service: Optional[ArtifactService] = None,
) -> FastAPI:
    """Build the FastAPI app. A pre-built ``service`` skips store wiring."""
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting {config.SERVICE_NAME}...")

        mongo = None
        artifact_service = service
        if artifact_service is None:
            if config.METADATA_STORE_TYPE == "mongo":
                mongo = MongoConnection(
                    config.MONGODB_URL,
                    config.MONGODB_DB,
                    max_retries=config.MONGODB_CONNECT_RETRIES,
                    retry_delay=config.MONGODB_RETRY_DELAY_SEC,
                )
                await mongo.connect()
            artifact_service = await build_service(config, mongo)

        app.state.mongo = mongo
        app.state.artifact_service = artifact_service

        sweeper = None
        if config.SWEEP_ENABLED:
            sweeper = ExpirySweeper(artifact_service, interval_sec=config.SWEEP_INTERVAL_SEC)
            sweeper.start()
        app.state.sweeper = sweeper

        logger.info(f"✅ {config.SERVICE_NAME} ready!")
        yield

        if sweeper:
            await sweeper.stop()
        if mongo:
            mongo.close()
        logger.info(f"👋 {config.SERVICE_NAME} stopped")

    app = FastAPI(
        title="codedrop",
        description="Share images through short codes that expire after a fixed window",
        version=config.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sharing_router.router)

    @app.get("/")
    async def root():
        return {
            "service": config.SERVICE_NAME,
            "version": config.SERVICE_VERSION,
            "status": "running",
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(db=Depends(get_mongo_db)):
        details = {}
        healthy = True
        if db is not None:
            try:
                await db.command("ping")
                details["mongodb"] = "connected"
            except PyMongoError as e:
                logger.error(f"MongoDB health check failed: {e}")
                details["mongodb"] = "unavailable"
                healthy = False

        sweeper = getattr(app.state, "sweeper", None)
        details["sweeper_running"] = bool(sweeper and sweeper.running)

        return HealthResponse(
            status="healthy" if healthy else "unhealthy",
            service=config.SERVICE_NAME,
            version=config.SERVICE_VERSION,
            metadata_store=type(app.state.artifact_service.metadata_store).__name__,
            timestamp=utcnow(),
            details=details,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("codedrop.main:app", host=default_settings.HOST, port=default_settings.PORT, log_level="info")

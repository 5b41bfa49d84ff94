from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

# Load Environment Variables before settings are read
load_dotenv()

from app.config import Settings, get_settings, setup_logging  # noqa: E402
from app.database import Base, SessionLocal  # noqa: E402
from app.routers import detail, listings  # noqa: E402
from app.services.collection import ListingCollection  # noqa: E402
from app.services.images import ObjectStorage  # noqa: E402
from app.services.shell import ShellClient  # noqa: E402
from app.services.store import ListingStore  # noqa: E402


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    shell_client: Optional[ShellClient] = None,
    storage: Optional[ObjectStorage] = None,
    seed: bool = True,
) -> FastAPI:
    """Build the application. Collaborators can be injected (tests pass fakes)."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = session_factory or SessionLocal
        Base.metadata.create_all(bind=factory.kw["bind"])

        store = ListingStore(ListingCollection(factory))
        app.state.settings = settings
        app.state.shell_client = shell_client or ShellClient(settings)
        app.state.storage = storage or ObjectStorage(settings)
        async with store:
            if seed:
                await store.seed_defaults()
            app.state.store = store
            yield

    app = FastAPI(
        title="Autos JVeloce",
        description="Catalog, admin API and crawler-friendly detail pages for a used-car dealership.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(listings.router, prefix="/api/v1", tags=["Listings"])
    app.include_router(detail.router, tags=["Detail page"])

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "JVeloce"}

    return app


setup_logging(get_settings().log_level)
app = create_app()

if __name__ == "__main__":
    # Runs the server on localhost:8000
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

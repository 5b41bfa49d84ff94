import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.models import listing as _listing_models  # noqa: F401  (registers tables)
from app.services.collection import ListingCollection
from app.services.images import ObjectStorage
from app.services.shell import ShellClient
from app.services.store import ListingStore
from main import create_app


SHELL_HTML = """<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="UTF-8">
    <!-- SEO_META -->
    <title>Autos JVeloce</title>
    <script>window.__SEO_PLACEHOLDER__ = true;</script>
    <link rel="stylesheet" href="/styles.css">
</head>
<body><div id="app"></div><script src="/js/detalle.js"></script></body>
</html>"""

SHELL_HTML_NO_MARKER = """<!DOCTYPE html>
<html lang="es">
<head><title>Autos JVeloce</title><script>var a = 1;</script></head>
<body><div id="app"></div></body>
</html>"""

WHATSAPP_UA = "WhatsApp/2.21.12.21 A"
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"

PASSAT = {
    "id": "volkswagen-passat-variant-2015",
    "brand": "Volkswagen",
    "model": "Passat Variant",
    "year": 2015,
    "fuel": "Diesel",
    "transmission": "Manual",
    "cv": "150",
    "price": "13500€",
    "km": "168.000 km",
    "description": "Un familiar muy cuidado.",
    "image": "https://cdn.test/passat/main.jpg",
    "logo": "https://cdn.test/logos/vw.png",
    "gallery_exterior": [
        "https://cdn.test/passat/ext0.jpg",
        "https://cdn.test/passat/ext1.jpg",
        "https://cdn.test/passat/ext2.jpg",
    ],
}


class FakeShellOrigin:
    """Stand-in for the app hosting origin, served through httpx.MockTransport."""

    def __init__(self):
        self.html = SHELL_HTML
        self.status = 200
        self.error = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text=self.html)


class FakeBucket:
    """Stand-in for the object-storage upload endpoint."""

    def __init__(self):
        self.uploads = {}
        self.status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.uploads[request.url.path] = (request.headers.get("content-type"), request.content)
        return httpx.Response(self.status)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        shell_origin="https://shell.test",
        storage_url="https://bucket.test/upload",
        storage_public_url="https://files.test",
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def collection(session_factory):
    return ListingCollection(session_factory)


@pytest.fixture
def store(collection):
    listing_store = ListingStore(collection)
    listing_store.start()
    yield listing_store
    listing_store.close()


@pytest.fixture
def shell_origin():
    return FakeShellOrigin()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def object_storage(settings, bucket):
    return ObjectStorage(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(bucket.handler)))


@pytest.fixture
def app(settings, session_factory, shell_origin, object_storage):
    return create_app(
        settings=settings,
        session_factory=session_factory,
        shell_client=ShellClient(settings, transport=httpx.MockTransport(shell_origin.handler)),
        storage=object_storage,
        seed=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def passat(client):
    response = client.post("/api/v1/listings", json=PASSAT)
    assert response.status_code == 201
    return response.json()

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import bootstrap_admin
from config import Settings
from main import create_app
from uploads import LocalImageStorage

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 48
JPEG = b"\xff\xd8\xff\xe0" + b"\x00\x10JFIF" + b"\x00" * 48
GIF = b"GIF89a" + b"\x01\x00\x01\x00" + b"\x00" * 32


@pytest.fixture
def png():
    return PNG


@pytest.fixture
def jpeg():
    return JPEG


@pytest.fixture
def gif():
    return GIF


@pytest.fixture
def db():
    return mongomock.MongoClient()["business_admin_test"]


@pytest.fixture
def settings(tmp_path):
    return Settings(database_name="business_admin_test", upload_dir=tmp_path / "uploads")


@pytest.fixture
def images(settings):
    return LocalImageStorage(settings.upload_dir, settings.max_upload_bytes)


@pytest.fixture
def client(settings, db, images):
    app = create_app(settings, db=db, images=images)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def context(client):
    return client.app.state.context


@pytest.fixture
def admin(db):
    bootstrap_admin(db, "admin", "s3cret-pass", rounds=4)
    return {"username": "admin", "password": "s3cret-pass"}


@pytest.fixture
def image_upload(png):
    def make(name="picture.png", data=None, content_type="image/png"):
        return {"image": (name, png if data is None else data, content_type)}
    return make


@pytest.fixture
def create_advertisement(client, image_upload):
    def make(title="Summer sale", description="Everything half price", **upload):
        response = client.post(
            "/api/advertisements",
            data={"title": title, "description": description},
            files=image_upload(**upload),
        )
        assert response.status_code == 201, response.text
        return response.json()
    return make


@pytest.fixture
def create_service(client):
    def make(title="Plumbing", description="Leak repairs and installs", files=None):
        response = client.post("/api/services", data={"title": title, "description": description}, files=files)
        assert response.status_code == 201, response.text
        return response.json()
    return make


@pytest.fixture
def stored_files(settings):
    def names():
        return sorted(p.name for p in settings.upload_dir.iterdir())
    return names

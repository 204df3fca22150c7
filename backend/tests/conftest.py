import io
import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database and upload directory before any
# `scoreboard` module reads its settings.
_TMP = Path(tempfile.mkdtemp(prefix="scoreboard-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'app.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")

from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine
from starlette.datastructures import UploadFile

from scoreboard import services
from scoreboard.database import create_db_and_tables
from scoreboard.utils.storage import FileStorage


def make_png() -> bytes:
    img = Image.new("RGB", (32, 24), "white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def make_upload(payload: bytes, filename: str = "photo.png") -> UploadFile:
    return UploadFile(file=io.BytesIO(payload), filename=filename)


@pytest.fixture
def session():
    """Fresh in-memory database with the default categories seeded."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_db_and_tables(engine)
    with Session(engine) as s:
        services.CategoryService(s).seed_defaults()
        yield s


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "uploads", max_bytes=64 * 1024)


@pytest.fixture
def alice(session):
    return services.AuthService(session).register("alice", "wonderland")


@pytest.fixture
def bob(session):
    return services.AuthService(session).register("bob", "builder")


@pytest.fixture
def category_ids(session):
    """Map of category name to id."""
    return {c.name: c.id for c in services.CategoryService(session).list_categories()}

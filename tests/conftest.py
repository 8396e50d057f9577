"""
Shared test fixtures — SQLite test database, test client, auth helpers,
sample drawings and a ready/calibrated map.
"""

import os
import struct
import tempfile
import zlib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Configure before importing app modules — settings are read at import time
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="takeoff-uploads-")
os.environ["COST_RULES_PATH"] = ""

from takeoff.database import Base, get_db
from takeoff.main import app


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def register(client, email: str) -> dict:
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": "strongpassword123",
    })
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    """Register the project owner and return auth headers."""
    return register(client, "estimator@siteplans.com")


@pytest.fixture
def other_headers(client):
    """A second, unrelated user."""
    return register(client, "someone.else@siteplans.com")


@pytest.fixture
def project(client, auth_headers):
    response = client.post("/api/projects/", json={"name": "Warehouse Extension"}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()


# --- Sample drawings ---

def make_png(width: int = 1, height: int = 1) -> bytes:
    """Create a minimal valid PNG with the given header dimensions."""

    def _chunk(chunk_type, data):
        c = chunk_type + data
        crc = struct.pack(">I", zlib.crc32(c) & 0xFFFFFFFF)
        return struct.pack(">I", len(data)) + c + crc

    signature = b"\x89PNG\r\n\x1a\n"
    ihdr = _chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0))
    raw_data = b"\x00\xff\x00\x00"  # filter byte + RGB
    idat = _chunk(b"IDAT", zlib.compress(raw_data))
    iend = _chunk(b"IEND", b"")
    return signature + ihdr + idat + iend


def make_pdf(pages: int = 1) -> bytes:
    """Create a small A4 PDF in memory."""
    from fpdf import FPDF
    pdf = FPDF()
    for i in range(pages):
        pdf.add_page()
        pdf.set_font("Helvetica", "", 10)
        pdf.cell(0, 5, f"Site plan sheet {i + 1}")
    return bytes(pdf.output())


def upload(client, headers, project_id, name="Ground floor", filename="plan.png", content=None):
    content = content if content is not None else make_png(800, 600)
    return client.post(
        f"/api/projects/{project_id}/maps",
        data={"name": name},
        files={"file": (filename, content, "application/octet-stream")},
        headers=headers,
    )


@pytest.fixture
def ready_map(client, auth_headers, project):
    """An uploaded PNG that has finished processing (background task runs in TestClient)."""
    response = upload(client, auth_headers, project["id"])
    assert response.status_code == 201
    fetched = client.get(f"/api/maps/{response.json()['id']}")
    assert fetched.json()["status"] == "ready"
    return fetched.json()


@pytest.fixture
def calibrated_map(client, auth_headers, ready_map):
    """ready_map calibrated at 100 px = 5 m (0.05 m/px), calibration version 1."""
    response = client.patch(
        f"/api/maps/{ready_map['id']}/calibrate",
        json={"pixelDistance": 100, "realDistance": 5, "unit": "m"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    return client.get(f"/api/maps/{ready_map['id']}").json()

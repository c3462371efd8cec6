import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[2]))

from twinlink.app import main
from twinlink.services import models, storage
from twinlink.services.errors import RateLimitedError


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "STORAGE_ROOT", tmp_path)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_get_db
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


def signup(client, name="Tester"):
    data = client.post("/users", json={"display_name": name}).json()
    return data, {"Authorization": f"Bearer {data['access_token']}"}


def test_settings_hide_key_values(client):
    _, headers = signup(client)
    resp = client.get("/settings", headers=headers)
    assert resp.json()["ai_provider"] == "default"
    assert resp.json()["has_groq_api_key"] is False

    resp = client.put(
        "/settings",
        json={"ai_provider": "gemini", "gemini_api_key": "AIza-secret"},
        headers=headers,
    )
    body = resp.json()
    assert body["ai_provider"] == "gemini"
    assert body["has_gemini_api_key"] is True
    assert "AIza-secret" not in resp.text

    # Empty string clears the key
    body = client.put("/settings", json={"gemini_api_key": ""}, headers=headers).json()
    assert body["has_gemini_api_key"] is False
    assert body["ai_provider"] == "gemini"


def test_settings_reject_unknown_provider(client):
    _, headers = signup(client)
    resp = client.put("/settings", json={"ai_provider": "openai"}, headers=headers)
    assert resp.status_code == 400


def test_profile_update(client):
    _, headers = signup(client, "Sam")
    assert client.get("/profile", headers=headers).json()["display_name"] == "Sam"
    body = client.put("/profile", json={"avatar_url": "/storage/x.png"}, headers=headers).json()
    assert body["display_name"] == "Sam"
    assert body["avatar_url"] == "/storage/x.png"


def test_generate_image(client, monkeypatch):
    user, headers = signup(client)
    calls = []

    async def fake_generate(user_id, prompt, image_type):
        calls.append((user_id, prompt, image_type))
        return f"/storage/character-images/{user_id}/{image_type}-1.png"

    monkeypatch.setattr(main, "generate_and_store", fake_generate)
    resp = client.post("/images/generate", json={"prompt": "a pirate", "type": "full-scene"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "url": f"/storage/character-images/{user['id']}/full-scene-1.png",
        "type": "full-scene",
    }
    assert calls == [(user["id"], "a pirate", "full-scene")]


def test_generate_image_validation_and_errors(client, monkeypatch):
    _, headers = signup(client)
    assert client.post("/images/generate", json={"prompt": "x"}, headers=headers).status_code == 400
    resp = client.post("/images/generate", json={"prompt": "x", "type": "banner"}, headers=headers)
    assert resp.status_code == 400

    async def rate_limited(*args, **kwargs):
        raise RateLimitedError()

    monkeypatch.setattr(main, "generate_and_store", rate_limited)
    resp = client.post("/images/generate", json={"prompt": "x", "type": "avatar"}, headers=headers)
    assert resp.status_code == 429

    assert client.post("/images/generate", json={"prompt": "x", "type": "avatar"}).status_code == 401


def test_upload_image_stores_object(client, tmp_path):
    user, headers = signup(client)
    files = {"file": ("me.JPG", b"jpeg-bytes", "image/jpeg")}
    resp = client.post("/images/upload", files=files, data={"type": "avatar"}, headers=headers)
    assert resp.status_code == 200
    url = resp.json()["url"]
    assert url.startswith(f"/storage/character-images/{user['id']}/avatar-")
    assert url.endswith(".jpg")
    key = url.split("/storage/character-images/", 1)[1]
    assert (tmp_path / "character-images" / key).read_bytes() == b"jpeg-bytes"


def test_upload_rejects_bad_type(client):
    _, headers = signup(client)
    files = {"file": ("me.png", b"png", "image/png")}
    resp = client.post("/images/upload", files=files, data={"type": "full-scene"}, headers=headers)
    assert resp.status_code == 400


@pytest.mark.parametrize(
    "filename,content_type",
    [
        ("x.html", "text/html"),
        ("x.svg", "image/svg+xml"),
        ("x.png", "text/html"),
        ("noext", "image/png"),
    ],
)
def test_upload_accepts_only_raster_images(client, tmp_path, filename, content_type):
    _, headers = signup(client)
    files = {"file": (filename, b"<script>alert(1)</script>", content_type)}
    resp = client.post("/images/upload", files=files, data={"type": "avatar"}, headers=headers)
    assert resp.status_code == 400
    assert not (tmp_path / "character-images").exists()

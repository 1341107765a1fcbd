import pytest
from fastapi.testclient import TestClient

from notes_backend.config import Settings
from notes_backend.database import JsonFileRepository
from notes_backend.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        app_env="development",
        jwt_secret="test-secret",
        google_client_id="test-client-id.apps.googleusercontent.com",
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
async def repo(settings):
    repo = JsonFileRepository(settings.data_dir)
    await repo.init()
    return repo


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def login(client):
    """Sign in through the OTP flow and return the bearer token."""
    def _login(email="a@b.com", name=None):
        otp = client.post("/auth/request-otp", json={"email": email}).json()["otp"]
        body = {"email": email, "otp": otp}
        if name:
            body["name"] = name
        res = client.post("/auth/verify-otp", json=body)
        assert res.status_code == 200, res.text
        return res.json()["token"]
    return _login

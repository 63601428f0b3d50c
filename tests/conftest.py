# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import mongomock
import pytest
from flask_jwt_extended import create_access_token

from backend.app import create_app
from backend.config import TestConfig
from backend.models.user_model import User
from backend.utils.auth import hash_password


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def app(upload_dir: Path):
    class _Config(TestConfig):
        UPLOAD_FOLDER = str(upload_dir)

    return create_app(_Config, mongo_client=mongomock.MongoClient())


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def service(app):
    return app.extensions["task_service"]


@pytest.fixture()
def make_user(service):
    def _make(name: str = "Alice", email: str | None = None, role: str = "user", password: str = "secret123") -> User:
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        user = User(name=name, email=email, password_hash=hash_password(password), role=role)
        return service.users.insert(user)

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(user: User) -> dict:
        with app.app_context():
            token = create_access_token(identity=user)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def alice(make_user) -> User:
    return make_user("Alice")


@pytest.fixture()
def bob(make_user) -> User:
    return make_user("Bob")


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("Root", role="admin")

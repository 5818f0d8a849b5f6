# tests/conftest.py
import os
import uuid

import pytest

# bcrypt con pocas rondas para que las pruebas sean rápidas (antes de importar el servicio)
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from fastapi.testclient import TestClient  # noqa: E402

from account_service.db import Store  # noqa: E402
from account_service.main import create_app  # noqa: E402

TEST_PASSWORD = "password123"


@pytest.fixture
def store(tmp_path):
    """Store SQLite en un archivo temporal (compartido entre hilos del threadpool)."""
    db_store = Store(
        f"sqlite:///{tmp_path / 'casino.db'}",
        connect_args={"check_same_thread": False},
    )
    yield db_store
    db_store.dispose()


@pytest.fixture
def client(store):
    """Cliente HTTP en proceso; el lifespan crea la tabla 'users'."""
    with TestClient(create_app(store=store)) as test_client:
        yield test_client


@pytest.fixture
def make_signup_payload():
    """Genera payloads de registro con username/email/phone únicos."""
    def _make(**overrides):
        suffix = uuid.uuid4().hex[:10]
        payload = {
            "firstName": "Test",
            "lastName": "User",
            "username": f"user_{suffix}",
            "email": f"user_{suffix}@example.com",
            "phone": f"+2567{int(suffix, 16) % 10**8:08d}",
            "password": TEST_PASSWORD,
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def registered_user(client, make_signup_payload):
    """
    Registra un usuario nuevo e inicia sesión.
    Devuelve el payload de registro junto con el usuario devuelto por /api/login.
    """
    payload = make_signup_payload()
    r_signup = client.post("/api/signup", json=payload)
    assert r_signup.json()["success"] is True, f"Fallo al registrar usuario de prueba: {r_signup.json()}"

    r_login = client.post("/api/login", json={"phone": payload["phone"], "password": payload["password"]})
    body = r_login.json()
    assert body["success"] is True, f"Fallo al iniciar sesión con usuario de prueba: {body}"

    return {**payload, "user": body["user"]}

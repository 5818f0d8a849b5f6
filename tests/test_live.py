# tests/test_live.py
"""
Pruebas de humo contra un servidor real (MySQL o PostgreSQL detrás).
Se omiten si CASINO_API_URL no está definida, p.ej. CASINO_API_URL=http://localhost:3000
"""
import os
import uuid

import pytest
import requests

API_URL = os.getenv("CASINO_API_URL")

pytestmark = pytest.mark.skipif(not API_URL, reason="CASINO_API_URL no definida")


@pytest.fixture(scope="module")
def live_user():
    """Registra un usuario único en el servidor en vivo e inicia sesión."""
    suffix = uuid.uuid4().hex[:10]
    payload = {
        "firstName": "Live",
        "lastName": "Test",
        "username": f"live_{suffix}",
        "email": f"live_{suffix}@example.com",
        "phone": f"+2569{int(suffix, 16) % 10**8:08d}",
        "password": "password123",
    }
    try:
        r_signup = requests.post(f"{API_URL}/api/signup", json=payload, timeout=10)
        r_signup.raise_for_status()
        assert r_signup.json()["success"] is True, r_signup.json()

        r_login = requests.post(
            f"{API_URL}/api/login",
            json={"phone": payload["phone"], "password": payload["password"]},
            timeout=10,
        )
        r_login.raise_for_status()
    except requests.exceptions.RequestException as e:
        pytest.fail(f"Fallo al preparar el usuario de prueba: {e}")

    return {**payload, "user": r_login.json()["user"]}


def test_health():
    r = requests.get(f"{API_URL}/api/health", timeout=10)
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_duplicate_phone(live_user):
    payload = {**live_user, "username": f"dup_{uuid.uuid4().hex[:8]}", "email": f"dup_{uuid.uuid4().hex[:8]}@example.com"}
    payload.pop("user")
    r = requests.post(f"{API_URL}/api/signup", json=payload, timeout=10)
    assert r.json() == {"success": False, "message": "Username, email, or phone already exists"}


def test_balance_round_trip(live_user):
    user_id = live_user["user"]["id"]
    initial = requests.get(f"{API_URL}/api/user/{user_id}/balance", timeout=10).json()["balance"]

    requests.post(f"{API_URL}/api/user/{user_id}/balance", json={"amount": 500}, timeout=10)
    r = requests.post(f"{API_URL}/api/user/{user_id}/balance", json={"amount": -120}, timeout=10)

    assert r.json() == {"success": True, "balance": initial + 380}

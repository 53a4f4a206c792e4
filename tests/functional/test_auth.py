import uuid

from fastapi.testclient import TestClient


# login del admin embebido (verifica login exitoso)
def test_admin_login_success(client: TestClient, admin_credentials):
    resp = client.post("/api/v1/auth/login", data=admin_credentials)
    assert resp.status_code == 200
    data = resp.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == "admin"


# login con email en lugar de username
def test_login_with_email(client: TestClient, member):
    me = client.get("/api/v1/auth/me", headers=member["headers"]).json()
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": me["email"], "password": member["password"]},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["user"]["id"] == member["id"]


def test_login_fail_wrong_password(client: TestClient, admin_credentials):
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": admin_credentials["username"], "password": "wrong"},
    )
    assert resp.status_code == 401


def test_login_unregistered_fails(client: TestClient):
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": "no_existe", "password": "pass123"},
    )
    assert resp.status_code == 401


# Registro: rol user y token listo para usar
def test_register_returns_token_and_user(client: TestClient):
    suffix = uuid.uuid4().hex[:8]
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": f"r_{suffix}", "email": f"r_{suffix}@example.com", "password": "secret123"},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["user"]["role"] == "user"

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == f"r_{suffix}"


# no se pueden registrar dos usuarios con el mismo username o email
def test_register_duplicate_fails(client: TestClient, member):
    me = client.get("/api/v1/auth/me", headers=member["headers"]).json()

    resp = client.post(
        "/api/v1/auth/register",
        json={"username": me["username"], "email": "otro@example.com", "password": "secret123"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username already exists"

    resp = client.post(
        "/api/v1/auth/register",
        json={"username": "otro_nombre", "email": me["email"], "password": "secret123"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"


def test_register_validation(client: TestClient):
    bad_email = {"username": "valido", "email": "correo-invalido", "password": "secret123"}
    short_password = {"username": "valido", "email": "v@example.com", "password": "123"}
    short_username = {"username": "ab", "email": "ab@example.com", "password": "secret123"}

    for payload in (bad_email, short_password, short_username):
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 422, payload


def test_me_requires_token(client: TestClient):
    assert client.get("/api/v1/auth/me").status_code == 401
    resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_logout_revokes_token(client: TestClient, member):
    resp = client.post("/api/v1/auth/logout", headers=member["headers"])
    assert resp.status_code == 204

    resp = client.get("/api/v1/auth/me", headers=member["headers"])
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token revoked"

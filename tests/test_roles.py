from datetime import datetime, timedelta, timezone

import jwt
import pytest

from clubbooking.auth import StaticTokenVerifier
from clubbooking.handlers import ClubService
from clubbooking.roles import RoleRegistry, create_role_app, decode_jwt, generate_jwt
from clubbooking.store import DocumentStore, NotFoundError

KEY = b"secret"
OTHER_KEY = b"placeholder"
USERNAME = "alice"
ADMIN = "admin"


def test_jwt_round_trip():
    now = datetime.now(timezone.utc)
    token = generate_jwt(USERNAME, ADMIN, KEY, now)
    claims = decode_jwt(token, KEY)
    assert claims["username"] == "alice"
    assert claims["role"] == "admin"
    assert claims["exp"] == int((now + timedelta(hours=1)).timestamp())


def test_jwt_header_uses_hs256():
    token = generate_jwt(USERNAME, ADMIN, KEY)
    assert jwt.get_unverified_header(token)["alg"] == "HS256"


def test_expired_jwt_is_rejected():
    issued = datetime(2000, 1, 1, tzinfo=timezone.utc)
    token = generate_jwt(USERNAME, ADMIN, KEY, issued)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_jwt(token, KEY)


def test_jwt_with_other_key_is_rejected():
    token = generate_jwt(USERNAME, ADMIN, OTHER_KEY)
    with pytest.raises(jwt.InvalidSignatureError):
        decode_jwt(token, KEY)


def test_registry_round_trip_and_merge():
    store = DocumentStore()
    store.collection("users").document("u1").set({"name": "Alice"})
    roles = RoleRegistry(store)
    roles.set_user_role("u1", "admin")
    assert roles.get_user_role("u1") == "admin"
    assert store.collection("users").document("u1").get().data == {"name": "Alice", "role": "admin"}


def test_registry_missing_user():
    with pytest.raises(NotFoundError):
        RoleRegistry(DocumentStore()).get_user_role("nobody")


def test_registry_non_string_role():
    store = DocumentStore()
    store.collection("users").document("u1").set({"role": 5})
    with pytest.raises(NotFoundError):
        RoleRegistry(store).get_user_role("u1")


@pytest.fixture
def setup():
    store = DocumentStore()
    verifier = StaticTokenVerifier()
    verifier.add("token", "admin-1", {"role": "admin"})
    verifier.add("password", "user-1", {"role": "user"})
    verifier.add("placeholder", "anon-1")
    roles = RoleRegistry(store)
    app = create_role_app(ClubService(store), verifier, roles, KEY)
    return app.test_client(), store, roles


def test_admin_claim_may_create_club(setup):
    client, _, _ = setup
    resp = client.post("/clubs", json={"id": "c1"}, headers={"Authorization": "Bearer token"})
    assert resp.status_code == 201
    assert resp.get_json()["id"] == "c1"


def test_other_role_is_forbidden(setup):
    client, _, _ = setup
    resp = client.post("/clubs", json={"id": "c1"}, headers={"Authorization": "Bearer password"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Forbidden: insufficient permissions"}


def test_missing_role_claim_is_forbidden(setup):
    client, _, _ = setup
    resp = client.delete("/clubs/c1", headers={"Authorization": "Bearer placeholder"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "No role assigned"}


def test_auth_issues_signed_jwt(setup):
    client, _, _ = setup
    resp = client.post("/auth", headers={"Authorization": "Bearer token"})
    body = resp.get_json()
    assert body["message"] == "Успешный вход"
    claims = decode_jwt(body["jwt"], KEY)
    assert (claims["username"], claims["role"]) == ("admin-1", "admin")


def test_auth_without_role_claim_signs_empty_role(setup):
    client, _, _ = setup
    resp = client.post("/auth", headers={"Authorization": "Bearer placeholder"})
    assert decode_jwt(resp.get_json()["jwt"], KEY)["role"] == ""


def test_set_role_by_stored_admin(setup):
    client, _, roles = setup
    roles.set_user_role("admin-1", "admin")
    resp = client.post("/setRole", json={"uid": "user-1", "role": "admin"}, headers={"Authorization": "Bearer token"})
    assert resp.get_json() == {"message": "Роль обновлена"}
    assert roles.get_user_role("user-1") == "admin"


def test_set_role_without_stored_role(setup):
    client, _, _ = setup
    resp = client.post("/setRole", json={"uid": "user-1", "role": "admin"}, headers={"Authorization": "Bearer token"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Ошибка получения роли"}


def test_set_role_by_non_admin(setup):
    client, _, roles = setup
    roles.set_user_role("user-1", "user")
    resp = client.post("/setRole", json={"uid": "user-1", "role": "admin"}, headers={"Authorization": "Bearer password"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Доступ запрещен"}


def test_set_role_without_header(setup):
    client, _, _ = setup
    resp = client.post("/setRole", json={})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Нет токена"}


def test_set_role_with_unknown_token(setup):
    client, _, _ = setup
    resp = client.post("/setRole", json={}, headers={"Authorization": "Bearer secret"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Ошибка проверки токена"}


def test_set_role_with_malformed_body(setup):
    client, _, roles = setup
    roles.set_user_role("admin-1", "admin")
    resp = client.post(
        "/setRole", data="[", content_type="application/json", headers={"Authorization": "Bearer token"}
    )
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Неверный формат запроса"}
"""Role-based access: signed session tokens, stored user roles and the admin application."""

from __future__ import annotations

import functools
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import Flask, Response, g, jsonify, request

from .app import View, _base_app, _current_identity, _json_body, _register_club_routes
from .auth import BEARER_PREFIX, AuthError, TokenVerifier
from .handlers import ApiError, ClubService
from .store import DocumentStore, NotFoundError

DEFAULT_KEY = b"secret"
TOKEN_LIFETIME = timedelta(hours=1)
ADMIN_ROLE = "admin"


def generate_jwt(
    username: str, role: str, key: bytes = DEFAULT_KEY, now: datetime | None = None
) -> str:
    """Sign an HS256 token for ``username`` and ``role`` valid for one hour."""
    issued = now or datetime.now(timezone.utc)
    claims = {"username": username, "role": role, "exp": issued + TOKEN_LIFETIME}
    return jwt.encode(claims, key, algorithm="HS256")


def decode_jwt(token: str, key: bytes = DEFAULT_KEY) -> dict[str, Any]:
    """Verify an HS256 token and return its claims."""
    return jwt.decode(token, key, algorithms=["HS256"])


class RoleRegistry:
    """User roles kept in the ``users`` collection of a document store."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def get_user_role(self, uid: str) -> str:
        try:
            snap = self.store.collection("users").document(uid).get()
        except ValueError as exc:
            raise NotFoundError(str(exc)) from exc
        role = snap.data.get("role")
        if not isinstance(role, str):
            raise NotFoundError("роль не найдена")
        return role

    def set_user_role(self, uid: str, role: str) -> None:
        self.store.collection("users").document(uid).set({"role": role}, merge=True)


def _role_claim_required(verifier: TokenVerifier, required_role: str) -> Any:
    """Require a valid token whose ``role`` claim matches ``required_role``."""

    def decorate(view: View) -> View:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identity = _current_identity(verifier)
            role = identity.claims.get("role")
            if not isinstance(role, str):
                raise AuthError("No role assigned", 403)
            if required_role and role != required_role:
                raise AuthError("Forbidden: insufficient permissions", 403)
            g.uid = identity.uid
            g.role = role
            return view(*args, **kwargs)

        return wrapper

    return decorate


def _stored_role_required(verifier: TokenVerifier, roles: RoleRegistry, required_role: str) -> Any:
    """Require a valid token whose user holds ``required_role`` in the registry."""

    def decorate(view: View) -> View:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            header = request.headers.get("Authorization")
            if not header:
                raise ApiError(401, "Нет токена")
            token = header.removeprefix(BEARER_PREFIX).strip()
            if not token:
                raise ApiError(401, "Некорректный токен")
            try:
                identity = verifier.verify_id_token(token)
            except Exception as exc:
                raise ApiError(401, "Ошибка проверки токена") from exc
            try:
                role = roles.get_user_role(identity.uid)
            except NotFoundError as exc:
                raise ApiError(403, "Ошибка получения роли") from exc
            if role != required_role:
                raise ApiError(403, "Доступ запрещен")
            return view(*args, **kwargs)

        return wrapper

    return decorate


def create_role_app(
    service: ClubService,
    verifier: TokenVerifier,
    roles: RoleRegistry,
    key: bytes = DEFAULT_KEY,
) -> Flask:
    """Build the application where club changes and role changes need the admin role."""
    app = _base_app()
    _register_club_routes(app, service, _role_claim_required(verifier, ADMIN_ROLE))

    @app.post("/auth")
    def auth() -> Response:
        identity = _current_identity(verifier)
        role = identity.claims.get("role")
        token = generate_jwt(identity.uid, role if isinstance(role, str) else "", key)
        return jsonify({"message": "Успешный вход", "jwt": token})

    @app.post("/setRole")
    @_stored_role_required(verifier, roles, ADMIN_ROLE)
    def set_role() -> Response:
        try:
            data = _json_body()
        except ApiError as exc:
            raise ApiError(400, "Неверный формат запроса") from exc
        if not isinstance(data, dict):
            raise ApiError(400, "Неверный формат запроса")
        uid = data.get("uid") or ""
        role = data.get("role") or ""
        if not isinstance(uid, str) or not isinstance(role, str):
            raise ApiError(400, "Неверный формат запроса")
        try:
            roles.set_user_role(uid, role)
        except ValueError as exc:
            raise ApiError(500, "Ошибка обновления роли") from exc
        return jsonify({"message": "Роль обновлена"})

    return app
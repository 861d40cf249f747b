"""HTTP application exposing clubs, computers and bookings."""

from __future__ import annotations

import argparse
import functools
import json
from typing import Any, Callable

from flask import Flask, Response, g, jsonify, request

from .auth import AuthError, DecodedToken, StaticTokenVerifier, TokenVerifier, authenticate
from .handlers import ApiError, ClubService
from .store import DocumentStore

ALLOW_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
ALLOW_HEADERS = ("Content-Type", "Authorization")
MAX_AGE_SECONDS = 12 * 60 * 60

View = Callable[..., Any]
Guard = Callable[[View], View]


def _install_cors(app: Flask) -> None:
    """Allow any origin, with credentials, and answer preflight requests."""

    @app.before_request
    def _preflight() -> Response | None:
        if request.method == "OPTIONS" and request.headers.get("Origin"):
            response = app.make_response(("", 204))
            response.headers["Access-Control-Allow-Methods"] = ",".join(ALLOW_METHODS)
            response.headers["Access-Control-Allow-Headers"] = ",".join(ALLOW_HEADERS)
            response.headers["Access-Control-Max-Age"] = str(MAX_AGE_SECONDS)
            return response
        return None

    @app.after_request
    def _cors_headers(response: Response) -> Response:
        if request.headers.get("Origin"):
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Credentials"] = "true"
        return response


def _base_app() -> Flask:
    app = Flask("clubbooking")
    app.json.ensure_ascii = False  # type: ignore[attr-defined]
    _install_cors(app)

    @app.errorhandler(ApiError)
    def _api_error(exc: ApiError) -> tuple[Response, int]:
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(AuthError)
    def _auth_error(exc: AuthError) -> tuple[Response, int]:
        return jsonify({"error": exc.message}), exc.status

    return app


def _json_body() -> Any:
    """Decode the request body as JSON, reporting malformed input as a 400."""
    raw = request.get_data(cache=True)
    if not raw.strip():
        raise ApiError(400, "EOF")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ApiError(400, str(exc)) from exc


def _current_identity(verifier: TokenVerifier) -> DecodedToken:
    return authenticate(verifier, request.headers.get("Authorization"))


def _login_required(verifier: TokenVerifier) -> Guard:
    """Require a valid bearer token and remember its user id."""

    def decorate(view: View) -> View:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            g.uid = _current_identity(verifier).uid
            return view(*args, **kwargs)

        return wrapper

    return decorate


def _register_club_routes(app: Flask, service: ClubService, guard: Guard) -> None:
    """Add the club listing, lookup and guarded write routes."""

    @app.get("/clubs")
    def list_clubs() -> Response:
        return jsonify(service.list_clubs())

    @app.get("/clubs/<club_id>")
    def get_club(club_id: str) -> Response:
        return jsonify(service.get_club(club_id))

    @app.post("/clubs")
    @guard
    def create_club() -> tuple[Response, int]:
        return jsonify(service.create_club(_json_body())), 201

    @app.put("/clubs/<club_id>")
    @guard
    def update_club(club_id: str) -> Response:
        return jsonify(service.update_club(club_id, _json_body()))

    @app.delete("/clubs/<club_id>")
    @guard
    def delete_club(club_id: str) -> Response:
        return jsonify(service.delete_club(club_id))


def create_app(service: ClubService, verifier: TokenVerifier) -> Flask:
    """Build the application serving clubs, computers and bookings."""
    app = _base_app()
    login_required = _login_required(verifier)
    _register_club_routes(app, service, login_required)

    @app.post("/auth")
    def auth() -> Response:
        identity = _current_identity(verifier)
        return jsonify({"message": "Успешный вход", "uid": identity.uid})

    @app.get("/computers")
    def list_computers() -> Response:
        return jsonify(service.list_computers())

    @app.get("/clubs/<club_id>/computers")
    def club_computers(club_id: str) -> Response:
        return jsonify(service.club_computers(club_id))

    @app.post("/clubs/<club_id>/computers")
    @login_required
    def create_computers(club_id: str) -> tuple[Response, int]:
        # The handler reads a "clubId" parameter that this route does not define,
        # so the computers are stored with an empty club id.
        target = (request.view_args or {}).get("clubId", "")
        return jsonify(service.create_computers(target, _json_body())), 201

    @app.get("/bookings")
    @login_required
    def user_bookings() -> Response:
        return jsonify(service.user_bookings(g.uid))

    @app.post("/bookings")
    @login_required
    def create_booking() -> tuple[Response, int]:
        return jsonify(service.create_booking(g.uid, _json_body())), 201

    @app.put("/bookings/<booking_id>/cancel")
    @login_required
    def cancel_booking(booking_id: str) -> Response:
        return jsonify(service.cancel_booking(g.uid, booking_id))

    return app


def _load_verifier(path: str | None) -> StaticTokenVerifier:
    """Read a table of accepted ID tokens from a JSON file.

    The file maps each token either to a user id or to an object with
    ``uid`` and optional ``claims``.
    """
    verifier = StaticTokenVerifier()
    if path is None:
        return verifier
    with open(path, encoding="utf-8") as handle:
        table = json.load(handle)
    if not isinstance(table, dict):
        raise ValueError("token table must be a JSON object")
    for token, entry in table.items():
        if isinstance(entry, str):
            verifier.add(token, entry)
            continue
        if not isinstance(entry, dict) or not isinstance(entry.get("uid"), str):
            raise ValueError(f"entry for token {token!r} needs a string uid")
        claims = entry.get("claims") or {}
        if not isinstance(claims, dict):
            raise ValueError(f"claims for token {token!r} must be an object")
        verifier.add(token, entry["uid"], claims)
    return verifier


def main(argv: list[str] | None = None) -> int:
    """Run the booking server."""
    parser = argparse.ArgumentParser(prog="clubbooking", description="Computer club booking server.")
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=8080, help="port to listen on")
    parser.add_argument("--tokens", help="JSON file of accepted ID tokens")
    args = parser.parse_args(argv)

    try:
        verifier = _load_verifier(args.tokens)
    except (OSError, ValueError) as exc:
        parser.error(f"cannot load tokens: {exc}")

    app = create_app(ClubService(DocumentStore()), verifier)
    app.run(host=args.host, port=args.port)
    return 0
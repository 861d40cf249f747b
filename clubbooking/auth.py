"""Bearer-token authentication against a pluggable ID-token verifier."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

BEARER_PREFIX = "Bearer "


class AuthError(Exception):
    """An authentication failure carrying the HTTP status to report."""

    def __init__(self, message: str, status: int = 401) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class DecodedToken:
    """The identity proven by a verified ID token."""

    uid: str
    claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier(ABC):
    """Checks ID tokens and returns who they belong to."""

    @abstractmethod
    def verify_id_token(self, token: str) -> DecodedToken:
        """Return the decoded token, or raise if it is not valid."""


class StaticTokenVerifier(TokenVerifier):
    """A verifier backed by a fixed table of known tokens."""

    def __init__(self, tokens: Mapping[str, DecodedToken] | None = None) -> None:
        self._tokens: dict[str, DecodedToken] = dict(tokens or {})

    def add(self, token: str, uid: str, claims: Mapping[str, Any] | None = None) -> None:
        self._tokens[token] = DecodedToken(uid, dict(claims or {}))

    def verify_id_token(self, token: str) -> DecodedToken:
        try:
            return self._tokens[token]
        except KeyError:
            raise AuthError("Invalid token") from None


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an Authorization header value."""
    if not header:
        raise AuthError("No Authorization header")
    token = header.removeprefix(BEARER_PREFIX).strip()
    if not token:
        raise AuthError("Invalid Authorization header")
    return token


def authenticate(verifier: TokenVerifier, header: str | None) -> DecodedToken:
    """Verify the bearer token in ``header`` and return its identity."""
    token = extract_bearer_token(header)
    try:
        return verifier.verify_id_token(token)
    except Exception as exc:
        raise AuthError("Invalid token") from exc
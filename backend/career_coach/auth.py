from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Request
import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions

from .errors import InternalError, Unauthorized

FIREBASE_APP_NAME = "career-coach"

logger = logging.getLogger("career_coach.auth")


def parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "").strip()
    if not auth_header.lower().startswith("bearer "):
        raise Unauthorized("Missing or invalid authorization header")

    token = auth_header[7:].strip()
    if not token:
        raise Unauthorized("Missing or invalid authorization header")
    return token


def is_public_path(path: str) -> bool:
    if path in {"/health", "/openapi.json", "/docs", "/docs/oauth2-redirect", "/redoc"}:
        return True
    return path.startswith("/health/")


def is_protected_path(path: str) -> bool:
    return not is_public_path(path) and path.startswith("/api/")


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, *, credentials_json: str = "", credentials_path: str = "") -> None:
        if credentials_json:
            cert = credentials.Certificate(json.loads(credentials_json))
        elif credentials_path:
            cert = credentials.Certificate(credentials_path)
        else:
            raise ValueError("firebase credentials are required")

        try:
            self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            self._app = firebase_admin.initialize_app(cert, name=FIREBASE_APP_NAME)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self._app)
        except (firebase_auth.InvalidIdTokenError, firebase_auth.UserDisabledError) as exc:
            logger.info(
                json.dumps(
                    {"event": "token_rejected", "reason": type(exc).__name__},
                    ensure_ascii=False,
                )
            )
            raise Unauthorized("Invalid or expired token") from exc
        # ValueError here means a missing project id or similar SDK misconfiguration.
        except (firebase_auth.CertificateFetchError, firebase_exceptions.FirebaseError, ValueError) as exc:
            logger.error(
                json.dumps(
                    {"event": "token_verifier_failure", "reason": type(exc).__name__},
                    ensure_ascii=False,
                )
            )
            raise InternalError("Authentication error") from exc

        uid = str(decoded.get("uid") or decoded.get("sub") or "").strip()
        if not uid:
            raise Unauthorized("Invalid or expired token")

        return {
            "uid": uid,
            "email": str(decoded.get("email") or decoded.get("phone_number") or ""),
        }


def authenticate_request(request: Request, verifier: Any) -> dict[str, Any]:
    token = parse_bearer_token(request)
    identity = verifier.verify(token)
    request.state.identity = identity
    return identity


def require_identity(request: Request) -> dict[str, Any]:
    identity = getattr(request.state, "identity", None)
    if not isinstance(identity, dict) or not identity.get("uid"):
        raise Unauthorized("login required")
    return identity

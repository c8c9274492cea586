from __future__ import annotations

import re
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from app.staffhub.audit import record_event
from app.staffhub.db import db_session
from app.staffhub.errors import TooManyRequests, Unauthenticated, ValidationError
from app.staffhub.models import User

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_TOKEN_SALT = "staffhub-access"
_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"uid": user.id})


def verify_token(token: str) -> int | None:
    """Return the user id carried by a valid, unexpired token."""
    try:
        data = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"])
    except (SignatureExpired, BadSignature):
        return None
    uid = data.get("uid") if isinstance(data, dict) else None
    return uid if isinstance(uid, int) else None


def bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    m = _BEARER_RE.match(header.strip())
    return m.group(1).strip() if m else None


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer token.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/health", "/healthz")):
        return

    token = bearer_token()
    if not token:
        return
    user_id = verify_token(token)
    if user_id is None:
        return

    try:
        user = db_session().get(User, user_id)
    except SQLAlchemyError as e:
        current_app.logger.error("load_current_user DB error (treating as anonymous): %s", e)
        return
    if user and user.is_active:
        g.current_user = user


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not bearer_token():
            raise Unauthenticated("Missing access token")
        if getattr(g, "current_user", None) is None:
            raise Unauthenticated("Not authenticated")
        return fn(*args, **kwargs)

    return wrapped


@bp.post("/token")
def token_post():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if not email or not password:
        raise ValidationError("email and password are required")

    if _check_rate_limit(ip):
        raise TooManyRequests("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Login failed (email=%s request_id=%s)", email, g.request_id)
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise Unauthenticated("Invalid credentials.")

    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify(
        {
            "accessToken": issue_token(user),
            "tokenType": "bearer",
            "expiresIn": current_app.config["TOKEN_MAX_AGE_SECONDS"],
        }
    )

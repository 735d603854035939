import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


logger = logging.getLogger(__name__)

ACCESS_SALT = "access-token"
REFRESH_SALT = "refresh-token"

# Tokens signed before this process started belong to a previous session.
SESSION_EPOCH = int(time.time())

_used_refresh_nonces: set[str] = set()
_refresh_lock = threading.Lock()


class AuthError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class AuthContext:
    user_id: int


def _serializer(salt: str) -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt=salt)


def issue_token_pair(user_id: int = 1) -> dict[str, object]:
    settings = get_settings()
    payload = {"u": user_id, "e": SESSION_EPOCH}
    return {
        "access_token": _serializer(ACCESS_SALT).dumps(payload),
        "refresh_token": _serializer(REFRESH_SALT).dumps(
            {**payload, "n": secrets.token_hex(8)}
        ),
        "token_type": "bearer",
        "expires_in": settings.access_token_max_age_secs,
    }


def _load(token: str, salt: str, max_age: int) -> dict:
    try:
        data = _serializer(salt).loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise AuthError("TOKEN_EXPIRED", "Token has expired") from exc
    except BadSignature as exc:
        raise AuthError("INVALID_TOKEN", "Invalid token") from exc
    if not isinstance(data, dict) or "u" not in data:
        raise AuthError("INVALID_TOKEN", "Invalid token")
    if data.get("e", 0) < SESSION_EPOCH:
        raise AuthError("SESSION_EXPIRED", "Session has expired, sign in again")
    return data


def verify_access_token(token: str) -> AuthContext:
    settings = get_settings()
    data = _load(token, ACCESS_SALT, settings.access_token_max_age_secs)
    return AuthContext(user_id=int(data["u"]))


def refresh_tokens(refresh_token: str) -> dict[str, object]:
    settings = get_settings()
    data = _load(refresh_token, REFRESH_SALT, settings.refresh_token_max_age_secs)
    nonce = str(data.get("n", ""))
    with _refresh_lock:
        if not nonce or nonce in _used_refresh_nonces:
            raise AuthError("INVALID_TOKEN", "Refresh token already used")
        _used_refresh_nonces.add(nonce)
    return issue_token_pair(int(data["u"]))


def login(access_key: str) -> dict[str, object]:
    settings = get_settings()
    if not secrets.compare_digest(access_key, settings.access_key):
        logger.warning("auth_login_failed: reason=bad_access_key")
        raise AuthError("INVALID_CREDENTIALS", "Invalid access key")
    return issue_token_pair(1)


def require_auth(authorization: Optional[str] = Header(default=None)) -> AuthContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=401,
            detail={"code": "NO_TOKEN", "message": "Authorization token missing"},
        )
    token = authorization.split(" ", 1)[1].strip()
    try:
        return verify_access_token(token)
    except AuthError as exc:
        raise HTTPException(
            status_code=401, detail={"code": exc.code, "message": exc.message}
        ) from exc

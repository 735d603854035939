import pytest
from fastapi import HTTPException

import auth
from auth import AuthError, login, refresh_tokens, require_auth, verify_access_token
from config import get_settings


def test_login_rejects_wrong_key() -> None:
    with pytest.raises(AuthError) as excinfo:
        login("not-the-key")
    assert excinfo.value.code == "INVALID_CREDENTIALS"


def test_login_issues_verifiable_pair() -> None:
    tokens = login("test-access-key")
    assert tokens["token_type"] == "bearer"
    assert verify_access_token(tokens["access_token"]).user_id == 1


def test_refresh_token_is_single_use() -> None:
    tokens = login("test-access-key")
    fresh = refresh_tokens(tokens["refresh_token"])
    assert verify_access_token(fresh["access_token"]).user_id == 1

    with pytest.raises(AuthError) as excinfo:
        refresh_tokens(tokens["refresh_token"])
    assert excinfo.value.code == "INVALID_TOKEN"


def test_access_token_is_not_a_refresh_token() -> None:
    tokens = login("test-access-key")
    with pytest.raises(AuthError) as excinfo:
        refresh_tokens(tokens["access_token"])
    assert excinfo.value.code == "INVALID_TOKEN"


def test_expired_access_token(monkeypatch) -> None:
    tokens = login("test-access-key")
    monkeypatch.setattr(get_settings(), "access_token_max_age_secs", -1)
    with pytest.raises(AuthError) as excinfo:
        verify_access_token(tokens["access_token"])
    assert excinfo.value.code == "TOKEN_EXPIRED"


def test_tokens_from_previous_session_are_rejected(monkeypatch) -> None:
    tokens = login("test-access-key")
    monkeypatch.setattr(auth, "SESSION_EPOCH", auth.SESSION_EPOCH + 100)
    with pytest.raises(AuthError) as excinfo:
        verify_access_token(tokens["access_token"])
    assert excinfo.value.code == "SESSION_EXPIRED"


def test_require_auth_without_header() -> None:
    with pytest.raises(HTTPException) as excinfo:
        require_auth(None)
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail["code"] == "NO_TOKEN"

    with pytest.raises(HTTPException) as excinfo:
        require_auth("Bearer garbage")
    assert excinfo.value.detail["code"] == "INVALID_TOKEN"
